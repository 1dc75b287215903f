"""
Cron-based trigger implementation.

Accepts standard 5-field expressions (``minute hour day month dow``) and
6-field expressions with a leading seconds field. Calendar rules are
evaluated in the trigger's timezone and results are returned in UTC.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from croniter import croniter

from app.models.scheduling import TriggerType
from app.utils.logger import get_logger

from .base import BaseTrigger, InvalidExpressionError, TriggerCalculationError

logger = get_logger(__name__)


class CronTrigger(BaseTrigger):
    """
    Calendar cron trigger, repeating indefinitely.

    Examples:
    - Daily at 9 AM: "0 9 * * *"
    - Every 15 minutes: "*/15 * * * *"
    - Every 30 seconds: "*/30 * * * * *"
    """

    trigger_type = TriggerType.CRON

    def validate_config(self) -> None:
        """Validate cron trigger configuration"""
        fields = self.expression.split()
        if not fields:
            raise InvalidExpressionError("Cron expression cannot be empty")

        if len(fields) not in (5, 6):
            raise InvalidExpressionError(
                f"Invalid cron expression: expected 5 or 6 fields, got {len(fields)}"
            )

        self.cron_expression = " ".join(fields)
        self.has_seconds = len(fields) == 6

        try:
            self._cron_iter(self._local(self.now()))
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidExpressionError(
                f"Invalid cron expression: {self.expression!r} ({e})"
            ) from e

    def _cron_iter(self, base_time: datetime) -> croniter:
        return croniter(
            self.cron_expression,
            base_time,
            second_at_beginning=self.has_seconds,
        )

    def _local(self, dt: datetime) -> datetime:
        return self.normalize_datetime(dt).astimezone(self.timezone)

    def _next_after(self, base_time: datetime) -> datetime:
        next_run = self._cron_iter(self._local(base_time)).get_next(datetime)
        return next_run.astimezone(timezone.utc)

    def get_next_run_time(
        self, previous_run_time: Optional[datetime]
    ) -> Optional[datetime]:
        """
        Calculate next run time based on cron expression.

        Args:
            previous_run_time: When the last firing started

        Returns:
            Next run time in UTC timezone
        """
        try:
            base_time = previous_run_time or self.now()
            next_run = self._next_after(base_time)

            now_utc = self.now()
            if next_run <= now_utc:
                # A slow firing can outlive the slot after it; skip ahead from now
                logger.warning(
                    "Calculated next run time is in the past, recalculating from current time",
                    expression=self.expression,
                    calculated_time=next_run.isoformat(),
                    current_time=now_utc.isoformat(),
                )
                next_run = self._next_after(now_utc)

            logger.debug(
                "Calculated next cron run time",
                expression=self.expression,
                timezone=self.timezone_name,
                previous_run=previous_run_time.isoformat()
                if previous_run_time
                else None,
                next_run=next_run.isoformat(),
            )

            return next_run

        except Exception as e:
            logger.error(
                "Failed to calculate next run time for cron expression",
                expression=self.expression,
                error=str(e),
                exc_info=True,
            )
            raise TriggerCalculationError(f"Cron calculation failed: {e}") from e

    def upcoming_run_times(self, count: int = 3) -> List[datetime]:
        cron = self._cron_iter(self._local(self.now()))
        return [cron.get_next(datetime).astimezone(timezone.utc) for _ in range(count)]

    def get_trigger_info(self) -> Dict[str, Any]:
        """Get human-readable trigger information"""
        return {
            "type": self.trigger_type.value,
            "expression": self.expression,
            "timezone": self.timezone_name,
            "next_runs": [run.isoformat() for run in self.upcoming_run_times()],
        }
