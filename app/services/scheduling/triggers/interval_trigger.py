"""
Interval-based trigger implementation.

Fires every N seconds, forever. The first firing is N seconds after the
trigger is scheduled; each later firing is N seconds after the previous
firing started.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.models.scheduling import TriggerType
from app.utils.logger import get_logger

from .base import BaseTrigger, TriggerCalculationError

logger = get_logger(__name__)


class IntervalTrigger(BaseTrigger):
    """
    Fixed-interval trigger.

    Examples:
    - Every 30 seconds: "30"
    - Every hour: "3600"
    """

    trigger_type = TriggerType.INTERVAL

    def validate_config(self) -> None:
        """Validate interval trigger configuration"""
        self.total_seconds = self.parse_seconds()

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.total_seconds)

    def get_next_run_time(
        self, previous_run_time: Optional[datetime]
    ) -> Optional[datetime]:
        try:
            if previous_run_time is None:
                base_time = self.now()
            else:
                base_time = self.normalize_datetime(previous_run_time)

            next_run = base_time + self.interval

            logger.debug(
                "Calculated next interval run time",
                previous_run=previous_run_time.isoformat()
                if previous_run_time
                else None,
                next_run=next_run.isoformat(),
                interval_seconds=self.total_seconds,
            )
            return next_run

        except OverflowError as e:
            raise TriggerCalculationError(f"Interval calculation failed: {e}") from e

    def get_interval_description(self) -> str:
        """Get a concise description of the interval"""
        total = self.total_seconds
        for unit_seconds, suffix in ((86400, "d"), (3600, "h"), (60, "m")):
            if total >= unit_seconds and total % unit_seconds == 0:
                return f"{total // unit_seconds}{suffix}"
        return f"{total}s"

    def get_trigger_info(self) -> Dict[str, Any]:
        """Get human-readable trigger information"""
        return {
            "type": self.trigger_type.value,
            "expression": self.expression,
            "interval_seconds": self.total_seconds,
            "description": f"Every {self.get_interval_description()}",
        }
