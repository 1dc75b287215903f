"""
One-shot trigger implementation.

Fires exactly once, N seconds after it is scheduled, then becomes inert.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.models.scheduling import TriggerType
from app.utils.logger import get_logger

from .base import BaseTrigger

logger = get_logger(__name__)


class OnceTrigger(BaseTrigger):
    """
    Run-once trigger.

    Examples:
    - Right away: "0"
    - In ten minutes: "600"
    """

    trigger_type = TriggerType.ONCE

    def validate_config(self) -> None:
        """Validate once trigger configuration"""
        self.delay_seconds = self.parse_seconds()

    def get_next_run_time(
        self, previous_run_time: Optional[datetime]
    ) -> Optional[datetime]:
        """
        Args:
            previous_run_time: Set once the single firing has happened

        Returns:
            now + delay before the firing, None afterwards
        """
        if previous_run_time is not None:
            logger.debug(
                "Once trigger already fired",
                expression=self.expression,
                fired_at=previous_run_time.isoformat(),
            )
            return None

        return self.now() + timedelta(seconds=self.delay_seconds)

    def get_trigger_info(self) -> Dict[str, Any]:
        """Get human-readable trigger information"""
        return {
            "type": self.trigger_type.value,
            "expression": self.expression,
            "delay_seconds": self.delay_seconds,
            "description": f"Once, {self.delay_seconds}s after scheduling",
        }
