"""
Trigger factory for creating appropriate trigger instances.

Turns a ``(trigger_type, expression)`` pair into a trigger. Building a
trigger has no side effects, so the factory doubles as the expression
validator for the request layer.
"""

from typing import Dict, List, Type, Union

from app.models.scheduling import TriggerType
from app.utils.logger import get_logger

from .base import BaseTrigger, UnsupportedTriggerTypeError
from .cron_trigger import CronTrigger
from .interval_trigger import IntervalTrigger
from .once_trigger import OnceTrigger

logger = get_logger(__name__)


class TriggerFactory:
    """
    Factory for creating trigger instances.

    All triggers built by one factory share its timezone.
    """

    # Registry of trigger types to classes
    TRIGGER_REGISTRY: Dict[TriggerType, Type[BaseTrigger]] = {
        TriggerType.CRON: CronTrigger,
        TriggerType.INTERVAL: IntervalTrigger,
        TriggerType.ONCE: OnceTrigger,
    }

    def __init__(self, timezone_name: str = "UTC"):
        """Initialize trigger factory"""
        self.timezone_name = timezone_name

    def build(
        self, trigger_type: Union[TriggerType, str], expression: str
    ) -> BaseTrigger:
        """
        Create a trigger instance for the given type and expression.

        Args:
            trigger_type: "cron", "interval" or "once"
            expression: Trigger-type-specific expression

        Returns:
            Configured trigger instance

        Raises:
            UnsupportedTriggerTypeError: If the trigger type is unknown
            InvalidExpressionError: If the expression does not parse
        """
        trigger_class = self._get_trigger_class(trigger_type)
        trigger = trigger_class(expression, timezone_name=self.timezone_name)

        logger.debug(
            f"Created {trigger.trigger_type.value} trigger",
            expression=expression,
            timezone=self.timezone_name,
        )
        return trigger

    def _get_trigger_class(
        self, trigger_type: Union[TriggerType, str]
    ) -> Type[BaseTrigger]:
        try:
            resolved = TriggerType(trigger_type)
        except ValueError:
            resolved = None

        if resolved not in self.TRIGGER_REGISTRY:
            raise UnsupportedTriggerTypeError(
                f"Unsupported trigger type: {trigger_type!r}. "
                f"Supported types: {self.supported_trigger_types()}"
            )
        return self.TRIGGER_REGISTRY[resolved]

    def supported_trigger_types(self) -> List[str]:
        return [trigger_type.value for trigger_type in self.TRIGGER_REGISTRY]

    def __repr__(self) -> str:
        """String representation of factory"""
        return f"TriggerFactory(timezone={self.timezone_name!r})"
