"""
Base trigger interface for job scheduling.

A trigger is a pure value: given the time of the previous firing it computes
the next one, or ``None`` once it has nothing left to fire.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytz

from app.models.scheduling import TriggerType
from app.utils.error_handler import ErrorCategory, ErrorSeverity, SchedulerServiceError
from app.utils.logger import get_logger

logger = get_logger(__name__)

_SECONDS_PATTERN = re.compile(r"[0-9]+")


class TriggerError(SchedulerServiceError):
    """Base exception for trigger-related errors"""

    category = ErrorCategory.SCHEDULER


class TriggerValidationError(TriggerError):
    """Raised when trigger configuration is invalid"""

    status_code = 400
    severity = ErrorSeverity.LOW
    category = ErrorCategory.VALIDATION


class InvalidExpressionError(TriggerValidationError):
    """Raised when an expression does not parse for its trigger type"""

    pass


class UnsupportedTriggerTypeError(TriggerValidationError):
    """Raised for trigger types the factory does not know"""

    pass


class TriggerCalculationError(TriggerError):
    """Raised when trigger calculation fails"""

    status_code = 500
    severity = ErrorSeverity.HIGH


class BaseTrigger(ABC):
    """
    Base class for all trigger types.

    Subclasses parse ``expression`` in ``validate_config`` (raising
    ``InvalidExpressionError``) and implement ``get_next_run_time``.
    All returned datetimes are timezone-aware UTC.
    """

    trigger_type: TriggerType

    def __init__(self, expression: str, timezone_name: str = "UTC"):
        """
        Initialize trigger with its expression.

        Args:
            expression: Trigger-type-specific expression string
            timezone_name: Zone used for calendar calculations
        """
        if not isinstance(expression, str):
            raise InvalidExpressionError(
                f"Expression must be a string, got {type(expression).__name__}"
            )
        self.expression = expression

        try:
            self.timezone = pytz.timezone(timezone_name)
        except pytz.UnknownTimeZoneError as exc:
            raise TriggerValidationError(f"Invalid timezone: {timezone_name}") from exc
        self.timezone_name = self.timezone.zone

        # Validate configuration during initialization
        self.validate_config()

    @abstractmethod
    def validate_config(self) -> None:
        """
        Parse and validate the expression.

        Should raise InvalidExpressionError if the expression is invalid.
        """
        pass

    @abstractmethod
    def get_next_run_time(
        self, previous_run_time: Optional[datetime]
    ) -> Optional[datetime]:
        """
        Calculate the next run time for this trigger.

        Args:
            previous_run_time: When the last firing started (None before the first)

        Returns:
            Next run time as timezone-aware UTC datetime, or None if no more runs

        Raises:
            TriggerCalculationError: If calculation fails
        """
        pass

    def get_trigger_info(self) -> Dict[str, Any]:
        """Default trigger metadata implementation."""
        return {
            "type": self.trigger_type.value,
            "expression": self.expression,
        }

    def now(self) -> datetime:
        """Return the current UTC time (safe for monkeypatching in tests)."""
        return datetime.now(timezone.utc)

    def normalize_datetime(self, dt: datetime) -> datetime:
        """
        Normalize datetime to UTC timezone.

        Args:
            dt: Datetime to normalize

        Returns:
            Timezone-aware UTC datetime
        """
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    def parse_seconds(self) -> int:
        """
        Parse the expression as a non-negative base-10 number of seconds.

        Signs, surrounding whitespace, underscores and non-ASCII digits are
        all rejected. The delay must also be representable as a datetime
        offset from now.

        Raises:
            InvalidExpressionError: If the expression is not such a number
        """
        if not _SECONDS_PATTERN.fullmatch(self.expression):
            raise InvalidExpressionError(
                f"Invalid {self.trigger_type.value} expression: "
                f"{self.expression!r} is not a non-negative integer number of seconds"
            )

        seconds = int(self.expression)
        try:
            self.now() + timedelta(seconds=seconds)
        except OverflowError as exc:
            raise InvalidExpressionError(
                f"Invalid {self.trigger_type.value} expression: "
                f"{seconds} seconds is out of range"
            ) from exc
        return seconds

    def __repr__(self) -> str:
        """String representation of trigger"""
        return f"{self.__class__.__name__}({self.expression!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BaseTrigger):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.expression == other.expression
            and self.timezone_name == other.timezone_name
        )

    def __hash__(self) -> int:
        return hash((type(self), self.expression, self.timezone_name))
