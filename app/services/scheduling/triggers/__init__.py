"""
Job trigger system for scheduling.

Provides the cron, interval and once trigger types and the factory that
builds them from a ``(trigger_type, expression)`` pair.
"""

from .base import (
    BaseTrigger,
    InvalidExpressionError,
    TriggerCalculationError,
    TriggerError,
    TriggerValidationError,
    UnsupportedTriggerTypeError,
)
from .cron_trigger import CronTrigger
from .factory import TriggerFactory
from .interval_trigger import IntervalTrigger
from .once_trigger import OnceTrigger

__all__ = [
    "BaseTrigger",
    "CronTrigger",
    "IntervalTrigger",
    "OnceTrigger",
    "TriggerFactory",
    "TriggerError",
    "TriggerValidationError",
    "InvalidExpressionError",
    "UnsupportedTriggerTypeError",
    "TriggerCalculationError",
]
