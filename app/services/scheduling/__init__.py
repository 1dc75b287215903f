"""
HTTP job scheduling.

Timed jobs whose action is a single outbound HTTP request. The engine holds
live schedules in memory; the lifecycle manager keeps them consistent with
the ``schedule_jobs`` table; recovery rebuilds them after a restart.

Process setup constructs one engine and passes it where it is needed:

    engine = SchedulerEngine()
    lifecycle = JobLifecycleManager(engine, JobRepository(), TriggerFactory(), client)
    await engine.start()
    restore_scheduled_jobs(lifecycle)
"""

from .dispatch import DispatchFailure, DispatchOutcome, HttpDispatchAction, HttpJobRequest
from .engine import (
    JobAction,
    LiveSchedule,
    ScheduleConflictError,
    ScheduleNotFoundError,
    SchedulerEngine,
    SchedulerStatus,
)
from .lifecycle import JobLifecycleManager
from .recovery import RecoveryError, restore_scheduled_jobs
from .repository import JobNotFoundError, JobRepository, JobStorageError
from .triggers import (
    InvalidExpressionError,
    TriggerFactory,
    UnsupportedTriggerTypeError,
)

__all__ = [
    "SchedulerEngine",
    "SchedulerStatus",
    "LiveSchedule",
    "JobAction",
    "JobLifecycleManager",
    "HttpDispatchAction",
    "HttpJobRequest",
    "DispatchOutcome",
    "DispatchFailure",
    "JobRepository",
    "TriggerFactory",
    "restore_scheduled_jobs",
    "RecoveryError",
    "JobNotFoundError",
    "JobStorageError",
    "ScheduleNotFoundError",
    "ScheduleConflictError",
    "InvalidExpressionError",
    "UnsupportedTriggerTypeError",
]
