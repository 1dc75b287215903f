"""
Startup recovery.

Live schedules do not survive a restart. After the engine starts, every
enabled job record is scheduled again and its ``job_key`` rewritten to the
new handle. The first job whose trigger cannot be rebuilt aborts startup.
"""

from app.utils.error_handler import ErrorCategory, ErrorSeverity, SchedulerServiceError
from app.utils.logger import get_logger, job_context

from .lifecycle import JobLifecycleManager
from .triggers import TriggerValidationError

logger = get_logger(__name__)


class RecoveryError(SchedulerServiceError):
    """Raised when a stored job cannot be rescheduled at startup"""

    status_code = 500
    severity = ErrorSeverity.CRITICAL
    category = ErrorCategory.SCHEDULER


def restore_scheduled_jobs(lifecycle: JobLifecycleManager) -> int:
    """
    Reschedule every enabled job from storage.

    Returns:
        Number of jobs rescheduled

    Raises:
        RecoveryError: On the first job whose trigger fails to build;
            later records are left unprocessed
    """
    repository = lifecycle.repository
    jobs = repository.list_all_jobs()
    restored = 0

    logger.info("Restoring scheduled jobs", stored_jobs=len(jobs))

    for job in jobs:
        if not job.is_enabled:
            continue

        try:
            trigger = lifecycle.build_trigger(
                {"trigger_type": job.trigger_type, "expression": job.expression}
            )
        except TriggerValidationError as e:
            logger.critical(
                "Stored job has an invalid trigger, aborting recovery",
                trigger_type=job.trigger_type,
                expression=job.expression,
                error=str(e),
                **job_context(job.job_id, job.name),
            )
            raise RecoveryError(
                f"Cannot restore job {job.job_id}: {e}",
                {"job_id": job.job_id, "restored": restored},
            ) from e

        stale_key = job.job_key
        with lifecycle.lock:
            handle = lifecycle.schedule_job(job, trigger)
            repository.update_job_key(job.job_id, handle)
        restored += 1

        logger.info(
            "Restored job",
            stale_job_key=stale_key,
            **job_context(job.job_id, job.name, handle),
        )

    logger.info("Scheduled jobs restored", restored=restored)
    return restored
