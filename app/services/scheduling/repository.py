"""
Scheduling system database repository.

Every method runs in its own short-lived session and transaction, so each
durable read or mutation is independent of the others. Callers that need
several steps (unschedule, reschedule, persist) sequence them themselves.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.session import SessionLocal
from app.models.scheduling import JobStatus, ScheduleJob
from app.utils.error_handler import ErrorCategory, ErrorSeverity, SchedulerServiceError
from app.utils.logger import get_logger

logger = get_logger(__name__)


class JobStorageError(SchedulerServiceError):
    """Raised when a durable read or write fails"""

    status_code = 500
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.DATABASE


class JobNotFoundError(SchedulerServiceError):
    """Raised when a requested job is not found"""

    status_code = 404
    severity = ErrorSeverity.LOW
    category = ErrorCategory.NOT_FOUND

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", {"job_id": job_id})
        self.job_id = job_id


def epoch_now() -> int:
    return int(time.time())


class JobRepository:
    """Data access for ``schedule_jobs`` rows."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """Initialize repository with an optional session factory"""
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Context manager for database transactions"""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @contextmanager
    def _storage_errors(self, operation: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to {operation}", error=str(e), exc_info=True, **context
            )
            raise JobStorageError(f"Failed to {operation}: {e}", context) from e

    def create_job(self, job_data: Dict[str, Any]) -> ScheduleJob:
        """Insert a new job row"""
        with self._storage_errors("create job", job_id=job_data.get("job_id")):
            with self.transaction() as db:
                job = ScheduleJob(**job_data)
                db.add(job)
                db.flush()

        logger.info(
            "Created schedule job",
            job_id=job.job_id,
            name=job.name,
            trigger_type=job.trigger_type,
            job_key=job.job_key,
        )
        return job

    def get_job(self, job_id: str) -> ScheduleJob:
        """Get job by ID, raising JobNotFoundError if absent"""
        with self._storage_errors("get job", job_id=job_id):
            with self.transaction() as db:
                job = db.get(ScheduleJob, job_id)

        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def update_job(self, job_id: str, updates: Dict[str, Any]) -> ScheduleJob:
        """Update job with given changes and refresh its update time"""
        with self._storage_errors("update job", job_id=job_id):
            with self.transaction() as db:
                job = db.get(ScheduleJob, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)

                for key, value in updates.items():
                    if not hasattr(ScheduleJob, key):
                        raise AttributeError(f"ScheduleJob has no column {key!r}")
                    setattr(job, key, value)

                job.update_time = updates.get("update_time", epoch_now())

        logger.info("Updated job", job_id=job_id, updates=sorted(updates.keys()))
        return job

    def update_job_key(self, job_id: str, job_key: Optional[int]) -> None:
        """Rewrite only the live handle of a job (startup recovery)"""
        with self._storage_errors("update job key", job_id=job_id, job_key=job_key):
            with self.transaction() as db:
                updated = (
                    db.query(ScheduleJob)
                    .filter(ScheduleJob.job_id == job_id)
                    .update({ScheduleJob.job_key: job_key}, synchronize_session=False)
                )

        if not updated:
            raise JobNotFoundError(job_id)

    def mark_job_done(self, job_id: str, job_key: int) -> bool:
        """
        Mark a one-shot job as fired: status Done and no live handle.

        Only applies while the record still names ``job_key``; a job replaced
        or deleted since the firing began is left alone and False is returned.
        """
        with self._storage_errors("mark job done", job_id=job_id, job_key=job_key):
            with self.transaction() as db:
                updated = (
                    db.query(ScheduleJob)
                    .filter(
                        ScheduleJob.job_id == job_id,
                        ScheduleJob.job_key == job_key,
                    )
                    .update(
                        {
                            ScheduleJob.status: JobStatus.DONE.value,
                            ScheduleJob.job_key: None,
                            ScheduleJob.update_time: epoch_now(),
                        },
                        synchronize_session=False,
                    )
                )

        if not updated:
            logger.warning(
                "Job no longer holds this handle, status left unchanged",
                job_id=job_id,
                job_key=job_key,
            )
            return False
        return True

    def delete_job(self, job_id: str) -> None:
        """Delete a job row"""
        with self._storage_errors("delete job", job_id=job_id):
            with self.transaction() as db:
                deleted = (
                    db.query(ScheduleJob)
                    .filter(ScheduleJob.job_id == job_id)
                    .delete(synchronize_session=False)
                )

        if not deleted:
            raise JobNotFoundError(job_id)
        logger.info("Deleted job", job_id=job_id)

    def list_jobs(self, offset: int = 0, limit: Optional[int] = None) -> List[ScheduleJob]:
        """List jobs in creation order; ``limit=None`` returns everything"""
        with self._storage_errors("list jobs", offset=offset, limit=limit):
            with self.transaction() as db:
                query = db.query(ScheduleJob).order_by(
                    ScheduleJob.creation_time, ScheduleJob.job_id
                )
                if limit is not None:
                    query = query.offset(offset).limit(limit)
                elif offset:
                    query = query.offset(offset)
                return query.all()

    def list_all_jobs(self) -> List[ScheduleJob]:
        return self.list_jobs()

    def count_jobs(self) -> int:
        with self._storage_errors("count jobs"):
            with self.transaction() as db:
                return db.query(func.count(ScheduleJob.job_id)).scalar() or 0

    def truncate_jobs(self) -> int:
        """Remove every job row, returning how many were deleted"""
        with self._storage_errors("truncate jobs"):
            with self.transaction() as db:
                deleted = db.query(ScheduleJob).delete(synchronize_session=False)

        logger.warning("Truncated schedule jobs", deleted=deleted)
        return deleted

    def health_check(self) -> Dict[str, Any]:
        try:
            return {"healthy": True, "job_count": self.count_jobs()}
        except JobStorageError as e:
            return {"healthy": False, "error": str(e)}
