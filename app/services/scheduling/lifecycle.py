"""
Job lifecycle management.

Keeps durable job records and the engine's live schedules consistent across
create, replace, delete and bulk-clear. The engine and the database are not
covered by one transaction: each operation orders its steps so a failure
leaves no orphaned live schedule, and the remaining windows are logged.
Mutating operations run one at a time under the manager lock, which one-shot
firings also take for their status write.
"""

import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import httpx

from app.models.scheduling import JobStatus, ScheduleJob
from app.services.metrics import LIFECYCLE_OPERATIONS_TOTAL
from app.utils.logger import get_logger, job_context

from .dispatch import HttpDispatchAction, HttpJobRequest
from .engine import ScheduleConflictError, ScheduleNotFoundError, SchedulerEngine
from .repository import JobRepository, epoch_now
from .triggers import BaseTrigger, TriggerFactory

logger = get_logger(__name__)

# Request fields a caller may set on a job
JOB_FIELDS = (
    "name",
    "trigger_type",
    "expression",
    "http_method",
    "http_target_url",
    "http_request_body",
    "json_web_token",
)


class JobLifecycleManager:
    """
    Reconciles job records with live schedules.

    At most one live handle exists per job, and the ``job_key`` written to
    storage is the handle the engine actually holds at the time of the write.
    """

    def __init__(
        self,
        engine: SchedulerEngine,
        repository: JobRepository,
        trigger_factory: TriggerFactory,
        client: httpx.AsyncClient,
    ):
        self.engine = engine
        self.repository = repository
        self.trigger_factory = trigger_factory
        self.client = client
        # Held for the whole read, unschedule, schedule and persist sequence
        self.lock = threading.Lock()

    @contextmanager
    def _track(self, operation: str) -> Iterator[None]:
        with self.lock:
            try:
                yield
            except Exception:
                LIFECYCLE_OPERATIONS_TOTAL.labels(operation=operation, result="error").inc()
                raise
            else:
                LIFECYCLE_OPERATIONS_TOTAL.labels(operation=operation, result="ok").inc()

    def build_trigger(self, fields: Dict[str, Any]) -> BaseTrigger:
        return self.trigger_factory.build(fields["trigger_type"], fields["expression"])

    def schedule_job(self, job: ScheduleJob, trigger: BaseTrigger) -> int:
        """
        Register a live schedule for ``job`` and return its handle.

        Raises ScheduleConflictError if the engine already holds a live
        schedule for this job under its recorded handle.
        """
        if job.job_key is not None:
            try:
                live = self.engine.lookup(job.job_key)
            except ScheduleNotFoundError:
                pass
            else:
                if getattr(live.action, "job_id", None) == job.job_id:
                    raise ScheduleConflictError(
                        f"Job {job.job_id} already has live schedule {job.job_key}",
                        {"job_id": job.job_id, "job_key": job.job_key},
                    )

        action = HttpDispatchAction(
            HttpJobRequest.from_job(job),
            self.repository,
            self.client,
            guard=self.lock,
        )
        return self.engine.schedule(trigger, action)

    def _unschedule_quietly(self, job_id: str, handle: Optional[int]) -> None:
        """Unschedule, treating an already-gone handle (a fired once job) as done"""
        if handle is None:
            return
        try:
            self.engine.unschedule(handle)
        except ScheduleNotFoundError:
            logger.debug("Live schedule already gone", job_id=job_id, job_key=handle)

    def create_job(self, fields: Dict[str, Any]) -> ScheduleJob:
        """Build the trigger, schedule it, then persist the record"""
        with self._track("create"):
            trigger = self.build_trigger(fields)

            now = epoch_now()
            record = {key: fields.get(key) for key in JOB_FIELDS}
            record["http_request_body"] = record["http_request_body"] or ""
            record["json_web_token"] = record["json_web_token"] or ""
            record.update(
                job_id=fields.get("job_id") or str(uuid.uuid4()),
                status=JobStatus.ENABLED.value,
                job_key=None,
                creation_time=now,
                update_time=now,
            )

            handle = self.schedule_job(ScheduleJob(**record), trigger)
            record["job_key"] = handle

            try:
                job = self.repository.create_job(record)
            except Exception:
                self._unschedule_quietly(record["job_id"], handle)
                raise

            logger.info("Job created", **job_context(job.job_id, job.name, handle))
            return job

    def get_job(self, job_id: str) -> ScheduleJob:
        return self.repository.get_job(job_id)

    def list_jobs(
        self, offset: int = 0, size: int = 0
    ) -> Tuple[List[ScheduleJob], int]:
        """Return a page of jobs and the total count; ``size=0`` means no limit"""
        jobs = self.repository.list_jobs(offset=offset, limit=size or None)
        return jobs, self.repository.count_jobs()

    def replace_job(self, job_id: str, fields: Dict[str, Any]) -> ScheduleJob:
        """
        Replace every field of a job.

        The new trigger is built before the old schedule is touched, so an
        invalid expression leaves the job running as before. Unscheduling the
        old handle, scheduling the new one and persisting are separate steps.
        """
        with self._track("replace"):
            job = self.repository.get_job(job_id)
            status = JobStatus(int(fields["status"]))

            trigger = self.build_trigger(fields) if status == JobStatus.ENABLED else None

            self._unschedule_quietly(job_id, job.job_key)

            updates = {key: fields.get(key) for key in JOB_FIELDS}
            updates["http_request_body"] = updates["http_request_body"] or ""
            updates["json_web_token"] = updates["json_web_token"] or ""
            updates["status"] = status.value
            updates["job_key"] = None

            handle = None
            if trigger is not None:
                replacement = ScheduleJob(job_id=job_id, **updates)
                handle = self.schedule_job(replacement, trigger)
                updates["job_key"] = handle

            try:
                job = self.repository.update_job(job_id, updates)
            except Exception:
                self._unschedule_quietly(job_id, handle)
                logger.error(
                    "Replace failed after the old schedule was removed",
                    job_id=job_id,
                    previous_job_key=job.job_key,
                )
                raise

            logger.info("Job replaced", status=status.value, **job_context(job_id, job.name, handle))
            return job

    def delete_job(self, job_id: str) -> None:
        with self._track("delete"):
            job = self.repository.get_job(job_id)
            self._unschedule_quietly(job_id, job.job_key)
            self.repository.delete_job(job_id)
            logger.info("Job deleted", **job_context(job_id, job.name, job.job_key))

    def delete_all_jobs(self) -> int:
        """Clear the engine, then truncate storage; the two steps are not atomic"""
        with self._track("delete_all"):
            cleared = self.engine.clear()
            try:
                deleted = self.repository.truncate_jobs()
            except Exception:
                logger.error(
                    "Live schedules cleared but job table was not truncated",
                    cleared=cleared,
                )
                raise

            logger.warning("All jobs deleted", cleared=cleared, deleted=deleted)
            return deleted
