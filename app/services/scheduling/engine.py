"""
In-process scheduler engine.

Owns the live registration table (``handle -> LiveSchedule``) and an asyncio
dispatch loop that fires due triggers. Registration operations are plain
synchronous methods so they can be called from request handlers running in
the threadpool; they only touch the table under the engine lock and wake the
loop through ``call_soon_threadsafe``.
"""

import asyncio
import heapq
import itertools
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from app.services.metrics import LIVE_SCHEDULES
from app.utils.error_handler import ErrorCategory, ErrorSeverity, SchedulerServiceError
from app.utils.logger import get_logger

from .triggers.base import BaseTrigger

logger = get_logger(__name__)

# Stale queue entries tolerated beyond the live ones before a rebuild
QUEUE_COMPACT_SLACK = 64


class ScheduleNotFoundError(SchedulerServiceError):
    """Raised when a handle has no live schedule"""

    status_code = 404
    severity = ErrorSeverity.LOW
    category = ErrorCategory.NOT_FOUND

    def __init__(self, handle: int):
        super().__init__(f"No live schedule for handle {handle}", {"job_key": handle})
        self.handle = handle


class ScheduleConflictError(SchedulerServiceError):
    """Raised when a job that already has a live schedule is scheduled again"""

    status_code = 500
    severity = ErrorSeverity.CRITICAL
    category = ErrorCategory.SCHEDULER


class SchedulerStatus(str, Enum):
    """Scheduler operational status"""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class JobAction(Protocol):
    """Unit of work bound to a trigger; run once per firing with its handle."""

    async def execute(self, handle: int) -> Any:
        ...


@dataclass
class LiveSchedule:
    """A registered (trigger, action) pair and the handle it was given"""

    trigger: BaseTrigger
    action: JobAction
    handle: int


class SchedulerEngine:
    """
    Process-wide live scheduler.

    Due firings are kept in a heap ordered by monotonic due time, ties broken
    by handle (which is also registration order). Each firing runs as its own
    task; the next due time of a recurring schedule is computed only after its
    firing completes, so firings of one handle never overlap.
    """

    def __init__(self):
        """Initialize scheduler engine"""
        self.status = SchedulerStatus.STOPPED
        self.started_at: Optional[datetime] = None

        # Guards _schedules and _queue only
        self._lock = threading.Lock()
        self._schedules: Dict[int, LiveSchedule] = {}
        self._queue: List[Tuple[float, int]] = []
        self._handles = itertools.count(1)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

        self._stats = {"firings_started": 0, "firings_failed": 0}

    async def start(self) -> None:
        """Start the dispatch loop; a second call is a no-op"""
        if self.status != SchedulerStatus.STOPPED:
            logger.warning("Scheduler already running", status=self.status.value)
            return

        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self.status = SchedulerStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)
        self._dispatch_task = self._loop.create_task(self._dispatch_loop())

        logger.info("Scheduler engine started", live_schedules=self.job_count())

    async def stop(self) -> None:
        """Stop dispatching and wait for in-flight firings to finish"""
        if self.status != SchedulerStatus.RUNNING:
            return

        self.status = SchedulerStatus.STOPPING
        logger.info(
            "Stopping scheduler engine", in_flight_firings=len(self._in_flight)
        )

        self._wake()
        if self._dispatch_task:
            await self._dispatch_task
            self._dispatch_task = None

        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

        self.status = SchedulerStatus.STOPPED
        logger.info("Scheduler engine stopped", live_schedules=self.job_count())

    def schedule(self, trigger: BaseTrigger, action: JobAction) -> int:
        """
        Register a trigger/action pair and return its new handle.

        The first due time is computed here so an unusable trigger fails the
        call instead of surfacing later in the dispatch loop.
        """
        first_run = trigger.get_next_run_time(None)

        with self._lock:
            handle = next(self._handles)
            self._schedules[handle] = LiveSchedule(trigger, action, handle)
            if first_run is not None:
                heapq.heappush(self._queue, (self._to_monotonic(first_run), handle))
            LIVE_SCHEDULES.set(len(self._schedules))

        logger.info(
            "Scheduled live job",
            job_key=handle,
            job_id=getattr(action, "job_id", None),
            trigger=repr(trigger),
            first_run=first_run.isoformat() if first_run else None,
        )
        self._wake()
        return handle

    def lookup(self, handle: int) -> LiveSchedule:
        with self._lock:
            schedule = self._schedules.get(handle)
        if schedule is None:
            raise ScheduleNotFoundError(handle)
        return schedule

    def unschedule(self, handle: int) -> None:
        """Remove a live schedule; an in-flight firing of it still completes"""
        with self._lock:
            schedule = self._schedules.pop(handle, None)
            if schedule is not None:
                LIVE_SCHEDULES.set(len(self._schedules))
                self._compact_queue()
        if schedule is None:
            raise ScheduleNotFoundError(handle)

        # Its queue entry is dropped lazily by the dispatch loop or a compaction
        logger.info(
            "Unscheduled live job",
            job_key=handle,
            job_id=getattr(schedule.action, "job_id", None),
        )
        self._wake()

    def clear(self) -> int:
        """Remove every live schedule, returning how many there were"""
        with self._lock:
            removed = len(self._schedules)
            self._schedules.clear()
            self._queue.clear()
            LIVE_SCHEDULES.set(0)

        logger.warning("Cleared all live schedules", removed=removed)
        self._wake()
        return removed

    def job_count(self) -> int:
        with self._lock:
            return len(self._schedules)

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status for the health endpoint"""
        with self._lock:
            schedules = list(self._schedules.values())
            next_due = self._queue[0][0] if self._queue else None

        return {
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "live_schedules": len(schedules),
            "in_flight_firings": len(self._in_flight),
            "next_firing_in_seconds": (
                max(next_due - time.monotonic(), 0.0) if next_due is not None else None
            ),
            "triggers": {
                s.handle: s.trigger.get_trigger_info()["type"] for s in schedules
            },
            "stats": dict(self._stats),
        }

    @staticmethod
    def _to_monotonic(run_time: datetime) -> float:
        delay = (run_time - datetime.now(timezone.utc)).total_seconds()
        return time.monotonic() + max(delay, 0.0)

    def _compact_queue(self) -> None:
        """Drop entries of unscheduled handles once they pile up; call under the lock"""
        if len(self._queue) <= 2 * len(self._schedules) + QUEUE_COMPACT_SLACK:
            return
        self._queue = [entry for entry in self._queue if entry[1] in self._schedules]
        heapq.heapify(self._queue)

    def _wake(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or self._wakeup is None:
            return
        loop.call_soon_threadsafe(self._wakeup.set)

    def _pop_due(self, now: float) -> Tuple[List[LiveSchedule], Optional[float]]:
        """Pop every due live entry; return them and the seconds until the next one"""
        due: List[LiveSchedule] = []
        with self._lock:
            while self._queue:
                due_at, handle = self._queue[0]
                schedule = self._schedules.get(handle)
                if schedule is None:
                    # Unscheduled since it was queued
                    heapq.heappop(self._queue)
                    continue
                if due_at > now:
                    return due, due_at - now
                heapq.heappop(self._queue)
                due.append(schedule)
        return due, None

    async def _dispatch_loop(self) -> None:
        """Main dispatch loop"""
        logger.debug("Dispatch loop started")

        while self.status == SchedulerStatus.RUNNING:
            self._wakeup.clear()
            due, timeout = self._pop_due(time.monotonic())

            for schedule in due:
                task = self._loop.create_task(self._fire(schedule))
                self._in_flight.add(task)
                task.add_done_callback(self._in_flight.discard)

            if due:
                # Re-check before sleeping; firings may have queued more work
                continue

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout)
            except asyncio.TimeoutError:
                pass

        logger.debug("Dispatch loop exited")

    async def _fire(self, schedule: LiveSchedule) -> None:
        """Run one firing, then queue the next one if the trigger has any"""
        fired_at = datetime.now(timezone.utc)
        job_id = getattr(schedule.action, "job_id", None)
        self._stats["firings_started"] += 1

        try:
            await schedule.action.execute(schedule.handle)
        except Exception as e:
            self._stats["firings_failed"] += 1
            logger.error(
                "Job action raised",
                job_key=schedule.handle,
                job_id=job_id,
                error=str(e),
                exc_info=True,
            )

        try:
            next_run = schedule.trigger.get_next_run_time(fired_at)
        except Exception as e:
            logger.error(
                "Failed to compute next run time, dropping schedule",
                job_key=schedule.handle,
                job_id=job_id,
                error=str(e),
            )
            next_run = None

        with self._lock:
            if self._schedules.get(schedule.handle) is not schedule:
                return
            if next_run is None:
                del self._schedules[schedule.handle]
                LIVE_SCHEDULES.set(len(self._schedules))
            else:
                heapq.heappush(
                    self._queue, (self._to_monotonic(next_run), schedule.handle)
                )

        if next_run is None:
            logger.info(
                "Trigger exhausted, live schedule removed",
                job_key=schedule.handle,
                job_id=job_id,
            )
        self._wake()
