from .scheduling import HttpMethod, JobStatus, ScheduleJob, TriggerType

__all__ = [
    "ScheduleJob",
    "JobStatus",
    "TriggerType",
    "HttpMethod",
]
