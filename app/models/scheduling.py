"""
Scheduling system database models.

A single table holds every job definition. The ``job_key`` column ties a row
to the live schedule currently registered in the in-process scheduler; it is
only meaningful while that process is alive and is rewritten by startup
recovery after a restart.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict

import pytz
from sqlalchemy import BigInteger, Column, Index, Integer, String, Text
from sqlalchemy.orm import validates

from app.db.base_class import Base


class JobStatus(int, Enum):
    """Lifecycle status of a scheduled job"""

    ENABLED = 1  # Job has a live schedule
    DISABLED = 2  # Job is kept but not scheduled
    DONE = 3  # One-shot job already fired


class TriggerType(str, Enum):
    """Types of scheduling triggers"""

    CRON = "cron"  # Calendar cron expression
    INTERVAL = "interval"  # Every N seconds
    ONCE = "once"  # Once, N seconds after scheduling


class HttpMethod(str, Enum):
    """Outbound HTTP methods a job may issue"""

    POST = "POST"
    GET = "GET"
    PUT = "PUT"
    DELETE = "DELETE"


DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_epoch(epoch_seconds: int, tz_name: str = "UTC") -> str:
    """Render an epoch-seconds column as a human-readable local timestamp."""
    return datetime.fromtimestamp(epoch_seconds, pytz.timezone(tz_name)).strftime(
        DATETIME_FORMAT
    )


class ScheduleJob(Base):
    """
    Durable definition of a timed HTTP job.

    ``job_key`` is non-null exactly when a live schedule exists for the row;
    disabled and done jobs always carry ``None``.
    """

    job_id = Column(String(36), primary_key=True)
    job_key = Column(Integer, nullable=True)
    status = Column(Integer, nullable=False, default=JobStatus.ENABLED.value)

    name = Column(String(32), nullable=False)
    trigger_type = Column(String(16), nullable=False)
    expression = Column(String(255), nullable=False)

    http_method = Column(String(8), nullable=False)
    http_target_url = Column(Text, nullable=False)
    http_request_body = Column(Text, nullable=False, default="")
    json_web_token = Column(Text, nullable=False, default="")

    # Epoch seconds
    creation_time = Column(BigInteger, nullable=False)
    update_time = Column(BigInteger, nullable=False)

    __table_args__ = (Index("idx_schedule_jobs_status", "status"),)

    @validates("status")
    def validate_status(self, key, status):
        return JobStatus(int(status)).value

    @validates("trigger_type")
    def validate_trigger_type(self, key, trigger_type):
        return TriggerType(trigger_type).value

    @property
    def is_enabled(self) -> bool:
        return self.status == JobStatus.ENABLED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_key": self.job_key,
            "status": self.status,
            "name": self.name,
            "trigger_type": self.trigger_type,
            "expression": self.expression,
            "http_method": self.http_method,
            "http_target_url": self.http_target_url,
            "http_request_body": self.http_request_body,
            "json_web_token": self.json_web_token,
            "creation_time": self.creation_time,
            "update_time": self.update_time,
        }

    def __repr__(self) -> str:
        return (
            f"<ScheduleJob(job_id={self.job_id}, name={self.name}, "
            f"trigger={self.trigger_type}:{self.expression}, status={self.status}, "
            f"job_key={self.job_key})>"
        )
