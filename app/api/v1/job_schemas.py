"""Pydantic schemas for the jobs API."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator, model_validator

from app.core.config import settings
from app.models.scheduling import HttpMethod, ScheduleJob, TriggerType, format_epoch
from app.services.scheduling.triggers import TriggerFactory, TriggerValidationError

_http_url = TypeAdapter(HttpUrl)


class BaseApiModel(BaseModel):
    """Base class enabling alias-friendly export."""

    model_config = ConfigDict(populate_by_name=True)


class JobFields(BaseApiModel):
    """Caller-settable job fields."""

    name: str = Field(min_length=1, max_length=32)
    trigger_type: TriggerType = Field(alias="triggerType")
    expression: str
    http_method: HttpMethod = Field(alias="httpMethod")
    http_target_url: str = Field(alias="httpTargetUrl")
    http_request_body: str = Field(default="", alias="httpRequestBody")
    json_web_token: str = Field(default="", alias="jsonWebToken")

    @field_validator("http_target_url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        """Must be an absolute http(s) URL; the caller's string is stored as-is."""
        _http_url.validate_python(value)
        return value

    @model_validator(mode="after")
    def _expression_matches_trigger(self) -> "JobFields":
        try:
            TriggerFactory(settings.SCHEDULER_TIMEZONE).build(
                self.trigger_type, self.expression
            )
        except TriggerValidationError as exc:
            raise ValueError(str(exc)) from exc
        return self

    def to_fields(self) -> Dict[str, Any]:
        fields = self.model_dump()
        fields["trigger_type"] = self.trigger_type.value
        fields["http_method"] = self.http_method.value
        return fields


class JobDesire(JobFields):
    """Full replacement of a job, including whether it should be scheduled."""

    status: Literal[1, 2]

    def to_fields(self) -> Dict[str, Any]:
        fields = super().to_fields()
        fields["status"] = self.status
        return fields


class JobCreateRequest(BaseModel):
    data: JobFields


class JobReplaceRequest(BaseModel):
    desire: JobDesire


class JobView(BaseApiModel):
    job_id: str = Field(alias="jobId")
    job_key: Optional[int] = Field(default=None, alias="jobKey")
    status: int
    name: str
    trigger_type: str = Field(alias="triggerType")
    expression: str
    http_method: str = Field(alias="httpMethod")
    http_target_url: str = Field(alias="httpTargetUrl")
    http_request_body: str = Field(alias="httpRequestBody")
    json_web_token: str = Field(alias="jsonWebToken")
    creation_time: str = Field(alias="creationTime")
    update_time: str = Field(alias="updateTime")

    @classmethod
    def from_job(cls, job: ScheduleJob, tz_name: str = "UTC") -> "JobView":
        values = job.to_dict()
        values["creation_time"] = format_epoch(job.creation_time, tz_name)
        values["update_time"] = format_epoch(job.update_time, tz_name)
        return cls(**values)


class PageMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: int = Field(alias="from", ge=0)
    size: int = Field(ge=0)
    total: int = Field(ge=0)


class JobResponse(BaseModel):
    data: JobView


class JobListResponse(BaseModel):
    data: List[JobView]
    meta: PageMeta
