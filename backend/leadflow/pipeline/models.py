"""Pipeline data model: job rows, events and derived presentation state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leadflow.pipeline.stages import StageKey


class UnknownJobStatusError(ValueError):
    """A job row carried a status string outside the known vocabulary."""

    def __init__(self, raw: Any):
        super().__init__(f"Unknown job status: {raw!r}")
        self.raw = raw


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def normalize(cls, raw: str | JobStatus) -> JobStatus:
        """Map a raw status string from the store to the closed enumeration."""
        if isinstance(raw, JobStatus):
            return raw
        if not isinstance(raw, str):
            raise UnknownJobStatusError(raw)
        status = _RAW_STATUS.get(raw.strip().lower())
        if status is None:
            raise UnknownJobStatusError(raw)
        return status

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_RAW_STATUS = {
    "pending": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "processing": JobStatus.PROCESSING,
    "running": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "done": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
}


class PresentationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineJob(BaseModel):
    """One execution attempt of one stage for one event."""

    model_config = ConfigDict(extra="ignore")

    id: str
    event_id: str
    stage: StageKey
    status: JobStatus = JobStatus.PENDING
    total_leads: int = Field(default=0, ge=0)
    processed_leads: int = Field(default=0, ge=0)
    failed_leads: int = Field(default=0, ge=0)
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None

    # Detail columns added later; absent on older rows
    current_stage: str | None = None
    stage_progress: int | None = None
    stage_description: str | None = None
    estimated_completion_time: datetime | None = None

    @field_validator("id", "event_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("stage", mode="before")
    @classmethod
    def normalize_stage(cls, v: Any) -> StageKey:
        return StageKey.normalize(v)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> JobStatus:
        return JobStatus.normalize(v)

    @field_validator("total_leads", "processed_leads", "failed_leads", mode="before")
    @classmethod
    def null_count_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PipelineJob:
        return cls.model_validate(row)

    @property
    def units_done(self) -> int:
        """Leads that reached an outcome, successful or not."""
        return self.processed_leads + self.failed_leads

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class Event(BaseModel):
    """An event (lead list) that owns lead records and pipeline jobs."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    start_date: str | None = None
    end_date: str | None = None
    details: str | None = None
    salesforce_campaign_url: str | None = None
    salesforce_campaign_id: str | None = None
    latest_lead_source: str | None = None
    latest_lead_source_details: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    lead_count: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Event:
        data = dict(row)
        embedded = data.pop("event_leads", None)
        if "lead_count" not in data:
            # PostgREST embeds aggregates as [{"count": n}]
            if isinstance(embedded, list) and embedded and isinstance(embedded[0], dict):
                data["lead_count"] = embedded[0].get("count") or 0
            else:
                data["lead_count"] = 0
        return cls.model_validate(data)


class JobSnapshot(BaseModel):
    """Latest known job for a stage plus the outcome of the last read."""

    job: PipelineJob | None = None
    loaded: bool = False
    error: str | None = None
    fetched_at: datetime | None = None

    @property
    def status_known(self) -> bool:
        """False only when every read so far has failed."""
        return self.loaded or self.error is None


class DerivedStageView(BaseModel):
    """Presentation state computed from a job and local trigger state."""

    model_config = ConfigDict(frozen=True)

    presentation_status: PresentationStatus
    progress_percent: int | None = None
    stats_text: str | None = None
