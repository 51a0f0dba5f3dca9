"""Summary banner for the most relevant pipeline job of an event."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone

from pydantic import BaseModel

from leadflow.pipeline.models import JobStatus, PipelineJob
from leadflow.pipeline.stages import StageKey, get_stage
from leadflow.pipeline.status import percent_of

# Later stages win when several are active at once
_ACTIVE_PRIORITY = (
    StageKey.SYNC,
    StageKey.ENRICH,
    StageKey.CHECK_SALESFORCE,
    StageKey.VALIDATE,
)

_STATUS_LABELS = {
    JobStatus.PENDING: "Pending",
    JobStatus.PROCESSING: "Processing",
    JobStatus.COMPLETED: "Completed",
    JobStatus.FAILED: "Failed",
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ProgressBanner(BaseModel):
    stage: StageKey
    stage_label: str
    status: JobStatus
    status_label: str
    headline: str
    detail: str
    percent_complete: int
    show_progress_bar: bool = False
    error_message: str | None = None
    job_id: str


def select_banner_job(jobs: Mapping[StageKey, PipelineJob | None]) -> PipelineJob | None:
    """Pick the active job, else the most recently updated finished one."""
    for stage in _ACTIVE_PRIORITY:
        job = jobs.get(stage)
        if job is not None and not job.is_terminal:
            return job

    finished = [job for job in jobs.values() if job is not None and job.is_terminal]
    if not finished:
        return None
    return max(finished, key=lambda job: job.updated_at or job.created_at or _EPOCH)


def build_banner(jobs: Mapping[StageKey, PipelineJob | None]) -> ProgressBanner | None:
    job = select_banner_job(jobs)
    if job is None:
        return None

    definition = get_stage(job.stage)
    status_label = _STATUS_LABELS[job.status]

    detail = f"{job.processed_leads} of {job.total_leads} leads processed"
    if job.failed_leads > 0:
        detail += f" • {job.failed_leads} failed"

    percent = 0
    if job.total_leads > 0:
        percent = percent_of(job.processed_leads, job.total_leads)

    return ProgressBanner(
        stage=job.stage,
        stage_label=definition.banner_label,
        status=job.status,
        status_label=status_label,
        headline=f"{definition.banner_label} - {status_label}",
        detail=detail,
        percent_complete=percent,
        show_progress_bar=job.status is JobStatus.PROCESSING,
        error_message=job.error_message,
        job_id=job.id,
    )
