"""Derived status mapping for stage cards.

Turns the latest job row of a stage, plus whether a trigger for that stage is
in flight locally, into the status badge, progress bar and stats line shown
on the stage card. Everything here is pure.
"""

from __future__ import annotations

from leadflow.pipeline.models import (
    DerivedStageView,
    JobStatus,
    PipelineJob,
    PresentationStatus,
)

_STATUS_TABLE: dict[JobStatus, PresentationStatus] = {
    JobStatus.PENDING: PresentationStatus.PENDING,
    JobStatus.PROCESSING: PresentationStatus.IN_PROGRESS,
    JobStatus.COMPLETED: PresentationStatus.COMPLETED,
    JobStatus.FAILED: PresentationStatus.FAILED,
}


def presentation_status(job: PipelineJob | None, loaded: bool = True) -> PresentationStatus:
    """Status badge for a job as last observed, ignoring local trigger state."""
    if job is None:
        return PresentationStatus.PENDING if loaded else PresentationStatus.UNKNOWN
    return _STATUS_TABLE[job.status]


def percent_of(done: int, total: int) -> int:
    """Integer percentage of ``done`` over a positive ``total``, rounded half up and clamped to 0..100."""
    percent = (done * 200 + total) // (2 * total)
    return max(0, min(100, percent))


def progress_percent(job: PipelineJob | None) -> int | None:
    """Share of leads with an outcome, or None when there is nothing to measure."""
    if job is None or job.total_leads <= 0:
        return None
    return percent_of(job.units_done, job.total_leads)


def stats_text(job: PipelineJob | None, verb: str = "processed") -> str | None:
    if job is None:
        return None
    if job.status.is_terminal:
        return f"{job.processed_leads} {verb}, {job.failed_leads} failed"
    if job.status is JobStatus.PROCESSING:
        return f"{job.processed_leads}/{job.total_leads} processed"
    return None


def map_status(
    job: PipelineJob | None,
    is_triggering: bool = False,
    *,
    verb: str = "processed",
    loaded: bool = True,
) -> DerivedStageView:
    """Map a raw job and local trigger state to a stage's presentation state.

    Args:
        job: Latest job row for the stage, or None if it has never run.
        is_triggering: A trigger for this stage was issued locally and no job
            row reflects it yet. Shown as in progress so the card does not
            look idle during the round trip; the previous job's numbers are
            hidden because they describe the older attempt.
        verb: Word used for the success count in terminal stats.
        loaded: Whether the store has ever been read successfully.

    Returns:
        DerivedStageView with status, progress (None when unmeasurable) and
        stats text (None when there is no job or it has not started).
    """
    if is_triggering:
        return DerivedStageView(presentation_status=PresentationStatus.IN_PROGRESS)

    return DerivedStageView(
        presentation_status=presentation_status(job, loaded=loaded),
        progress_percent=progress_percent(job),
        stats_text=stats_text(job, verb=verb),
    )
