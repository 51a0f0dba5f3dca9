"""Job status reads with stale-while-revalidate caching."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from pydantic import ValidationError

from leadflow.pipeline.models import JobSnapshot, PipelineJob
from leadflow.pipeline.stages import STAGE_ORDER, StageKey
from leadflow.services.supabase import SupabaseAPIError, SupabaseClient

logger = logging.getLogger(__name__)


def latest_job(jobs: Iterable[PipelineJob]) -> PipelineJob | None:
    """Return the job with the newest created_at, or None."""
    newest: PipelineJob | None = None
    for job in jobs:
        if newest is None or job.created_at > newest.created_at:
            newest = job
    return newest


class JobStatusReader:
    """Reads the latest job per (event, stage) and keeps the last good result."""

    def __init__(
        self,
        client: SupabaseClient,
        table: str = "lead_processing_jobs",
        history_limit: int = 5,
    ):
        self.client = client
        self.table = table
        self.history_limit = max(1, history_limit)
        self._snapshots: dict[tuple[str, StageKey], JobSnapshot] = {}

    async def fetch_history(self, event_id: str, stage: StageKey) -> list[PipelineJob]:
        """Read recent attempts for a stage, newest first.

        Raises:
            SupabaseAPIError: The read failed.
            ValidationError: A row could not be normalized.
        """
        rows = await self.client.select(
            self.table,
            filters={"event_id": f"eq.{event_id}", "stage": f"eq.{stage.value}"},
            order="created_at.desc",
            limit=self.history_limit,
        )
        jobs = [PipelineJob.from_row(row) for row in rows]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    async def fetch_latest(self, event_id: str, stage: StageKey) -> PipelineJob | None:
        return latest_job(await self.fetch_history(event_id, stage))

    def snapshot(self, event_id: str, stage: StageKey) -> JobSnapshot:
        return self._snapshots.get((event_id, stage), JobSnapshot())

    async def refresh(self, event_id: str, stage: StageKey) -> JobSnapshot:
        """Re-read a stage; on failure keep the previous job and record the error."""
        previous = self.snapshot(event_id, stage)
        try:
            job = await self.fetch_latest(event_id, stage)
        except (SupabaseAPIError, ValidationError) as e:
            logger.warning(
                f"Job status read failed for event={event_id} stage={stage.value}: {e}"
            )
            snapshot = previous.model_copy(update={"error": str(e)})
        else:
            snapshot = JobSnapshot(
                job=job,
                loaded=True,
                error=None,
                fetched_at=datetime.now(timezone.utc),
            )

        self._snapshots[(event_id, stage)] = snapshot
        return snapshot

    async def refresh_all(
        self,
        event_id: str,
        stages: Iterable[StageKey] = STAGE_ORDER,
    ) -> dict[StageKey, JobSnapshot]:
        keys = list(stages)
        snapshots = await asyncio.gather(*(self.refresh(event_id, key) for key in keys))
        return dict(zip(keys, snapshots))

    def forget(self, event_id: str) -> None:
        """Drop cached snapshots for an event."""
        for key in [k for k in self._snapshots if k[0] == event_id]:
            del self._snapshots[key]
