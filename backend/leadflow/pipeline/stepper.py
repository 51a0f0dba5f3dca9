"""Stage-card view over the reader, mapper, trigger and poller."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import BaseModel

from leadflow.config import PipelineConfig
from leadflow.pipeline.events import EventChannel
from leadflow.pipeline.models import (
    DerivedStageView,
    JobSnapshot,
    PipelineJob,
    PresentationStatus,
)
from leadflow.pipeline.poller import JobPoller
from leadflow.pipeline.reader import JobStatusReader
from leadflow.pipeline.stages import (
    STAGE_ORDER,
    STAGES,
    StageDefinition,
    StageKey,
    get_stage,
)
from leadflow.pipeline.status import map_status, presentation_status
from leadflow.pipeline.trigger import InvocationResult, StageTrigger
from leadflow.services.supabase import SupabaseClient

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Everything a stepper needs, passed in explicitly."""

    event_id: str
    client: SupabaseClient
    channel: EventChannel = field(default_factory=EventChannel)
    config: PipelineConfig = field(default_factory=PipelineConfig)
    jobs_table: str = "lead_processing_jobs"
    scheduler: AsyncIOScheduler | None = None


class StageCard(BaseModel):
    """Render-ready state of one stage."""

    key: StageKey
    title: str
    description: str
    icon: str
    status: PresentationStatus
    progress_percent: int | None = None
    stats_text: str | None = None
    error_message: str | None = None
    available: bool = False
    enabled: bool = False
    blocked_reason: str | None = None
    is_loading: bool = False
    action_label: str = "Start"
    logs_url: str | None = None
    job_id: str | None = None
    updated_at: datetime | None = None


class PipelineStepper:
    """The four-stage panel for one event."""

    def __init__(
        self,
        context: PipelineContext,
        on_refresh: Callable[[list[StageCard]], None] | None = None,
        auto_poll: bool = True,
    ):
        self.context = context
        self.on_refresh = on_refresh
        self.auto_poll = auto_poll
        self.reader = JobStatusReader(
            context.client,
            table=context.jobs_table,
            history_limit=context.config.history_limit,
        )
        self.triggers = StageTrigger(
            context.client,
            context.event_id,
            channel=context.channel,
            on_accepted=self._on_trigger_accepted,
            confirmation_timeout_seconds=context.config.confirmation_timeout_seconds,
        )
        self.poller = JobPoller(
            self._poll_tick,
            interval_seconds=context.config.poll_interval_seconds,
            job_id=f"pipeline-poll-{context.event_id}",
            scheduler=context.scheduler,
        )

    @property
    def event_id(self) -> str:
        return self.context.event_id

    def snapshot(self, stage: StageKey) -> JobSnapshot:
        return self.reader.snapshot(self.event_id, stage)

    def latest_jobs(self) -> dict[StageKey, PipelineJob | None]:
        return {stage: self.snapshot(stage).job for stage in STAGE_ORDER}

    def observed_statuses(self) -> dict[StageKey, PresentationStatus]:
        """Status per stage as last read, without optimistic state."""
        statuses = {}
        for stage in STAGE_ORDER:
            snap = self.snapshot(stage)
            statuses[stage] = presentation_status(snap.job, loaded=snap.status_known)
        return statuses

    def view(self, stage: StageKey) -> DerivedStageView:
        definition = get_stage(stage)
        snap = self.snapshot(stage)
        return map_status(
            snap.job,
            self.triggers.is_triggering(stage, snap.job),
            verb=definition.stats_verb,
            loaded=snap.status_known,
        )

    def views(self) -> dict[StageKey, DerivedStageView]:
        return {stage: self.view(stage) for stage in STAGE_ORDER}

    def cards(self) -> list[StageCard]:
        statuses = self.observed_statuses()
        return [self._card(definition, statuses) for definition in STAGES]

    def _card(
        self,
        definition: StageDefinition,
        statuses: dict[StageKey, PresentationStatus],
    ) -> StageCard:
        stage = definition.key
        job = self.snapshot(stage).job
        view = self.view(stage)
        reason = self.triggers.blocked_reason(stage, statuses, job)
        available = (
            definition.predecessor is None
            or statuses[definition.predecessor] is PresentationStatus.COMPLETED
        )

        failed = view.presentation_status is PresentationStatus.FAILED
        logs_url = None
        if failed and self.context.config.logs_base_url:
            base = self.context.config.logs_base_url.rstrip("/")
            logs_url = f"{base}/{definition.function_name}/logs"

        return StageCard(
            key=stage,
            title=definition.title,
            description=definition.description,
            icon=definition.icon,
            status=view.presentation_status,
            progress_percent=view.progress_percent,
            stats_text=view.stats_text,
            error_message=job.error_message if failed and job else None,
            available=available,
            enabled=reason is None,
            blocked_reason=reason,
            is_loading=self.triggers.in_flight(stage),
            action_label="Re-run" if statuses[stage] is PresentationStatus.COMPLETED else "Start",
            logs_url=logs_url,
            job_id=job.id if job else None,
            updated_at=job.updated_at if job else None,
        )

    def has_active_work(self) -> bool:
        """True while any stage has a non-terminal job or an unconfirmed trigger."""
        for stage, job in self.latest_jobs().items():
            if job is not None and not job.is_terminal:
                return True
            if self.triggers.is_triggering(stage, job):
                return True
        return False

    async def refresh(self) -> list[StageCard]:
        """Re-read every stage and return the updated cards."""
        snapshots = await self.reader.refresh_all(self.event_id)
        for stage, snap in snapshots.items():
            self.triggers.reconcile(stage, snap.job)

        cards = self.cards()
        if self.on_refresh is not None:
            self.on_refresh(cards)
        if self.auto_poll and self.has_active_work():
            self.poller.start()
        return cards

    async def trigger(self, stage: StageKey | str) -> InvocationResult:
        stage = StageKey.normalize(stage)
        return await self.triggers.trigger(
            stage, self.observed_statuses(), self.snapshot(stage).job
        )

    def start_polling(self) -> None:
        self.poller.start()

    def stop_polling(self) -> None:
        self.poller.stop()

    @property
    def is_polling(self) -> bool:
        return self.poller.is_polling

    async def wait_until_idle(self) -> None:
        await self.poller.wait_idle()

    def close(self) -> None:
        self.poller.shutdown()
        self.reader.forget(self.event_id)

    async def _poll_tick(self) -> bool:
        await self.refresh()
        return self.has_active_work()

    def _on_trigger_accepted(self, stage: StageKey) -> None:
        logger.debug(f"Scheduling follow-up read after {stage.value} trigger")
        self.poller.kick(self.context.config.follow_up_delay_seconds)
