"""Stage triggering: gating, in-flight tracking and remote invocation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel

from leadflow.pipeline.events import EventChannel
from leadflow.pipeline.models import JobStatus, PipelineJob, PresentationStatus
from leadflow.pipeline.stages import StageKey, get_stage
from leadflow.services.supabase import SupabaseAPIError, SupabaseClient

logger = logging.getLogger(__name__)


class InvocationResult(BaseModel):
    """Outcome of a trigger attempt."""

    stage: StageKey
    success: bool
    message: str = ""
    job_id: str | None = None
    blocked: bool = False


@dataclass
class PendingTrigger:
    """An accepted trigger whose job row has not been observed yet."""

    requested_at: datetime
    previous_job_id: str | None = None
    job_id: str | None = None

    def reflected_by(self, job: PipelineJob | None) -> bool:
        if job is None:
            return False
        if self.job_id is not None:
            return job.id == self.job_id
        # No id in the acknowledgement; any newer row counts
        return job.id != self.previous_job_id

    def expired(self, timeout_seconds: float, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return (now - self.requested_at).total_seconds() >= timeout_seconds


class StageTrigger:
    """Starts stages for one event, at most one invocation per click."""

    def __init__(
        self,
        client: SupabaseClient,
        event_id: str,
        channel: EventChannel | None = None,
        on_accepted: Callable[[StageKey], None] | None = None,
        confirmation_timeout_seconds: float = 120.0,
    ):
        self.client = client
        self.event_id = event_id
        self.channel = channel or EventChannel()
        self.on_accepted = on_accepted
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self._in_flight: set[StageKey] = set()
        self._pending: dict[StageKey, PendingTrigger] = {}

    def in_flight(self, stage: StageKey) -> bool:
        return stage in self._in_flight

    def pending(self, stage: StageKey) -> PendingTrigger | None:
        return self._pending.get(stage)

    def is_triggering(self, stage: StageKey, job: PipelineJob | None) -> bool:
        """True while the stage should be shown as optimistically in progress."""
        if stage in self._in_flight:
            return True
        pending = self._pending.get(stage)
        if pending is None:
            return False
        if pending.reflected_by(job):
            return False
        return not pending.expired(self.confirmation_timeout_seconds)

    def reconcile(self, stage: StageKey, job: PipelineJob | None) -> None:
        """Drop the optimistic marker once a read reflects it or it times out."""
        pending = self._pending.get(stage)
        if pending is None:
            return
        if pending.reflected_by(job):
            logger.debug(f"Trigger for {stage.value} confirmed by job {job.id}")
            del self._pending[stage]
        elif pending.expired(self.confirmation_timeout_seconds):
            logger.warning(
                f"No job row observed for {stage.value} trigger on event {self.event_id} "
                f"within {self.confirmation_timeout_seconds:.0f}s"
            )
            del self._pending[stage]

    def blocked_reason(
        self,
        stage: StageKey,
        statuses: Mapping[StageKey, PresentationStatus],
        last_job: PipelineJob | None,
    ) -> str | None:
        """Why the stage cannot be started right now, or None if it can.

        Args:
            stage: Stage to check.
            statuses: Observed status per stage, without optimistic state.
            last_job: Latest known job for ``stage``.
        """
        definition = get_stage(stage)
        if definition.predecessor is not None:
            if statuses.get(definition.predecessor) is not PresentationStatus.COMPLETED:
                predecessor = get_stage(definition.predecessor)
                return f"{predecessor.title} must complete first"

        if self.is_triggering(stage, last_job):
            return f"{definition.title} is already starting"

        if last_job is not None and last_job.status is JobStatus.PROCESSING:
            return f"{definition.title} is already running"

        return None

    async def trigger(
        self,
        stage: StageKey | str,
        statuses: Mapping[StageKey, PresentationStatus],
        last_job: PipelineJob | None = None,
    ) -> InvocationResult:
        """Invoke the stage's remote function once.

        Never raises for backend errors; rejections are reported through the
        event channel and the returned result.
        """
        stage = StageKey.normalize(stage)
        definition = get_stage(stage)

        reason = self.blocked_reason(stage, statuses, last_job)
        if reason is not None:
            logger.info(f"Trigger for {stage.value} on event {self.event_id} blocked: {reason}")
            return InvocationResult(stage=stage, success=False, message=reason, blocked=True)

        requested_at = datetime.now(timezone.utc)
        self._in_flight.add(stage)
        try:
            response = await self.client.invoke_function(
                definition.function_name, {"event_id": self.event_id}
            )
        except SupabaseAPIError as e:
            logger.error(f"Failed to start {stage.value} for event {self.event_id}: {e}")
            self.channel.error(definition.failed_message, str(e), stage=stage)
            return InvocationResult(stage=stage, success=False, message=str(e))
        finally:
            self._in_flight.discard(stage)

        if not response.success:
            message = response.message or definition.failed_message
            logger.warning(f"{definition.function_name} rejected event {self.event_id}: {message}")
            self.channel.error(definition.failed_message, message, stage=stage)
            return InvocationResult(stage=stage, success=False, message=message)

        self._pending[stage] = PendingTrigger(
            requested_at=requested_at,
            previous_job_id=last_job.id if last_job else None,
            job_id=response.job_id,
        )
        message = response.message or definition.started_message
        logger.info(f"Started {stage.value} for event {self.event_id} (job={response.job_id})")
        self.channel.info(definition.started_message, message, stage=stage)

        if self.on_accepted is not None:
            self.on_accepted(stage)

        return InvocationResult(
            stage=stage, success=True, message=message, job_id=response.job_id
        )
