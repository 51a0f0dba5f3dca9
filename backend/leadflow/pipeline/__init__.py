"""Lead processing pipeline: job status, gating, triggering and polling."""

from .banner import ProgressBanner, build_banner, select_banner_job
from .events import EventChannel, NotificationLevel, PipelineNotification
from .models import (
    DerivedStageView,
    Event,
    JobSnapshot,
    JobStatus,
    PipelineJob,
    PresentationStatus,
    UnknownJobStatusError,
)
from .poller import JobPoller
from .reader import JobStatusReader, latest_job
from .stages import STAGE_ORDER, STAGES, StageDefinition, StageKey, get_stage
from .status import map_status
from .stepper import PipelineContext, PipelineStepper, StageCard
from .trigger import InvocationResult, StageTrigger

__all__ = [
    "ProgressBanner",
    "build_banner",
    "select_banner_job",
    "EventChannel",
    "NotificationLevel",
    "PipelineNotification",
    "DerivedStageView",
    "Event",
    "JobSnapshot",
    "JobStatus",
    "PipelineJob",
    "PresentationStatus",
    "UnknownJobStatusError",
    "JobPoller",
    "JobStatusReader",
    "latest_job",
    "STAGE_ORDER",
    "STAGES",
    "StageDefinition",
    "StageKey",
    "get_stage",
    "map_status",
    "PipelineContext",
    "PipelineStepper",
    "StageCard",
    "InvocationResult",
    "StageTrigger",
]
