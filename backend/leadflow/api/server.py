"""FastAPI dashboard server for the lead processing pipeline."""

import logging
from collections import Counter
from contextlib import asynccontextmanager
from datetime import timezone
from typing import Any, AsyncIterator, Optional

import httpx
import logfire
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from leadflow import __version__
from leadflow.config import Settings, get_settings
from leadflow.leads import LeadsRepository
from leadflow.pipeline import (
    Event,
    PipelineContext,
    PipelineStepper,
    StageKey,
    build_banner,
)
from leadflow.services.supabase import SupabaseAPIError, SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _new_stepper(request: Request, event_id: str) -> PipelineStepper:
    state = request.app.state
    settings: Settings = state.settings
    context = PipelineContext(
        event_id=event_id,
        client=state.supabase,
        config=settings.pipeline,
        jobs_table=settings.supabase.jobs_table,
        scheduler=state.scheduler,
    )
    # Browsers poll this API; the server only follows up after triggers
    return PipelineStepper(context, auto_poll=False)


@asynccontextmanager
async def _use_stepper(request: Request, event_id: str) -> AsyncIterator[PipelineStepper]:
    """Lease the event's stepper; it is closed once no request holds it and it is idle."""
    state = request.app.state
    stepper = state.steppers.get(event_id)
    if stepper is None:
        stepper = _new_stepper(request, event_id)
        state.steppers[event_id] = stepper
    state.stepper_leases[event_id] += 1
    try:
        yield stepper
    finally:
        state.stepper_leases[event_id] -= 1
        if state.stepper_leases[event_id] <= 0 and not stepper.has_active_work():
            del state.stepper_leases[event_id]
            if state.steppers.get(event_id) is stepper:
                del state.steppers[event_id]
            stepper.close()
            logger.debug(f"Released idle stepper for event {event_id}")


def _repository(request: Request) -> LeadsRepository:
    settings: Settings = request.app.state.settings
    return LeadsRepository(
        request.app.state.supabase,
        events_table=settings.supabase.events_table,
        leads_table=settings.supabase.leads_table,
    )


def _parse_stage(stage: str) -> StageKey:
    try:
        return StageKey.normalize(stage)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown stage: {stage}")


async def _require_event(request: Request, event_id: str) -> Event:
    try:
        event = await _repository(request).get_event(event_id)
    except SupabaseAPIError as e:
        logger.error(f"Event lookup failed for {event_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    if event is None:
        raise HTTPException(status_code=404, detail=f"Event not found: {event_id}")
    return event


@router.get("/events/{event_id}/pipeline")
async def get_pipeline(event_id: str, request: Request) -> dict[str, Any]:
    """Event summary plus the current stage cards."""
    event = await _require_event(request, event_id)
    async with _use_stepper(request, event_id) as stepper:
        cards = await stepper.refresh()
        active = stepper.has_active_work()
    return {
        "event": event.model_dump(mode="json"),
        "stages": [card.model_dump(mode="json") for card in cards],
        "active": active,
    }


@router.post("/events/{event_id}/stages/{stage}/start")
async def start_stage(event_id: str, stage: str, request: Request) -> dict[str, Any]:
    """Trigger one stage. 409 when gated, 502 when the backend rejects it."""
    key = _parse_stage(stage)
    await _require_event(request, event_id)
    async with _use_stepper(request, event_id) as stepper:
        await stepper.refresh()
        result = await stepper.trigger(key)

    if result.blocked:
        raise HTTPException(status_code=409, detail=result.message)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.message)
    return result.model_dump(mode="json")


@router.get("/events/{event_id}/banner")
async def get_banner(event_id: str, request: Request) -> Optional[dict[str, Any]]:
    await _require_event(request, event_id)
    async with _use_stepper(request, event_id) as stepper:
        await stepper.refresh()
        banner = build_banner(stepper.latest_jobs())
    return banner.model_dump(mode="json") if banner else None


@router.get("/events/{event_id}/lead-stats")
async def get_lead_stats(event_id: str, request: Request) -> dict[str, Any]:
    try:
        stats = await _repository(request).lead_stats(event_id)
    except SupabaseAPIError as e:
        logger.error(f"Lead stats failed for {event_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return stats.model_dump(mode="json")


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the dashboard app.

    Args:
        settings: Settings to use instead of the process-wide singleton.
        transport: Optional HTTP transport for the backend client, used by
            tests to fake Supabase.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logfire.info("Starting leadflow API server", environment=settings.environment)

        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.start()

        async with SupabaseClient(
            settings.supabase_client_config(), transport=transport
        ) as supabase:
            app.state.settings = settings
            app.state.supabase = supabase
            app.state.scheduler = scheduler
            app.state.steppers = {}
            app.state.stepper_leases = Counter()
            try:
                yield
            finally:
                for stepper in app.state.steppers.values():
                    stepper.close()
                app.state.steppers.clear()
                app.state.stepper_leases.clear()
                scheduler.shutdown(wait=False)
                logfire.info("Shutting down leadflow API server")

    app = FastAPI(
        title="Leadflow Pipeline API",
        description="Stage status and triggers for lead processing",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    app.include_router(router)
    return app
