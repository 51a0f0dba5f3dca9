"""End-to-end stepper behaviour against the in-memory backend."""

import asyncio

import httpx

from leadflow.config import PipelineConfig
from leadflow.pipeline import (
    EventChannel,
    NotificationLevel,
    PipelineContext,
    PipelineStepper,
    PresentationStatus,
    StageKey,
)
from tests.support import job_row


def _stepper(client, config: PipelineConfig, channel: EventChannel | None = None) -> PipelineStepper:
    context = PipelineContext(
        event_id="evt-1",
        client=client,
        channel=channel or EventChannel(),
        config=config,
    )
    return PipelineStepper(context)


def _by_key(cards):
    return {card.key: card for card in cards}


def test_fresh_event_only_first_stage_is_enabled(fake, make_client, pipeline_config) -> None:
    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config)
            try:
                return await stepper.refresh(), stepper.is_polling
            finally:
                stepper.close()

    cards, polling = asyncio.run(run())

    assert [card.key for card in cards] == list(StageKey)
    assert all(card.status is PresentationStatus.PENDING for card in cards)
    assert cards[0].available and cards[0].enabled
    assert cards[0].action_label == "Start"
    for card in cards[1:]:
        assert not card.available
        assert not card.enabled
    assert not polling


def test_validate_run_unlocks_salesforce_check(fake, make_client, pipeline_config) -> None:
    fake.add_job(job_row("validate", "pending", id="v1"))
    row = fake.tables["lead_processing_jobs"][0]

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config)
            stepper.auto_poll = False
            try:
                pending = _by_key(await stepper.refresh())

                row.update(status="processing", total_leads=50, processed_leads=10)
                running = _by_key(await stepper.refresh())

                row.update(status="completed", processed_leads=45, failed_leads=5)
                done = _by_key(await stepper.refresh())
                return pending, running, done, stepper.has_active_work()
            finally:
                stepper.close()

    pending, running, done, active = asyncio.run(run())

    assert pending[StageKey.VALIDATE].status is PresentationStatus.PENDING
    assert not pending[StageKey.CHECK_SALESFORCE].enabled

    validate = running[StageKey.VALIDATE]
    assert validate.status is PresentationStatus.IN_PROGRESS
    assert validate.progress_percent == 20
    assert validate.stats_text == "10/50 processed"
    assert not validate.enabled
    assert not running[StageKey.CHECK_SALESFORCE].enabled

    validate = done[StageKey.VALIDATE]
    assert validate.status is PresentationStatus.COMPLETED
    assert validate.progress_percent == 100
    assert validate.stats_text == "45 validated, 5 failed"
    assert validate.action_label == "Re-run"
    assert done[StageKey.CHECK_SALESFORCE].available
    assert done[StageKey.CHECK_SALESFORCE].enabled
    assert not done[StageKey.ENRICH].enabled
    assert not active


def test_rerun_is_optimistic_and_keeps_gating(fake, make_client, pipeline_config) -> None:
    fake.add_job(job_row("validate", "completed", id="v1", total=10, processed=10))
    fake.add_job(job_row("check_salesforce", "completed", id="s1", total=10, processed=10))
    fake.on_function("leads-validate", {"success": True, "message": "queued", "job_id": "v2"})

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config)
            stepper.auto_poll = False
            try:
                await stepper.refresh()
                result = await stepper.trigger(StageKey.VALIDATE)
                optimistic = _by_key(stepper.cards())
                active = stepper.has_active_work()
                polling = stepper.is_polling

                fake.add_job(job_row("validate", "pending", id="v2", minutes=5))
                stepper.stop_polling()
                confirmed = _by_key(await stepper.refresh())
                return result, optimistic, active, polling, confirmed
            finally:
                stepper.close()

    result, optimistic, active, polling, confirmed = asyncio.run(run())

    assert result.success
    validate = optimistic[StageKey.VALIDATE]
    assert validate.status is PresentationStatus.IN_PROGRESS
    assert validate.progress_percent is None
    assert validate.stats_text is None
    assert not validate.enabled

    # Neighbouring stages keep their state and gating
    salesforce = optimistic[StageKey.CHECK_SALESFORCE]
    assert salesforce.status is PresentationStatus.COMPLETED
    assert salesforce.enabled
    assert optimistic[StageKey.ENRICH].enabled

    assert active
    assert polling

    assert confirmed[StageKey.VALIDATE].status is PresentationStatus.PENDING
    assert confirmed[StageKey.VALIDATE].job_id == "v2"


def test_rejected_trigger_changes_nothing(fake, make_client, pipeline_config) -> None:
    fake.on_function("leads-validate", {"success": False, "message": "No valid leads"})
    notifications = []
    channel = EventChannel()
    channel.subscribe(notifications.append)

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config, channel)
            try:
                before = await stepper.refresh()
                result = await stepper.trigger("validate")
                return before, result, stepper.cards(), stepper.is_polling
            finally:
                stepper.close()

    before, result, after, polling = asyncio.run(run())

    assert not result.success
    assert [card.model_dump() for card in after] == [card.model_dump() for card in before]
    assert notifications[-1].level is NotificationLevel.ERROR
    assert notifications[-1].description == "No valid leads"
    assert not polling


def test_read_errors_keep_last_known_cards(fake, make_client, pipeline_config) -> None:
    fake.add_job(job_row("validate", "completed", id="v1", total=4, processed=4))

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config)
            try:
                before = await stepper.refresh()
                fake.fail_reads = True
                after = await stepper.refresh()
                return before, after
            finally:
                stepper.close()

    before, after = asyncio.run(run())

    assert after[0].status is PresentationStatus.COMPLETED
    assert after[0].stats_text == before[0].stats_text
    assert after[1].enabled


def test_non_json_reply_keeps_last_known_cards(fake, make_client, pipeline_config) -> None:
    fake.add_job(job_row("validate", "completed", id="v1", total=4, processed=4))

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config)
            try:
                await stepper.refresh()
                fake.read_reply = httpx.Response(200, text="<html>gateway</html>")
                return await stepper.refresh()
            finally:
                stepper.close()

    cards = asyncio.run(run())

    assert cards[0].status is PresentationStatus.COMPLETED
    assert cards[1].enabled


def test_failed_stage_shows_error_and_logs_link(fake, make_client) -> None:
    fake.add_job(job_row("validate", "completed", id="v1", total=4, processed=4))
    fake.add_job(
        job_row(
            "check_salesforce",
            "failed",
            id="s1",
            total=4,
            processed=1,
            error_message="Salesforce session expired",
        )
    )
    config = PipelineConfig(logs_base_url="https://supabase.com/dashboard/project/abc/functions/")

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, config)
            try:
                return _by_key(await stepper.refresh())
            finally:
                stepper.close()

    cards = asyncio.run(run())

    salesforce = cards[StageKey.CHECK_SALESFORCE]
    assert salesforce.status is PresentationStatus.FAILED
    assert salesforce.error_message == "Salesforce session expired"
    assert salesforce.enabled
    assert salesforce.logs_url == (
        "https://supabase.com/dashboard/project/abc/functions/leads-check-salesforce/logs"
    )
    assert not cards[StageKey.ENRICH].enabled
    assert cards[StageKey.VALIDATE].logs_url is None


def test_polling_stops_once_everything_is_terminal(fake, make_client, pipeline_config) -> None:
    fake.add_job(job_row("validate", "running", id="v1", total=10, processed=1))
    row = fake.tables["lead_processing_jobs"][0]
    seen = []

    async def run():
        async with make_client() as client:
            stepper = _stepper(client, pipeline_config)
            stepper.on_refresh = lambda cards: seen.append(cards[0].status)
            try:
                await stepper.refresh()
                started = stepper.is_polling
                row.update(status="completed", processed_leads=10)
                await asyncio.wait_for(stepper.wait_until_idle(), timeout=5)
                return started, stepper.is_polling
            finally:
                stepper.close()

    started, polling = asyncio.run(run())

    assert started
    assert not polling
    assert seen[0] is PresentationStatus.IN_PROGRESS
    assert seen[-1] is PresentationStatus.COMPLETED
