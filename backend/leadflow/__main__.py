"""Leadflow CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from leadflow import __version__
from leadflow.config import Settings, get_settings
from leadflow.leads import LeadsRepository
from leadflow.observability import configure_logging, initialize_logfire
from leadflow.pipeline import (
    STAGE_ORDER,
    NotificationLevel,
    PipelineContext,
    PipelineNotification,
    PipelineStepper,
    PresentationStatus,
    StageCard,
    build_banner,
)
from leadflow.services.supabase import SupabaseAPIError, SupabaseClient

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    PresentationStatus.PENDING: "○",
    PresentationStatus.IN_PROGRESS: "◐",
    PresentationStatus.COMPLETED: "✓",
    PresentationStatus.FAILED: "✗",
    PresentationStatus.UNKNOWN: "?",
}


def _init_logfire(settings: Settings) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        initialize_logfire(settings)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _print_cards(cards: list[StageCard]) -> None:
    for i, card in enumerate(cards, 1):
        line = f"  {i}. {_STATUS_ICONS[card.status]} {card.title:<20} {card.status.value}"
        if card.progress_percent is not None:
            line += f" ({card.progress_percent}%)"
        print(line)
        if card.stats_text:
            print(f"       {card.stats_text}")
        if card.error_message:
            print(f"       Error: {card.error_message}")
        if card.logs_url:
            print(f"       Logs: {card.logs_url}")
        if not card.enabled and card.blocked_reason:
            print(f"       ({card.blocked_reason})")
    print()


def _print_notification(notification: PipelineNotification) -> None:
    mark = "❌" if notification.level is NotificationLevel.ERROR else "✓"
    print(f"{mark} {notification.title}")
    if notification.description:
        print(f"  {notification.description}")


def _stepper(settings: Settings, client: SupabaseClient, event_id: str) -> PipelineStepper:
    context = PipelineContext(
        event_id=event_id,
        client=client,
        config=settings.pipeline,
        jobs_table=settings.supabase.jobs_table,
    )
    context.channel.subscribe(_print_notification)
    return PipelineStepper(context, auto_poll=False)


async def _watch(stepper: PipelineStepper) -> None:
    """Print the cards on every poll until no stage is active."""
    stepper.on_refresh = _print_cards
    stepper.start_polling()
    await stepper.wait_until_idle()


async def _status(settings: Settings, event_id: str, watch: bool) -> int:
    async with SupabaseClient(settings.supabase_client_config()) as client:
        repo = LeadsRepository(
            client,
            events_table=settings.supabase.events_table,
            leads_table=settings.supabase.leads_table,
        )
        event = await repo.get_event(event_id)
        if event is None:
            print(f"\n❌ Event not found: {event_id}\n")
            return 1

        print(f"\n=== {event.name or event.id} ({event.lead_count} leads) ===\n")

        stepper = _stepper(settings, client, event_id)
        try:
            _print_cards(await stepper.refresh())

            banner = build_banner(stepper.latest_jobs())
            if banner:
                print(f"{banner.headline}: {banner.detail} [{banner.percent_complete}%]\n")

            if watch and stepper.has_active_work():
                await _watch(stepper)
                print("✓ All stages idle\n")
        finally:
            stepper.close()
    return 0


async def _start(settings: Settings, event_id: str, stage: str, watch: bool) -> int:
    async with SupabaseClient(settings.supabase_client_config()) as client:
        stepper = _stepper(settings, client, event_id)
        try:
            await stepper.refresh()
            result = await stepper.trigger(stage)
            if not result.success:
                if result.blocked:
                    print(f"\n❌ Cannot start {result.stage.value}: {result.message}\n")
                return 1

            print()
            if watch:
                await _watch(stepper)
                print("✓ All stages idle\n")
        finally:
            stepper.close()
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Leadflow Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Environment: {settings.environment}\n")

        print("Supabase:")
        print(f"  URL: {settings.supabase_url or '✗ Not set'}")
        print(f"  Anon Key: {'✓ Set' if settings.supabase_anon_key else '✗ Not set'}")
        print(f"  Access Token: {'✓ Set' if settings.supabase_access_token else '✗ Not set'}")
        print(f"  Jobs Table: {settings.supabase.jobs_table}")
        print(f"  Timeout: {settings.supabase.timeout_seconds}s")
        print(f"  Max Retries: {settings.supabase.max_retries}\n")

        print("Pipeline:")
        print(f"  Poll Interval: {settings.pipeline.poll_interval_seconds}s")
        print(f"  Follow-up Delay: {settings.pipeline.follow_up_delay_seconds}s")
        print(f"  Confirmation Timeout: {settings.pipeline.confirmation_timeout_seconds}s")
        print(f"  Logs URL: {settings.pipeline.logs_base_url or '(none)'}\n")

        print("API:")
        print(f"  Listen: {settings.api.host}:{settings.api.port}")
        print(f"  CORS Origins: {', '.join(settings.api.cors_origins)}\n")

        print(f"Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show stage cards for an event."""
    settings = get_settings()
    _init_logfire(settings)

    try:
        return asyncio.run(_status(settings, args.event_id, watch=False))
    except SupabaseAPIError as e:
        logger.error(f"Status read failed: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1


def cmd_watch(args: argparse.Namespace) -> int:
    """Show stage cards and keep polling until every stage is idle."""
    settings = get_settings()
    _init_logfire(settings)

    try:
        return asyncio.run(_status(settings, args.event_id, watch=True))
    except SupabaseAPIError as e:
        logger.error(f"Watch failed: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1
    except KeyboardInterrupt:
        print("\nStopped watching\n")
        return 0


def cmd_start(args: argparse.Namespace) -> int:
    """Trigger a stage for an event."""
    settings = get_settings()
    _init_logfire(settings)

    try:
        return asyncio.run(_start(settings, args.event_id, args.stage, args.watch))
    except SupabaseAPIError as e:
        logger.error(f"Start failed: {e}")
        print(f"\n❌ Failed to start {args.stage}: {e}\n")
        return 1
    except KeyboardInterrupt:
        print("\nStopped watching; the stage keeps running remotely\n")
        return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show validation and Salesforce counts for an event's leads."""
    settings = get_settings()
    _init_logfire(settings)

    async def _run():
        async with SupabaseClient(settings.supabase_client_config()) as client:
            repo = LeadsRepository(
                client,
                events_table=settings.supabase.events_table,
                leads_table=settings.supabase.leads_table,
            )
            return await repo.lead_stats(args.event_id)

    try:
        stats = asyncio.run(_run())
    except SupabaseAPIError as e:
        logger.error(f"Lead stats failed: {e}")
        print(f"\n❌ Failed to read lead stats: {e}\n")
        return 1

    print(f"\n=== Lead Statistics ({stats.lead_count} leads) ===\n")
    print("Validation:")
    print(f"  Valid: {stats.validation.valid}")
    print(f"  Invalid: {stats.validation.invalid}")
    print(f"  Email Valid: {stats.validation.email_valid}")
    print(f"  Email Invalid: {stats.validation.email_invalid}\n")
    print("Salesforce:")
    for name, count in stats.salesforce.model_dump().items():
        print(f"  {name.replace('_', ' ').title()}: {count}")
    print()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the dashboard API server."""
    import uvicorn

    from leadflow.api import create_app

    settings = get_settings()
    _init_logfire(settings)

    host = args.host or settings.api.host
    port = args.port or settings.api.port
    print(f"\n✓ Serving leadflow API on http://{host}:{port}\n")
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Leadflow: lead processing pipeline console",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Leadflow {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser(
        "status",
        help="Show pipeline stage status for an event",
    )
    parser_status.add_argument("--event-id", required=True, help="Event (lead list) ID")
    parser_status.set_defaults(func=cmd_status)

    parser_watch = subparsers.add_parser(
        "watch",
        help="Poll stage status until every stage is idle",
    )
    parser_watch.add_argument("--event-id", required=True, help="Event (lead list) ID")
    parser_watch.set_defaults(func=cmd_watch)

    parser_start = subparsers.add_parser(
        "start",
        help="Start (or re-run) a pipeline stage",
    )
    parser_start.add_argument("--event-id", required=True, help="Event (lead list) ID")
    parser_start.add_argument(
        "--stage",
        required=True,
        choices=[stage.value for stage in STAGE_ORDER],
        help="Stage to start",
    )
    parser_start.add_argument(
        "--watch",
        action="store_true",
        help="Keep polling until the pipeline is idle",
    )
    parser_start.set_defaults(func=cmd_start)

    parser_stats = subparsers.add_parser(
        "stats",
        help="Show lead validation and Salesforce counts",
    )
    parser_stats.add_argument("--event-id", required=True, help="Event (lead list) ID")
    parser_stats.set_defaults(func=cmd_stats)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Run the dashboard API server",
    )
    parser_serve.add_argument("--host", help="Bind address (default from config)")
    parser_serve.add_argument("--port", type=int, help="Port (default from config)")
    parser_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        configure_logging(get_settings())
    except ValidationError:
        # cmd_config reports the details
        logging.basicConfig(level=logging.INFO)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
