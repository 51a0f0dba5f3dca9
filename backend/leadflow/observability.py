"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from leadflow import __version__
from leadflow.config import Settings

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging for CLI and server processes."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Reduce noise from HTTP and scheduler libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def initialize_logfire(settings: Settings) -> bool:
    """
    Initialize Logfire with instrumentation.

    Must be called once at process startup, before any client is opened.

    This function configures Logfire cloud tracking and instruments:
    - HTTPX clients (Supabase REST reads and edge-function invocations)
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token

    Returns:
        True when Logfire was configured, False when it is disabled.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="leadflow",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        # Observability is optional; the pipeline keeps running without it
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
