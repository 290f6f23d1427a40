"""Logfire observability initialization and instrumentation."""

import logging
from typing import Optional

import logfire
from fastapi import FastAPI

from scriptvoid import __version__
from scriptvoid.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, app: Optional[FastAPI] = None) -> None:
    """
    Initialize Logfire with instrumentation for the batch engine.

    Must be called ONCE at process startup, before any job runs.

    This function configures Logfire cloud tracking and instruments:
    - PyMongo (every count/find/bulk_write issued by a job)
    - FastAPI (the cron and leaderboard routes), when ``app`` is given
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing the Logfire token
        app: Optional FastAPI app to instrument

    Returns:
        None. Logs success or warning messages.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="scriptvoid",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_pymongo()

        if app is not None:
            logfire.instrument_fastapi(app)

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
