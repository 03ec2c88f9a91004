"""
Command-line entry point — `arca-status`.

Composition root: loads ArcaSettings, configures structlog and asks WSFE
for its health (FEDummy). Exits 0 when every server reports OK, 1 when
one does not, 2 on configuration or connection errors.

FEDummy needs no ticket, so only the environment has to be valid; the
credential settings are still validated because the same .env is shared
with the issuing services.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog

from arca_client.adapters.http_client import HttpxTransport
from arca_client.config import ArcaSettings
from arca_client.errors import ArcaError
from arca_client.invoicing import check_status


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output; the level filters at the
    bound-logger level so disabled events cost nothing.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Print the WSFE server status for the configured environment."""
    try:
        settings = ArcaSettings()
    except Exception as e:
        print(f"FATAL: configuration error: {e}", file=sys.stderr)  # noqa: T201
        sys.exit(2)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info("app.starting", environment=settings.environment.value)

    transport = HttpxTransport(legacy_tls=settings.legacy_tls)
    try:
        status = asyncio.run(
            check_status(
                settings.environment,
                transport=transport,
                timeout=settings.http_timeout_seconds,
                attempts=settings.read_retry_attempts,
            )
        )
    except ArcaError as e:
        log.error("app.status_failed", **e.to_dict())
        sys.exit(2)

    print(  # noqa: T201
        f"AppServer={status.app_server} DbServer={status.db_server} AuthServer={status.auth_server}"
    )
    sys.exit(0 if status.healthy else 1)


if __name__ == "__main__":
    main()
