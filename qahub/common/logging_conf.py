"""
Centralized logging configuration with Sentry.io integration.

Both the API and the reconciliation worker call one of the
setup_* functions once at startup with their loaded Settings.
"""

import logging

import sentry_sdk

from .config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(log_level: str = "INFO", service_name: str = "qahub") -> None:
    """
    Configure Python logging for a service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        service_name: Name of the service for logging context
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(service_name).debug(
        f"Logging configured at {log_level.upper()}"
    )


def _init_sentry(settings: Settings, integrations: list, service_name: str) -> None:
    if not settings.sentry_dsn:
        logging.info(
            f"Sentry disabled for {service_name} (no DSN provided)"
        )
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
        integrations=integrations,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    logging.info(
        f"Sentry initialized for {service_name} in "
        f"{settings.sentry_environment} environment"
    )


def setup_fastapi_logging(settings: Settings) -> None:
    """
    Configure logging for the FastAPI service with Sentry.

    Args:
        settings: Application settings
    """
    setup_logging(log_level=settings.log_level, service_name="qahub-api")

    integrations = []
    if settings.sentry_dsn:
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.starlette import StarletteIntegration

        integrations = [
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ]

    _init_sentry(settings, integrations, "qahub-api")


def setup_celery_logging(settings: Settings) -> None:
    """
    Configure logging for the Celery worker with Sentry.

    Args:
        settings: Application settings
    """
    setup_logging(log_level=settings.log_level, service_name="qahub-worker")

    integrations = []
    if settings.sentry_dsn:
        from sentry_sdk.integrations.celery import CeleryIntegration

        integrations = [
            CeleryIntegration(
                monitor_beat_tasks=True,
                propagate_traces=True,
            ),
        ]

    _init_sentry(settings, integrations, "qahub-worker")
