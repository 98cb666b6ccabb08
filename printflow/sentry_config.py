"""
Sentry configuration for error tracking.

Captures unhandled exceptions and swallowed collaborator failures.
"""
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from printflow.config import settings
from printflow.logging_config import get_logger

logger = get_logger(component="sentry")


def configure_sentry():
    """
    Initialize Sentry with FastAPI and SQLAlchemy integrations.
    
    Requires SENTRY_DSN environment variable to be set.
    """
    dsn = settings.SENTRY_DSN
    
    if not dsn:
        logger.info("sentry_disabled", reason="SENTRY_DSN not set")
        return
    
    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        before_send=strip_payment_references,
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
        release=settings.APP_VERSION,
    )
    
    logger.info("sentry_enabled", environment=settings.ENVIRONMENT)


def strip_payment_references(event, hint):
    """Drop payment reference values from request bodies before they leave the process."""
    data = event.get("request", {}).get("data")
    if isinstance(data, dict):
        for key in ("payment_reference", "razorpay_signature"):
            if key in data:
                data[key] = "[Filtered]"
    return event


def capture_exception(exc_info=None):
    """
    Capture an exception to Sentry.
    
    Usage:
        try:
            # some code
        except Exception as exc:
            capture_exception(exc)
    """
    if sentry_sdk.get_client().is_active():
        sentry_sdk.capture_exception(exc_info)
