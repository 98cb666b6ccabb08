"""
Structured logging configuration using structlog.

Every log line is a JSON object. Queue engine events carry the job's
identity (job_id, token_number, vendor_id) so a single job can be traced
from upload to pickup.
"""
import logging
import sys

import structlog

from printflow.config import settings


def configure_logging(debug: bool | None = None):
    """Configure structlog for JSON output with context."""
    if debug is None:
        debug = settings.DEBUG
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


logger = configure_logging()


def get_logger(**context):
    """
    Get a logger with additional context bound.
    
    Usage:
        log = get_logger(vendor_id=vendor_id)
        log.info("service_availability_changed", is_open=False)
    """
    return logger.bind(**context)


def job_logger(job, **context):
    """Logger bound to a print job's identity."""
    return logger.bind(
        job_id=job.id,
        token_number=job.token_number,
        vendor_id=job.vendor_id,
        **context,
    )
