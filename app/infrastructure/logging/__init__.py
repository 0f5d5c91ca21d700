"""Structured logging for the notification engine (structlog).

    from infrastructure.logging import bind_run_context, get_module_logger

    logger = get_module_logger()

    with bind_run_context(job="cleanup") as run_id:
        logger.info("cleanup_started")

configure_logging() is called once by each entry point (server lifespan,
job CLI). Contact data is masked by the processors in ``formatters``.
"""

from infrastructure.logging.context import (
    bind_run_context,
    clear_run_context,
    get_correlation_id,
)
from infrastructure.logging.formatters import (
    REDACTED,
    SECRET_KEY_PARTS,
    add_service_info,
    mask_contact_details,
    mask_email,
    mask_phone,
    redact_secrets,
    truncate_long_strings,
)
from infrastructure.logging.setup import configure_logging, get_module_logger

__all__ = [
    "configure_logging",
    "get_module_logger",
    "bind_run_context",
    "clear_run_context",
    "get_correlation_id",
    "REDACTED",
    "SECRET_KEY_PARTS",
    "add_service_info",
    "mask_contact_details",
    "mask_email",
    "mask_phone",
    "redact_secrets",
    "truncate_long_strings",
]
