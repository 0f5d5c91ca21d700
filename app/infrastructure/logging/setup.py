"""Structlog configuration for the API process and the job runner.

Both entry points call configure_logging() once at startup. Modules get
their logger at import time through get_module_logger(), which binds the
calling module's name so every event carries its component.
"""

import inspect
import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.stdlib import BoundLogger

from infrastructure.logging.formatters import (
    add_service_info,
    mask_contact_details,
    redact_secrets,
    truncate_long_strings,
)

SERVICE_NAME = "notification-engine"

SILENT = logging.CRITICAL + 1


def _is_test_environment() -> bool:
    return "pytest" in sys.modules


def build_processors(version: str, environment: str, json_output: bool) -> List[Any]:
    """Processor chain shared by console and JSON output."""
    processors: List[Any] = [
        # Run id and job name bound by bind_run_context()
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service_info(SERVICE_NAME, version, environment),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        mask_contact_details(),
        redact_secrets(),
        truncate_long_strings(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def _configure_silent() -> BoundLogger:
    # Bound context is still merged so tests can inspect it, nothing is emitted
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=SILENT, force=True)
    logging.root.setLevel(SILENT)
    return structlog.stdlib.get_logger()


def configure_logging(
    log_level: Optional[str] = None,
    is_production: Optional[bool] = None,
) -> BoundLogger:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Overrides settings.LOG_LEVEL
        is_production: Overrides settings.is_production; production
            renders JSON lines, anything else a colored console

    Returns:
        Root BoundLogger
    """
    if _is_test_environment():
        return _configure_silent()

    from infrastructure.services.providers import get_settings

    settings = get_settings()
    production = settings.is_production if is_production is None else is_production

    structlog.configure(
        processors=build_processors(settings.GIT_SHA, settings.environment, production),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    level_name = (log_level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name, logging.INFO),
    )
    return structlog.stdlib.get_logger()


_root_logger: BoundLogger = structlog.stdlib.get_logger()


def get_module_logger() -> BoundLogger:
    """Logger bound to the calling module.

    Called from modules/notifications/dispatcher.py the logger carries
    ``component="dispatcher"`` and
    ``module_path="modules.notifications.dispatcher"``.
    """
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    module = inspect.getmodule(caller) if caller is not None else None
    if module is None:
        return _root_logger.bind(component="unknown")

    module_path = module.__name__
    return _root_logger.bind(
        component=module_path.rsplit(".", 1)[-1],
        module_path=module_path,
    )
