"""Run context binding for structured logging.

Binds a correlation id and job metadata to every log entry emitted while a
sweep, batch, cleanup or health run is in progress, so that all transitions
of one run can be pulled out of the log stream together.

Usage:
    from infrastructure.logging import bind_run_context

    with bind_run_context(job="overdue_sweep", batch_size=100):
        logger.info("sweep_started")

Dependencies:
    - structlog.contextvars
"""

import uuid
from contextlib import contextmanager
from typing import Optional, Any, Generator
import structlog


@contextmanager
def bind_run_context(
    job: str,
    run_id: Optional[str] = None,
    **extra_context: Any,
) -> Generator[str, None, None]:
    """Bind job-scoped context to all logs within the context manager.

    Args:
        job: Job name (e.g. "overdue_sweep", "cleanup").
        run_id: Correlation id for the run. Auto-generated if not provided.
        **extra_context: Additional key-value pairs to include in logs.

    Yields:
        The run id bound to the context.

    Example:
        with bind_run_context(job="batch", source="from_pending") as run_id:
            report = processor.run_from_pending()
            report.run_id = run_id
    """
    context: dict[str, Any] = {
        "job": job,
        "correlation_id": run_id or str(uuid.uuid4()),
    }
    context.update(
        {key: value for key, value in extra_context.items() if value is not None}
    )

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield context["correlation_id"]
    finally:
        structlog.contextvars.unbind_contextvars(*context.keys())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from the logging context.

    Returns:
        The correlation ID if set, None otherwise.
    """
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")


def clear_run_context() -> None:
    """Clear all context variables bound to the current thread/task."""
    structlog.contextvars.clear_contextvars()
