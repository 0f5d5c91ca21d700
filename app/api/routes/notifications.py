from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.dependencies.notifications import EngineDep
from api.dependencies.rate_limits import get_limiter
from modules.notifications.models import InvalidTransitionError

router = APIRouter(prefix="/notifications", tags=["Notifications"])
limiter = get_limiter()


@router.get("/health")
@limiter.limit("20/minute")
def get_notifications_health(request: Request, engine: EngineDep):  # pylint: disable=unused-argument
    """Engine health: queue depth, recent failures, stale work, breakers.

    Responds 503 while the engine is degraded so monitors can alert on it.
    """
    report = engine.health.run()
    return JSONResponse(
        status_code=200 if report.is_healthy else 503,
        content=report.to_dict(),
    )


@router.get("/statistics")
@limiter.limit("20/minute")
def get_notifications_statistics(request: Request, engine: EngineDep):  # pylint: disable=unused-argument
    """Cached delivery statistics (refreshed by cleanup runs)."""
    return engine.cleanup.get_statistics()


@router.post("/{notification_id}/read")
@limiter.limit("60/minute")
def mark_notification_read(request: Request, notification_id: str, engine: EngineDep):  # pylint: disable=unused-argument
    """Record that the recipient opened a delivered notification.

    Read notifications are deleted after the shorter read retention.
    """
    try:
        record = engine.scheduler.mark_read(notification_id)
    except InvalidTransitionError as e:
        return JSONResponse(status_code=409, content={"detail": str(e)})
    if record is None:
        return JSONResponse(
            status_code=404, content={"detail": "Notification not found"}
        )
    return {
        "id": record.id,
        "status": record.status.value,
        "read_at": record.read_at.isoformat(),
    }
