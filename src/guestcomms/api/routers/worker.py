"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from guestcomms.api.routes import tasks_automation

router = APIRouter()
router.include_router(tasks_automation.router)


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "automation"}
