"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from ..routes import tasks_patient_messages

router = APIRouter()
router.include_router(tasks_patient_messages.router)


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}
