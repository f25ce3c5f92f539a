"""Public-facing routes (APP_ROLE=public). Liveness only; automation lives on the worker."""

from fastapi import APIRouter

from guestcomms.observability.logging import SERVICE_NAME

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "service": SERVICE_NAME}
