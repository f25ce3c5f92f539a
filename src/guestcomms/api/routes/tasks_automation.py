"""Worker routes for message automation.

POST /tasks/automation/process-due                      → one dispatch tick
POST /tasks/automation/reconcile                        → recent or dual-window scan
POST /tasks/automation/reservation-updated              → cancel + regenerate on date change
POST /tasks/automation/reservations/{id}/regenerate     → admin regenerate
GET  /tasks/automation/reservations/{id}/preview        → dry-run of every rule
GET  /tasks/automation/reservations/{id}/schedules      → schedule records
GET  /tasks/automation/stats                            → record counts per status
GET  /tasks/automation/jobs                             → periodic job status

All routes require task auth (OIDC or internal secret in local dev).
Responses carry ids, counts and statuses only; payload snapshots and
rendered text never leave the database.
"""

from __future__ import annotations

import dataclasses
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict

from guestcomms.api.task_auth import require_task_auth
from guestcomms.bootstrap import Engine, build_engine
from guestcomms.domain.errors import ReservationNotFoundError
from guestcomms.domain.models import ScheduleRecord
from guestcomms.observability.correlation import get_correlation_id
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import safe_log_context

router = APIRouter(
    prefix="/tasks/automation",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


# ── Schemas ───────────────────────────────────────────────────────────────────


class ProcessDueRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    force: bool = False


class ReconcileRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: Literal["recent", "windows"] = "recent"
    minutes_back: int | None = None
    days_ahead: int | None = None


class PreviousSchedule(BaseModel):
    """Schedule-relevant reservation fields before the update."""

    check_in_date: date
    check_out_date: date
    check_in_time: str | None = None
    check_out_time: str | None = None


class ReservationUpdatedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reservation_id: str
    previous: PreviousSchedule


class RegenerateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cancel_existing: bool = True


# ── Helpers ───────────────────────────────────────────────────────────────────


def get_engine(request: Request) -> Engine:
    """Engine attached at app creation, built on first use otherwise."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        engine = build_engine()
        request.app.state.engine = engine
    return engine


def _record_to_dict(record: ScheduleRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "rule_id": record.rule_id,
        "template_id": record.template_id,
        "channel": record.channel,
        "run_at": record.run_at.isoformat(),
        "status": record.status.value,
        "last_error": record.last_error,
        "sent_message_id": record.sent_message_id,
    }


def _load_reservation(engine: Engine, reservation_id: str):
    reservation = engine.store.get_reservation(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


# ── Dispatch and reconciliation ───────────────────────────────────────────────


@router.post("/process-due")
def process_due(body: ProcessDueRequest, engine: Engine = Depends(get_engine)) -> dict:
    """Run one dispatch tick. `force` bypasses the non-production gate."""
    if body.force:
        logger.warning(
            "forced dispatch requested",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
    return {"ok": True, **engine.dispatcher.run_once(force=body.force)}


@router.post("/reconcile")
def reconcile(body: ReconcileRequest, engine: Engine = Depends(get_engine)) -> dict:
    settings = engine.settings
    if body.mode == "recent":
        minutes_back = body.minutes_back
        if minutes_back is None:
            minutes_back = settings.recent_window_minutes
        result = engine.scanner.generate_for_recent(minutes_back)
    else:
        days_ahead = body.days_ahead
        if days_ahead is None:
            days_ahead = settings.reconcile_days_ahead
        result = engine.scanner.reconcile_windows(days_ahead)
    return {"ok": True, "mode": body.mode, **result}


# ── Reservation lifecycle ─────────────────────────────────────────────────────


@router.post("/reservation-updated")
def reservation_updated(
    body: ReservationUpdatedRequest, engine: Engine = Depends(get_engine)
) -> dict:
    """Called by the booking subsystem after a reservation is modified."""
    new = _load_reservation(engine, body.reservation_id)
    old = dataclasses.replace(
        new,
        check_in_date=body.previous.check_in_date,
        check_out_date=body.previous.check_out_date,
        check_in_time=body.previous.check_in_time,
        check_out_time=body.previous.check_out_time,
    )
    return {"ok": True, **engine.rescheduler.handle_reservation_update(old, new)}


@router.post("/reservations/{reservation_id}/regenerate")
def regenerate(
    reservation_id: str,
    body: RegenerateRequest | None = None,
    engine: Engine = Depends(get_engine),
) -> dict:
    cancel_existing = body.cancel_existing if body is not None else True
    try:
        result = engine.rescheduler.regenerate_for_reservation(
            reservation_id, cancel_existing=cancel_existing
        )
    except ReservationNotFoundError:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return {"ok": True, **result}


@router.get("/reservations/{reservation_id}/preview")
def preview(reservation_id: str, engine: Engine = Depends(get_engine)) -> dict:
    reservation = _load_reservation(engine, reservation_id)
    return engine.generator.preview_for_reservation(reservation)


@router.get("/reservations/{reservation_id}/schedules")
def list_schedules(reservation_id: str, engine: Engine = Depends(get_engine)) -> dict:
    records = engine.store.list_schedules_for_reservation(reservation_id)
    return {
        "reservation_id": reservation_id,
        "schedules": [_record_to_dict(r) for r in records],
    }


# ── Introspection ─────────────────────────────────────────────────────────────


@router.get("/stats")
def stats(engine: Engine = Depends(get_engine)) -> dict:
    counts = engine.store.schedule_stats()
    return {"by_status": counts, "total": sum(counts.values())}


@router.get("/jobs")
def jobs(engine: Engine = Depends(get_engine)) -> dict:
    return {
        "jobs": engine.scheduler.status(),
        "dispatch_enabled": engine.settings.dispatch_enabled(),
    }
