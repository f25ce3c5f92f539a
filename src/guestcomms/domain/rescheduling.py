"""Rescheduling when a reservation's dates change.

Cancel every pending record of the reservation, then generate a fresh set
from the new dates. Sent, failed and cancelled records are never touched.
"""

from __future__ import annotations

from typing import Any

from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import safe_log_context

from .errors import ReservationNotFoundError
from .generation import ScheduleGenerator
from .models import Reservation
from .ports import ScheduleStore

logger = get_logger(__name__)

# Fields that move rule instants; any other change leaves schedules valid
SCHEDULE_FIELDS = ("check_in_date", "check_out_date", "check_in_time", "check_out_time")


def schedule_fields_changed(old: Reservation, new: Reservation) -> bool:
    return any(getattr(old, name) != getattr(new, name) for name in SCHEDULE_FIELDS)


class ReservationRescheduler:
    """Invalidates and regenerates schedules (CancellationCoordinator)."""

    def __init__(self, store: ScheduleStore, generator: ScheduleGenerator) -> None:
        self._store = store
        self._generator = generator

    def handle_reservation_update(
        self, old: Reservation, new: Reservation
    ) -> dict[str, Any]:
        """React to a reservation mutation.

        Returns:
            {"updated": False, "reason": "no_date_changes"} when nothing
            schedule-relevant changed, otherwise
            {"updated": True, "cancelled", "generated", "results"}.
        """
        if not schedule_fields_changed(old, new):
            return {"updated": False, "reason": "no_date_changes"}

        cancelled = self._store.cancel_pending_for_reservation(new.id)
        results = self._generator.generate_for_reservation(new, is_realtime=True)
        generated = sum(1 for r in results if r.status == "created")

        logger.info(
            "reservation rescheduled",
            extra={
                "extra_fields": safe_log_context(
                    reservation_id=new.id, cancelled=cancelled, generated=generated
                )
            },
        )
        return {
            "updated": True,
            "cancelled": cancelled,
            "generated": generated,
            "results": [r.to_dict() for r in results],
        }

    def regenerate_for_reservation(
        self, reservation_id: str, cancel_existing: bool = True
    ) -> dict[str, Any]:
        """Admin utility: optionally cancel pending records, then regenerate.

        Raises:
            ReservationNotFoundError: If the reservation does not exist.
        """
        reservation = self._store.get_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")

        cancelled = 0
        if cancel_existing:
            cancelled = self._store.cancel_pending_for_reservation(reservation_id)

        results = self._generator.generate_for_reservation(reservation, is_realtime=True)
        return {
            "reservation_id": reservation_id,
            "cancel_existing": cancel_existing,
            "cancelled": cancelled,
            "generated": sum(1 for r in results if r.status == "created"),
            "results": [r.to_dict() for r in results],
        }
