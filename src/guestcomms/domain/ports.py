"""Collaborator protocols injected into the automation components."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Protocol

from .models import NewSchedule, Reservation, Rule, ScheduleRecord

Clock = Callable[[], datetime]


class ScheduleStore(Protocol):
    """Persistence for rules, reservations and schedule records.

    Atomicity lives here: claim_due never hands the same record to two
    callers, insert_schedule is an insert-or-noop on the idempotency key,
    and cancel_pending_for_reservation is a single bulk update.
    """

    def list_enabled_rules(self, property_id: str | None) -> list[Rule]: ...

    def insert_schedule(self, new: NewSchedule) -> tuple[str, bool]:
        """Insert or no-op. Returns (schedule_id, created)."""
        ...

    def claim_due(self, limit: int, lease_seconds: int) -> list[ScheduleRecord]: ...

    def mark_sent(
        self, schedule_id: str, *, thread_id: str | None, message_id: str | None
    ) -> bool: ...

    def mark_failed(self, schedule_id: str, error: str) -> bool: ...

    def cancel_pending_for_reservation(self, reservation_id: str) -> int: ...

    def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    def list_recent_reservations(self, since: datetime) -> list[Reservation]: ...

    def list_reservations_in_windows(
        self,
        checkin_start: date,
        checkin_end: date,
        checkout_start: date,
        checkout_end: date,
    ) -> list[Reservation]: ...

    def has_on_create_schedule(self, reservation_id: str) -> bool: ...

    def existing_rule_ids(self, reservation_id: str) -> set[str]:
        """Rule ids with a pending or sent record for the reservation."""
        ...

    def list_schedules_for_reservation(self, reservation_id: str) -> list[ScheduleRecord]: ...

    def schedule_stats(self) -> dict[str, int]: ...

    def release_expired_leases(self) -> int: ...


class TemplateRenderer(Protocol):
    def render(self, template_id: str, payload: dict[str, Any]) -> str: ...


class ConversationWriter(Protocol):
    """In-app conversation store."""

    def resolve_thread(self, reservation_id: str) -> str: ...

    def write_message(self, thread_id: str, content: str, channel: str) -> str: ...


class ChannelSender(Protocol):
    """Outbound path for every channel other than in-app."""

    def send(
        self,
        *,
        channel: str,
        thread_id: str | None,
        reservation_id: str,
        content: str,
    ) -> str: ...
