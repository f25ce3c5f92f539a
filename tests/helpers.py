"""Shared test helpers for guestcomms tests.

This module contains builders and in-memory fakes that can be imported by
both conftest.py and individual test files. These are NOT fixtures.
"""

from __future__ import annotations

import dataclasses
import itertools
from datetime import date, datetime, timedelta, timezone
from typing import Any

from guestcomms.domain.models import (
    AnchorKind,
    NewSchedule,
    Reservation,
    Rule,
    RuleTemplate,
    ScheduleRecord,
    ScheduleStatus,
)

TASK_HEADERS = {"X-Internal-Task-Secret": "test-task-secret"}


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_reservation(**overrides: Any) -> Reservation:
    """Reservation in Asia/Tokyo checking in 2025-03-10, out 2025-03-13."""
    fields: dict[str, Any] = {
        "id": "res-1",
        "property_id": "prop-1",
        "check_in_date": date(2025, 3, 10),
        "check_out_date": date(2025, 3, 13),
        "created_at": datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc),
        "timezone": "Asia/Tokyo",
        "booking_name": "Hanako Yamada",
        "booking_phone": "+81 90 1234 5678",
        "booking_source": "airbnb",
    }
    fields.update(overrides)
    return Reservation(**fields)


def make_template(**overrides: Any) -> RuleTemplate:
    fields: dict[str, Any] = {"id": "tpl-1", "channel": "inapp", "language": "en"}
    fields.update(overrides)
    return RuleTemplate(**fields)


def make_rule(**overrides: Any) -> Rule:
    """Rule "before arrival, 7 days at 10:00" with one in-app template."""
    fields: dict[str, Any] = {
        "id": "rule-1",
        "code": "A",
        "anchor": AnchorKind.BEFORE_ARRIVAL_AT_TIME,
        "days": 7,
        "at_time": "10:00",
        "templates": (make_template(),),
    }
    fields.update(overrides)
    return Rule(**fields)


class InMemoryScheduleStore:
    """ScheduleStore fake with the same uniqueness and transition guards as Postgres."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self.rules: list[Rule] = []
        self.reservations: dict[str, Reservation] = {}
        self.records: dict[str, ScheduleRecord] = {}
        self.leases: dict[str, datetime] = {}

    # -- test setup --------------------------------------------------------

    def add_rule(self, rule: Rule) -> Rule:
        self.rules.append(rule)
        return rule

    def add_reservation(self, reservation: Reservation) -> Reservation:
        self.reservations[reservation.id] = reservation
        return reservation

    def active_records(self, reservation_id: str | None = None) -> list[ScheduleRecord]:
        return [
            r
            for r in self.records.values()
            if r.status is not ScheduleStatus.CANCELLED
            and (reservation_id is None or r.reservation_id == reservation_id)
        ]

    def _update(self, schedule_id: str, **changes: Any) -> None:
        self.records[schedule_id] = dataclasses.replace(self.records[schedule_id], **changes)

    # -- ScheduleStore -----------------------------------------------------

    def list_enabled_rules(self, property_id: str | None) -> list[Rule]:
        return [
            r
            for r in self.rules
            if r.enabled and (r.property_id is None or r.property_id == property_id)
        ]

    def insert_schedule(self, new: NewSchedule) -> tuple[str, bool]:
        for record in self.records.values():
            if record.idempotency_key == new.idempotency_key:
                return (record.id, False)
        schedule_id = f"sched-{next(self._ids)}"
        self.records[schedule_id] = ScheduleRecord(
            id=schedule_id,
            rule_id=new.rule_id,
            reservation_id=new.reservation_id,
            thread_id=new.thread_id,
            template_id=new.template_id,
            channel=new.channel,
            run_at=new.run_at,
            idempotency_key=new.idempotency_key,
            status=ScheduleStatus.PENDING,
            payload=dict(new.payload),
            created_by=new.created_by,
        )
        return (schedule_id, True)

    def claim_due(self, limit: int, lease_seconds: int) -> list[ScheduleRecord]:
        now = self._clock()
        due = sorted(
            (
                r
                for r in self.records.values()
                if r.status is ScheduleStatus.PENDING
                and r.run_at <= now
                and (r.id not in self.leases or self.leases[r.id] < now)
            ),
            key=lambda r: r.run_at,
        )[:limit]
        for record in due:
            self.leases[record.id] = now + timedelta(seconds=lease_seconds)
        return due

    def mark_sent(
        self, schedule_id: str, *, thread_id: str | None, message_id: str | None
    ) -> bool:
        record = self.records[schedule_id]
        if record.status is not ScheduleStatus.PENDING:
            return False
        self._update(
            schedule_id,
            status=ScheduleStatus.SENT,
            thread_id=record.thread_id or thread_id,
            sent_message_id=message_id,
            last_error=None,
        )
        self.leases.pop(schedule_id, None)
        return True

    def mark_failed(self, schedule_id: str, error: str) -> bool:
        if self.records[schedule_id].status is not ScheduleStatus.PENDING:
            return False
        self._update(schedule_id, status=ScheduleStatus.FAILED, last_error=error)
        self.leases.pop(schedule_id, None)
        return True

    def cancel_pending_for_reservation(self, reservation_id: str) -> int:
        cancelled = 0
        for record in list(self.records.values()):
            if (
                record.reservation_id == reservation_id
                and record.status is ScheduleStatus.PENDING
            ):
                self._update(
                    record.id,
                    status=ScheduleStatus.CANCELLED,
                    idempotency_key=f"{record.idempotency_key}:cancelled:{record.id}",
                )
                cancelled += 1
        return cancelled

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        return self.reservations.get(reservation_id)

    def list_recent_reservations(self, since: datetime) -> list[Reservation]:
        return [
            r
            for r in self.reservations.values()
            if r.created_at >= since and r.status != "cancelled"
        ]

    def list_reservations_in_windows(
        self,
        checkin_start: date,
        checkin_end: date,
        checkout_start: date,
        checkout_end: date,
    ) -> list[Reservation]:
        return [
            r
            for r in self.reservations.values()
            if r.status != "cancelled"
            and (
                checkin_start <= r.check_in_date <= checkin_end
                or checkout_start <= r.check_out_date <= checkout_end
            )
        ]

    def has_on_create_schedule(self, reservation_id: str) -> bool:
        on_create = {r.id for r in self.rules if r.is_on_create}
        return any(
            r.rule_id in on_create
            and r.status in (ScheduleStatus.PENDING, ScheduleStatus.SENT)
            for r in self.records.values()
            if r.reservation_id == reservation_id
        )

    def existing_rule_ids(self, reservation_id: str) -> set[str]:
        return {
            r.rule_id
            for r in self.records.values()
            if r.reservation_id == reservation_id
            and r.status in (ScheduleStatus.PENDING, ScheduleStatus.SENT)
        }

    def list_schedules_for_reservation(self, reservation_id: str) -> list[ScheduleRecord]:
        return sorted(
            (r for r in self.records.values() if r.reservation_id == reservation_id),
            key=lambda r: r.run_at,
        )

    def schedule_stats(self) -> dict[str, int]:
        counts = {status.value: 0 for status in ScheduleStatus}
        for record in self.records.values():
            counts[record.status.value] += 1
        return counts

    def release_expired_leases(self) -> int:
        now = self._clock()
        expired = [sid for sid, until in self.leases.items() if until < now]
        for sid in expired:
            del self.leases[sid]
        return len(expired)
