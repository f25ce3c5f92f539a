"""Postgres-backed ScheduleStore.

Each call runs in its own short transaction so a slow delivery never holds
row locks; claim ownership is carried by the lease, not by an open txn.
"""

from __future__ import annotations

from datetime import date, datetime

from guestcomms.domain.models import NewSchedule, Reservation, Rule, ScheduleRecord
from guestcomms.infra.db import txn
from guestcomms.infra.repositories import (
    reservations_repository,
    rules_repository,
    schedules_repository,
)


class PostgresScheduleStore:
    def list_enabled_rules(self, property_id: str | None) -> list[Rule]:
        with txn() as cur:
            return rules_repository.list_enabled_rules(cur, property_id)

    def insert_schedule(self, new: NewSchedule) -> tuple[str, bool]:
        with txn() as cur:
            return schedules_repository.insert_schedule(cur, new)

    def claim_due(self, limit: int, lease_seconds: int) -> list[ScheduleRecord]:
        with txn() as cur:
            return schedules_repository.claim_due(
                cur, limit=limit, lease_seconds=lease_seconds
            )

    def mark_sent(
        self, schedule_id: str, *, thread_id: str | None, message_id: str | None
    ) -> bool:
        with txn() as cur:
            return schedules_repository.mark_sent(
                cur, schedule_id, thread_id=thread_id, message_id=message_id
            )

    def mark_failed(self, schedule_id: str, error: str) -> bool:
        with txn() as cur:
            return schedules_repository.mark_failed(cur, schedule_id, error)

    def cancel_pending_for_reservation(self, reservation_id: str) -> int:
        with txn() as cur:
            return schedules_repository.cancel_pending_for_reservation(cur, reservation_id)

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        with txn() as cur:
            return reservations_repository.get_reservation(cur, reservation_id)

    def list_recent_reservations(self, since: datetime) -> list[Reservation]:
        with txn() as cur:
            return reservations_repository.list_recent_reservations(cur, since)

    def list_reservations_in_windows(
        self,
        checkin_start: date,
        checkin_end: date,
        checkout_start: date,
        checkout_end: date,
    ) -> list[Reservation]:
        with txn() as cur:
            return reservations_repository.list_reservations_in_windows(
                cur,
                checkin_start=checkin_start,
                checkin_end=checkin_end,
                checkout_start=checkout_start,
                checkout_end=checkout_end,
            )

    def has_on_create_schedule(self, reservation_id: str) -> bool:
        with txn() as cur:
            return schedules_repository.has_on_create_schedule(cur, reservation_id)

    def existing_rule_ids(self, reservation_id: str) -> set[str]:
        with txn() as cur:
            return schedules_repository.existing_rule_ids(cur, reservation_id)

    def list_schedules_for_reservation(self, reservation_id: str) -> list[ScheduleRecord]:
        with txn() as cur:
            return schedules_repository.list_for_reservation(cur, reservation_id)

    def schedule_stats(self) -> dict[str, int]:
        with txn() as cur:
            return schedules_repository.count_by_status(cur)

    def release_expired_leases(self) -> int:
        with txn() as cur:
            return schedules_repository.release_expired_leases(cur)
