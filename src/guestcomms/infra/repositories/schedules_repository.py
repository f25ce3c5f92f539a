"""Scheduled messages repository - the only table the engine writes.

Uses raw SQL with psycopg2 (no ORM). Store-level atomicity:
- insert_schedule: ON CONFLICT (idempotency_key) DO NOTHING
- claim_due: FOR UPDATE SKIP LOCKED + lease, so concurrent claimers never overlap
- every status change is guarded by status = 'pending' (monotonic transitions)
"""

from __future__ import annotations

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from guestcomms.domain.models import AnchorKind, NewSchedule, ScheduleRecord, ScheduleStatus

_RECORD_COLUMNS = """
    id, rule_id, reservation_id, thread_id, template_id, channel, run_at,
    idempotency_key, status, payload, last_error, created_by, sent_message_id
"""

_CLAIM_DUE_SQL = f"""
UPDATE scheduled_messages
SET lease_expires_at = now() + make_interval(secs => %s), updated_at = now()
WHERE id IN (
    SELECT id FROM scheduled_messages
    WHERE status = 'pending'
      AND run_at <= now()
      AND (lease_expires_at IS NULL OR lease_expires_at < now())
    ORDER BY run_at
    LIMIT %s
    FOR UPDATE SKIP LOCKED
)
RETURNING {_RECORD_COLUMNS}
"""

_MARK_SENT_SQL = """
UPDATE scheduled_messages
SET status = 'sent',
    thread_id = COALESCE(thread_id, %s),
    sent_message_id = %s,
    last_error = NULL,
    lease_expires_at = NULL,
    updated_at = now()
WHERE id = %s AND status = 'pending'
RETURNING id
"""

_MARK_FAILED_SQL = """
UPDATE scheduled_messages
SET status = 'failed', last_error = %s, lease_expires_at = NULL, updated_at = now()
WHERE id = %s AND status = 'pending'
RETURNING id
"""

# Cancelled rows give up their key so regeneration for an unchanged
# instant can insert a fresh pending record.
_CANCEL_PENDING_SQL = """
UPDATE scheduled_messages
SET status = 'cancelled',
    idempotency_key = idempotency_key || ':cancelled:' || id::text,
    lease_expires_at = NULL,
    updated_at = now()
WHERE reservation_id = %s AND status = 'pending'
"""


def _row_to_record(row: tuple[Any, ...]) -> ScheduleRecord:
    payload = row[9]
    if isinstance(payload, str):
        payload = json.loads(payload)
    return ScheduleRecord(
        id=str(row[0]),
        rule_id=str(row[1]),
        reservation_id=str(row[2]),
        thread_id=str(row[3]) if row[3] is not None else None,
        template_id=str(row[4]),
        channel=row[5],
        run_at=row[6],
        idempotency_key=row[7],
        status=ScheduleStatus(row[8]),
        payload=payload or {},
        last_error=row[10],
        created_by=row[11],
        sent_message_id=str(row[12]) if row[12] is not None else None,
    )


def insert_schedule(cur: PgCursor, new: NewSchedule) -> tuple[str, bool]:
    """Insert a pending schedule record, or no-op on an idempotency-key conflict.

    Args:
        cur: Database cursor (within transaction).
        new: Record to insert; run_at must be timezone-aware.

    Returns:
        Tuple of (schedule_id, created).
        - created: False if a record with the same key already existed.
    """
    cur.execute(
        """
        INSERT INTO scheduled_messages (
            rule_id, reservation_id, thread_id, template_id, channel,
            run_at, idempotency_key, status, payload, created_by
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, 'pending', %s::jsonb, %s)
        ON CONFLICT (idempotency_key) DO NOTHING
        RETURNING id
        """,
        (
            new.rule_id,
            new.reservation_id,
            new.thread_id,
            new.template_id,
            new.channel,
            new.run_at,
            new.idempotency_key,
            json.dumps(new.payload, default=str),
            new.created_by,
        ),
    )
    row = cur.fetchone()
    if row is not None:
        return (str(row[0]), True)

    cur.execute(
        "SELECT id FROM scheduled_messages WHERE idempotency_key = %s",
        (new.idempotency_key,),
    )
    row = cur.fetchone()
    if row is None:
        # Conflicting row was re-keyed by a concurrent cancel; caller may retry
        raise RuntimeError("idempotency conflict without a visible row")
    return (str(row[0]), False)


def claim_due(cur: PgCursor, *, limit: int, lease_seconds: int) -> list[ScheduleRecord]:
    """Atomically claim up to `limit` due pending records.

    Claimed records get a lease and are invisible to other claimers until
    they reach a terminal status or the lease expires.

    Returns:
        Claimed records ordered by run_at.
    """
    cur.execute(_CLAIM_DUE_SQL, (lease_seconds, limit))
    records = [_row_to_record(row) for row in cur.fetchall()]
    return sorted(records, key=lambda r: r.run_at)


def mark_sent(
    cur: PgCursor,
    schedule_id: str,
    *,
    thread_id: str | None,
    message_id: str | None,
) -> bool:
    """pending -> sent. Returns False if the record was no longer pending."""
    cur.execute(_MARK_SENT_SQL, (thread_id, message_id, schedule_id))
    return cur.fetchone() is not None


def mark_failed(cur: PgCursor, schedule_id: str, error: str) -> bool:
    """pending -> failed with last_error. Returns False if no longer pending."""
    cur.execute(_MARK_FAILED_SQL, (error, schedule_id))
    return cur.fetchone() is not None


def cancel_pending_for_reservation(cur: PgCursor, reservation_id: str) -> int:
    """pending -> cancelled for every record of a reservation. Returns row count."""
    cur.execute(_CANCEL_PENDING_SQL, (reservation_id,))
    return cur.rowcount


def has_on_create_schedule(cur: PgCursor, reservation_id: str) -> bool:
    """True if an on-create rule already has a pending or sent record."""
    cur.execute(
        """
        SELECT 1
        FROM scheduled_messages sm
        JOIN message_rules mr ON mr.id = sm.rule_id
        WHERE sm.reservation_id = %s
          AND mr.anchor_kind IN (%s, %s)
          AND sm.status IN ('pending', 'sent')
        LIMIT 1
        """,
        (reservation_id, AnchorKind.ON_CREATE_DELAY.value, "ON_CREATE_DELAY_MIN"),
    )
    return cur.fetchone() is not None


def existing_rule_ids(cur: PgCursor, reservation_id: str) -> set[str]:
    """Rule ids that already have a pending or sent record for the reservation."""
    cur.execute(
        """
        SELECT DISTINCT rule_id
        FROM scheduled_messages
        WHERE reservation_id = %s
          AND status IN ('pending', 'sent')
        """,
        (reservation_id,),
    )
    return {str(row[0]) for row in cur.fetchall()}


def list_for_reservation(cur: PgCursor, reservation_id: str) -> list[ScheduleRecord]:
    cur.execute(
        f"""
        SELECT {_RECORD_COLUMNS}
        FROM scheduled_messages
        WHERE reservation_id = %s
        ORDER BY run_at, id
        """,
        (reservation_id,),
    )
    return [_row_to_record(row) for row in cur.fetchall()]


def count_by_status(cur: PgCursor) -> dict[str, int]:
    """Record counts per status (all statuses present, zero-filled)."""
    cur.execute("SELECT status, COUNT(*) FROM scheduled_messages GROUP BY status")
    counts = {status.value: 0 for status in ScheduleStatus}
    for status, count in cur.fetchall():
        counts[status] = int(count)
    return counts


def release_expired_leases(cur: PgCursor) -> int:
    """Clear leases that expired on still-pending records. Returns row count."""
    cur.execute(
        """
        UPDATE scheduled_messages
        SET lease_expires_at = NULL, updated_at = now()
        WHERE status = 'pending'
          AND lease_expires_at IS NOT NULL
          AND lease_expires_at < now()
        """
    )
    return cur.rowcount
