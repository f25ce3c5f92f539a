"""Idempotency keys for schedule records.

One key per (rule, reservation, instant). Uniqueness is enforced by the
scheduled_messages.idempotency_key unique index, not here.
"""

from datetime import datetime

from guestcomms.infra.time import to_utc


def format_utc_iso(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    utc = to_utc(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def idempotency_key(rule_id: str, reservation_id: str, scheduled_at: datetime) -> str:
    """Build the dedup key "<ruleId>:<reservationId>:<scheduledAt UTC ISO>".

    Raises:
        ValueError: If scheduled_at is naive.
    """
    return f"{rule_id}:{reservation_id}:{format_utc_iso(scheduled_at)}"
