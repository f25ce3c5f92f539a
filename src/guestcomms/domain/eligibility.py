"""Eligibility policy: should a computed schedule be materialized now?"""

from __future__ import annotations

from datetime import datetime, timedelta

from .models import BackfillPolicy, Reservation, Rule
from .rule_time import checkin_instant, resolve_timezone

# Batch scans never pre-materialize further out than this
HORIZON = timedelta(days=7)


def should_create(
    rule: Rule,
    scheduled_at: datetime,
    reservation: Reservation,
    now: datetime,
    is_realtime: bool = False,
) -> bool:
    """Decide whether a schedule record should be created now.

    Args:
        rule: The rule being evaluated.
        scheduled_at: Compiled instant (aware).
        reservation: The reservation (check-in instant for until_checkin).
        now: Current instant (aware).
        is_realtime: True for generation triggered by a reservation event;
            False for batch scans, which are bounded by HORIZON.

    Returns:
        True if the record should be created. Unknown backfill values fail closed.
    """
    if not is_realtime and not rule.is_on_create:
        if scheduled_at > now + HORIZON:
            return False

    backfill = getattr(rule.backfill, "value", rule.backfill)

    if backfill in (BackfillPolicy.NONE.value, BackfillPolicy.SKIP_IF_PAST.value):
        return scheduled_at > now

    if backfill == BackfillPolicy.UNTIL_CHECKIN.value:
        checkin = checkin_instant(reservation, resolve_timezone(rule, reservation))
        # Catch-up: already due but the guest has not arrived yet
        if scheduled_at <= now < checkin:
            return True
        return scheduled_at > now

    return False
