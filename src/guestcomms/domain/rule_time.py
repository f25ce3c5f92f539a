"""Rule time compiler: (rule, reservation) -> absolute UTC instant.

Pure and deterministic. Local wall-clock values (check-in/out times,
at_time) are interpreted in the reservation's property timezone, falling
back to the rule's timezone and then to the engine default.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from guestcomms.config import DEFAULT_TIMEZONE
from guestcomms.infra.time import local_instant, parse_hhmm, to_utc

from .models import AnchorKind, Reservation, Rule

DEFAULT_CHECKIN_TIME = "15:00"
DEFAULT_CHECKOUT_TIME = "11:00"
DEFAULT_AT_TIME = "10:00"


def resolve_timezone(rule: Rule, reservation: Reservation) -> str:
    return reservation.timezone or rule.timezone or DEFAULT_TIMEZONE


def checkin_instant(reservation: Reservation, tz_name: str) -> datetime:
    """Local check-in instant (date + check-in time, default 15:00)."""
    return local_instant(
        reservation.check_in_date,
        parse_hhmm(reservation.check_in_time, DEFAULT_CHECKIN_TIME),
        tz_name,
    )


def checkout_instant(reservation: Reservation, tz_name: str) -> datetime:
    """Local check-out instant (date + check-out time, default 11:00)."""
    return local_instant(
        reservation.check_out_date,
        parse_hhmm(reservation.check_out_time, DEFAULT_CHECKOUT_TIME),
        tz_name,
    )


def _created_at_utc(reservation: Reservation) -> datetime:
    created = reservation.created_at
    if created.tzinfo is None:
        # timestamptz columns read through a UTC session come back naive
        return created.replace(tzinfo=timezone.utc)
    return to_utc(created)


def compute_scheduled_at(rule: Rule, reservation: Reservation) -> datetime:
    """Compute when the rule's message is due for this reservation.

    Args:
        rule: Rule with anchor kind and offset parameters.
        reservation: Reservation dates, optional local times, creation timestamp.

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        UnknownRuleTypeError: If the rule's anchor kind is not supported.
    """
    anchor = AnchorKind.parse(rule.anchor)
    tz_name = resolve_timezone(rule, reservation)

    if anchor is AnchorKind.ON_CREATE_DELAY:
        return _created_at_utc(reservation) + timedelta(minutes=rule.delay_minutes or 0)

    if anchor is AnchorKind.BEFORE_ARRIVAL_AT_TIME:
        target_day = reservation.check_in_date - timedelta(days=rule.days or 0)
        at = parse_hhmm(rule.at_time, DEFAULT_AT_TIME)
        return to_utc(local_instant(target_day, at, tz_name))

    if anchor is AnchorKind.HOURS_BEFORE_CHECKIN:
        return to_utc(checkin_instant(reservation, tz_name)) - timedelta(hours=rule.hours or 0)

    if anchor is AnchorKind.HOURS_AFTER_CHECKIN:
        return to_utc(checkin_instant(reservation, tz_name)) + timedelta(hours=rule.hours or 0)

    if anchor is AnchorKind.HOURS_BEFORE_CHECKOUT:
        return to_utc(checkout_instant(reservation, tz_name)) - timedelta(hours=rule.hours or 0)

    # DAYS_AFTER_DEPARTURE
    target_day = reservation.check_out_date + timedelta(days=rule.days or 0)
    at = parse_hhmm(rule.at_time, DEFAULT_AT_TIME)
    return to_utc(local_instant(target_day, at, tz_name))
