"""Reservations read model for the automation engine.

Uses raw SQL with psycopg2 (no ORM). Reservations are owned by the booking
subsystem; nothing here writes to them.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from guestcomms.domain.models import PropertyContext, Reservation, RoomContext

_RESERVATION_SELECT = """
SELECT r.id, r.property_id, r.check_in_date, r.check_out_date, r.created_at,
       r.check_in_time, r.check_out_time, p.timezone, r.status, t.id,
       r.booking_name, r.booking_email, r.booking_phone, r.booking_source,
       r.num_guests, r.num_adults, r.num_children, r.total_amount, r.currency,
       r.special_requests, r.external_booking_id, r.check_in_token,
       p.name, p.address, p.wifi_name, p.wifi_password, p.check_in_instructions,
       p.house_rules, p.contact_number, p.property_email, p.access_time,
       p.departure_time, p.entrance_code,
       ru.unit_number, ru.access_code, ru.access_instructions,
       rt.name, rt.bed_configuration, rt.max_guests
FROM reservations r
LEFT JOIN properties p ON p.id = r.property_id
LEFT JOIN room_types rt ON rt.id = r.room_type_id
LEFT JOIN room_units ru ON ru.id = r.room_unit_id
LEFT JOIN message_threads t ON t.reservation_id = r.id
"""


def _time_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.strftime("%H:%M")


def _row_to_reservation(row: tuple[Any, ...]) -> Reservation:
    return Reservation(
        id=str(row[0]),
        property_id=str(row[1]) if row[1] is not None else None,
        check_in_date=row[2],
        check_out_date=row[3],
        created_at=row[4],
        check_in_time=_time_str(row[5]),
        check_out_time=_time_str(row[6]),
        timezone=row[7],
        status=row[8],
        thread_id=str(row[9]) if row[9] is not None else None,
        booking_name=row[10],
        booking_email=row[11],
        booking_phone=row[12],
        booking_source=row[13],
        num_guests=row[14],
        num_adults=row[15],
        num_children=row[16],
        total_amount=float(row[17]) if row[17] is not None else None,
        currency=row[18],
        special_requests=row[19],
        external_booking_id=row[20],
        check_in_token=row[21],
        property=PropertyContext(
            name=row[22],
            address=row[23],
            wifi_name=row[24],
            wifi_password=row[25],
            check_in_instructions=row[26],
            house_rules=row[27],
            contact_number=row[28],
            property_email=row[29],
            access_time=_time_str(row[30]),
            departure_time=_time_str(row[31]),
            entrance_code=row[32],
        ),
        room=RoomContext(
            unit_number=row[33],
            access_code=row[34],
            access_instructions=row[35],
            room_type_name=row[36],
            bed_configuration=row[37],
            max_guests=row[38],
        ),
    )


def get_reservation(cur: PgCursor, reservation_id: str) -> Reservation | None:
    """Load one reservation with its property, room and thread context."""
    cur.execute(_RESERVATION_SELECT + " WHERE r.id = %s", (reservation_id,))
    row = cur.fetchone()
    return _row_to_reservation(row) if row is not None else None


def list_recent_reservations(cur: PgCursor, since: datetime) -> list[Reservation]:
    """Non-cancelled reservations created at or after `since`."""
    cur.execute(
        _RESERVATION_SELECT
        + """
        WHERE r.created_at >= %s
          AND r.status <> 'cancelled'
        ORDER BY r.created_at
        """,
        (since,),
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]


def list_reservations_in_windows(
    cur: PgCursor,
    *,
    checkin_start: date,
    checkin_end: date,
    checkout_start: date,
    checkout_end: date,
) -> list[Reservation]:
    """Non-cancelled reservations whose check-in OR check-out falls in its window."""
    cur.execute(
        _RESERVATION_SELECT
        + """
        WHERE r.status <> 'cancelled'
          AND (
                r.check_in_date BETWEEN %s AND %s
             OR r.check_out_date BETWEEN %s AND %s
          )
        ORDER BY r.check_in_date, r.id
        """,
        (checkin_start, checkin_end, checkout_start, checkout_end),
    )
    return [_row_to_reservation(row) for row in cur.fetchall()]
