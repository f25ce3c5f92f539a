"""Payload snapshot and template selection for schedule records.

The payload is the full set of values a template may reference; it is
stored on the schedule record and rendered only at dispatch time.
"""

from __future__ import annotations

import re
from typing import Any

from .errors import RuleValidationError
from .models import Reservation, RuleTemplate

DEFAULT_CHANNEL = "email"
DEFAULT_LANGUAGE = "en"

_BOOKING_SOURCE_CHANNELS: dict[str, str] = {
    "airbnb": "airbnb",
    "booking.com": "booking",
    "booking": "booking",
    "whatsapp": "whatsapp",
    "direct": "email",
    "phone": "sms",
    "email": "email",
    "website": "email",
}

# Country calling code -> language. Longest prefix wins.
_COUNTRY_LANGUAGES: dict[str, str] = {
    "81": "ja",
    "82": "ko",
    "86": "zh",
    "852": "zh",
    "853": "zh",
    "886": "zh",
    "1": "en",
    "44": "en",
    "61": "en",
    "64": "en",
    "33": "fr",
    "49": "de",
    "34": "es",
    "39": "it",
    "7": "ru",
    "55": "pt",
    "52": "es",
    "91": "en",
    "65": "en",
    "60": "en",
    "66": "th",
    "84": "vi",
    "62": "id",
}

_PHONE_NOISE = re.compile(r"[\s\-()]")


def channel_for_booking_source(booking_source: str | None) -> str:
    """Map a booking source (airbnb, booking.com, phone...) to a preferred channel."""
    if not booking_source:
        return DEFAULT_CHANNEL
    return _BOOKING_SOURCE_CHANNELS.get(booking_source.strip().lower(), DEFAULT_CHANNEL)


def language_for_phone(phone: str | None) -> str:
    """Guess the guest's language from the phone's country calling code."""
    if not phone:
        return DEFAULT_LANGUAGE
    digits = _PHONE_NOISE.sub("", phone).lstrip("+")
    for length in (3, 2, 1):
        language = _COUNTRY_LANGUAGES.get(digits[:length])
        if language is not None:
            return language
    return DEFAULT_LANGUAGE


def select_template(
    templates: tuple[RuleTemplate, ...] | list[RuleTemplate],
    channel: str,
    language: str,
) -> RuleTemplate | None:
    """Pick the best template for (channel, language).

    Order: exact match, channel + English, email + language, email + English,
    primary template, first template.
    """
    if not templates:
        return None

    for want_channel, want_language in (
        (channel, language),
        (channel, DEFAULT_LANGUAGE),
        (DEFAULT_CHANNEL, language),
        (DEFAULT_CHANNEL, DEFAULT_LANGUAGE),
    ):
        for template in templates:
            if template.channel == want_channel and template.language == want_language:
                return template

    for template in templates:
        if template.is_primary:
            return template
    return templates[0]


def choose_template(
    templates: tuple[RuleTemplate, ...] | list[RuleTemplate],
    reservation: Reservation,
) -> RuleTemplate:
    """Select the template for a reservation, validating it can be dispatched.

    Raises:
        RuleValidationError: No template linked, or the chosen one has no channel.
    """
    template = select_template(
        templates,
        channel_for_booking_source(reservation.booking_source),
        language_for_phone(reservation.booking_phone),
    )
    if template is None:
        raise RuleValidationError("No suitable template found")
    if not template.channel:
        raise RuleValidationError(f"Template {template.id} has no channel")
    return template


def _split_name(full_name: str | None) -> tuple[str, str]:
    if not full_name:
        return "Guest", ""
    first, _, rest = full_name.strip().partition(" ")
    return first or "Guest", rest.strip()


def build_payload(reservation: Reservation) -> dict[str, Any]:
    """Build the template variables snapshot for a reservation."""
    prop = reservation.property
    room = reservation.room
    first_name, last_name = _split_name(reservation.booking_name)
    nights = (reservation.check_out_date - reservation.check_in_date).days
    property_name = prop.name or "Property"
    room_label = room.unit_number or "Your room"
    wifi_name = prop.wifi_name or "WiFi"
    access_time = prop.access_time or "15:00"
    departure_time = prop.departure_time or "11:00"

    return {
        "guest_name": reservation.booking_name or "Guest",
        "guest_firstname": first_name,
        "guest_lastname": last_name,
        "guest_email": reservation.booking_email or "",
        "guest_phone": reservation.booking_phone or "",
        "num_guests": reservation.num_guests or 1,
        "num_adults": reservation.num_adults or 1,
        "num_children": reservation.num_children or 0,
        "check_in_date": reservation.check_in_date.isoformat(),
        "check_out_date": reservation.check_out_date.isoformat(),
        "check_in_time": access_time,
        "check_out_time": departure_time,
        "nights_count": nights,
        "check_in_token": reservation.check_in_token or "",
        "booking_id": reservation.external_booking_id or reservation.id,
        "total_amount": reservation.total_amount or 0,
        "currency": reservation.currency or "JPY",
        "booking_source": reservation.booking_source or "Direct",
        "special_requests": reservation.special_requests or "",
        "property_name": property_name,
        "property_address": prop.address or "",
        "wifi_name": wifi_name,
        "wifi_password": prop.wifi_password or "Ask at front desk",
        "check_in_instructions": prop.check_in_instructions or "",
        "house_rules": prop.house_rules or "",
        "emergency_contact": prop.contact_number or prop.property_email or "",
        "access_time": access_time,
        "departure_time": departure_time,
        "room_number": room_label,
        "room_type_name": room.room_type_name or property_name,
        "access_code": room.access_code or prop.entrance_code or "",
        "access_instructions": room.access_instructions or "",
        "bed_configuration": room.bed_configuration or "",
        "max_guests": room.max_guests or reservation.num_guests or 1,
        # camelCase aliases still referenced by older templates
        "guestName": reservation.booking_name or "Guest",
        "propertyName": property_name,
        "room": room_label,
        "wifiName": wifi_name,
        "checkInDate": reservation.check_in_date.isoformat(),
        "checkOutDate": reservation.check_out_date.isoformat(),
    }
