"""Domain types: reservations, rules, schedule records.

Reservations and rules are read-only inputs owned by other subsystems;
schedule records are the only entity this engine writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from .errors import UnknownRuleTypeError


class AnchorKind(str, Enum):
    """Temporal reference point a rule's offset is computed from."""

    ON_CREATE_DELAY = "on_create_delay"
    BEFORE_ARRIVAL_AT_TIME = "before_arrival_at_time"
    HOURS_BEFORE_CHECKIN = "hours_before_checkin"
    HOURS_AFTER_CHECKIN = "hours_after_checkin"
    HOURS_BEFORE_CHECKOUT = "hours_before_checkout"
    DAYS_AFTER_DEPARTURE = "days_after_departure"

    @property
    def is_departure_anchored(self) -> bool:
        return self in _DEPARTURE_ANCHORED

    @property
    def is_arrival_anchored(self) -> bool:
        return not self.is_departure_anchored

    @classmethod
    def parse(cls, value: AnchorKind | str) -> AnchorKind:
        """Resolve a stored anchor value (current or legacy spelling).

        Raises:
            UnknownRuleTypeError: If the value is not a supported anchor.
        """
        if isinstance(value, cls):
            return value
        raw = str(value).strip()
        legacy = _LEGACY_ANCHORS.get(raw.upper())
        if legacy is not None:
            return legacy
        try:
            return cls(raw.lower())
        except ValueError:
            raise UnknownRuleTypeError(value) from None


_DEPARTURE_ANCHORED = frozenset(
    {AnchorKind.HOURS_BEFORE_CHECKOUT, AnchorKind.DAYS_AFTER_DEPARTURE}
)

# Rule types as stored by the first generation of message_rules rows
_LEGACY_ANCHORS: dict[str, AnchorKind] = {
    "ON_CREATE_DELAY_MIN": AnchorKind.ON_CREATE_DELAY,
    "BEFORE_ARRIVAL_DAYS_AT_TIME": AnchorKind.BEFORE_ARRIVAL_AT_TIME,
    "ARRIVAL_DAY_HOURS_BEFORE_CHECKIN": AnchorKind.HOURS_BEFORE_CHECKIN,
    "AFTER_CHECKIN_HOURS": AnchorKind.HOURS_AFTER_CHECKIN,
    "BEFORE_CHECKOUT_HOURS": AnchorKind.HOURS_BEFORE_CHECKOUT,
    "AFTER_DEPARTURE_DAYS": AnchorKind.DAYS_AFTER_DEPARTURE,
}


class BackfillPolicy(str, Enum):
    NONE = "none"
    SKIP_IF_PAST = "skip_if_past"
    UNTIL_CHECKIN = "until_checkin"


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ScheduleStatus.PENDING


INAPP_CHANNEL = "inapp"
CREATOR_TAG = "system-scheduler"


@dataclass(frozen=True)
class PropertyContext:
    """Property fields copied into message payloads."""

    name: str | None = None
    address: str | None = None
    wifi_name: str | None = None
    wifi_password: str | None = None
    check_in_instructions: str | None = None
    house_rules: str | None = None
    contact_number: str | None = None
    property_email: str | None = None
    access_time: str | None = None
    departure_time: str | None = None
    entrance_code: str | None = None


@dataclass(frozen=True)
class RoomContext:
    """Room type and room unit fields copied into message payloads."""

    unit_number: str | None = None
    access_code: str | None = None
    access_instructions: str | None = None
    room_type_name: str | None = None
    bed_configuration: str | None = None
    max_guests: int | None = None


@dataclass(frozen=True)
class Reservation:
    """Reservation as seen by the automation engine (read-only)."""

    id: str
    property_id: str | None
    check_in_date: date
    check_out_date: date
    created_at: datetime
    check_in_time: str | None = None
    check_out_time: str | None = None
    timezone: str | None = None
    status: str = "confirmed"
    thread_id: str | None = None
    booking_name: str | None = None
    booking_email: str | None = None
    booking_phone: str | None = None
    booking_source: str | None = None
    num_guests: int | None = None
    num_adults: int | None = None
    num_children: int | None = None
    total_amount: float | None = None
    currency: str | None = None
    special_requests: str | None = None
    external_booking_id: str | None = None
    check_in_token: str | None = None
    property: PropertyContext = field(default_factory=PropertyContext)
    room: RoomContext = field(default_factory=RoomContext)


@dataclass(frozen=True)
class RuleTemplate:
    """A message template linked to a rule."""

    id: str
    channel: str | None
    language: str = "en"
    is_primary: bool = False
    priority: int = 0
    name: str | None = None


@dataclass(frozen=True)
class Rule:
    """Automation rule. `code` is a display label only; `anchor` drives timing."""

    id: str
    code: str
    anchor: AnchorKind | str
    backfill: str = BackfillPolicy.NONE.value
    name: str | None = None
    delay_minutes: int | None = None
    days: int | None = None
    hours: int | None = None
    at_time: str | None = None
    timezone: str | None = None
    enabled: bool = True
    property_id: str | None = None
    templates: tuple[RuleTemplate, ...] = ()

    @property
    def is_on_create(self) -> bool:
        try:
            return AnchorKind.parse(self.anchor) is AnchorKind.ON_CREATE_DELAY
        except UnknownRuleTypeError:
            return False


@dataclass(frozen=True)
class NewSchedule:
    """Insert request for a schedule record."""

    rule_id: str
    reservation_id: str
    thread_id: str | None
    template_id: str
    channel: str
    run_at: datetime
    idempotency_key: str
    payload: dict[str, Any]
    created_by: str = CREATOR_TAG


@dataclass(frozen=True)
class ScheduleRecord:
    """Persisted schedule record."""

    id: str
    rule_id: str
    reservation_id: str
    thread_id: str | None
    template_id: str
    channel: str
    run_at: datetime
    idempotency_key: str
    status: ScheduleStatus
    payload: dict[str, Any] = field(default_factory=dict)
    last_error: str | None = None
    created_by: str = CREATOR_TAG
    sent_message_id: str | None = None


RuleOutcome = Literal["created", "duplicate", "skipped", "error"]


@dataclass
class RuleResult:
    """Per-rule outcome of one generation pass."""

    rule_code: str
    status: RuleOutcome
    schedule_id: str | None = None
    scheduled_at: datetime | None = None
    template_id: str | None = None
    channel: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"rule_code": self.rule_code, "status": self.status}
        if self.schedule_id is not None:
            data["schedule_id"] = self.schedule_id
        if self.scheduled_at is not None:
            data["scheduled_at"] = self.scheduled_at.isoformat()
        if self.template_id is not None:
            data["template_id"] = self.template_id
        if self.channel is not None:
            data["channel"] = self.channel
        if self.error is not None:
            data["error"] = self.error
        return data
