"""Schedule generation: fan a reservation out across its enabled rules.

For each rule: compile time -> eligibility -> template -> payload ->
idempotency key -> insert-or-noop. Rules are isolated from each other;
a failing rule is reported in its own result entry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from guestcomms.infra.time import utc_now
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import safe_log_context

from .eligibility import should_create
from .errors import RuleValidationError
from .idempotency import idempotency_key
from .models import NewSchedule, Reservation, Rule, RuleResult
from .payload import build_payload, choose_template
from .ports import Clock, ScheduleStore
from .rule_time import compute_scheduled_at, resolve_timezone

logger = get_logger(__name__)


class ScheduleGenerator:
    """Creates schedule records for a reservation (GenerationOrchestrator)."""

    def __init__(self, store: ScheduleStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def generate_for_reservation(
        self,
        reservation: Reservation,
        rules: list[Rule] | None = None,
        is_realtime: bool = False,
    ) -> list[RuleResult]:
        """Generate schedule records for every enabled rule.

        Args:
            reservation: Reservation to generate for.
            rules: Explicit rule subset (reconciliation); None loads the
                enabled rules for the reservation's property.
            is_realtime: True when triggered by a reservation event.

        Returns:
            One RuleResult per enabled rule.
        """
        if rules is None:
            rules = self._store.list_enabled_rules(reservation.property_id)

        now = self._clock()
        results = [
            self._generate_one(rule, reservation, now, is_realtime)
            for rule in rules
            if rule.enabled
        ]

        logger.info(
            "schedule generation completed",
            extra={
                "extra_fields": safe_log_context(
                    reservation_id=reservation.id,
                    realtime=is_realtime,
                    created=sum(1 for r in results if r.status == "created"),
                    duplicate=sum(1 for r in results if r.status == "duplicate"),
                    skipped=sum(1 for r in results if r.status == "skipped"),
                    errors=sum(1 for r in results if r.status == "error"),
                )
            },
        )
        return results

    def _generate_one(
        self,
        rule: Rule,
        reservation: Reservation,
        now: datetime,
        is_realtime: bool,
    ) -> RuleResult:
        log_ctx = safe_log_context(reservation_id=reservation.id, rule_code=rule.code)
        try:
            scheduled_at = compute_scheduled_at(rule, reservation)

            if not should_create(rule, scheduled_at, reservation, now, is_realtime):
                return RuleResult(
                    rule_code=rule.code, status="skipped", scheduled_at=scheduled_at
                )

            template = choose_template(rule.templates, reservation)
            key = idempotency_key(rule.id, reservation.id, scheduled_at)
            schedule_id, created = self._store.insert_schedule(
                NewSchedule(
                    rule_id=rule.id,
                    reservation_id=reservation.id,
                    thread_id=reservation.thread_id,
                    template_id=template.id,
                    channel=template.channel,
                    run_at=scheduled_at,
                    idempotency_key=key,
                    payload=build_payload(reservation),
                )
            )
        except RuleValidationError as exc:
            logger.warning(
                "rule rejected",
                extra={"extra_fields": {**log_ctx, "error": str(exc)}},
            )
            return RuleResult(rule_code=rule.code, status="error", error=str(exc))
        except Exception as exc:
            logger.exception("rule generation failed", extra={"extra_fields": log_ctx})
            return RuleResult(
                rule_code=rule.code,
                status="error",
                error=f"{type(exc).__name__}: {exc}",
            )

        return RuleResult(
            rule_code=rule.code,
            status="created" if created else "duplicate",
            schedule_id=schedule_id,
            scheduled_at=scheduled_at,
            template_id=template.id,
            channel=template.channel,
        )

    def preview_for_reservation(self, reservation: Reservation) -> dict[str, Any]:
        """Describe what generation would do right now, without writing.

        Returns:
            Dict with reservation_id, preview_time and one entry per enabled rule.
        """
        now = self._clock()
        messages: list[dict[str, Any]] = []

        for rule in self._store.list_enabled_rules(reservation.property_id):
            if not rule.enabled:
                continue
            entry: dict[str, Any] = {
                "rule_code": rule.code,
                "rule_name": rule.name,
                "backfill_policy": getattr(rule.backfill, "value", rule.backfill),
            }
            try:
                scheduled_at = compute_scheduled_at(rule, reservation)
                local = scheduled_at.astimezone(ZoneInfo(resolve_timezone(rule, reservation)))
                entry["scheduled_at"] = scheduled_at.isoformat()
                entry["scheduled_at_local"] = local.isoformat()
                entry["will_create"] = should_create(rule, scheduled_at, reservation, now)
                template = choose_template(rule.templates, reservation)
                entry["template_id"] = template.id
                entry["channel"] = template.channel
            except RuleValidationError as exc:
                entry["will_create"] = False
                entry["error"] = str(exc)
            messages.append(entry)

        return {
            "reservation_id": reservation.id,
            "preview_time": now.isoformat(),
            "messages": messages,
        }
