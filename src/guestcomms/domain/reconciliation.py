"""Reconciliation: repair missed schedules without scanning every reservation.

Two passes:
- recent safety net: reservations created in the last N minutes that have
  no on-create record yet (covers a lost reservation-created event);
- dual-window backfill: arrival-anchored rules look at a check-in window,
  departure-anchored rules at a separate check-out window, so long stays
  whose check-in is far in the past still get their checkout messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from guestcomms.config import DEFAULT_TIMEZONE
from guestcomms.infra.time import local_today, utc_now
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import safe_log_context

from .errors import UnknownRuleTypeError
from .generation import ScheduleGenerator
from .models import AnchorKind, Reservation, Rule
from .ports import Clock, ScheduleStore

logger = get_logger(__name__)

CHECKIN_LOOKBACK_DAYS = 5
CHECKOUT_LOOKBACK_DAYS = 2
CHECKOUT_LOOKAHEAD_DAYS = 7


@dataclass(frozen=True)
class ScanWindows:
    """Inclusive date ranges of one dual-window scan."""

    checkin_start: date
    checkin_end: date
    checkout_start: date
    checkout_end: date

    def checkin_in_window(self, reservation: Reservation) -> bool:
        return self.checkin_start <= reservation.check_in_date <= self.checkin_end

    def checkout_in_window(self, reservation: Reservation) -> bool:
        return self.checkout_start <= reservation.check_out_date <= self.checkout_end


def compute_windows(today: date, days_ahead: int) -> ScanWindows:
    return ScanWindows(
        checkin_start=today - timedelta(days=CHECKIN_LOOKBACK_DAYS),
        checkin_end=today + timedelta(days=days_ahead),
        checkout_start=today - timedelta(days=CHECKOUT_LOOKBACK_DAYS),
        checkout_end=today + timedelta(days=CHECKOUT_LOOKAHEAD_DAYS),
    )


def applicable_rules(
    rules: list[Rule],
    reservation: Reservation,
    windows: ScanWindows,
    existing_rule_ids: set[str],
) -> list[Rule]:
    """Rules missing for this reservation, restricted to the windows it falls in."""
    checkin_ok = windows.checkin_in_window(reservation)
    checkout_ok = windows.checkout_in_window(reservation)

    missing = []
    for rule in rules:
        if not rule.enabled or rule.id in existing_rule_ids:
            continue
        try:
            anchor = AnchorKind.parse(rule.anchor)
        except UnknownRuleTypeError:
            logger.warning(
                "rule with unknown anchor skipped by window scan",
                extra={
                    "extra_fields": safe_log_context(
                        rule_code=rule.code, reservation_id=reservation.id
                    )
                },
            )
            continue
        if anchor.is_departure_anchored:
            if checkout_ok:
                missing.append(rule)
        elif checkin_ok:
            missing.append(rule)
    return missing


class ReconciliationScanner:
    """Periodic scans that regenerate only the schedule records that are missing."""

    def __init__(
        self,
        store: ScheduleStore,
        generator: ScheduleGenerator,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._generator = generator
        self._timezone = timezone
        self._clock = clock

    def generate_for_recent(self, minutes_back: int = 15) -> dict[str, Any]:
        """Safety net for reservations created in the last minutes_back minutes.

        Reservations that already have an on-create record (pending or sent)
        are skipped so a racing realtime generation is not duplicated.

        Returns:
            {"processed", "generated", "skipped", "failed", "results"}
        """
        since = self._clock() - timedelta(minutes=minutes_back)
        reservations = self._store.list_recent_reservations(since)

        generated = 0
        skipped = 0
        failed = 0
        results: list[dict[str, Any]] = []

        for reservation in reservations:
            try:
                if self._store.has_on_create_schedule(reservation.id):
                    skipped += 1
                    continue
                rule_results = self._generator.generate_for_reservation(reservation)
            except Exception:
                failed += 1
                logger.exception(
                    "recent reconciliation failed for reservation",
                    extra={"extra_fields": safe_log_context(reservation_id=reservation.id)},
                )
                continue

            created = sum(1 for r in rule_results if r.status == "created")
            generated += created
            results.append(
                {
                    "reservation_id": reservation.id,
                    "generated": created,
                    "results": [r.to_dict() for r in rule_results],
                }
            )

        summary = {
            "processed": len(reservations),
            "generated": generated,
            "skipped": skipped,
            "failed": failed,
            "results": results,
        }
        logger.info(
            "recent reconciliation completed",
            extra={
                "extra_fields": safe_log_context(
                    processed=len(reservations),
                    generated=generated,
                    skipped=skipped,
                    failed=failed,
                )
            },
        )
        return summary

    def reconcile_windows(self, days_ahead: int = 10) -> dict[str, Any]:
        """Dual-window backfill of missing schedule records.

        Returns:
            {"processed", "generated", "skipped", "failed", "windows", "results"}
            where skipped counts reservations that needed nothing.
        """
        windows = compute_windows(local_today(self._timezone, self._clock()), days_ahead)
        reservations = self._store.list_reservations_in_windows(
            windows.checkin_start,
            windows.checkin_end,
            windows.checkout_start,
            windows.checkout_end,
        )

        rules_by_property: dict[str | None, list[Rule]] = {}
        generated = 0
        skipped = 0
        failed = 0
        results: list[dict[str, Any]] = []

        for reservation in reservations:
            try:
                if reservation.property_id not in rules_by_property:
                    rules_by_property[reservation.property_id] = (
                        self._store.list_enabled_rules(reservation.property_id)
                    )
                missing = applicable_rules(
                    rules_by_property[reservation.property_id],
                    reservation,
                    windows,
                    self._store.existing_rule_ids(reservation.id),
                )
                if not missing:
                    skipped += 1
                    continue
                rule_results = self._generator.generate_for_reservation(
                    reservation, rules=missing
                )
            except Exception:
                failed += 1
                logger.exception(
                    "window reconciliation failed for reservation",
                    extra={"extra_fields": safe_log_context(reservation_id=reservation.id)},
                )
                continue

            created = sum(1 for r in rule_results if r.status == "created")
            generated += created
            if created:
                results.append(
                    {
                        "reservation_id": reservation.id,
                        "generated": created,
                        "results": [r.to_dict() for r in rule_results],
                    }
                )

        logger.info(
            "window reconciliation completed",
            extra={
                "extra_fields": safe_log_context(
                    candidates=len(reservations),
                    generated=generated,
                    skipped=skipped,
                    failed=failed,
                )
            },
        )
        return {
            "processed": len(reservations),
            "generated": generated,
            "skipped": skipped,
            "failed": failed,
            "windows": {
                "checkin": [windows.checkin_start.isoformat(), windows.checkin_end.isoformat()],
                "checkout": [windows.checkout_start.isoformat(), windows.checkout_end.isoformat()],
            },
            "results": results,
        }
