"""Tests for the recent safety net and dual-window reconciliation."""

from datetime import date, timedelta
from unittest.mock import patch

from guestcomms.domain.generation import ScheduleGenerator
from guestcomms.domain.models import AnchorKind, BackfillPolicy
from guestcomms.domain.reconciliation import (
    ReconciliationScanner,
    applicable_rules,
    compute_windows,
)

from helpers import make_reservation, make_rule

ARRIVAL_RULE = dict(id="arrival", code="B", anchor=AnchorKind.BEFORE_ARRIVAL_AT_TIME, days=2)
DEPARTURE_RULE = dict(id="departure", code="G", anchor=AnchorKind.HOURS_BEFORE_CHECKOUT, hours=2)


def _scanner(store, clock):
    return ReconciliationScanner(
        store, ScheduleGenerator(store, clock), timezone="Asia/Tokyo", clock=clock
    )


class TestComputeWindows:
    def test_bounds(self):
        windows = compute_windows(date(2025, 3, 1), days_ahead=10)
        assert windows.checkin_start == date(2025, 2, 24)
        assert windows.checkin_end == date(2025, 3, 11)
        assert windows.checkout_start == date(2025, 2, 27)
        assert windows.checkout_end == date(2025, 3, 8)


class TestApplicableRules:
    def test_checkout_only_reservation_gets_departure_rules(self):
        windows = compute_windows(date(2025, 3, 1), days_ahead=10)
        long_stay = make_reservation(check_in_date=date(2025, 2, 1), check_out_date=date(2025, 3, 4))
        rules = [make_rule(**ARRIVAL_RULE), make_rule(**DEPARTURE_RULE)]

        assert [r.id for r in applicable_rules(rules, long_stay, windows, set())] == ["departure"]

    def test_existing_rules_removed(self):
        windows = compute_windows(date(2025, 3, 1), days_ahead=10)
        reservation = make_reservation(check_in_date=date(2025, 3, 5), check_out_date=date(2025, 3, 7))
        rules = [make_rule(**ARRIVAL_RULE), make_rule(**DEPARTURE_RULE)]

        assert [r.id for r in applicable_rules(rules, reservation, windows, {"arrival"})] == ["departure"]

    def test_checkin_only_reservation_gets_arrival_rules(self):
        windows = compute_windows(date(2025, 3, 1), days_ahead=10)
        reservation = make_reservation(check_in_date=date(2025, 3, 10), check_out_date=date(2025, 3, 20))
        rules = [make_rule(**ARRIVAL_RULE), make_rule(**DEPARTURE_RULE)]

        assert [r.id for r in applicable_rules(rules, reservation, windows, set())] == ["arrival"]

    def test_unknown_anchor_skipped_with_warning(self):
        windows = compute_windows(date(2025, 3, 1), days_ahead=10)
        rules = [make_rule(id="bad", code="Z", anchor="NOPE"), make_rule(**ARRIVAL_RULE)]

        with patch("guestcomms.domain.reconciliation.logger") as logger:
            missing = applicable_rules(rules, make_reservation(), windows, set())

        assert [r.id for r in missing] == ["arrival"]
        logger.warning.assert_called_once()
        fields = logger.warning.call_args.kwargs["extra"]["extra_fields"]
        assert fields == {"rule_code": "Z", "reservation_id": "res-1"}


class TestReconcileWindows:
    def test_long_stay_gets_only_departure_schedule(self, store, clock):
        store.add_rule(make_rule(**ARRIVAL_RULE))
        store.add_rule(make_rule(**DEPARTURE_RULE))
        store.add_reservation(
            make_reservation(check_in_date=date(2025, 2, 1), check_out_date=date(2025, 3, 4))
        )

        summary = _scanner(store, clock).reconcile_windows(days_ahead=10)

        assert summary["processed"] == 1
        assert summary["generated"] == 1
        assert store.existing_rule_ids("res-1") == {"departure"}
        assert summary["windows"]["checkout"] == ["2025-02-27", "2025-03-08"]

    def test_second_pass_generates_nothing(self, store, clock):
        store.add_rule(make_rule(**ARRIVAL_RULE))
        store.add_reservation(
            make_reservation(check_in_date=date(2025, 3, 5), check_out_date=date(2025, 3, 7))
        )
        scanner = _scanner(store, clock)

        assert scanner.reconcile_windows()["generated"] == 1
        second = scanner.reconcile_windows()
        assert second["generated"] == 0
        assert second["skipped"] == 1
        assert len(store.records) == 1

    def test_sent_record_blocks_regeneration(self, store, clock):
        store.add_rule(make_rule(**ARRIVAL_RULE))
        store.add_reservation(
            make_reservation(check_in_date=date(2025, 3, 5), check_out_date=date(2025, 3, 7))
        )
        scanner = _scanner(store, clock)
        scanner.reconcile_windows()
        (record,) = store.records.values()
        store.mark_sent(record.id, thread_id="t-1", message_id="m-1")

        assert scanner.reconcile_windows()["generated"] == 0
        assert len(store.records) == 1

    def test_cancelled_and_out_of_window_reservations_ignored(self, store, clock):
        store.add_rule(make_rule(**ARRIVAL_RULE))
        store.add_reservation(
            make_reservation(id="cancelled", status="cancelled",
                             check_in_date=date(2025, 3, 5), check_out_date=date(2025, 3, 7))
        )
        store.add_reservation(
            make_reservation(id="far", check_in_date=date(2025, 6, 1), check_out_date=date(2025, 6, 3))
        )

        summary = _scanner(store, clock).reconcile_windows()

        assert summary["processed"] == 0
        assert store.records == {}

    def test_failure_on_one_reservation_does_not_stop_scan(self, store, clock):
        store.add_rule(make_rule(**ARRIVAL_RULE))
        store.add_reservation(
            make_reservation(id="res-a", check_in_date=date(2025, 3, 5), check_out_date=date(2025, 3, 7))
        )
        store.add_reservation(
            make_reservation(id="res-b", check_in_date=date(2025, 3, 6), check_out_date=date(2025, 3, 8))
        )
        original = store.existing_rule_ids

        def flaky(reservation_id):
            if reservation_id == "res-a":
                raise RuntimeError("statement timeout")
            return original(reservation_id)

        with patch.object(store, "existing_rule_ids", side_effect=flaky):
            summary = _scanner(store, clock).reconcile_windows()

        assert summary["failed"] == 1
        assert summary["generated"] == 1
        assert store.existing_rule_ids("res-b") == {"arrival"}


class TestGenerateForRecent:
    def _on_create(self):
        return make_rule(
            id="rule-oc",
            code="A",
            anchor=AnchorKind.ON_CREATE_DELAY,
            delay_minutes=0,
            backfill=BackfillPolicy.UNTIL_CHECKIN.value,
        )

    def test_generates_for_recent_reservation_once(self, store, clock):
        store.add_rule(self._on_create())
        store.add_reservation(make_reservation(created_at=clock.now - timedelta(minutes=10)))
        scanner = _scanner(store, clock)

        first = scanner.generate_for_recent(minutes_back=15)
        assert first["processed"] == 1
        assert first["generated"] == 1

        second = scanner.generate_for_recent(minutes_back=15)
        assert second["skipped"] == 1
        assert second["generated"] == 0
        assert len(store.records) == 1

    def test_older_reservations_not_scanned(self, store, clock):
        store.add_rule(self._on_create())
        store.add_reservation(make_reservation(created_at=clock.now - timedelta(minutes=30)))

        summary = _scanner(store, clock).generate_for_recent(minutes_back=15)

        assert summary["processed"] == 0
        assert store.records == {}
