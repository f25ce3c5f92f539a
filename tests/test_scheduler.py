"""Tests for the periodic job registry and default job wiring."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from guestcomms.bootstrap import (
    CREDENTIAL_REFRESH_JOB,
    DISPATCH_JOB,
    RECONCILE_RECENT_JOB,
    RECONCILE_WINDOWS_JOB,
    build_engine,
)
from guestcomms.config import AutomationSettings
from guestcomms.jobs.scheduler import AutomationScheduler
from guestcomms.observability.correlation import get_correlation_id, get_job_name

HOURLY = IntervalTrigger(hours=1)


class TestRegistry:
    def test_duplicate_registration_rejected(self):
        scheduler = AutomationScheduler(MagicMock())
        scheduler.register("tick", lambda: None, HOURLY)
        with pytest.raises(ValueError):
            scheduler.register("tick", lambda: None, HOURLY)

    def test_unknown_job(self):
        scheduler = AutomationScheduler(MagicMock())
        with pytest.raises(KeyError):
            scheduler.run_now("nope")
        with pytest.raises(KeyError):
            scheduler.start_job("nope")

    def test_jobs_added_single_instance_and_coalesced(self):
        backend = MagicMock()
        backend.running = False
        scheduler = AutomationScheduler(backend)
        scheduler.register("tick", lambda: None, HOURLY)

        scheduler.start()

        _, kwargs = backend.add_job.call_args
        assert kwargs["id"] == "tick"
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        backend.start.assert_called_once()


class TestRunNow:
    def test_returns_job_result(self):
        scheduler = AutomationScheduler(MagicMock())
        scheduler.register("tick", lambda: {"sent": 2}, HOURLY)
        assert scheduler.run_now("tick") == {"sent": 2}

    def test_exception_is_logged_not_raised(self):
        scheduler = AutomationScheduler(MagicMock())

        def boom():
            raise RuntimeError("db down")

        scheduler.register("tick", boom, HOURLY)
        with patch("guestcomms.jobs.scheduler.logger") as mock_logger:
            assert scheduler.run_now("tick") is None
        mock_logger.exception.assert_called_once()

    def test_job_context_and_running_flag(self):
        scheduler = AutomationScheduler(MagicMock())
        seen = {}

        def probe():
            seen["job"] = get_job_name()
            seen["cid"] = get_correlation_id()
            seen["running"] = scheduler.status()["tick"]["running"]

        scheduler.register("tick", probe, HOURLY)
        scheduler.run_now("tick")

        assert seen["job"] == "tick"
        assert seen["cid"]
        assert seen["running"] is True
        assert scheduler.status()["tick"]["running"] is False
        assert get_job_name() == ""


class TestLifecycle:
    def test_start_stop_individual_jobs(self):
        scheduler = AutomationScheduler()
        scheduler.register("a", lambda: None, HOURLY)
        scheduler.register("b", lambda: None, HOURLY)
        assert scheduler.status() == {
            "a": {"running": False, "scheduled": False},
            "b": {"running": False, "scheduled": False},
        }

        scheduler.start()
        try:
            assert scheduler.status()["a"]["scheduled"] is True
            assert scheduler.stop_job("a") is True
            assert scheduler.stop_job("a") is False
            assert scheduler.status()["a"]["scheduled"] is False
            assert scheduler.status()["b"]["scheduled"] is True
            assert scheduler.start_job("a") is True
            assert scheduler.start_job("a") is False
        finally:
            scheduler.stop()


class TestDefaultJobs:
    def _engine(self, store):
        backend = MagicMock()
        backend.running = False
        return build_engine(
            AutomationSettings(),
            store=store,
            renderer=MagicMock(),
            conversations=MagicMock(),
            sender=MagicMock(),
            scheduler=AutomationScheduler(backend),
        ), backend

    def test_four_jobs_registered(self, store):
        engine, _ = self._engine(store)
        assert engine.scheduler.job_names == [
            DISPATCH_JOB,
            RECONCILE_RECENT_JOB,
            RECONCILE_WINDOWS_JOB,
            CREDENTIAL_REFRESH_JOB,
        ]

    def test_triggers(self, store):
        engine, backend = self._engine(store)
        engine.scheduler.start()

        triggers = {c.kwargs["id"]: c.args[1] for c in backend.add_job.call_args_list}
        assert triggers[DISPATCH_JOB].interval == timedelta(seconds=60)
        assert triggers[RECONCILE_RECENT_JOB].interval == timedelta(minutes=5)
        assert triggers[RECONCILE_WINDOWS_JOB].interval == timedelta(hours=1)
        cron = triggers[CREDENTIAL_REFRESH_JOB]
        assert str(cron.timezone) == "Asia/Tokyo"
        fields = {f.name: str(f) for f in cron.fields}
        assert fields["hour"] == "*/20"
        assert fields["minute"] == "0"

    def test_dispatch_job_runs_suppressed_outside_production(self, store):
        engine, _ = self._engine(store)
        assert engine.scheduler.run_now(DISPATCH_JOB)["suppressed"] is True

    def test_windows_job_releases_leases(self, store):
        engine, _ = self._engine(store)
        result = engine.scheduler.run_now(RECONCILE_WINDOWS_JOB)
        assert result["released_leases"] == 0
        assert result["processed"] == 0
