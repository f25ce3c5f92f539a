"""Shared pytest fixtures for guestcomms tests."""
import sys
sys.dont_write_bytecode = True

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from helpers import FakeClock, InMemoryScheduleStore  # noqa: E402


@pytest.fixture
def clock():
    """Frozen clock at 2025-03-01T00:00:00Z; tests move it with clock.now = ..."""
    return FakeClock(datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    return InMemoryScheduleStore(clock)


@pytest.fixture(autouse=True)
def _task_auth_local_dev(monkeypatch):
    """Worker routes accept the internal secret unless a test overrides the env."""
    monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "guestcomms-tasks-local")
    monkeypatch.setenv("INTERNAL_TASK_SECRET", "test-task-secret")
