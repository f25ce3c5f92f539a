"""Periodic job registry over APScheduler.

One AutomationScheduler is built at startup and passed to whoever needs it
(worker app, CLI); there is no module-level registry. Every job runs with
max_instances=1 and coalesce=True, so a slow tick is never overlapped by
the next one and missed ticks collapse into a single run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger

from guestcomms.observability.correlation import job_context
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import describe_error, safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class JobSpec:
    name: str
    func: Callable[[], Any]
    trigger: BaseTrigger


class AutomationScheduler:
    """Named periodic jobs with start/stop control and a status snapshot."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._jobs: dict[str, JobSpec] = {}
        self._active: set[str] = set()
        self._lock = threading.Lock()

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def register(self, name: str, func: Callable[[], Any], trigger: BaseTrigger) -> None:
        """Register a job. Takes effect on start() or start_job(name)."""
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        self._jobs[name] = JobSpec(name=name, func=func, trigger=trigger)

    def _spec(self, name: str) -> JobSpec:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(f"Unknown job: {name}") from None

    def _execute(self, name: str) -> Any:
        """Run one tick of a job. Exceptions are logged, never propagated."""
        spec = self._spec(name)
        with job_context(name):
            with self._lock:
                self._active.add(name)
            try:
                result = spec.func()
                logger.info(
                    "job completed",
                    extra={"extra_fields": safe_log_context(job=name)},
                )
                return result
            except Exception as e:
                logger.exception(
                    "job failed",
                    extra={
                        "extra_fields": {
                            **safe_log_context(job=name),
                            "error": describe_error(e),
                        }
                    },
                )
                return None
            finally:
                with self._lock:
                    self._active.discard(name)

    def _schedule(self, spec: JobSpec) -> None:
        self._scheduler.add_job(
            self._execute,
            spec.trigger,
            args=[spec.name],
            id=spec.name,
            name=spec.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def start(self) -> None:
        """Schedule every registered job and start the background scheduler."""
        for spec in self._jobs.values():
            self._schedule(spec)
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            "automation scheduler started",
            extra={"extra_fields": safe_log_context(jobs=self.job_names)},
        )

    def stop(self) -> None:
        """Stop the scheduler, waiting for in-flight ticks to finish."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("automation scheduler stopped")

    def start_job(self, name: str) -> bool:
        """(Re)schedule one job. Returns False if it was already scheduled."""
        spec = self._spec(name)
        if self._scheduler.get_job(name) is not None:
            return False
        self._schedule(spec)
        logger.info("job started", extra={"extra_fields": safe_log_context(job=name)})
        return True

    def stop_job(self, name: str) -> bool:
        """Unschedule one job. Returns False if it was not scheduled."""
        self._spec(name)
        if self._scheduler.get_job(name) is None:
            return False
        self._scheduler.remove_job(name)
        logger.info("job stopped", extra={"extra_fields": safe_log_context(job=name)})
        return True

    def run_now(self, name: str) -> Any:
        """Run a job synchronously in the caller's thread."""
        return self._execute(name)

    def status(self) -> dict[str, dict[str, bool]]:
        """{job_name: {"running": executing right now, "scheduled": has a trigger}}"""
        with self._lock:
            active = set(self._active)
        return {
            name: {
                "running": name in active,
                "scheduled": self._scheduler.get_job(name) is not None,
            }
            for name in self._jobs
        }
