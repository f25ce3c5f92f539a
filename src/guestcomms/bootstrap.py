"""Wires the automation engine from settings.

build_engine() is called once per process (worker app startup or CLI); the
returned Engine is passed by reference to whoever needs it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from guestcomms.config import DEFAULT_TIMEZONE, AutomationSettings
from guestcomms.domain.dispatch import DispatchLoop
from guestcomms.domain.generation import ScheduleGenerator
from guestcomms.domain.ports import (
    ChannelSender,
    Clock,
    ConversationWriter,
    ScheduleStore,
    TemplateRenderer,
)
from guestcomms.domain.reconciliation import ReconciliationScanner
from guestcomms.domain.rescheduling import ReservationRescheduler
from guestcomms.infra.store import PostgresScheduleStore
from guestcomms.infra.time import utc_now
from guestcomms.jobs.credentials import ChannelManagerTokenClient, CredentialRefresher
from guestcomms.jobs.scheduler import AutomationScheduler
from guestcomms.messaging.inapp import PostgresConversationWriter
from guestcomms.messaging.outbound import GatewayChannelSender
from guestcomms.messaging.templates import DbTemplateRenderer

DISPATCH_JOB = "dispatch_due"
RECONCILE_RECENT_JOB = "reconcile_recent"
RECONCILE_WINDOWS_JOB = "reconcile_windows"
CREDENTIAL_REFRESH_JOB = "credential_refresh"


@dataclass
class Engine:
    settings: AutomationSettings
    store: ScheduleStore
    generator: ScheduleGenerator
    scanner: ReconciliationScanner
    dispatcher: DispatchLoop
    rescheduler: ReservationRescheduler
    refresher: CredentialRefresher
    scheduler: AutomationScheduler

    def reconcile_windows_with_cleanup(self) -> dict[str, Any]:
        """Hourly pass: drop stale leases, then backfill missing schedules."""
        released = self.store.release_expired_leases()
        summary = self.scanner.reconcile_windows(self.settings.reconcile_days_ahead)
        summary["released_leases"] = released
        return summary


def register_default_jobs(engine: Engine) -> None:
    settings = engine.settings
    scheduler = engine.scheduler
    scheduler.register(
        DISPATCH_JOB,
        engine.dispatcher.run_once,
        IntervalTrigger(seconds=settings.dispatch_interval_seconds),
    )
    scheduler.register(
        RECONCILE_RECENT_JOB,
        lambda: engine.scanner.generate_for_recent(settings.recent_window_minutes),
        IntervalTrigger(minutes=settings.recent_interval_minutes),
    )
    scheduler.register(
        RECONCILE_WINDOWS_JOB,
        engine.reconcile_windows_with_cleanup,
        IntervalTrigger(minutes=settings.reconcile_interval_minutes),
    )
    scheduler.register(
        CREDENTIAL_REFRESH_JOB,
        engine.refresher.refresh_with_retry,
        CronTrigger(
            minute=0,
            hour=f"*/{settings.credential_refresh_cron_hours}",
            timezone=DEFAULT_TIMEZONE,
        ),
    )


def build_engine(
    settings: AutomationSettings | None = None,
    *,
    store: ScheduleStore | None = None,
    renderer: TemplateRenderer | None = None,
    conversations: ConversationWriter | None = None,
    sender: ChannelSender | None = None,
    scheduler: AutomationScheduler | None = None,
    clock: Clock = utc_now,
) -> Engine:
    """Construct every component once and register the periodic jobs.

    Collaborators default to the Postgres/HTTP implementations; tests pass
    fakes and a frozen clock. The scheduler is returned unstarted.
    """
    settings = settings or AutomationSettings.from_env()
    store = store or PostgresScheduleStore()
    generator = ScheduleGenerator(store, clock=clock)
    engine = Engine(
        settings=settings,
        store=store,
        generator=generator,
        scanner=ReconciliationScanner(
            store, generator, timezone=settings.timezone, clock=clock
        ),
        dispatcher=DispatchLoop(
            store,
            renderer or DbTemplateRenderer(),
            conversations or PostgresConversationWriter(),
            sender or GatewayChannelSender(settings),
            settings,
        ),
        rescheduler=ReservationRescheduler(store, generator),
        refresher=CredentialRefresher(ChannelManagerTokenClient(settings)),
        scheduler=scheduler or AutomationScheduler(),
    )
    register_default_jobs(engine)
    return engine
