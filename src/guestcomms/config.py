"""Automation engine settings, loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_TIMEZONE = "Asia/Tokyo"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class AutomationSettings:
    """Settings for scheduling, reconciliation and dispatch.

    Attributes:
        app_env: Deployment environment ("production", "staging", "development"...).
        enable_scheduled_messages: Explicitly enables dispatch outside production.
        dispatch_batch_size: Max records claimed per dispatch tick.
        dispatch_interval_seconds: Dispatch tick interval.
        claim_lease_seconds: How long a claimed record stays invisible to other claimers.
        recent_window_minutes: Lookback of the recent-reservation safety net.
        recent_interval_minutes: Interval of the recent-reservation safety net.
        reconcile_days_ahead: Upper bound of the check-in window.
        reconcile_interval_minutes: Interval of the dual-window reconciliation.
        timezone: Reference timezone for windows and fallback for rules.
        outbound_gateway_url: Base URL of the outbound channel gateway.
        outbound_gateway_api_key: API key sent to the outbound gateway.
        http_timeout_seconds: Timeout for every outbound HTTP call.
        channel_manager_token_url: Token endpoint of the channel manager.
        channel_manager_refresh_token: Long-lived refresh token for the channel manager.
        credential_refresh_cron_hours: Hour step of the credential refresh cron.
    """

    app_env: str = "development"
    enable_scheduled_messages: bool = False
    dispatch_batch_size: int = 50
    dispatch_interval_seconds: int = 60
    claim_lease_seconds: int = 300
    recent_window_minutes: int = 15
    recent_interval_minutes: int = 5
    reconcile_days_ahead: int = 10
    reconcile_interval_minutes: int = 60
    timezone: str = DEFAULT_TIMEZONE
    outbound_gateway_url: str = ""
    outbound_gateway_api_key: str = ""
    http_timeout_seconds: int = 10
    channel_manager_token_url: str = ""
    channel_manager_refresh_token: str = ""
    credential_refresh_cron_hours: int = 20

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def dispatch_enabled(self) -> bool:
        """True when the dispatch loop may process records without a forced bypass.

        Production never suppresses; elsewhere ENABLE_SCHEDULED_MESSAGES
        must be set explicitly.
        """
        return self.is_production or self.enable_scheduled_messages

    @classmethod
    def from_env(cls) -> AutomationSettings:
        """Load settings from the environment, keeping defaults for unset vars."""
        return cls(
            app_env=os.environ.get("APP_ENV", "development").strip().lower(),
            enable_scheduled_messages=_env_bool("ENABLE_SCHEDULED_MESSAGES"),
            dispatch_batch_size=_env_int("DISPATCH_BATCH_SIZE", 50),
            dispatch_interval_seconds=_env_int("DISPATCH_INTERVAL_SECONDS", 60),
            claim_lease_seconds=_env_int("CLAIM_LEASE_SECONDS", 300),
            recent_window_minutes=_env_int("RECENT_WINDOW_MINUTES", 15),
            recent_interval_minutes=_env_int("RECENT_INTERVAL_MINUTES", 5),
            reconcile_days_ahead=_env_int("RECONCILE_DAYS_AHEAD", 10),
            reconcile_interval_minutes=_env_int("RECONCILE_INTERVAL_MINUTES", 60),
            timezone=os.environ.get("AUTOMATION_TIMEZONE", DEFAULT_TIMEZONE),
            outbound_gateway_url=os.environ.get("OUTBOUND_GATEWAY_URL", ""),
            outbound_gateway_api_key=os.environ.get("OUTBOUND_GATEWAY_API_KEY", ""),
            http_timeout_seconds=_env_int("HTTP_TIMEOUT_SECONDS", 10),
            channel_manager_token_url=os.environ.get("CHANNEL_MANAGER_TOKEN_URL", ""),
            channel_manager_refresh_token=os.environ.get(
                "CHANNEL_MANAGER_REFRESH_TOKEN", ""
            ),
            credential_refresh_cron_hours=_env_int("CREDENTIAL_REFRESH_CRON_HOURS", 20),
        )
