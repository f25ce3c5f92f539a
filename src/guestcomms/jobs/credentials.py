"""Channel-manager credential refresh.

The channel manager issues short-lived access tokens from a long-lived
refresh token. The access token is cached in memory and only refreshed when
missing or close to expiry; the periodic job keeps it warm.

Security: NEVER log tokens. Only log lengths.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import requests

from guestcomms.config import AutomationSettings
from guestcomms.domain.errors import TransientExternalError
from guestcomms.infra.time import utc_now
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import describe_error, safe_log_context

logger = get_logger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 5.0

# Refresh this long before the token actually expires
EXPIRY_MARGIN = timedelta(minutes=30)


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now + EXPIRY_MARGIN < self.expires_at


class ChannelManagerTokenClient:
    """Fetches and caches channel-manager access tokens."""

    def __init__(
        self,
        settings: AutomationSettings,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._clock = clock
        self._token: AccessToken | None = None

    def get_valid_access_token(self) -> str:
        """Return the cached token, refreshing it first if missing or near expiry.

        Raises:
            TransientExternalError: If the token endpoint is unreachable or
                returns an unusable response.
        """
        now = self._clock()
        if self._token is None or not self._token.is_fresh(now):
            self._token = self._fetch(now)
        return self._token.value

    def _fetch(self, now: datetime) -> AccessToken:
        url = self._settings.channel_manager_token_url
        refresh_token = self._settings.channel_manager_refresh_token
        if not url or not refresh_token:
            raise RuntimeError(
                "Missing channel manager config: "
                "CHANNEL_MANAGER_TOKEN_URL, CHANNEL_MANAGER_REFRESH_TOKEN"
            )

        try:
            response = self._session.get(
                url,
                headers={"refreshToken": refresh_token, "Accept": "application/json"},
                timeout=self._settings.http_timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise TransientExternalError(f"token refresh failed: {e}") from e

        token = data.get("token")
        if not token:
            raise TransientExternalError("token refresh response has no token")
        expires_in = int(data.get("expiresIn", 86400))

        logger.info(
            "channel manager token refreshed",
            extra={
                "extra_fields": safe_log_context(
                    token_len=len(token), expires_in=expires_in
                )
            },
        )
        return AccessToken(value=token, expires_at=now + timedelta(seconds=expires_in))


class CredentialRefresher:
    """Keeps the channel-manager token valid, retrying with exponential backoff."""

    def __init__(
        self,
        client: ChannelManagerTokenClient,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
    ) -> None:
        self._client = client
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._base_delay = base_delay

    def refresh_with_retry(self) -> bool:
        """Validate or refresh the token. Never raises.

        Returns:
            True on success, False after the final failed attempt.
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._client.get_valid_access_token()
                return True
            except Exception as e:
                log_ctx = {
                    **safe_log_context(attempt=attempt, max_attempts=self._max_attempts),
                    "error": describe_error(e),
                }
                if attempt == self._max_attempts:
                    logger.error(
                        "credential refresh failed",
                        extra={"extra_fields": {**log_ctx, "needs_operator_attention": "true"}},
                    )
                    return False

                delay = self._base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "credential refresh failed, retrying",
                    extra={"extra_fields": {**log_ctx, "delay": str(delay)}},
                )
                self._sleep(delay)
        return False
