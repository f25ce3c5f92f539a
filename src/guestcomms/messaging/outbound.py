"""Outbound delivery via the channel gateway (email, sms, whatsapp, OTA inboxes).

Security: NEVER log message content. Only log hashes and lengths.
"""

from __future__ import annotations

import hashlib
import json
import time
import urllib.error
import urllib.request
from typing import Any

from guestcomms.config import AutomationSettings
from guestcomms.observability.correlation import get_correlation_id
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import safe_log_context

logger = get_logger(__name__)

SEND_PATH = "/messages"

# Retry config
MAX_RETRIES = 1
RETRY_DELAY = 0.2


def _hash_identifier(value: str) -> str:
    """Create non-reversible hash for logging. Returns first 12 chars of sha256."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, urllib.error.HTTPError):
        return 500 <= exc.code < 600
    return isinstance(exc, (urllib.error.URLError, TimeoutError))


class GatewayChannelSender:
    """ChannelSender posting every non-inapp message to the outbound gateway.

    The gateway owns channel-specific routing (guest address lookup, OTA
    APIs); this side only identifies the reservation and thread.
    """

    def __init__(self, settings: AutomationSettings, sleep=time.sleep) -> None:
        self._settings = settings
        self._sleep = sleep

    def _do_request(self, url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
        """Execute HTTP POST request. Raises on error."""
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        with urllib.request.urlopen(req, timeout=self._settings.http_timeout_seconds) as resp:
            body = resp.read().decode()
        return json.loads(body) if body else {}

    def send(
        self,
        *,
        channel: str,
        thread_id: str | None,
        reservation_id: str,
        content: str,
    ) -> str:
        """Send one rendered message.

        Returns:
            Message id assigned by the gateway.

        Raises:
            RuntimeError: If the gateway is not configured or returns no id.
            urllib.error.URLError: On network/HTTP errors after retry.
        """
        base_url = self._settings.outbound_gateway_url.rstrip("/")
        if not base_url:
            raise RuntimeError("Missing outbound config: OUTBOUND_GATEWAY_URL")

        data = json.dumps(
            {
                "channel": channel,
                "thread_id": thread_id,
                "reservation_id": reservation_id,
                "content": content,
            }
        ).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Correlation-Id": get_correlation_id() or "",
        }
        if self._settings.outbound_gateway_api_key:
            headers["apikey"] = self._settings.outbound_gateway_api_key

        log_ctx = safe_log_context(
            channel=channel,
            reservation_hash=_hash_identifier(reservation_id),
            text_len=len(content),
        )

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = self._do_request(base_url + SEND_PATH, data, headers)
            except (urllib.error.URLError, TimeoutError) as e:
                if attempt < MAX_RETRIES and _is_retryable(e):
                    logger.warning(
                        "outbound send failed, retrying",
                        extra={
                            "extra_fields": {
                                **log_ctx,
                                "attempt": attempt,
                                "error_type": type(e).__name__,
                            }
                        },
                    )
                    self._sleep(RETRY_DELAY)
                    continue
                logger.error(
                    "outbound send failed",
                    extra={
                        "extra_fields": {
                            **log_ctx,
                            "attempt": attempt,
                            "error_type": type(e).__name__,
                        }
                    },
                )
                raise

            message_id = response.get("message_id") or response.get("id")
            if not message_id:
                raise RuntimeError("Outbound gateway response has no message id")
            logger.info(
                "outbound message sent",
                extra={"extra_fields": {**log_ctx, "attempt": attempt}},
            )
            return str(message_id)
