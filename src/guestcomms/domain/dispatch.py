"""Dispatch loop: claim due schedule records and deliver them.

Ownership of a record comes only from the store's atomic claim; this
module holds no locks. Each claimed record ends in sent or failed before
the next one starts, and one record's failure never stops the batch.
"""

from __future__ import annotations

from typing import Any

from guestcomms.config import AutomationSettings
from guestcomms.observability.logging import get_logger
from guestcomms.observability.redaction import MAX_ERROR_LENGTH, describe_error, safe_log_context

from .models import INAPP_CHANNEL, ScheduleRecord
from .ports import ChannelSender, ConversationWriter, ScheduleStore, TemplateRenderer

logger = get_logger(__name__)


class DispatchLoop:
    """Claims due records, renders them and routes them to a delivery path."""

    def __init__(
        self,
        store: ScheduleStore,
        renderer: TemplateRenderer,
        conversations: ConversationWriter,
        sender: ChannelSender,
        settings: AutomationSettings,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._conversations = conversations
        self._sender = sender
        self._settings = settings

    def run_once(self, force: bool = False) -> dict[str, Any]:
        """Process one batch of due records.

        Args:
            force: Operator bypass; processes even when the environment
                gate suppresses dispatch.

        Returns:
            {"claimed", "sent", "failed", "suppressed"}
        """
        if not force and not self._settings.dispatch_enabled():
            logger.info(
                "dispatch suppressed outside production",
                extra={"extra_fields": safe_log_context(app_env=self._settings.app_env)},
            )
            return {"claimed": 0, "sent": 0, "failed": 0, "suppressed": True}

        records = self._store.claim_due(
            self._settings.dispatch_batch_size, self._settings.claim_lease_seconds
        )

        sent = 0
        failed = 0
        for record in records:
            if self._process(record):
                sent += 1
            else:
                failed += 1

        if records:
            logger.info(
                "dispatch batch completed",
                extra={
                    "extra_fields": safe_log_context(
                        claimed=len(records), sent=sent, failed=failed, forced=force
                    )
                },
            )
        return {"claimed": len(records), "sent": sent, "failed": failed, "suppressed": False}

    def _process(self, record: ScheduleRecord) -> bool:
        log_ctx = safe_log_context(
            schedule_id=record.id,
            reservation_id=record.reservation_id,
            channel=record.channel,
        )
        try:
            content = self._renderer.render(record.template_id, record.payload)
            thread_id = record.thread_id

            if record.channel == INAPP_CHANNEL:
                if thread_id is None:
                    thread_id = self._conversations.resolve_thread(record.reservation_id)
                message_id = self._conversations.write_message(
                    thread_id, content, record.channel
                )
            else:
                message_id = self._sender.send(
                    channel=record.channel,
                    thread_id=thread_id,
                    reservation_id=record.reservation_id,
                    content=content,
                )
        except Exception as exc:
            error = describe_error(exc)
            logger.warning(
                "scheduled message failed",
                extra={"extra_fields": {**log_ctx, "error": error}},
            )
            self._record_failure(record, error)
            return False

        try:
            updated = self._store.mark_sent(
                record.id, thread_id=thread_id, message_id=message_id
            )
        except Exception as exc:
            # Delivered but unmarked: must end terminal so no later claim re-sends it.
            error = f"delivered; mark_sent failed: {describe_error(exc)}"[:MAX_ERROR_LENGTH]
            logger.exception(
                "scheduled message delivered but mark_sent failed",
                extra={"extra_fields": {**log_ctx, "error": error}},
            )
            self._record_failure(record, error)
            return False

        if not updated:
            logger.warning(
                "scheduled message left pending state during dispatch",
                extra={"extra_fields": log_ctx},
            )
        else:
            logger.info("scheduled message sent", extra={"extra_fields": log_ctx})
        return True

    def _record_failure(self, record: ScheduleRecord, error: str) -> None:
        try:
            self._store.mark_failed(record.id, error)
        except Exception:
            logger.exception(
                "could not record dispatch failure",
                extra={"extra_fields": safe_log_context(schedule_id=record.id)},
            )
