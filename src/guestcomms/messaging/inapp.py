"""In-app delivery: messages written straight into the reservation's thread."""

from __future__ import annotations

from guestcomms.infra.db import txn
from guestcomms.infra.repositories import threads_repository


class PostgresConversationWriter:
    def resolve_thread(self, reservation_id: str) -> str:
        with txn() as cur:
            return threads_repository.find_or_create_thread(cur, reservation_id)

    def write_message(self, thread_id: str, content: str, channel: str) -> str:
        with txn() as cur:
            return threads_repository.insert_message(
                cur, thread_id=thread_id, content=content, channel=channel
            )
