"""Conversation threads repository - in-app delivery path.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


def find_or_create_thread(cur: PgCursor, reservation_id: str) -> str:
    """Return the reservation's thread id, creating the thread if missing.

    Race-safe: ON CONFLICT (reservation_id) lets concurrent callers converge
    on the same row.

    Args:
        cur: Database cursor (within transaction).
        reservation_id: Reservation UUID.

    Returns:
        Thread UUID as string.
    """
    cur.execute(
        """
        INSERT INTO message_threads (reservation_id, property_id)
        SELECT r.id, r.property_id FROM reservations r WHERE r.id = %s
        ON CONFLICT (reservation_id) DO NOTHING
        RETURNING id
        """,
        (reservation_id,),
    )
    row = cur.fetchone()
    if row is not None:
        return str(row[0])

    cur.execute(
        "SELECT id FROM message_threads WHERE reservation_id = %s",
        (reservation_id,),
    )
    row = cur.fetchone()
    if row is None:
        raise LookupError(f"no reservation {reservation_id} to attach a thread to")
    return str(row[0])


def insert_message(cur: PgCursor, *, thread_id: str, content: str, channel: str) -> str:
    """Append a system-originated outgoing message to a thread.

    Returns:
        Message UUID as string.
    """
    cur.execute(
        """
        INSERT INTO messages (thread_id, direction, origin_role, channel, content)
        VALUES (%s, 'outgoing', 'system', %s, %s)
        RETURNING id
        """,
        (thread_id, channel, content),
    )
    message_id = str(cur.fetchone()[0])
    cur.execute(
        "UPDATE message_threads SET last_message_at = now() WHERE id = %s",
        (thread_id,),
    )
    return message_id
