"""Message templates repository.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


def get_template_content(cur: PgCursor, template_id: str) -> str | None:
    """Return the body of an enabled template, or None if missing/disabled."""
    cur.execute(
        """
        SELECT content FROM message_templates
        WHERE id = %s AND enabled
        """,
        (template_id,),
    )
    row = cur.fetchone()
    return row[0] if row else None
