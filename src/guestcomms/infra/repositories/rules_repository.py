"""Message rules repository - rules with their linked templates.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from guestcomms.domain.models import Rule, RuleTemplate


def list_enabled_rules(cur: PgCursor, property_id: str | None) -> list[Rule]:
    """Enabled rules for a property plus global rules (property_id IS NULL).

    Only enabled templates are attached; templates are ordered primary
    first, then by descending priority. Rules without any enabled template
    are still returned so generation can report them as rule errors.

    Args:
        cur: Database cursor.
        property_id: Property identifier, or None for global rules only.

    Returns:
        Rules ordered by display code.
    """
    cur.execute(
        """
        SELECT mr.id, mr.code, mr.anchor_kind, mr.backfill, mr.name,
               mr.delay_minutes, mr.days, mr.hours, mr.at_time, mr.timezone,
               mr.enabled, mr.property_id,
               mt.id, mt.channel, mt.language, mrt.is_primary, mrt.priority, mt.name
        FROM message_rules mr
        LEFT JOIN message_rule_templates mrt ON mrt.rule_id = mr.id
        LEFT JOIN message_templates mt ON mt.id = mrt.template_id AND mt.enabled
        WHERE mr.enabled
          AND (mr.property_id IS NULL OR mr.property_id = %s)
        ORDER BY mr.code, mr.id, mrt.is_primary DESC, mrt.priority DESC
        """,
        (property_id,),
    )

    rules: dict[str, dict] = {}
    order: list[str] = []
    for row in cur.fetchall():
        rule_id = str(row[0])
        if rule_id not in rules:
            order.append(rule_id)
            rules[rule_id] = {
                "id": rule_id,
                "code": row[1],
                "anchor": row[2],
                "backfill": row[3],
                "name": row[4],
                "delay_minutes": row[5],
                "days": row[6],
                "hours": row[7],
                "at_time": row[8].strftime("%H:%M") if hasattr(row[8], "strftime") else row[8],
                "timezone": row[9],
                "enabled": row[10],
                "property_id": str(row[11]) if row[11] is not None else None,
                "templates": [],
            }
        if row[12] is not None:
            rules[rule_id]["templates"].append(
                RuleTemplate(
                    id=str(row[12]),
                    channel=row[13],
                    language=row[14] or "en",
                    is_primary=bool(row[15]),
                    priority=row[16] or 0,
                    name=row[17],
                )
            )

    return [
        Rule(**{**rules[rule_id], "templates": tuple(rules[rule_id]["templates"])})
        for rule_id in order
    ]
