"""Automation schema (SQL-only).

Revision ID: 001_automation_schema
Revises:
Create Date: 2026-09-14
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_automation_schema"
down_revision = None
branch_labels = None
depends_on = None


def _read_sql() -> str:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "001_automation_schema.sql"
    return sql_path.read_text(encoding="utf-8")


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_read_sql())


def downgrade() -> None:
    op.execute(
        """
        DROP TABLE IF EXISTS scheduled_messages;
        DROP TABLE IF EXISTS message_rule_templates;
        DROP TABLE IF EXISTS message_rules;
        DROP TABLE IF EXISTS message_templates;
        DROP TABLE IF EXISTS messages;
        DROP TABLE IF EXISTS message_threads;
        """
    )
