"""Reminder and follow-up settings and sent stamps.

Revision ID: 002_reminders_followups
Revises: 001_initial_schema
Create Date: 2026-10-18
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "002_reminders_followups"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "002_reminders_followups.sql"
    op.get_bind().exec_driver_sql(sql_path.read_text(encoding="utf-8"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        """
        DROP INDEX IF EXISTS idx_appointments_followup_due;
        DROP INDEX IF EXISTS idx_appointments_reminder_due;
        ALTER TABLE appointments
            DROP COLUMN IF EXISTS followup_sent_at,
            DROP COLUMN IF EXISTS reminder_sent_at;
        ALTER TABLE whatsapp_settings
            DROP COLUMN IF EXISTS followup_template,
            DROP COLUMN IF EXISTS followup_hours_after,
            DROP COLUMN IF EXISTS followup_enabled,
            DROP COLUMN IF EXISTS reminder_template,
            DROP COLUMN IF EXISTS reminder_hours_before,
            DROP COLUMN IF EXISTS reminder_enabled;
        """
    )
