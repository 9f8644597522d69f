"""WhatsApp message audit log (append-only).

One row per inbound reply and one per outbound send attempt.
"""

from psycopg2.extensions import cursor as PgCursor

from physiohub.whatsapp.models import MessageLogEntry


def insert_message_log(cur: PgCursor, entry: MessageLogEntry) -> None:
    cur.execute(
        """
        INSERT INTO whatsapp_logs (
            appointment_id, clinic_id, patient_phone, message_type,
            message_content, status, evolution_message_id,
            response_content, error_message, created_at
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s::TIMESTAMPTZ, now()))
        """,
        (
            entry.appointment_id,
            entry.clinic_id,
            entry.patient_phone,
            entry.message_type,
            entry.content,
            entry.status,
            entry.external_message_id,
            entry.response_content,
            entry.error_message,
            entry.timestamp,
        ),
    )
