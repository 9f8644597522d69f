"""Appointments repository.

Uses raw SQL with psycopg2 (no ORM).

Status updates are single-row writes with no version check: two
near-simultaneous replies for the same appointment resolve last-write-wins.
"""

from datetime import date, datetime

from psycopg2.extensions import cursor as PgCursor

from physiohub.domain.appointments import AppointmentCandidate, AppointmentStatus
from physiohub.infra.db import fetchall, fetchone

_APPOINTMENT_COLUMNS = (
    "id, date, time, professional_id, clinic_id, status, patient_id, treatment_type"
)


def _row_to_appointment(row: tuple) -> AppointmentCandidate:
    return AppointmentCandidate(
        id=str(row[0]),
        date=row[1],
        time=row[2],
        professional_id=str(row[3]) if row[3] is not None else None,
        clinic_id=str(row[4]),
        status=AppointmentStatus(row[5]),
        patient_id=str(row[6]) if row[6] is not None else None,
        treatment_type=row[7],
    )


def get_appointment(cur: PgCursor, appointment_id: str) -> AppointmentCandidate | None:
    row = fetchone(
        cur,
        f"SELECT {_APPOINTMENT_COLUMNS} FROM appointments WHERE id = %s",
        (appointment_id,),
    )
    return _row_to_appointment(row) if row else None


def list_pending_appointments(
    cur: PgCursor,
    *,
    patient_id: str,
    start: date,
    end: date,
) -> list[AppointmentCandidate]:
    """List a patient's scheduled (marcado) appointments dated within [start, end].

    Ordered by date then time ascending. Time-of-day filtering is left to
    the caller.
    """
    rows = fetchall(
        cur,
        f"""
        SELECT {_APPOINTMENT_COLUMNS}
        FROM appointments
        WHERE patient_id = %s
          AND status = %s
          AND date BETWEEN %s AND %s
        ORDER BY date ASC, time ASC
        """,
        (patient_id, AppointmentStatus.SCHEDULED.value, start, end),
    )
    return [_row_to_appointment(row) for row in rows]


def set_reply_status(
    cur: PgCursor,
    *,
    appointment_id: str,
    status: AppointmentStatus,
    responded_at: datetime,
) -> int:
    """Apply a patient's reply to an appointment.

    Sets status, the WhatsApp-confirmed flag and the response timestamp in
    one statement.

    Returns:
        Number of rows updated (0 if the appointment no longer exists).
    """
    cur.execute(
        """
        UPDATE appointments
        SET status               = %s,
            whatsapp_confirmed   = %s,
            patient_confirmed_at = %s,
            updated_at           = %s
        WHERE id = %s
        """,
        (
            status.value,
            status is AppointmentStatus.CONFIRMED,
            responded_at,
            responded_at,
            appointment_id,
        ),
    )
    return cur.rowcount


def mark_professional_notified(
    cur: PgCursor,
    *,
    appointment_id: str,
    message_id: str | None,
    notified_at: datetime,
) -> None:
    cur.execute(
        """
        UPDATE appointments
        SET professional_notified_at = %s,
            professional_message_id  = %s
        WHERE id = %s
        """,
        (notified_at, message_id, appointment_id),
    )


def mark_confirmation_sent(
    cur: PgCursor,
    *,
    appointment_id: str,
    message_id: str | None,
    sent_at: datetime,
) -> None:
    """Record that the confirmation request went out; the reply is now pending."""
    cur.execute(
        """
        UPDATE appointments
        SET confirmation_sent_at    = %s,
            confirmation_message_id = %s,
            whatsapp_status         = 'pending'
        WHERE id = %s
        """,
        (sent_at, message_id, appointment_id),
    )


def mark_reminder_sent(cur: PgCursor, *, appointment_id: str, sent_at: datetime) -> None:
    cur.execute(
        "UPDATE appointments SET reminder_sent_at = %s WHERE id = %s",
        (sent_at, appointment_id),
    )


def mark_followup_sent(cur: PgCursor, *, appointment_id: str, sent_at: datetime) -> None:
    cur.execute(
        "UPDATE appointments SET followup_sent_at = %s WHERE id = %s",
        (sent_at, appointment_id),
    )


# Sent-stamp column per outbound kind; never built from caller input
_SENT_AT_COLUMNS = {
    "confirmation": "confirmation_sent_at",
    "reminder": "reminder_sent_at",
    "followup": "followup_sent_at",
}


def _list_due(
    cur: PgCursor,
    *,
    kind: str,
    clinic_id: str,
    target_date: date,
    status: AppointmentStatus,
) -> list[AppointmentCandidate]:
    rows = fetchall(
        cur,
        f"""
        SELECT a.id, a.date, a.time, a.professional_id, a.clinic_id, a.status,
               a.patient_id, a.treatment_type
        FROM appointments a
        JOIN patients p ON p.id = a.patient_id
        WHERE a.clinic_id = %s
          AND a.date = %s
          AND a.status = %s
          AND a.{_SENT_AT_COLUMNS[kind]} IS NULL
          AND p.is_active
        ORDER BY a.time ASC
        """,
        (clinic_id, target_date, status.value),
    )
    return [_row_to_appointment(row) for row in rows]


def list_due_for_confirmation(
    cur: PgCursor,
    *,
    clinic_id: str,
    target_date: date,
) -> list[AppointmentCandidate]:
    """Scheduled appointments on `target_date` that never got a confirmation request.

    Only appointments of active patients are returned.
    """
    return _list_due(
        cur,
        kind="confirmation",
        clinic_id=clinic_id,
        target_date=target_date,
        status=AppointmentStatus.SCHEDULED,
    )


def list_due_for_reminder(
    cur: PgCursor,
    *,
    clinic_id: str,
    target_date: date,
) -> list[AppointmentCandidate]:
    """Confirmed appointments on `target_date` not yet reminded."""
    return _list_due(
        cur,
        kind="reminder",
        clinic_id=clinic_id,
        target_date=target_date,
        status=AppointmentStatus.CONFIRMED,
    )


def list_due_for_followup(
    cur: PgCursor,
    *,
    clinic_id: str,
    target_date: date,
) -> list[AppointmentCandidate]:
    """Completed appointments on `target_date` without a follow-up."""
    return _list_due(
        cur,
        kind="followup",
        clinic_id=clinic_id,
        target_date=target_date,
        status=AppointmentStatus.COMPLETED,
    )
