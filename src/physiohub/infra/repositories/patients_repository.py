"""Patients repository - phone-based lookup for inbound replies.

Uses raw SQL with psycopg2 (no ORM).

Phone numbers are not unique: the same number can be registered under
several clinics (tenants) or twice in one clinic. Lookups return every
match, oldest registration first.
"""

from typing import Sequence

from psycopg2.extensions import cursor as PgCursor

from physiohub.domain.appointments import PatientCandidate
from physiohub.infra.db import fetchall, fetchone

_PATIENT_COLUMNS = "id, full_name, clinic_id, phone"


def _row_to_patient(row: tuple) -> PatientCandidate:
    return PatientCandidate(
        id=str(row[0]),
        full_name=row[1] or "",
        clinic_id=str(row[2]),
        phone=row[3] or "",
    )


def find_patients_by_phones(cur: PgCursor, phones: Sequence[str]) -> list[PatientCandidate]:
    """Return every patient whose stored phone equals any of `phones`.

    Args:
        cur: Database cursor.
        phones: Candidate phone strings (digits only).

    Returns:
        Patients ordered by registration (created_at, id). Empty if
        `phones` is empty or nothing matches.
    """
    if not phones:
        return []

    rows = fetchall(
        cur,
        f"""
        SELECT {_PATIENT_COLUMNS}
        FROM patients
        WHERE phone = ANY(%s)
        ORDER BY created_at, id
        """,
        (list(phones),),
    )
    return [_row_to_patient(row) for row in rows]


def get_patient(cur: PgCursor, patient_id: str) -> PatientCandidate | None:
    row = fetchone(
        cur,
        f"SELECT {_PATIENT_COLUMNS} FROM patients WHERE id = %s",
        (patient_id,),
    )
    return _row_to_patient(row) if row else None
