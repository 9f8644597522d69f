"""Professionals repository."""

from psycopg2.extensions import cursor as PgCursor

from physiohub.domain.appointments import ProfessionalContact
from physiohub.infra.db import fetchone


def get_professional_contact(cur: PgCursor, professional_id: str) -> ProfessionalContact | None:
    """Load a professional's name and phone, or None if the row is missing."""
    row = fetchone(
        cur,
        "SELECT id, full_name, phone FROM professionals WHERE id = %s",
        (professional_id,),
    )
    if row is None:
        return None
    return ProfessionalContact(id=str(row[0]), full_name=row[1] or "", phone=row[2] or None)
