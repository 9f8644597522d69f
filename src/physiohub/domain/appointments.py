"""Appointment and patient projections used by the reply flow."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum


class AppointmentStatus(str, Enum):
    SCHEDULED = "marcado"
    CONFIRMED = "confirmado"
    CANCELLED = "cancelado"
    MISSED = "faltante"
    COMPLETED = "realizado"


@dataclass(frozen=True)
class PatientCandidate:
    """Read-only patient row matched by phone.

    The same phone may appear under several clinics (tenants) or in duplicate
    registrations, so lookups return a list of these.
    """

    id: str
    full_name: str
    clinic_id: str
    phone: str


@dataclass(frozen=True)
class AppointmentCandidate:
    id: str
    date: date
    time: time
    professional_id: str | None
    clinic_id: str
    status: AppointmentStatus
    patient_id: str | None = None
    treatment_type: str | None = None

    def starts_at(self) -> datetime:
        """Naive clinic-local start of the appointment."""
        return datetime.combine(self.date, self.time)

    def is_after(self, moment: datetime) -> bool:
        """True when the appointment starts strictly after `moment` (naive, clinic-local)."""
        return self.starts_at() > moment


@dataclass(frozen=True)
class ProfessionalContact:
    id: str
    full_name: str
    phone: str | None
