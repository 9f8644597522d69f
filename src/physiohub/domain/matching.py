"""Patient/appointment matching for inbound replies.

Phones are not unique across tenants, so a reply may map to several patient
rows. The first candidate (in lookup order) with a pending future
appointment wins; later candidates are never queried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterator, Sequence

from physiohub.domain.appointments import AppointmentCandidate, PatientCandidate
from physiohub.observability.logging import get_logger
from physiohub.observability.redaction import safe_log_context

logger = get_logger(__name__)

PendingFetcher = Callable[[PatientCandidate], Sequence[AppointmentCandidate]]


class MatchStatus(str, Enum):
    MATCHED = "matched"
    NO_PATIENT = "no_patient"
    NO_PENDING_APPOINTMENT = "no_pending_appointment"


@dataclass(frozen=True)
class AppointmentMatch:
    status: MatchStatus
    patient: PatientCandidate | None = None
    appointments: tuple[AppointmentCandidate, ...] = field(default_factory=tuple)
    candidate_count: int = 0

    @property
    def appointment(self) -> AppointmentCandidate | None:
        """Earliest future appointment of the matched patient."""
        return self.appointments[0] if self.appointments else None


def future_appointments(
    appointments: Sequence[AppointmentCandidate], now: datetime
) -> list[AppointmentCandidate]:
    """Keep appointments starting strictly after `now`, earliest first.

    `now` must be naive clinic-local time, like appointment date/time.
    """
    upcoming = [a for a in appointments if a.is_after(now)]
    return sorted(upcoming, key=lambda a: (a.date, a.time))


def _candidates_with_future(
    patients: Sequence[PatientCandidate],
    fetch_pending: PendingFetcher,
    now: datetime,
) -> Iterator[tuple[PatientCandidate, list[AppointmentCandidate]]]:
    for patient in patients:
        pending = fetch_pending(patient)
        upcoming = future_appointments(pending, now)
        if upcoming:
            yield patient, upcoming
        elif pending:
            logger.info(
                "candidate skipped: only past appointments",
                extra={
                    "extra_fields": safe_log_context(
                        patient_id=patient.id,
                        clinic_id=patient.clinic_id,
                        pending_count=len(pending),
                    )
                },
            )
        else:
            logger.info(
                "candidate skipped: no pending appointments",
                extra={
                    "extra_fields": safe_log_context(
                        patient_id=patient.id,
                        clinic_id=patient.clinic_id,
                    )
                },
            )


def match_appointment(
    patients: Sequence[PatientCandidate],
    fetch_pending: PendingFetcher,
    now: datetime,
) -> AppointmentMatch:
    """Pick the patient and appointment a reply refers to.

    Args:
        patients: Candidates sharing the sender's phone, in lookup order.
        fetch_pending: Returns a patient's scheduled appointments in the
            lookup window. Called lazily, one candidate at a time.
        now: Current naive clinic-local time.

    Returns:
        AppointmentMatch. MATCHED carries the patient and its future
        appointments (earliest first); otherwise NO_PATIENT or
        NO_PENDING_APPOINTMENT.
    """
    if not patients:
        return AppointmentMatch(status=MatchStatus.NO_PATIENT)

    if len(patients) > 1:
        logger.warning(
            "multiple patients share sender number",
            extra={
                "extra_fields": safe_log_context(
                    candidate_count=len(patients),
                    clinic_ids=",".join(sorted({p.clinic_id for p in patients})),
                )
            },
        )

    found = next(_candidates_with_future(patients, fetch_pending, now), None)
    if found is None:
        return AppointmentMatch(
            status=MatchStatus.NO_PENDING_APPOINTMENT,
            candidate_count=len(patients),
        )

    patient, upcoming = found
    return AppointmentMatch(
        status=MatchStatus.MATCHED,
        patient=patient,
        appointments=tuple(upcoming),
        candidate_count=len(patients),
    )
