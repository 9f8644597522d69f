"""Reply service - apply a patient's WhatsApp reply to their appointment.

Two stages with different failure semantics:

- resolve_reply(): match the sender to a patient and appointment, then write
  the new status. The write is authoritative: if it fails the caller must
  answer 500 and notify nobody.
- notify_reply(): audit log, patient feedback and professional notice. Every
  step is best-effort; failures are logged and never reach the caller.

Security: NEVER log phones, jids or message text. Use hashes and ids.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, TypeVar

import psycopg2

from physiohub.domain.appointments import (
    AppointmentCandidate,
    AppointmentStatus,
    PatientCandidate,
    ProfessionalContact,
)
from physiohub.domain.intents import ReplyIntent
from physiohub.domain.matching import AppointmentMatch, MatchStatus, match_appointment
from physiohub.domain.phones import extract_digits, phone_variants
from physiohub.infra.db import txn
from physiohub.infra.repositories.appointments_repository import (
    list_pending_appointments,
    mark_professional_notified,
    set_reply_status,
)
from physiohub.infra.repositories.message_logs_repository import insert_message_log
from physiohub.infra.repositories.patients_repository import find_patients_by_phones
from physiohub.infra.repositories.professionals_repository import get_professional_contact
from physiohub.infra.time import to_clinic_local, utc_now
from physiohub.infra.whatsapp_settings import WhatsAppSettings, get_whatsapp_settings
from physiohub.observability.correlation import get_correlation_id
from physiohub.observability.logging import get_logger
from physiohub.observability.redaction import hash_identifier, safe_log_context
from physiohub.whatsapp.models import IncomingMessage, MessageLogEntry
from physiohub.whatsapp.outbound import recipient_number, send_text_via_evolution
from physiohub.whatsapp.templates import format_date_br, format_time_hm, render

logger = get_logger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 14

T = TypeVar("T")


class AppointmentUpdateError(Exception):
    """The authoritative status write did not happen."""

    def __init__(self, appointment_id: str, reason: str):
        self.appointment_id = appointment_id
        super().__init__(f"appointment {appointment_id} not updated: {reason}")


@dataclass(frozen=True)
class ConfirmationOutcome:
    """A reply that has been applied to an appointment."""

    appointment: AppointmentCandidate
    patient: PatientCandidate
    intent: ReplyIntent
    resolved_status: AppointmentStatus
    message: IncomingMessage
    text: str
    responded_at: datetime

    @property
    def appointment_id(self) -> str:
        return self.appointment.id

    @property
    def sender_number(self) -> str:
        """Sender digits as received on the wire (country code included). PII."""
        return extract_digits(self.message.sender_identifier)


@dataclass(frozen=True)
class ReplyResolution:
    status: MatchStatus
    outcome: ConfirmationOutcome | None = None
    candidate_count: int = 0


@dataclass(frozen=True)
class NotificationReport:
    patient_notified: bool = False
    professional_notified: bool = False


# ── Resolve and persist ──────────────────────────────────


def lookahead_days() -> int:
    """Days ahead searched for pending appointments (APPOINTMENT_LOOKAHEAD_DAYS)."""
    return int(os.environ.get("APPOINTMENT_LOOKAHEAD_DAYS", DEFAULT_LOOKAHEAD_DAYS))


def lookup_window(now_local: datetime) -> tuple[date, date]:
    """Date range [today, today + lookahead] for pending appointments."""
    today = now_local.date()
    return today, today + timedelta(days=lookahead_days())


def find_match(variants: list[str], now_local: datetime) -> AppointmentMatch:
    """Look up patients by phone variants and pick the target appointment.

    Appointment queries run one candidate at a time and stop at the first
    candidate with a future appointment.
    """
    start, end = lookup_window(now_local)

    with txn() as cur:
        patients = find_patients_by_phones(cur, variants)

        def fetch_pending(patient: PatientCandidate) -> list[AppointmentCandidate]:
            return list_pending_appointments(cur, patient_id=patient.id, start=start, end=end)

        return match_appointment(patients, fetch_pending, now_local)


def apply_reply(appointment_id: str, intent: ReplyIntent, responded_at: datetime) -> AppointmentStatus:
    """Write the reply's status to the appointment.

    Raises:
        AppointmentUpdateError: On database error or if no row was updated.
    """
    status = intent.target_status()
    try:
        with txn() as cur:
            updated = set_reply_status(
                cur,
                appointment_id=appointment_id,
                status=status,
                responded_at=responded_at,
            )
    except psycopg2.Error as e:
        raise AppointmentUpdateError(appointment_id, type(e).__name__) from e

    if updated == 0:
        raise AppointmentUpdateError(appointment_id, "no row updated")
    return status


def resolve_reply(
    message: IncomingMessage,
    text: str,
    intent: ReplyIntent,
    *,
    now: datetime | None = None,
) -> ReplyResolution:
    """Match a classified reply to an appointment and persist the new status.

    Args:
        message: Filtered inbound message (PII, never logged).
        text: Trimmed message text. NEVER logged.
        intent: CONFIRM or CANCEL.
        now: Aware processing time (default: utc_now()).

    Returns:
        ReplyResolution with MATCHED and the outcome, or a miss status
        (NO_PATIENT / NO_PENDING_APPOINTMENT) with nothing written.

    Raises:
        AppointmentUpdateError: If the status write fails.
        ValueError: If intent is UNRECOGNIZED.
    """
    if intent is ReplyIntent.UNRECOGNIZED:
        raise ValueError("cannot resolve an unrecognized reply")

    now = now or utc_now()
    now_local = to_clinic_local(now)
    variants = phone_variants(message.sender_identifier)

    logger.info(
        "resolving reply",
        extra={
            "extra_fields": safe_log_context(
                sender_hash=hash_identifier(message.sender_identifier),
                variant_count=len(variants),
                intent=intent.value,
            )
        },
    )

    match = find_match(variants, now_local)
    if match.status is not MatchStatus.MATCHED:
        logger.info(
            "reply not matched",
            extra={
                "extra_fields": safe_log_context(
                    status=match.status.value,
                    candidate_count=match.candidate_count,
                )
            },
        )
        return ReplyResolution(status=match.status, candidate_count=match.candidate_count)

    appointment = match.appointment
    patient = match.patient
    status = apply_reply(appointment.id, intent, now)

    logger.info(
        "appointment status updated",
        extra={
            "extra_fields": safe_log_context(
                appointment_id=appointment.id,
                clinic_id=appointment.clinic_id,
                status=status.value,
                pending_count=len(match.appointments),
            )
        },
    )

    outcome = ConfirmationOutcome(
        appointment=appointment,
        patient=patient,
        intent=intent,
        resolved_status=status,
        message=message,
        text=text,
        responded_at=now,
    )
    return ReplyResolution(
        status=MatchStatus.MATCHED,
        outcome=outcome,
        candidate_count=match.candidate_count,
    )


# ── Notify (best-effort) ─────────────────────────────────


def _record_message(entry: MessageLogEntry) -> None:
    """Insert an audit row; failures are logged and swallowed."""
    try:
        with txn() as cur:
            insert_message_log(cur, entry)
    except Exception:
        logger.exception(
            "message log insert failed",
            extra={
                "extra_fields": safe_log_context(
                    appointment_id=entry.appointment_id,
                    message_type=entry.message_type,
                )
            },
        )


def _load_professional(professional_id: str | None) -> ProfessionalContact | None:
    if not professional_id:
        return None
    with txn() as cur:
        return get_professional_contact(cur, professional_id)


def _result_or_none(label: str, call: Callable[[], T]) -> T | None:
    try:
        return call()
    except Exception:
        logger.exception(
            "notification lookup failed",
            extra={"extra_fields": safe_log_context(lookup=label)},
        )
        return None


def load_notification_context(
    outcome: ConfirmationOutcome,
) -> tuple[ProfessionalContact | None, WhatsAppSettings | None]:
    """Fetch the professional contact and clinic settings concurrently."""
    appointment = outcome.appointment
    with ThreadPoolExecutor(max_workers=2) as pool:
        professional_future = pool.submit(
            copy_context().run, _load_professional, appointment.professional_id
        )
        settings_future = pool.submit(
            copy_context().run, get_whatsapp_settings, appointment.clinic_id
        )
        professional = _result_or_none("professional", professional_future.result)
        settings = _result_or_none("whatsapp_settings", settings_future.result)
    return professional, settings


def _send_and_record(
    *,
    settings: WhatsAppSettings,
    outcome: ConfirmationOutcome,
    number: str,
    text: str,
    message_type: str,
) -> bool:
    """Send one message and audit the attempt.

    Returns:
        True on success, False if the send failed (already logged).
    """
    correlation_id = get_correlation_id()
    try:
        message_id = send_text_via_evolution(
            settings=settings,
            number=number,
            text=text,
            correlation_id=correlation_id,
        )
    except Exception as e:
        logger.warning(
            "notification send failed",
            extra={
                "extra_fields": safe_log_context(
                    appointment_id=outcome.appointment_id,
                    message_type=message_type,
                    error_type=type(e).__name__,
                )
            },
        )
        _record_message(
            MessageLogEntry(
                appointment_id=outcome.appointment_id,
                clinic_id=outcome.appointment.clinic_id,
                patient_phone=number,
                message_type=message_type,
                content=text,
                status="failed",
                error_message=type(e).__name__,
            )
        )
        return False

    _record_message(
        MessageLogEntry(
            appointment_id=outcome.appointment_id,
            clinic_id=outcome.appointment.clinic_id,
            patient_phone=number,
            message_type=message_type,
            content=text,
            status="sent",
            external_message_id=message_id,
        )
    )
    if message_type.endswith("_notification"):
        _stamp_professional_notified(outcome.appointment_id, message_id)
    return True


def _stamp_professional_notified(appointment_id: str, message_id: str | None) -> None:
    try:
        with txn() as cur:
            mark_professional_notified(
                cur,
                appointment_id=appointment_id,
                message_id=message_id,
                notified_at=utc_now(),
            )
    except Exception:
        logger.exception(
            "professional notified stamp failed",
            extra={"extra_fields": safe_log_context(appointment_id=appointment_id)},
        )


def _template_params(outcome: ConfirmationOutcome) -> dict[str, str]:
    return {
        "data": format_date_br(outcome.appointment.date),
        "horario": format_time_hm(outcome.appointment.time),
    }


def notify_reply(outcome: ConfirmationOutcome) -> NotificationReport:
    """Audit the reply and tell the patient and the professional.

    Order: inbound audit row, concurrent professional/settings lookup,
    patient feedback, then professional notice. Never raises.
    """
    _record_message(
        MessageLogEntry(
            appointment_id=outcome.appointment_id,
            clinic_id=outcome.appointment.clinic_id,
            patient_phone=outcome.sender_number,
            message_type="patient_response",
            content=outcome.text,
            status="processed",
            external_message_id=outcome.message.external_message_id or None,
            timestamp=outcome.responded_at,
            response_content=outcome.intent.action(),
        )
    )

    professional, settings = load_notification_context(outcome)
    if settings is None:
        logger.info(
            "no outbound credentials for clinic, skipping notifications",
            extra={
                "extra_fields": safe_log_context(
                    appointment_id=outcome.appointment_id,
                    clinic_id=outcome.appointment.clinic_id,
                )
            },
        )
        return NotificationReport()

    confirmed = outcome.intent is ReplyIntent.CONFIRM
    params = _template_params(outcome)

    patient_notified = _send_and_record(
        settings=settings,
        outcome=outcome,
        number=recipient_number(outcome.sender_number),
        text=render(
            "patient_confirmed" if confirmed else "patient_cancelled",
            {**params, "nome": outcome.patient.full_name},
        ),
        message_type="patient_feedback",
    )

    professional_notified = False
    if professional is not None and professional.phone:
        professional_notified = _send_and_record(
            settings=settings,
            outcome=outcome,
            number=recipient_number(professional.phone),
            text=render(
                "professional_confirmed" if confirmed else "professional_cancelled",
                {**params, "paciente": outcome.patient.full_name},
            ),
            message_type=(
                "confirmation_notification" if confirmed else "cancellation_notification"
            ),
        )
    else:
        logger.info(
            "professional has no number on file",
            extra={"extra_fields": safe_log_context(appointment_id=outcome.appointment_id)},
        )

    return NotificationReport(
        patient_notified=patient_notified,
        professional_notified=professional_notified,
    )
