"""Scheduled patient messages - confirmation requests, reminders and follow-ups.

Every kind renders the clinic's template (or a built-in default), sends it
through the clinic's Evolution instance, writes an audit row and stamps the
appointment so later dispatch runs skip it:

- confirmation: scheduled appointments, confirmation_hours_before ahead. The
  assigned professional also gets a new-appointment notice.
- reminder: confirmed appointments, reminder_hours_before ahead.
- followup: completed appointments, followup_hours_after later.

Security: NEVER log phones or rendered text. Use ids only.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable

from physiohub.domain.appointments import (
    AppointmentCandidate,
    PatientCandidate,
    ProfessionalContact,
)
from physiohub.infra.db import txn
from physiohub.infra.repositories.appointments_repository import (
    get_appointment,
    list_due_for_confirmation,
    list_due_for_followup,
    list_due_for_reminder,
    mark_confirmation_sent,
    mark_followup_sent,
    mark_reminder_sent,
)
from physiohub.infra.repositories.message_logs_repository import insert_message_log
from physiohub.infra.repositories.patients_repository import get_patient
from physiohub.infra.repositories.professionals_repository import get_professional_contact
from physiohub.infra.time import to_clinic_local, utc_now
from physiohub.infra.whatsapp_settings import (
    WhatsAppSettings,
    get_whatsapp_settings,
    list_active_settings,
)
from physiohub.observability.correlation import get_correlation_id
from physiohub.observability.logging import get_logger
from physiohub.observability.redaction import safe_log_context
from physiohub.whatsapp.models import MessageLogEntry
from physiohub.whatsapp.outbound import recipient_number, send_text_via_evolution
from physiohub.whatsapp.templates import (
    DEFAULT_CONFIRMATION_TEMPLATE,
    DEFAULT_FOLLOWUP_TEMPLATE,
    DEFAULT_REMINDER_TEMPLATE,
    DEFAULT_TREATMENT_TYPE,
    format_date_br,
    format_time_hm,
    professional_title,
    render,
    render_clinic_template,
)

logger = get_logger(__name__)

CONFIRMATION = "confirmation"
REMINDER = "reminder"
FOLLOWUP = "followup"
MESSAGE_TYPES = (CONFIRMATION, REMINDER, FOLLOWUP)

# Audit message_type of the professional's new-appointment notice
PROFESSIONAL_NOTIFICATION = "notification"

_DEFAULT_TEMPLATES = {
    CONFIRMATION: DEFAULT_CONFIRMATION_TEMPLATE,
    REMINDER: DEFAULT_REMINDER_TEMPLATE,
    FOLLOWUP: DEFAULT_FOLLOWUP_TEMPLATE,
}


class AppointmentNotFoundError(LookupError):
    pass


class PatientNotFoundError(LookupError):
    pass


class WhatsAppSettingsNotFoundError(Exception):
    """Clinic has no usable outbound credentials."""


class EvolutionSendError(Exception):
    """The provider did not accept the message."""


# ── Rendering ────────────────────────────────────────────


def patient_template(settings: WhatsAppSettings, message_type: str) -> str:
    """Clinic template for `message_type`, or the built-in default."""
    custom = {
        CONFIRMATION: settings.confirmation_template,
        REMINDER: settings.reminder_template,
        FOLLOWUP: settings.followup_template,
    }[message_type]
    return custom or _DEFAULT_TEMPLATES[message_type]


def build_patient_text(
    template: str,
    *,
    appointment: AppointmentCandidate,
    patient: PatientCandidate,
    professional_name: str,
) -> str:
    return render_clinic_template(
        template,
        {
            "nome": patient.full_name,
            "data": format_date_br(appointment.date),
            "horario": format_time_hm(appointment.time),
            "fisioterapeuta": professional_name,
            "title": professional_title(professional_name),
        },
    )


# ── Send ─────────────────────────────────────────────────


def _load_recipients(
    appointment: AppointmentCandidate,
) -> tuple[PatientCandidate, ProfessionalContact | None]:
    with txn() as cur:
        patient = get_patient(cur, appointment.patient_id) if appointment.patient_id else None
        professional = (
            get_professional_contact(cur, appointment.professional_id)
            if appointment.professional_id
            else None
        )

    if patient is None or not patient.phone:
        raise PatientNotFoundError(appointment.id)
    return patient, professional


def _log_message(
    appointment: AppointmentCandidate,
    number: str,
    text: str,
    *,
    message_type: str,
    status: str,
    message_id: str | None = None,
    error: str | None = None,
) -> None:
    try:
        with txn() as cur:
            insert_message_log(
                cur,
                MessageLogEntry(
                    appointment_id=appointment.id,
                    clinic_id=appointment.clinic_id,
                    patient_phone=number,
                    message_type=message_type,
                    content=text,
                    status=status,
                    external_message_id=message_id,
                    error_message=error,
                ),
            )
    except Exception:
        logger.exception(
            "message log insert failed",
            extra={
                "extra_fields": safe_log_context(
                    appointment_id=appointment.id, message_type=message_type
                )
            },
        )


def _send_and_log(
    appointment: AppointmentCandidate,
    settings: WhatsAppSettings,
    *,
    number: str,
    text: str,
    message_type: str,
) -> str | None:
    """Send one message and audit the attempt.

    Raises:
        EvolutionSendError: Provider call failed (audited as failed).
    """
    try:
        message_id = send_text_via_evolution(
            settings=settings,
            number=number,
            text=text,
            correlation_id=get_correlation_id(),
        )
    except Exception as e:
        logger.warning(
            "scheduled message send failed",
            extra={
                "extra_fields": safe_log_context(
                    appointment_id=appointment.id,
                    clinic_id=appointment.clinic_id,
                    message_type=message_type,
                    error_type=type(e).__name__,
                )
            },
        )
        _log_message(
            appointment, number, text,
            message_type=message_type, status="failed", error=type(e).__name__,
        )
        raise EvolutionSendError(appointment.id) from e

    _log_message(
        appointment, number, text,
        message_type=message_type, status="delivered", message_id=message_id,
    )
    return message_id


def _stamp_sent(message_type: str, appointment_id: str, message_id: str | None) -> None:
    """Record the send on the appointment. A failure is logged, not raised.

    The message already went out; an unstamped appointment is picked up
    again by the next dispatch run.
    """
    sent_at = utc_now()
    try:
        with txn() as cur:
            if message_type == CONFIRMATION:
                mark_confirmation_sent(
                    cur, appointment_id=appointment_id, message_id=message_id, sent_at=sent_at
                )
            elif message_type == REMINDER:
                mark_reminder_sent(cur, appointment_id=appointment_id, sent_at=sent_at)
            else:
                mark_followup_sent(cur, appointment_id=appointment_id, sent_at=sent_at)
    except Exception:
        logger.exception(
            "sent stamp failed",
            extra={
                "extra_fields": safe_log_context(
                    appointment_id=appointment_id, message_type=message_type
                )
            },
        )


def notify_professional_new_appointment(
    appointment: AppointmentCandidate,
    patient: PatientCandidate,
    professional: ProfessionalContact | None,
    settings: WhatsAppSettings,
) -> bool:
    """Tell the professional a patient was asked to confirm. Best-effort.

    Returns:
        True if the notice went out, False if skipped or failed (logged).
    """
    if professional is None or not professional.phone:
        logger.info(
            "professional has no number on file",
            extra={"extra_fields": safe_log_context(appointment_id=appointment.id)},
        )
        return False

    text = render(
        "professional_new_appointment",
        {
            "title": professional_title(professional.full_name),
            "fisioterapeuta": professional.full_name,
            "paciente": patient.full_name,
            "data": format_date_br(appointment.date),
            "horario": format_time_hm(appointment.time),
            "tipo": appointment.treatment_type or DEFAULT_TREATMENT_TYPE,
        },
    )
    try:
        _send_and_log(
            appointment,
            settings,
            number=recipient_number(professional.phone),
            text=text,
            message_type=PROFESSIONAL_NOTIFICATION,
        )
    except EvolutionSendError:
        return False
    return True


def send_patient_message(
    appointment: AppointmentCandidate,
    message_type: str,
    settings: WhatsAppSettings | None = None,
) -> str | None:
    """Send a confirmation request, reminder or follow-up for a loaded appointment.

    Order: provider send, audit row, sent stamp, then (confirmations only)
    the professional's new-appointment notice.

    Returns:
        Provider message id (may be None).

    Raises:
        ValueError: Unknown message_type.
        PatientNotFoundError: Appointment has no patient with a phone.
        WhatsAppSettingsNotFoundError: Clinic cannot send messages.
        EvolutionSendError: Provider call failed.
    """
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Unknown message type: {message_type}")

    patient, professional = _load_recipients(appointment)

    if settings is None:
        settings = get_whatsapp_settings(appointment.clinic_id)
    if settings is None:
        raise WhatsAppSettingsNotFoundError(appointment.clinic_id)

    text = build_patient_text(
        patient_template(settings, message_type),
        appointment=appointment,
        patient=patient,
        professional_name=professional.full_name if professional else "",
    )
    message_id = _send_and_log(
        appointment,
        settings,
        number=recipient_number(patient.phone),
        text=text,
        message_type=message_type,
    )
    _stamp_sent(message_type, appointment.id, message_id)

    logger.info(
        "scheduled message sent",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                appointment_id=appointment.id,
                clinic_id=appointment.clinic_id,
                message_type=message_type,
            )
        },
    )

    if message_type == CONFIRMATION:
        notify_professional_new_appointment(appointment, patient, professional, settings)
    return message_id


def send_appointment_message(appointment_id: str, message_type: str) -> str | None:
    """Load an appointment by id and send it `message_type`.

    Raises:
        AppointmentNotFoundError: Unknown appointment.
        See send_patient_message for the rest.
    """
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Unknown message type: {message_type}")
    with txn() as cur:
        appointment = get_appointment(cur, appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError(appointment_id)
    return send_patient_message(appointment, message_type)


def send_confirmation_request(appointment_id: str) -> str | None:
    return send_appointment_message(appointment_id, CONFIRMATION)


# ── Dispatch ─────────────────────────────────────────────


ListDue = Callable[..., list[AppointmentCandidate]]


def _dispatch(
    message_type: str,
    clinics: list[WhatsAppSettings],
    target_date: Callable[[WhatsAppSettings], date],
    list_due: ListDue,
) -> dict[str, int]:
    """Send `message_type` to every due appointment of every clinic.

    A failing clinic lookup or appointment counts as one error and never
    aborts the run.
    """
    processed = successful = errors = 0

    for settings in clinics:
        try:
            with txn() as cur:
                due = list_due(cur, clinic_id=settings.clinic_id, target_date=target_date(settings))
        except Exception as e:
            errors += 1
            logger.warning(
                "due appointment lookup failed",
                extra={
                    "extra_fields": safe_log_context(
                        clinic_id=settings.clinic_id,
                        message_type=message_type,
                        error_type=type(e).__name__,
                    )
                },
            )
            continue

        for appointment in due:
            processed += 1
            try:
                send_patient_message(appointment, message_type, settings)
                successful += 1
            except Exception as e:
                errors += 1
                logger.warning(
                    "dispatch item failed",
                    extra={
                        "extra_fields": safe_log_context(
                            appointment_id=appointment.id,
                            clinic_id=settings.clinic_id,
                            message_type=message_type,
                            error_type=type(e).__name__,
                        )
                    },
                )

    logger.info(
        "dispatch finished",
        extra={
            "extra_fields": safe_log_context(
                message_type=message_type,
                clinics=len(clinics),
                processed=processed,
                successful=successful,
                errors=errors,
            )
        },
    )
    return {"processed": processed, "successful": successful, "errors": errors}


def dispatch_due_confirmations(now: datetime | None = None) -> dict[str, int]:
    """Confirmation requests for appointments on the clinic-local date of
    now + confirmation_hours_before, for every active clinic."""
    now = now or utc_now()
    return _dispatch(
        CONFIRMATION,
        list_active_settings(),
        lambda s: to_clinic_local(now + timedelta(hours=s.confirmation_hours_before)).date(),
        list_due_for_confirmation,
    )


def dispatch_due_reminders(now: datetime | None = None) -> dict[str, int]:
    """Reminders for confirmed appointments on the clinic-local date of
    now + reminder_hours_before, for clinics with reminders enabled."""
    now = now or utc_now()
    return _dispatch(
        REMINDER,
        [s for s in list_active_settings() if s.reminder_enabled],
        lambda s: to_clinic_local(now + timedelta(hours=s.reminder_hours_before)).date(),
        list_due_for_reminder,
    )


def dispatch_due_followups(now: datetime | None = None) -> dict[str, int]:
    """Follow-ups for completed appointments on the clinic-local date of
    now - followup_hours_after, for clinics with follow-ups enabled."""
    now = now or utc_now()
    return _dispatch(
        FOLLOWUP,
        [s for s in list_active_settings() if s.followup_enabled],
        lambda s: to_clinic_local(now - timedelta(hours=s.followup_hours_after)).date(),
        list_due_for_followup,
    )
