"""Shared test helper functions for PhysioHub tests.

Regular functions and classes (not fixtures), importable from any test module.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, time, timezone
from unittest.mock import MagicMock

from physiohub.domain.appointments import (
    AppointmentCandidate,
    AppointmentStatus,
    PatientCandidate,
)
from physiohub.domain.intents import ReplyIntent
from physiohub.whatsapp.models import IncomingMessage

SENDER_JID = "5566996525791@s.whatsapp.net"


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def debug(self, *args, **kwargs):
        self._record("debug", *args, **kwargs)

    def messages(self) -> list[str]:
        return [args[0] for _, args, _ in self.calls if args]

    def get_all_logged_content(self) -> str:
        """Concatenate all args and kwargs from all calls into one string."""
        parts = []
        for _, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)


def fake_txn(cur: MagicMock | None = None):
    """Build a txn() replacement that yields `cur` (a MagicMock by default)."""
    cur = cur if cur is not None else MagicMock()

    @contextmanager
    def _txn(conn=None):
        yield cur

    return _txn


def make_patient(
    patient_id: str = "pat-1",
    *,
    clinic_id: str = "clinic-1",
    full_name: str = "Maria Souza",
    phone: str = "6696525791",
) -> PatientCandidate:
    return PatientCandidate(id=patient_id, full_name=full_name, clinic_id=clinic_id, phone=phone)


def make_appointment(
    appointment_id: str = "appt-1",
    *,
    day: date = date(2026, 3, 10),
    at: time = time(14, 30),
    clinic_id: str = "clinic-1",
    patient_id: str | None = "pat-1",
    professional_id: str | None = "prof-1",
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
) -> AppointmentCandidate:
    return AppointmentCandidate(
        id=appointment_id,
        date=day,
        time=at,
        professional_id=professional_id,
        clinic_id=clinic_id,
        status=status,
        patient_id=patient_id,
    )


def make_message(
    sender: str = SENDER_JID,
    text: str = "Sim",
    message_id: str = "MSG-0001-ABCDEF",
) -> IncomingMessage:
    return IncomingMessage(
        sender_identifier=sender,
        raw_text=text,
        is_echo=False,
        external_message_id=message_id,
        event="messages.upsert",
        instance="clinic-instance",
    )


def make_outcome(intent: ReplyIntent = ReplyIntent.CONFIRM, **appointment_kwargs):
    """Build a ConfirmationOutcome for notify tests."""
    from physiohub.services.replies import ConfirmationOutcome

    return ConfirmationOutcome(
        appointment=make_appointment(**appointment_kwargs),
        patient=make_patient(),
        intent=intent,
        resolved_status=intent.target_status(),
        message=make_message(),
        text="Sim",
        responded_at=datetime(2026, 3, 9, 12, 0, tzinfo=timezone.utc),
    )


def evolution_payload(
    text: str | None = "Sim",
    *,
    remote_jid: str = SENDER_JID,
    from_me: bool = False,
    event: str = "messages.upsert",
    extended: bool = False,
) -> dict:
    """Build an Evolution webhook envelope."""
    message: dict = {}
    if text is not None:
        message = {"extendedTextMessage": {"text": text}} if extended else {"conversation": text}
    return {
        "event": event,
        "instance": "clinic-instance",
        "data": {
            "key": {"remoteJid": remote_jid, "fromMe": from_me, "id": "MSG-0001-ABCDEF"},
            "message": message,
            "messageTimestamp": 1767225600,
            "pushName": "Maria",
        },
    }
