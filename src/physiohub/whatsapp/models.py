"""WhatsApp message models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MESSAGES_UPSERT_EVENT = "messages.upsert"


# ── Evolution webhook envelope ───────────────────────────


class _EvolutionModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EvolutionMessageKey(_EvolutionModel):
    remote_jid: str = Field("", alias="remoteJid")
    from_me: bool | None = Field(None, alias="fromMe")
    id: str = ""

    @field_validator("remote_jid", "id", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class EvolutionExtendedText(_EvolutionModel):
    text: str | None = None


class EvolutionMessageContent(_EvolutionModel):
    conversation: str | None = None
    extended_text_message: EvolutionExtendedText | None = Field(
        None, alias="extendedTextMessage"
    )


class EvolutionMessageData(_EvolutionModel):
    key: EvolutionMessageKey = Field(default_factory=EvolutionMessageKey)
    message: EvolutionMessageContent | None = None
    message_timestamp: int | str | None = Field(None, alias="messageTimestamp")
    push_name: str | None = Field(None, alias="pushName")

    @field_validator("key", mode="before")
    @classmethod
    def _null_key(cls, value: Any) -> Any:
        return {} if value is None else value


class EvolutionWebhookPayload(_EvolutionModel):
    """Evolution API event envelope. Unknown fields are ignored."""

    event: str = ""
    instance: str = ""
    data: EvolutionMessageData = Field(default_factory=EvolutionMessageData)

    @field_validator("data", mode="before")
    @classmethod
    def _null_data(cls, value: Any) -> Any:
        return {} if value is None else value


# ── In-memory message objects ────────────────────────────


@dataclass(frozen=True)
class IncomingMessage:
    """Inbound message extracted from a webhook.

    ATENÇÃO PII:
    - `sender_identifier`, `raw_text` and `push_name` are PII
    - Use only in memory during the request
    - NEVER log
    """

    sender_identifier: str
    raw_text: str
    is_echo: bool
    external_message_id: str
    event: str = ""
    instance: str = ""
    push_name: str | None = None
    message_timestamp: int | str | None = None


@dataclass(frozen=True)
class FilterResult:
    """Outcome of the inbound message filter.

    `reason` is "accepted", "ignored" (non-message event or echo) or
    "empty" (no text after trimming).
    """

    proceed: bool
    text: str
    reason: str
    message: IncomingMessage | None = None


@dataclass(frozen=True)
class MessageLogEntry:
    """Append-only audit row for an inbound reply or an outbound send attempt."""

    appointment_id: str | None
    clinic_id: str | None
    patient_phone: str
    message_type: str
    content: str
    status: str
    external_message_id: str | None = None
    timestamp: datetime | None = None
    response_content: str | None = None
    error_message: str | None = None
