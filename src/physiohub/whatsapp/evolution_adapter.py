"""Evolution API adapter - validate, normalize and filter webhook payloads."""

from typing import Any

from pydantic import ValidationError

from .models import (
    MESSAGES_UPSERT_EVENT,
    EvolutionWebhookPayload,
    FilterResult,
    IncomingMessage,
)


class InvalidPayloadError(Exception):
    """Raised when Evolution payload has invalid shape."""

    pass


def parse_payload(payload: Any) -> EvolutionWebhookPayload:
    """Validate the Evolution envelope.

    Missing or null fields take defaults. `data` is only validated for
    messages.upsert; other events carry their own shapes (lists for
    contacts.upsert, chats.upsert) and are reduced to event + instance.

    Raises:
        InvalidPayloadError: If the payload is not a JSON object or a
            messages.upsert envelope has wrongly typed fields.
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload is not an object")
    if payload.get("event") != MESSAGES_UPSERT_EVENT:
        payload = {k: payload[k] for k in ("event", "instance") if payload.get(k) is not None}
    try:
        return EvolutionWebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayloadError(f"invalid envelope ({e.error_count()} errors)") from None


def extract_text(envelope: EvolutionWebhookPayload) -> str:
    """Return the message body: plain conversation text, else extended text."""
    content = envelope.data.message
    if content is None:
        return ""
    for candidate in (
        content.conversation,
        content.extended_text_message.text if content.extended_text_message else None,
    ):
        if candidate and candidate.strip():
            return candidate
    return ""


def normalize(envelope: EvolutionWebhookPayload) -> IncomingMessage:
    """Build the in-memory IncomingMessage (contains PII)."""
    key = envelope.data.key
    return IncomingMessage(
        sender_identifier=key.remote_jid,
        raw_text=extract_text(envelope),
        is_echo=bool(key.from_me),
        external_message_id=key.id,
        event=envelope.event,
        instance=envelope.instance,
        push_name=envelope.data.push_name,
        message_timestamp=envelope.data.message_timestamp,
    )


def filter_message(envelope: EvolutionWebhookPayload) -> FilterResult:
    """Decide whether an event is a user text reply worth processing.

    Rejects non-message events, messages sent by the clinic itself (echoes)
    and messages whose text is empty after trimming. Pure.
    """
    if envelope.event != MESSAGES_UPSERT_EVENT or envelope.data.key.from_me:
        return FilterResult(proceed=False, text="", reason="ignored")

    message = normalize(envelope)
    text = message.raw_text.strip()
    if not text:
        return FilterResult(proceed=False, text="", reason="empty", message=message)

    return FilterResult(proceed=True, text=text, reason="accepted", message=message)
