"""WhatsApp webhook routes - patient replies via Evolution API.

Security:
- PII (sender jid, text) exists only in memory during webhook processing
- Logs contain NO PII: sender is logged as a short hash, text never
"""

import asyncio
import hmac
import os
from typing import Any

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from physiohub.domain.intents import ReplyIntent
from physiohub.domain.matching import MatchStatus
from physiohub.domain.parsing import classify_reply
from physiohub.domain.vocabulary import DEFAULT_LANGUAGE
from physiohub.observability.correlation import get_correlation_id
from physiohub.observability.logging import get_logger
from physiohub.observability.redaction import hash_identifier, safe_log_context
from physiohub.services.replies import AppointmentUpdateError, notify_reply, resolve_reply
from physiohub.whatsapp.evolution_adapter import (
    InvalidPayloadError,
    filter_message,
    parse_payload,
)

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)

_FILTER_MESSAGES = {
    "ignored": "Evento ignorado.",
    "empty": "Mensagem sem texto.",
}

_MISS_MESSAGES = {
    MatchStatus.NO_PATIENT: "Paciente não encontrado.",
    MatchStatus.NO_PENDING_APPOINTMENT: (
        "Nenhum agendamento pendente encontrado para este paciente."
    ),
}

_SUCCESS_MESSAGES = {
    ReplyIntent.CONFIRM: "Agendamento confirmado com sucesso.",
    ReplyIntent.CANCEL: "Agendamento cancelado com sucesso.",
}


def reply_language() -> str:
    return os.environ.get("REPLY_LANGUAGE", DEFAULT_LANGUAGE)


def _json(status_code: int, **body: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


def _secret_ok(provided: str | None) -> bool:
    """Check X-Webhook-Secret when EVOLUTION_WEBHOOK_SECRET is configured."""
    expected = os.environ.get("EVOLUTION_WEBHOOK_SECRET", "")
    if not expected:
        return True
    if not provided:
        return False
    # bytes: compare_digest rejects non-ASCII str
    return hmac.compare_digest(
        provided.encode("utf-8", "surrogateescape"), expected.encode("utf-8", "surrogateescape")
    )


async def _process_reply(request: Request, correlation_id: str) -> JSONResponse:
    # 1. Parse JSON
    try:
        body = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _json(400, success=False, error="JSON inválido.")

    # 2. Validate envelope
    try:
        envelope = parse_payload(body)
    except InvalidPayloadError as e:
        logger.warning(
            "invalid evolution envelope",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
        )
        error = "Payload inválido." if isinstance(body, dict) else "JSON inválido."
        return _json(400, success=False, error=error)

    # 3. Filter echoes, other events and empty text
    result = filter_message(envelope)
    if not result.proceed:
        logger.info(
            "evolution event skipped",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    event=envelope.event,
                    reason=result.reason,
                )
            },
        )
        return _json(200, success=True, message=_FILTER_MESSAGES[result.reason])

    message = result.message

    # 4. Classify (text discarded after this, never logged)
    intent = classify_reply(result.text, language=reply_language())
    logger.info(
        "evolution reply received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                sender_hash=hash_identifier(message.sender_identifier),
                message_id_prefix=message.external_message_id[:8],
                text_len=len(result.text),
                intent=intent.value,
            )
        },
    )
    if intent is ReplyIntent.UNRECOGNIZED:
        return _json(200, success=True, message="Resposta não processável.")

    # 5. Resolve and persist (authoritative)
    try:
        resolution = await asyncio.to_thread(resolve_reply, message, result.text, intent)
    except AppointmentUpdateError as e:
        logger.error(
            "appointment update failed, skipping notifications",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    appointment_id=e.appointment_id,
                )
            },
        )
        return _json(500, success=False, error="Erro ao processar confirmação.")

    if resolution.outcome is None:
        return _json(404, success=False, message=_MISS_MESSAGES[resolution.status])

    outcome = resolution.outcome

    # 6. Notify (best-effort, never fails the request)
    report = await asyncio.to_thread(notify_reply, outcome)

    logger.info(
        "evolution reply processed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                appointment_id=outcome.appointment_id,
                action=intent.action(),
                patient_notified=report.patient_notified,
                professional_notified=report.professional_notified,
            )
        },
    )
    return _json(
        200,
        success=True,
        message=_SUCCESS_MESSAGES[intent],
        processed=True,
        action=intent.action(),
        appointment_id=outcome.appointment_id,
        professional_notified=report.professional_notified,
    )


@router.post("/evolution")
@router.post("/response")
async def evolution_webhook(
    request: Request,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> JSONResponse:
    """Receive a patient reply from Evolution API.

    Returns:
        200 for ignored, empty, unrecognized or processed replies.
        400 if the body is not a valid envelope.
        401 if the webhook secret does not match.
        404 if no patient or pending appointment matches the sender.
        500 if the appointment update fails or anything unexpected happens.
    """
    correlation_id = get_correlation_id()

    try:
        if not _secret_ok(x_webhook_secret):
            logger.warning(
                "evolution webhook secret mismatch",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return _json(401, success=False, error="unauthorized")

        return await _process_reply(request, correlation_id)
    except Exception:
        logger.exception(
            "evolution webhook failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _json(500, success=False, error="Erro interno do servidor.")
