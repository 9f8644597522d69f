"""Worker routes for scheduled patient messages.

Dispatch routes are called by Cloud Scheduler; single sends by staff tooling.
"""

from typing import Callable, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from physiohub.api.task_auth import require_task_auth
from physiohub.observability.correlation import get_correlation_id
from physiohub.observability.logging import get_logger
from physiohub.observability.redaction import safe_log_context
from physiohub.services.patient_messages import (
    EvolutionSendError,
    WhatsAppSettingsNotFoundError,
    dispatch_due_confirmations,
    dispatch_due_followups,
    dispatch_due_reminders,
    send_appointment_message,
    send_confirmation_request,
)

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


class SendConfirmationRequest(BaseModel):
    appointment_id: str


class SendMessageRequest(BaseModel):
    appointment_id: str
    message_type: Literal["confirmation", "reminder", "followup"]


def _send(appointment_id: str, message_type: str, send: Callable[[], str | None]) -> JSONResponse:
    """Run one send and map service errors to HTTP responses.

    Returns:
        200 with the provider message id.
        404 if the appointment or its patient is missing.
        400 if the clinic has no WhatsApp settings.
        502 if the provider call fails.
    """
    log_ctx = safe_log_context(
        correlationId=get_correlation_id(),
        appointment_id=appointment_id,
        message_type=message_type,
    )
    logger.info("send-message task received", extra={"extra_fields": log_ctx})

    try:
        message_id = send()
    except LookupError as e:
        logger.warning(
            "send-message target not found",
            extra={"extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)},
        )
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Agendamento ou paciente não encontrado."},
        )
    except WhatsAppSettingsNotFoundError:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Configurações do WhatsApp não encontradas."},
        )
    except EvolutionSendError:
        return JSONResponse(
            status_code=502,
            content={"success": False, "error": "Falha ao enviar mensagem."},
        )

    return JSONResponse(
        status_code=200,
        content={"success": True, "message_id": message_id},
    )


@router.post("/confirmations/send")
def send_confirmation(req: SendConfirmationRequest) -> JSONResponse:
    """Send the confirmation request for one appointment."""
    return _send(
        req.appointment_id,
        "confirmation",
        lambda: send_confirmation_request(req.appointment_id),
    )


@router.post("/messages/send")
def send_message(req: SendMessageRequest) -> JSONResponse:
    """Send a confirmation request, reminder or follow-up for one appointment."""
    return _send(
        req.appointment_id,
        req.message_type,
        lambda: send_appointment_message(req.appointment_id, req.message_type),
    )


def _dispatch(message_type: str, run: Callable[[], dict[str, int]]) -> dict:
    logger.info(
        "dispatch task received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(), message_type=message_type
            )
        },
    )
    return {"success": True, **run()}


@router.post("/confirmations/dispatch")
def dispatch_confirmations() -> dict:
    """Send every confirmation request that is due now."""
    return _dispatch("confirmation", dispatch_due_confirmations)


@router.post("/reminders/dispatch")
def dispatch_reminders() -> dict:
    """Send every reminder that is due now."""
    return _dispatch("reminder", dispatch_due_reminders)


@router.post("/followups/dispatch")
def dispatch_followups() -> dict:
    """Send every follow-up that is due now."""
    return _dispatch("followup", dispatch_due_followups)
