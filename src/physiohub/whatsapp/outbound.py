"""Outbound WhatsApp messaging via Evolution API.

Security: NEVER log the number or text. Only log hashes and lengths.
"""

import json
import os
import time
import urllib.error
import urllib.request
from typing import Any

from physiohub.domain.phones import DEFAULT_AREA_CODE, format_whatsapp_number
from physiohub.infra.whatsapp_settings import WhatsAppSettings
from physiohub.observability.logging import get_logger
from physiohub.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 5

# Retry config
MAX_RETRIES = 1
RETRY_DELAY = 0.2


def recipient_number(phone: str) -> str:
    """Provider-ready number for a stored phone.

    Numbers stored without area code get DEFAULT_AREA_CODE (env, default 66).
    """
    return format_whatsapp_number(phone, os.environ.get("DEFAULT_AREA_CODE", DEFAULT_AREA_CODE))


def _send_url(settings: WhatsAppSettings) -> str:
    # Evolution API pattern: {base_url}/message/sendText/{instance}
    return f"{settings.base_url.rstrip('/')}/message/sendText/{settings.instance_name}"


def _do_request(url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    req = urllib.request.Request(url, data=data, headers=headers, method="POST")
    with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT) as resp:
        body = resp.read().decode()
    if not body:
        return {}
    try:
        parsed = json.loads(body)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def extract_message_id(response: dict[str, Any]) -> str | None:
    """Provider message id from an Evolution sendText response (key.id)."""
    key = response.get("key")
    if isinstance(key, dict) and key.get("id"):
        return str(key["id"])
    return None


def send_text_via_evolution(
    *,
    settings: WhatsAppSettings,
    number: str,
    text: str,
    correlation_id: str | None = None,
) -> str | None:
    """Send text message via Evolution API.

    Args:
        settings: Clinic settings with base_url, instance_name and api_key.
        number: Recipient number, digits with country code. NEVER logged.
        text: Message text. NEVER logged.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        Provider message id, or None when the response carries none.

    Raises:
        RuntimeError: If settings lack credentials.
        urllib.error.URLError: On network/HTTP errors after retry.
    """
    if not settings.has_credentials():
        raise RuntimeError("Missing Evolution config: base_url, instance_name, api_key")

    url = _send_url(settings)

    # Evolution API payload format
    payload = {
        "number": number,
        "text": text,
    }

    headers = {
        "Content-Type": "application/json",
        "apikey": settings.api_key,
    }

    data = json.dumps(payload).encode("utf-8")

    # Safe logging context - NEVER include number or text
    log_ctx = safe_log_context(
        correlationId=correlation_id or "",
        clinic_id=settings.clinic_id,
        to_hash=hash_identifier(number),
        text_len=len(text),
    )

    logger.info("sending outbound message", extra={"extra_fields": log_ctx})

    last_error: Exception | None = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            response = _do_request(url, data, headers)
            message_id = extract_message_id(response)
            logger.info(
                "outbound message sent",
                extra={
                    "extra_fields": safe_log_context(
                        **log_ctx, attempt=attempt, has_message_id=message_id is not None
                    )
                },
            )
            return message_id
        except (urllib.error.URLError, urllib.error.HTTPError, TimeoutError) as e:
            last_error = e
            # Check if retryable (network error or 5xx)
            is_5xx = isinstance(e, urllib.error.HTTPError) and 500 <= e.code < 600
            is_network = not isinstance(e, urllib.error.HTTPError)

            if attempt < MAX_RETRIES and (is_5xx or is_network):
                logger.warning(
                    "outbound send failed, retrying",
                    extra={
                        "extra_fields": safe_log_context(
                            **log_ctx, attempt=attempt, error_type=type(e).__name__
                        )
                    },
                )
                time.sleep(RETRY_DELAY)
                continue

            # No more retries or non-retryable error
            logger.error(
                "outbound send failed",
                extra={
                    "extra_fields": safe_log_context(
                        **log_ctx, attempt=attempt, error_type=type(e).__name__
                    )
                },
            )
            raise

    # Should not reach here, but for safety
    if last_error:
        raise last_error
    return None
