"""Clinic WhatsApp (Evolution API) settings.

Each clinic (tenant) stores its own Evolution instance credentials in
whatsapp_settings. Missing values fall back to environment variables so a
single-instance deployment works without per-clinic rows.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .db import fetchall, fetchone, txn

DEFAULT_CONFIRMATION_HOURS_BEFORE = 24
DEFAULT_REMINDER_HOURS_BEFORE = 2
DEFAULT_FOLLOWUP_HOURS_AFTER = 24

_SETTINGS_COLUMNS = (
    "clinic_id, base_url, instance_name, api_key, "
    "confirmation_template, confirmation_hours_before, "
    "reminder_enabled, reminder_template, reminder_hours_before, "
    "followup_enabled, followup_template, followup_hours_after"
)


@dataclass(frozen=True)
class WhatsAppSettings:
    """Outbound messaging configuration for a clinic.

    Attributes:
        clinic_id: Tenant the settings belong to.
        base_url: Evolution API base URL (no trailing slash).
        instance_name: Evolution instance used for sending.
        api_key: Evolution API token. NEVER logged.
        confirmation_template: Clinic template for confirmation requests.
        confirmation_hours_before: How far ahead confirmation requests go out.
        reminder_enabled: Send reminders for confirmed appointments.
        reminder_template: Clinic template for reminders.
        reminder_hours_before: How far ahead reminders go out.
        followup_enabled: Send follow-ups after completed appointments.
        followup_template: Clinic template for follow-ups.
        followup_hours_after: How long after the appointment follow-ups go out.
    """

    clinic_id: str
    base_url: str = ""
    instance_name: str = ""
    api_key: str = ""
    confirmation_template: str | None = None
    confirmation_hours_before: int = DEFAULT_CONFIRMATION_HOURS_BEFORE
    reminder_enabled: bool = False
    reminder_template: str | None = None
    reminder_hours_before: int = DEFAULT_REMINDER_HOURS_BEFORE
    followup_enabled: bool = False
    followup_template: str | None = None
    followup_hours_after: int = DEFAULT_FOLLOWUP_HOURS_AFTER

    def has_credentials(self) -> bool:
        return bool(self.base_url and self.instance_name and self.api_key)


def get_whatsapp_settings(clinic_id: str) -> WhatsAppSettings | None:
    """Load active WhatsApp settings for a clinic.

    Priority:
    1. Most recent active whatsapp_settings row for the clinic
    2. Environment fallbacks (EVOLUTION_BASE_URL, EVOLUTION_INSTANCE,
       EVOLUTION_API_KEY) for empty columns or a missing row

    Returns:
        WhatsAppSettings, or None when neither source has credentials.
    """
    with txn() as cur:
        row = fetchone(
            cur,
            f"""
            SELECT {_SETTINGS_COLUMNS}
            FROM whatsapp_settings
            WHERE clinic_id = %s AND is_active
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (clinic_id,),
        )

    settings = _merge_with_env(clinic_id, row)
    return settings if settings.has_credentials() else None


def list_active_settings() -> list[WhatsAppSettings]:
    """All active clinic settings that can send messages (one per clinic)."""
    with txn() as cur:
        rows = fetchall(
            cur,
            f"""
            SELECT DISTINCT ON (clinic_id) {_SETTINGS_COLUMNS}
            FROM whatsapp_settings
            WHERE is_active
            ORDER BY clinic_id, created_at DESC
            """,
        )

    merged = [_merge_with_env(str(row[0]), row) for row in rows]
    return [s for s in merged if s.has_credentials()]


def _or_default(value: int | None, default: int) -> int:
    return value if value is not None else default


def _merge_with_env(clinic_id: str, row: tuple | None) -> WhatsAppSettings:
    """Merge a settings row with environment fallbacks."""
    (
        base_url,
        instance_name,
        api_key,
        confirmation_template,
        confirmation_hours_before,
        reminder_enabled,
        reminder_template,
        reminder_hours_before,
        followup_enabled,
        followup_template,
        followup_hours_after,
    ) = row[1:] if row else (None,) * 11
    base_url = base_url or os.environ.get("EVOLUTION_BASE_URL", "")

    return WhatsAppSettings(
        clinic_id=clinic_id,
        base_url=base_url.rstrip("/"),
        instance_name=instance_name or os.environ.get("EVOLUTION_INSTANCE", ""),
        api_key=api_key or os.environ.get("EVOLUTION_API_KEY", ""),
        confirmation_template=confirmation_template or None,
        confirmation_hours_before=_or_default(
            confirmation_hours_before, DEFAULT_CONFIRMATION_HOURS_BEFORE
        ),
        reminder_enabled=bool(reminder_enabled),
        reminder_template=reminder_template or None,
        reminder_hours_before=_or_default(reminder_hours_before, DEFAULT_REMINDER_HOURS_BEFORE),
        followup_enabled=bool(followup_enabled),
        followup_template=followup_template or None,
        followup_hours_after=_or_default(followup_hours_after, DEFAULT_FOLLOWUP_HOURS_AFTER),
    )
