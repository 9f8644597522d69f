"""WhatsApp message templates.

Text is rendered only in-memory at send time. Built-in templates use
str.format placeholders restricted to `allowed_params`; clinic-authored
templates (stored in whatsapp_settings) use literal {placeholder} tokens and
are rendered by plain substitution so stray braces never break them.
"""

from datetime import date, time
from typing import Any

TEMPLATES: dict[str, dict[str, Any]] = {
    "patient_confirmed": {
        "text": (
            "✅ Obrigado, {nome}! Sua consulta do dia {data} às {horario} "
            "está confirmada. Até lá!"
        ),
        "allowed_params": ["nome", "data", "horario"],
    },
    "patient_cancelled": {
        "text": (
            "❌ Tudo bem, {nome}. Sua consulta do dia {data} às {horario} "
            "foi cancelada. Entre em contato com a clínica para remarcar."
        ),
        "allowed_params": ["nome", "data", "horario"],
    },
    "professional_confirmed": {
        "text": (
            "✅ *CONSULTA CONFIRMADA*\n\n"
            "👤 Paciente: {paciente}\n"
            "📅 Data: {data}\n"
            "🕐 Horário: {horario}\n\n"
            "✅ O paciente CONFIRMOU a presença via WhatsApp!"
        ),
        "allowed_params": ["paciente", "data", "horario"],
    },
    "professional_cancelled": {
        "text": (
            "❌ *CONSULTA CANCELADA*\n\n"
            "👤 Paciente: {paciente}\n"
            "📅 Data: {data}\n"
            "🕐 Horário: {horario}\n\n"
            "❌ O paciente CANCELOU a consulta via WhatsApp!"
        ),
        "allowed_params": ["paciente", "data", "horario"],
    },
    "professional_new_appointment": {
        "text": (
            "🏥 *NOTIFICAÇÃO DE AGENDAMENTO*\n\n"
            "Olá {title} {fisioterapeuta}!\n\n"
            "Você tem um novo agendamento:\n"
            "👤 Paciente: {paciente}\n"
            "📅 Data: {data}\n"
            "🕐 Horário: {horario}\n"
            "📝 Tipo: {tipo}\n\n"
            "O paciente será notificado para confirmação."
        ),
        "allowed_params": ["title", "fisioterapeuta", "paciente", "data", "horario", "tipo"],
    },
}

# Used when a clinic has not written its own confirmation template
DEFAULT_CONFIRMATION_TEMPLATE = (
    "Olá {nome}! Você tem consulta com {title} {fisioterapeuta} no dia {data} "
    "às {horario}.\n\nResponda *SIM* para confirmar ou *NÃO* para cancelar."
)

DEFAULT_REMINDER_TEMPLATE = (
    "Lembrete: sua consulta com {title} {fisioterapeuta} é no dia {data} às {horario}. "
    "Compareça pontualmente!"
)

DEFAULT_FOLLOWUP_TEMPLATE = (
    "Olá {nome}! Como você está se sentindo após a consulta do dia {data}? "
    "Lembre-se de seguir as orientações."
)

DEFAULT_TREATMENT_TYPE = "Fisioterapia"

# Female first names that do not end in "a"
_FEMALE_NAME_MARKERS = ("maria", "ana")


def render(template_key: str, params: dict[str, Any]) -> str:
    """Render template with params. Validates allowed_params.

    Args:
        template_key: Template identifier.
        params: Parameters to interpolate (must be in allowed_params).

    Returns:
        Rendered text string.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    template = TEMPLATES[template_key]
    allowed = set(template["allowed_params"])
    provided = set(params.keys())

    extras = provided - allowed
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")

    return template["text"].format(**params)


def render_clinic_template(text: str, params: dict[str, str]) -> str:
    """Substitute {placeholder} tokens in a clinic-authored template.

    Unknown placeholders are left untouched.
    """
    for key, value in params.items():
        text = text.replace("{" + key + "}", value)
    return text


def format_date_br(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def format_time_hm(value: time) -> str:
    return value.strftime("%H:%M")


def professional_title(full_name: str) -> str:
    """Guess "a Dra." / "o Dr." from the professional's first name."""
    parts = full_name.split()
    first_name = parts[0].lower() if parts else ""
    if not first_name:
        return "o Dr."
    if first_name.endswith("a") or any(m in first_name for m in _FEMALE_NAME_MARKERS):
        return "a Dra."
    return "o Dr."
