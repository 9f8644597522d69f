"""Tests for WhatsApp message templates."""

from datetime import date, time

import pytest

from physiohub.whatsapp.templates import (
    DEFAULT_CONFIRMATION_TEMPLATE,
    DEFAULT_FOLLOWUP_TEMPLATE,
    DEFAULT_REMINDER_TEMPLATE,
    format_date_br,
    format_time_hm,
    professional_title,
    render,
    render_clinic_template,
)


class TestRender:
    def test_patient_confirmed(self):
        text = render("patient_confirmed", {"nome": "João", "data": "10/03/2026", "horario": "14:30"})
        assert "João" in text
        assert "10/03/2026" in text
        assert "14:30" in text

    def test_professional_new_appointment(self):
        text = render(
            "professional_new_appointment",
            {"title": "a Dra.", "fisioterapeuta": "Ana Lima", "paciente": "João",
             "data": "10/03/2026", "horario": "14:30", "tipo": "Pilates"},
        )
        assert "Olá a Dra. Ana Lima!" in text
        assert "Paciente: João" in text
        assert "Tipo: Pilates" in text

    def test_unknown_template(self):
        with pytest.raises(ValueError, match="Unknown template"):
            render("nope", {})

    def test_disallowed_param(self):
        with pytest.raises(ValueError, match="Disallowed"):
            render("professional_cancelled", {"paciente": "x", "data": "d", "horario": "h",
                                              "telefone": "66999990000"})


class TestClinicTemplate:
    def test_substitutes_placeholders(self):
        text = render_clinic_template(
            "Olá {nome}, {title} {fisioterapeuta} espera você em {data} às {horario}.",
            {"nome": "João", "title": "a Dra.", "fisioterapeuta": "Ana", "data": "10/03/2026",
             "horario": "14:30"},
        )
        assert text == "Olá João, a Dra. Ana espera você em 10/03/2026 às 14:30."

    def test_stray_braces_and_unknown_placeholders_kept(self):
        text = render_clinic_template("{nome} {x} }{", {"nome": "João"})
        assert text == "João {x} }{"

    def test_default_template_has_all_placeholders(self):
        for key in ("{nome}", "{title}", "{fisioterapeuta}", "{data}", "{horario}"):
            assert key in DEFAULT_CONFIRMATION_TEMPLATE

    def test_reminder_and_followup_defaults(self):
        params = {"nome": "João", "title": "o Dr.", "fisioterapeuta": "Carlos",
                  "data": "10/03/2026", "horario": "14:30"}
        reminder = render_clinic_template(DEFAULT_REMINDER_TEMPLATE, params)
        followup = render_clinic_template(DEFAULT_FOLLOWUP_TEMPLATE, params)
        assert "{" not in reminder
        assert "o Dr. Carlos" in reminder
        assert followup.startswith("Olá João!")


class TestFormatting:
    def test_date(self):
        assert format_date_br(date(2026, 3, 5)) == "05/03/2026"

    def test_time(self):
        assert format_time_hm(time(9, 5, 30)) == "09:05"


class TestProfessionalTitle:
    @pytest.mark.parametrize("name", ["Ana Lima", "Fernanda Alves", "Maria Clara", "Mariane Souza"])
    def test_female(self, name):
        assert professional_title(name) == "a Dra."

    @pytest.mark.parametrize("name", ["Carlos Silva", "João Pedro", "", "   "])
    def test_male_or_unknown(self, name):
        assert professional_title(name) == "o Dr."
