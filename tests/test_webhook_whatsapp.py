"""Tests for POST /webhooks/whatsapp/evolution (services mocked, no DB)."""

import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from physiohub.api.factory import create_app
from physiohub.domain.intents import ReplyIntent
from physiohub.domain.matching import MatchStatus
from physiohub.services.replies import (
    AppointmentUpdateError,
    NotificationReport,
    ReplyResolution,
)
from helpers import LogRecorder, SENDER_JID, evolution_payload, make_outcome

ROUTE = "physiohub.api.routes.webhooks_whatsapp"
URL = "/webhooks/whatsapp/evolution"


@pytest.fixture
def client():
    return TestClient(create_app(role="public"))


def _matched(intent=ReplyIntent.CONFIRM):
    return ReplyResolution(status=MatchStatus.MATCHED, outcome=make_outcome(intent), candidate_count=1)


class TestIgnoredEvents:
    def test_echo(self, client):
        with patch(f"{ROUTE}.resolve_reply") as resolve:
            response = client.post(URL, json=evolution_payload("Sim", from_me=True))
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Evento ignorado."}
        resolve.assert_not_called()

    def test_non_message_event(self, client):
        response = client.post(URL, json=evolution_payload("Sim", event="presence.update"))
        assert response.status_code == 200
        assert response.json()["message"] == "Evento ignorado."

    @pytest.mark.parametrize(
        "body",
        [
            {"event": "contacts.upsert", "data": [{"id": "x"}]},
            {"event": "chats.upsert", "data": None},
            {"event": "connection.update", "data": {"key": None}},
            {"event": "presence.update", "data": {"key": {"id": None}}},
        ],
    )
    def test_non_message_event_with_foreign_data(self, client, body):
        response = client.post(URL, json=body)
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Evento ignorado."}

    def test_message_event_with_null_data(self, client):
        response = client.post(URL, json={"event": "messages.upsert", "data": None})
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Mensagem sem texto."}

    def test_empty_text(self, client):
        response = client.post(URL, json=evolution_payload(None))
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Mensagem sem texto."}

    def test_unrecognized_text(self, client):
        with patch(f"{ROUTE}.resolve_reply") as resolve:
            response = client.post(URL, json=evolution_payload("talvez"))
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Resposta não processável."}
        resolve.assert_not_called()


class TestInvalidBodies:
    def test_invalid_json(self, client):
        response = client.post(URL, content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "JSON inválido."}

    def test_json_array(self, client):
        response = client.post(URL, json=[1, 2])
        assert response.status_code == 400
        assert response.json()["error"] == "JSON inválido."

    def test_wrong_envelope_shape(self, client):
        response = client.post(URL, json={"event": "messages.upsert", "data": []})
        assert response.status_code == 400
        assert response.json()["error"] == "Payload inválido."


class TestLookupMisses:
    def test_no_patient(self, client):
        with patch(
            f"{ROUTE}.resolve_reply",
            return_value=ReplyResolution(status=MatchStatus.NO_PATIENT),
        ), patch(f"{ROUTE}.notify_reply") as notify:
            response = client.post(URL, json=evolution_payload("Sim"))
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Paciente não encontrado."}
        notify.assert_not_called()

    def test_no_pending_appointment(self, client):
        with patch(
            f"{ROUTE}.resolve_reply",
            return_value=ReplyResolution(status=MatchStatus.NO_PENDING_APPOINTMENT, candidate_count=2),
        ):
            response = client.post(URL, json=evolution_payload("Sim"))
        assert response.status_code == 404
        assert response.json()["message"] == (
            "Nenhum agendamento pendente encontrado para este paciente."
        )


class TestProcessedReplies:
    def test_confirm(self, client):
        with patch(f"{ROUTE}.resolve_reply", return_value=_matched()) as resolve, patch(
            f"{ROUTE}.notify_reply",
            return_value=NotificationReport(patient_notified=True, professional_notified=True),
        ) as notify:
            response = client.post(URL, json=evolution_payload("Sim"))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Agendamento confirmado com sucesso.",
            "processed": True,
            "action": "confirmed",
            "appointment_id": "appt-1",
            "professional_notified": True,
        }
        message, text, intent = resolve.call_args.args
        assert message.sender_identifier == SENDER_JID
        assert text == "Sim"
        assert intent is ReplyIntent.CONFIRM
        notify.assert_called_once()

    def test_cancel(self, client):
        with patch(
            f"{ROUTE}.resolve_reply", return_value=_matched(ReplyIntent.CANCEL)
        ) as resolve, patch(f"{ROUTE}.notify_reply", return_value=NotificationReport()):
            response = client.post(URL, json=evolution_payload("não posso ir"))

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Agendamento cancelado com sucesso."
        assert body["action"] == "cancelled"
        assert body["professional_notified"] is False
        assert resolve.call_args.args[2] is ReplyIntent.CANCEL

    def test_response_alias_route(self, client):
        with patch(f"{ROUTE}.resolve_reply", return_value=_matched()), patch(
            f"{ROUTE}.notify_reply", return_value=NotificationReport()
        ):
            response = client.post("/webhooks/whatsapp/response", json=evolution_payload("👍"))
        assert response.status_code == 200
        assert response.json()["action"] == "confirmed"

    def test_reply_language_from_env(self, client, monkeypatch):
        monkeypatch.setenv("REPLY_LANGUAGE", "en")
        with patch(f"{ROUTE}.resolve_reply", return_value=_matched()) as resolve, patch(
            f"{ROUTE}.notify_reply", return_value=NotificationReport()
        ):
            response = client.post(URL, json=evolution_payload("Yes"))
        assert response.status_code == 200
        assert resolve.call_args.args[2] is ReplyIntent.CONFIRM


class TestFailureIsolation:
    def test_update_failure_returns_500_without_notifications(self, client):
        with patch(
            f"{ROUTE}.resolve_reply",
            side_effect=AppointmentUpdateError("appt-1", "no row updated"),
        ), patch(f"{ROUTE}.notify_reply") as notify:
            response = client.post(URL, json=evolution_payload("Sim"))

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Erro ao processar confirmação."}
        notify.assert_not_called()

    def test_unexpected_error_is_generic_500(self, client):
        with patch(f"{ROUTE}.resolve_reply", side_effect=RuntimeError("db host secret-host")):
            response = client.post(URL, json=evolution_payload("Sim"))

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Erro interno do servidor."}
        assert "secret-host" not in response.text

    def test_notification_failure_keeps_success(self, client):
        with patch(f"{ROUTE}.resolve_reply", return_value=_matched()), patch(
            f"{ROUTE}.notify_reply",
            return_value=NotificationReport(patient_notified=False, professional_notified=False),
        ):
            response = client.post(URL, json=evolution_payload("Sim"))
        assert response.status_code == 200
        assert response.json()["success"] is True


class TestWebhookSecret:
    def test_no_secret_configured_accepts(self, client):
        response = client.post(URL, json=evolution_payload("Sim", from_me=True))
        assert response.status_code == 200

    def test_missing_header_rejected(self, client, monkeypatch):
        monkeypatch.setenv("EVOLUTION_WEBHOOK_SECRET", "s3cret")
        response = client.post(URL, json=evolution_payload("Sim"))
        assert response.status_code == 401

    def test_wrong_header_rejected(self, client, monkeypatch):
        monkeypatch.setenv("EVOLUTION_WEBHOOK_SECRET", "s3cret")
        response = client.post(
            URL, json=evolution_payload("Sim"), headers={"X-Webhook-Secret": "nope"}
        )
        assert response.status_code == 401

    def test_non_ascii_header_rejected_as_json(self, client, monkeypatch):
        monkeypatch.setenv("EVOLUTION_WEBHOOK_SECRET", "s3cret")
        response = client.post(
            URL,
            json=evolution_payload("Sim"),
            headers={"X-Webhook-Secret": "é".encode("latin-1")},
        )
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "unauthorized"}

    def test_secret_check_failure_is_json_500(self, client, monkeypatch):
        monkeypatch.setenv("EVOLUTION_WEBHOOK_SECRET", "s3cret")
        with patch(f"{ROUTE}._secret_ok", side_effect=TypeError("boom")):
            response = client.post(
                URL, json=evolution_payload("Sim"), headers={"X-Webhook-Secret": "s3cret"}
            )
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Erro interno do servidor."}

    def test_matching_header_accepted(self, client, monkeypatch):
        monkeypatch.setenv("EVOLUTION_WEBHOOK_SECRET", "s3cret")
        response = client.post(
            URL,
            json=evolution_payload("Sim", from_me=True),
            headers={"X-Webhook-Secret": "s3cret"},
        )
        assert response.status_code == 200


class TestCors:
    def test_preflight(self, client):
        response = client.options(
            URL,
            headers={
                "Origin": "https://clinic.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_simple_request_has_cors_header(self, client):
        response = client.post(
            URL,
            json=evolution_payload("Sim", from_me=True),
            headers={"Origin": "https://clinic.example.com"},
        )
        assert response.headers["access-control-allow-origin"] == "*"


class TestNoPiiInLogs:
    def test_route_logs_no_text_or_number(self, client):
        recorder = LogRecorder()
        with patch(f"{ROUTE}.logger", recorder), patch(
            f"{ROUTE}.resolve_reply", return_value=_matched()
        ), patch(f"{ROUTE}.notify_reply", return_value=NotificationReport()):
            client.post(URL, json=evolution_payload("Sim, estarei presente"))

        logged = recorder.get_all_logged_content()
        assert recorder.calls
        assert "estarei" not in logged
        assert "5566996525791" not in logged
        assert "66996525791" not in logged


class TestBlockingWorkOffLoop:
    @staticmethod
    def _outside_event_loop():
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return True
        return False

    def test_services_run_in_worker_threads(self, client):
        seen = {}

        def resolve(*args):
            seen["resolve"] = self._outside_event_loop()
            return _matched()

        def notify(outcome):
            seen["notify"] = self._outside_event_loop()
            return NotificationReport()

        with patch(f"{ROUTE}.resolve_reply", side_effect=resolve), patch(
            f"{ROUTE}.notify_reply", side_effect=notify
        ):
            response = client.post(URL, json=evolution_payload("Sim"))

        assert response.status_code == 200
        assert seen == {"resolve": True, "notify": True}
