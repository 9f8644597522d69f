"""Shared pytest fixtures for PhysioHub tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_service_env(monkeypatch):
    """Start every test from an unconfigured environment.

    Settings are read from env at call time, so a developer's shell (or a
    previous test) must not leak credentials or secrets into assertions.
    """
    for name in (
        "EVOLUTION_BASE_URL",
        "EVOLUTION_INSTANCE",
        "EVOLUTION_API_KEY",
        "EVOLUTION_WEBHOOK_SECRET",
        "TASKS_OIDC_AUDIENCE",
        "TASKS_OIDC_SERVICE_ACCOUNT",
        "INTERNAL_TASK_SECRET",
        "REPLY_LANGUAGE",
        "APPOINTMENT_LOOKAHEAD_DAYS",
        "CLINIC_TIMEZONE",
        "DEFAULT_AREA_CODE",
    ):
        monkeypatch.delenv(name, raising=False)
