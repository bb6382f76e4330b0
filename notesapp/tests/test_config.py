"""Tests for the runtime posture checks run at settings load."""

import logging

import pytest

from notesapp.config import LEDGER_PLACEHOLDER_PROJECT_ID, Settings, validate_runtime_posture


def _settings(**overrides) -> Settings:
    values = {"ledger_project_id": "preprodKey", "cors_origins": "http://localhost:5173"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_configured_settings_pass_quietly(caplog):
    with caplog.at_level(logging.WARNING, logger="notesapp.config"):
        validate_runtime_posture(_settings())
    assert caplog.records == []


@pytest.mark.parametrize("project_id", ["", LEDGER_PLACEHOLDER_PROJECT_ID])
def test_missing_project_id_logs_in_development(caplog, project_id):
    with caplog.at_level(logging.WARNING, logger="notesapp.config"):
        validate_runtime_posture(_settings(ledger_project_id=project_id))
    assert "LEDGER_PROJECT_ID" in caplog.text


def test_missing_project_id_warns_in_production():
    with pytest.warns(UserWarning, match="LEDGER_PROJECT_ID"):
        validate_runtime_posture(_settings(environment="production", ledger_project_id=""))


def test_wildcard_cors_is_fatal_in_production():
    with pytest.raises(RuntimeError, match="CORS_ORIGINS"):
        validate_runtime_posture(_settings(environment="production", cors_origins="*"))


@pytest.mark.parametrize(
    "field", ["verification_batch_size", "verification_max_retries"]
)
def test_non_positive_limits_are_fatal(field):
    with pytest.raises(RuntimeError, match=field.upper()):
        validate_runtime_posture(_settings(**{field: 0}))


def test_defaults():
    cfg = Settings(_env_file=None)
    assert cfg.verification_interval_seconds == 30
    assert cfg.verification_expiry_interval_seconds == 300
    assert cfg.verification_batch_size == 10
    assert cfg.verification_max_retries == 10
    assert cfg.verification_pacing_delay_ms == 500
    assert cfg.ledger_timeout_seconds == 10.0
