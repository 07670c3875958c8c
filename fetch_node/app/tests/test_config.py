import pytest
from pydantic import ValidationError

from fetch_node.app.config import Settings, validate_configuration


def test_defaults(monkeypatch):
    for name in ("KEYFETCH_REGION", "PORT", "IDENTITY_API_URL", "SERVICE_SECRET", "USAGE_REPORT_INTERVAL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.KEYFETCH_REGION == "unknown"
    assert settings.PORT == 3000
    assert settings.verify_url == "https://keykeeper.world/api/v1/services/verify"
    assert settings.usage_report_interval_seconds == 30.0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("KEYFETCH_REGION", "ap-sydney")
    monkeypatch.setenv("USAGE_REPORT_INTERVAL", "5000")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.KEYFETCH_REGION == "ap-sydney"
    assert settings.usage_report_interval_seconds == 5.0
    assert settings.LOG_LEVEL == "DEBUG"


def test_rejects_bad_identity_url():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, IDENTITY_API_URL="ftp://identity")


def test_rejects_bad_log_level():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, LOG_LEVEL="LOUD")


def test_configuration_warnings():
    status = validate_configuration(Settings(_env_file=None, KEYFETCH_REGION="mars", SERVICE_SECRET="dev-service-secret"))

    assert any("SERVICE_SECRET" in w for w in status["warnings"])
    assert any("mars" in w for w in status["warnings"])


def test_configuration_clean():
    status = validate_configuration(
        Settings(_env_file=None, KEYFETCH_REGION="us-east", SERVICE_SECRET="real-secret")
    )

    assert status["warnings"] == []
    assert status["region"] == "us-east"
    assert "valid" not in status
