"""Unit tests for loading panel settings."""
import pytest

from xui_inbounds.config import load_settings

ENV_KEYS = (
    "PANEL_HOST", "PANEL_PORT", "PANEL_BASE_PATH", "PANEL_USERNAME", "PANEL_PASSWORD",
    "PANEL_SCHEME", "PANEL_VERIFY_TLS", "REQUEST_TIMEOUT", "SHARE_ADDRESS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test without PANEL_* variables; anything .env loads is undone afterwards."""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def write_env(tmp_path, **values) -> str:
    path = tmp_path / ".env"
    path.write_text("".join(f"{key}={value}\n" for key, value in values.items()))
    return str(path)


class TestLoadSettings:
    """Test suite for environment configuration."""

    def test_minimal_env_file(self, tmp_path):
        settings = load_settings(write_env(tmp_path, PANEL_HOST="panel.example.com", PANEL_PORT="2053",
                                           PANEL_USERNAME="admin", PANEL_PASSWORD="secret"))
        assert settings.host == "panel.example.com"
        assert settings.port == 2053
        assert settings.base_path == ""
        assert settings.scheme == "https"
        assert settings.verify_tls is True
        assert settings.request_timeout == 60
        assert settings.share_address == "panel.example.com"

    def test_all_values(self, tmp_path):
        settings = load_settings(write_env(
            tmp_path, PANEL_HOST="10.0.0.2", PANEL_PORT="8443", PANEL_BASE_PATH="/secret/",
            PANEL_USERNAME="admin", PANEL_PASSWORD="secret", PANEL_SCHEME="http",
            PANEL_VERIFY_TLS="false", REQUEST_TIMEOUT="15", SHARE_ADDRESS="vpn.example.com",
        ))
        assert settings.base_path == "/secret/"
        assert settings.scheme == "http"
        assert settings.verify_tls is False
        assert settings.request_timeout == 15
        assert settings.share_address == "vpn.example.com"

    def test_environment_wins_over_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PANEL_HOST", "from-env")
        settings = load_settings(write_env(tmp_path, PANEL_HOST="from-file", PANEL_PORT="2053",
                                           PANEL_USERNAME="admin", PANEL_PASSWORD="secret"))
        assert settings.host == "from-env"

    @pytest.mark.parametrize("missing", ["PANEL_HOST", "PANEL_PORT", "PANEL_USERNAME", "PANEL_PASSWORD"])
    def test_required_values(self, tmp_path, missing):
        values = dict(PANEL_HOST="h", PANEL_PORT="2053", PANEL_USERNAME="admin", PANEL_PASSWORD="secret")
        del values[missing]
        with pytest.raises(ValueError, match=missing):
            load_settings(write_env(tmp_path, **values))

    def test_port_must_be_numeric(self, tmp_path):
        with pytest.raises(ValueError, match="integer"):
            load_settings(write_env(tmp_path, PANEL_HOST="h", PANEL_PORT="https",
                                    PANEL_USERNAME="admin", PANEL_PASSWORD="secret"))
