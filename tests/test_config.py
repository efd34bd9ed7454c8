"""Tests for consent-sync configuration."""

import json
import os

import pytest
from pydantic import ValidationError

from consent_sync.config import Config, RemoteSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and config files."""
    for key in list(os.environ):
        if key.startswith("CONSENT_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


class TestDefaults:

    def test_default_values(self):
        config = Config(load_env_file=False).load()

        assert config.get("remote.base_url") == "https://www.mocky.io/v2/"
        assert config.get("remote.endpoint") == "5e14e8122d00002b00167430"
        assert config.get("sync.max_attempts") == 3
        assert config.get("general.app_name") == "consent-sync"

    def test_missing_key_returns_default(self):
        config = Config(load_env_file=False)

        assert config.get("remote.nope", "fallback") == "fallback"
        assert config.get("nope.key") is None

    def test_section_lookup(self):
        config = Config(load_env_file=False)

        assert config.get("storage")["namespace"] == "consent"

    def test_validated_views(self):
        config = Config(load_env_file=False).load()

        assert config.remote_settings().timeout == 30.0
        assert config.retry_settings().exponential_base == 2.0
        assert config.storage_settings().db_path == "~/.consent_sync/consent.db"
        assert config.device_settings().device_id is None
        assert config.general_settings().json_logs is False


class TestSources:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CONSENT_REMOTE_BASE_URL", "https://consent.example.com/")
        monkeypatch.setenv("CONSENT_SYNC_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("CONSENT_GENERAL_JSON_LOGS", "true")

        config = Config(load_env_file=False).load()

        assert config.get("remote.base_url") == "https://consent.example.com/"
        assert config.get("sync.max_attempts") == 5
        assert config.get("general.json_logs") is True

    def test_numeric_device_id_from_env(self, monkeypatch):
        monkeypatch.setenv("CONSENT_DEVICE_DEVICE_ID", "12345678")

        config = Config(load_env_file=False).load()

        assert config.device_settings().device_id == "12345678"

    def test_json_file(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({
            "remote": {"endpoint": "consents"},
            "storage": {"namespace": "my_app"},
        }))

        config = Config(config_file=path, load_env_file=False).load()

        assert config.get("remote.endpoint") == "consents"
        assert config.get("remote.timeout") == 30.0
        assert config.get("storage.namespace") == "my_app"

    def test_json_file_auto_detected(self, tmp_path):
        (tmp_path / "consent_sync.json").write_text(json.dumps({"sync": {"max_attempts": 7}}))

        config = Config(load_env_file=False).load()

        assert config.get("sync.max_attempts") == 7

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"remote": {"endpoint": "from_file"}}))
        monkeypatch.setenv("CONSENT_REMOTE_ENDPOINT", "from_env")

        config = Config(config_file=path, load_env_file=False).load()

        assert config.get("remote.endpoint") == "from_env"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CONSENT_STORAGE_NAMESPACE=from_dotenv\n")

        try:
            config = Config().load()
        finally:
            os.environ.pop("CONSENT_STORAGE_NAMESPACE", None)

        assert config.get("storage.namespace") == "from_dotenv"

    def test_invalid_json_file_ignored(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        config = Config(config_file=path, load_env_file=False).load()

        assert config.get("remote.endpoint") == "5e14e8122d00002b00167430"


class TestValidation:

    def test_invalid_timeout(self):
        config = Config(load_env_file=False)
        config.set("remote.timeout", 0)

        with pytest.raises(ValidationError):
            config.remote_settings()

    def test_invalid_attempts(self):
        config = Config(load_env_file=False)
        config.set("sync.max_attempts", 0)

        with pytest.raises(ValidationError):
            config.retry_settings()

    def test_set_requires_section(self):
        with pytest.raises(ValueError):
            Config(load_env_file=False).set("timeout", 1)

    def test_model_bounds(self):
        with pytest.raises(ValidationError):
            RemoteSettings(timeout=301)


class TestMasking:

    def test_device_id_masked(self):
        config = Config(load_env_file=False)
        config.set("device.device_id", "secret-device")

        assert config.to_dict()["device"]["device_id"] == "***MASKED***"
        assert config.to_dict(include_sensitive=True)["device"]["device_id"] == "secret-device"

    def test_get_section_is_a_copy(self):
        config = Config(load_env_file=False)

        config.get_section("remote")["endpoint"] = "changed"

        assert config.get("remote.endpoint") == "5e14e8122d00002b00167430"
