"""
Consent Sync Configuration

Values are layered, later layers winning:
1. Model defaults
2. A JSON config file (consent_sync.json, config/consent_sync.json,
   ~/.consent_sync/config.json)
3. Environment variables CONSENT_<SECTION>_<KEY>, after loading a .env file
4. Runtime `set()` calls

Raw values stay loosely typed until a section is requested through one of
the validated views (`remote_settings()`, `retry_settings()`, ...).

Usage:
    from consent_sync.config import Config

    config = Config().load()
    url = config.get("remote.base_url")
    retry = config.retry_settings()
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MASK = "***MASKED***"


class GeneralSettings(BaseModel):
    """Application-wide settings."""
    app_name: str = "consent-sync"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    json_logs: bool = False


class RemoteSettings(BaseModel):
    """Remote consent endpoint."""
    base_url: str = "https://www.mocky.io/v2/"
    endpoint: str = "5e14e8122d00002b00167430"
    timeout: float = Field(gt=0, le=300, default=30.0)


class RetrySettings(BaseModel):
    """Backoff for startup reconciliation."""
    max_attempts: int = Field(ge=1, le=20, default=3)
    base_delay: float = Field(ge=0, default=1.0)
    max_delay: float = Field(ge=0, default=30.0)
    exponential_base: float = Field(ge=1, default=2.0)


class StorageSettings(BaseModel):
    """Local consent store."""
    db_path: str = "~/.consent_sync/consent.db"
    namespace: str = "consent"


class DeviceSettings(BaseModel):
    """Device identifier source."""
    device_id: Optional[str] = None
    id_file: str = "~/.consent_sync/device_id"
    machine_id_paths: List[str] = Field(
        default_factory=lambda: ["/etc/machine-id", "/var/lib/dbus/machine-id"]
    )


# Section name -> model validating it
SECTIONS = {
    "general": GeneralSettings,
    "remote": RemoteSettings,
    "sync": RetrySettings,
    "storage": StorageSettings,
    "device": DeviceSettings,
}


class Config:
    """Layered consent-sync configuration."""

    # Substrings marking values hidden by to_dict()
    SENSITIVE_KEYS = ("device_id", "token", "secret", "password", "api_key")

    def __init__(
        self,
        config_file: Optional[Path] = None,
        env_prefix: str = "CONSENT",
        load_env_file: bool = True,
    ):
        """
        Args:
            config_file: JSON file to read instead of searching the default locations
            env_prefix: Prefix of the environment variables to read
            load_env_file: Load a .env file found from the working directory first
        """
        self.config_file = Path(config_file) if config_file else None
        self.env_prefix = env_prefix.rstrip("_").upper()
        self.load_env_file = load_env_file
        self._values: Dict[str, Dict[str, Any]] = {
            name: model().model_dump() for name, model in SECTIONS.items()
        }

    def load(self) -> "Config":
        """Apply the file and environment layers. Returns self."""
        if self.load_env_file:
            env_path = find_dotenv(usecwd=True)
            if env_path:
                load_dotenv(env_path, override=False)
                logger.debug(f"Loaded .env from {env_path}")

        path = self.config_file or self._find_config_file()
        if path is not None:
            self._merge(self._read_json(path), source=str(path))
        self._merge(self._read_env(), source="environment")
        return self

    @staticmethod
    def _find_config_file() -> Optional[Path]:
        candidates = (
            Path.cwd() / "consent_sync.json",
            Path.cwd() / "config" / "consent_sync.json",
            Path.home() / ".consent_sync" / "config.json",
        )
        return next((p for p in candidates if p.is_file()), None)

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        if not path.is_file():
            logger.warning(f"Config file not found: {path}")
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable config file {path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {path}: top level is not an object")
            return {}
        return data

    def _read_env(self) -> Dict[str, Dict[str, Any]]:
        # CONSENT_REMOTE_BASE_URL -> {"remote": {"base_url": ...}}
        prefix = f"{self.env_prefix}_"
        layer: Dict[str, Dict[str, Any]] = {}
        for name, raw in os.environ.items():
            if not name.startswith(prefix):
                continue
            section, _, key = name[len(prefix):].lower().partition("_")
            if not key:
                continue
            layer.setdefault(section, {})[key] = self._coerce(raw)
        return layer

    @staticmethod
    def _coerce(raw: str) -> Any:
        """Environment strings to JSON scalars/containers where they parse."""
        lowered = raw.strip().lower()
        if lowered in ("yes", "on"):
            return True
        if lowered in ("no", "off"):
            return False
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def _merge(self, layer: Dict[str, Any], source: str) -> None:
        for section, values in layer.items():
            if not isinstance(values, dict):
                logger.warning(f"Ignoring non-object section {section!r} from {source}")
                continue
            self._values.setdefault(section, {}).update(values)
        if layer:
            logger.debug(f"Applied config from {source}: {sorted(layer)}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read "section.key", or a whole section by its bare name.

        Missing sections or keys return `default`.
        """
        section, _, name = key.partition(".")
        values = self._values.get(section)
        if values is None:
            return default
        if not name:
            return values
        return values.get(name, default)

    def set(self, key: str, value: Any) -> None:
        section, _, name = key.partition(".")
        if not section or not name:
            raise ValueError(f"Key must be section.key format: {key}")
        self._values.setdefault(section, {})[name] = value

    def get_section(self, name: str) -> Dict[str, Any]:
        return dict(self._values.get(name, {}))

    def to_dict(self, include_sensitive: bool = False) -> Dict[str, Dict[str, Any]]:
        """All sections; sensitive values are masked unless requested."""
        return {
            section: {
                key: value if include_sensitive or not self._is_sensitive(key) else MASK
                for key, value in values.items()
            }
            for section, values in self._values.items()
        }

    def _is_sensitive(self, key: str) -> bool:
        return any(marker in key.lower() for marker in self.SENSITIVE_KEYS)

    # Validated views

    def general_settings(self) -> GeneralSettings:
        return GeneralSettings(**self.get_section("general"))

    def remote_settings(self) -> RemoteSettings:
        return RemoteSettings(**self.get_section("remote"))

    def retry_settings(self) -> RetrySettings:
        return RetrySettings(**self.get_section("sync"))

    def storage_settings(self) -> StorageSettings:
        return StorageSettings(**self.get_section("storage"))

    def device_settings(self) -> DeviceSettings:
        data = self.get_section("device")
        # Numeric-looking ids arrive from the environment as numbers
        if data.get("device_id") is not None:
            data["device_id"] = str(data["device_id"])
        return DeviceSettings(**data)
