"""
Device Identifier Providers.

The remote consent record is keyed by a stable per-device identifier.
Providers fetch it asynchronously and fail with an IdentifierUnavailable
subclass:

- PlatformUnavailable: no identifier source can be read
- PlatformNeedsUserAction: the source exists but is locked or corrupt
- InvalidIdentifierState: the provider was configured or called wrongly
"""

import asyncio
import logging
import os
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from filelock import FileLock, Timeout as FileLockTimeout

from consent_sync.errors import (
    InvalidIdentifierState,
    PlatformNeedsUserAction,
    PlatformUnavailable,
)

logger = logging.getLogger(__name__)

# systemd / dbus machine identifiers
DEFAULT_MACHINE_ID_PATHS = ("/etc/machine-id", "/var/lib/dbus/machine-id")

_VALID_ID = re.compile(r"^[A-Za-z0-9_\-]{8,128}$")


class DeviceIdProvider(ABC):
    """Yields the device identifier sent with every consent record."""

    @abstractmethod
    async def fetch(self) -> str:
        """Return the device identifier or raise IdentifierUnavailable."""


class StaticDeviceIdProvider(DeviceIdProvider):
    """Provider returning a configured identifier."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    async def fetch(self) -> str:
        if not self.device_id:
            raise InvalidIdentifierState("No device identifier configured")
        return self.device_id


class FileDeviceIdProvider(DeviceIdProvider):
    """
    Reads the platform machine identifier, or keeps a generated one on disk.

    Lookup order:
    1. The first readable, non-empty machine-id file
    2. `id_file`, created with a random UUID on first use

    Creation of `id_file` is guarded by a file lock so concurrent
    processes agree on one identifier. The result is cached per provider.
    """

    def __init__(
        self,
        id_file: Optional[Union[str, Path]] = None,
        machine_id_paths: Iterable[Union[str, Path]] = DEFAULT_MACHINE_ID_PATHS,
        lock_timeout: float = 10.0,
    ):
        self.id_file = Path(id_file).expanduser() if id_file else None
        self.machine_id_paths: Sequence[Path] = [Path(p) for p in machine_id_paths]
        self.lock_timeout = lock_timeout
        self._cached: Optional[str] = None

    async def fetch(self) -> str:
        if self._cached is None:
            self._cached = await asyncio.to_thread(self._resolve)
        return self._cached

    def _resolve(self) -> str:
        for path in self.machine_id_paths:
            machine_id = self._read_machine_id(path)
            if machine_id:
                logger.debug(f"Using machine identifier from {path}")
                return machine_id

        if self.id_file is None:
            if self.machine_id_paths:
                raise PlatformUnavailable(
                    "No machine identifier found and no identifier file configured"
                )
            raise InvalidIdentifierState("No identifier source configured")

        return self._read_or_create()

    @staticmethod
    def _read_machine_id(path: Path) -> Optional[str]:
        try:
            value = path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return value if _VALID_ID.match(value) else None

    def _read_or_create(self) -> str:
        lock_path = self.id_file.with_suffix(self.id_file.suffix + ".lock")
        try:
            self.id_file.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(str(lock_path), timeout=self.lock_timeout):
                if self.id_file.exists():
                    value = self.id_file.read_text(encoding="utf-8").strip()
                    if not _VALID_ID.match(value):
                        raise PlatformNeedsUserAction(
                            f"Device identifier file is corrupt, delete it to regenerate: {self.id_file}",
                            details={"path": str(self.id_file)},
                        )
                    return value

                value = uuid.uuid4().hex
                tmp_path = self.id_file.with_suffix(self.id_file.suffix + ".tmp")
                tmp_path.write_text(value, encoding="utf-8")
                os.replace(tmp_path, self.id_file)
                logger.info(f"Generated device identifier in {self.id_file}")
                return value
        except FileLockTimeout as e:
            raise PlatformNeedsUserAction(
                f"Timed out waiting for identifier lock {lock_path}",
                details={"path": str(lock_path)},
            ) from e
        except OSError as e:
            raise PlatformUnavailable(
                f"Cannot access device identifier file {self.id_file}: {e}",
                details={"path": str(self.id_file)},
            ) from e
