"""
Consent Models.

Defines the consent status, the persisted consent record and the
ephemeral transmission sent to the remote consent endpoint.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from consent_sync.errors import InvalidConsentStatus

# Wire date format: ISO-8601 UTC, second precision
WIRE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class ConsentStatus(Enum):
    """
    The user's choice on data processing.

    UNDEFINED: no choice made yet (absent-value sentinel)
    ACCEPTED: user accepted data processing
    DENIED: user denied data processing

    Values are the ordinals persisted in the local store.
    """
    UNDEFINED = 0
    ACCEPTED = 1
    DENIED = 2

    @classmethod
    def from_ordinal(cls, ordinal: Any) -> "ConsentStatus":
        """Map a stored ordinal back to a status; unknown values read as UNDEFINED."""
        try:
            return cls(int(ordinal))
        except (TypeError, ValueError):
            return cls.UNDEFINED

    @classmethod
    def parse(cls, value: str) -> "ConsentStatus":
        """Parse a user-facing name ("accept", "deny", "accepted", ...)."""
        normalized = value.strip().lower()
        if normalized in ("accept", "accepted", "y", "yes"):
            return cls.ACCEPTED
        if normalized in ("deny", "denied", "n", "no"):
            return cls.DENIED
        raise InvalidConsentStatus(f"Unknown consent status: {value!r}")

    @property
    def wire_name(self) -> str:
        """Name sent to the remote endpoint. UNDEFINED is never sent."""
        if self is ConsentStatus.ACCEPTED:
            return "accept"
        if self is ConsentStatus.DENIED:
            return "deny"
        raise InvalidConsentStatus("UNDEFINED consent status cannot be transmitted")

    @property
    def is_decided(self) -> bool:
        return self is not ConsentStatus.UNDEFINED


@dataclass(frozen=True)
class ConsentRecord:
    """
    The locally persisted consent state.

    Attributes:
        status: Last user decision
        updated_at_ms: Epoch milliseconds of the last status change (0 = never set)
        remotely_synced: True once the current status was acknowledged remotely
        version: Incremented on every status write
    """
    status: ConsentStatus = ConsentStatus.UNDEFINED
    updated_at_ms: int = 0
    remotely_synced: bool = False
    version: int = 0

    def __post_init__(self):
        if self.updated_at_ms < 0:
            raise ValueError("updated_at_ms must be >= 0")
        if self.version < 0:
            raise ValueError("version must be >= 0")

    def with_status(self, status: ConsentStatus, updated_at_ms: int) -> "ConsentRecord":
        """Return the record for a new user decision, not yet synced."""
        return replace(
            self,
            status=status,
            updated_at_ms=updated_at_ms,
            remotely_synced=False,
            version=self.version + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.name,
            "updated_at_ms": self.updated_at_ms,
            "updated_at": format_wire_date(self.updated_at_ms) if self.updated_at_ms else None,
            "remotely_synced": self.remotely_synced,
            "version": self.version,
        }


@dataclass(frozen=True)
class ConsentTransmission:
    """Payload sent to the remote consent endpoint. Never persisted."""

    status: ConsentStatus
    device_id: str
    timestamp_ms: int

    def to_payload(self) -> Dict[str, str]:
        """Build the JSON body; raises InvalidConsentStatus for UNDEFINED."""
        return {
            "status": self.status.wire_name,
            "device_id": self.device_id,
            "date": format_wire_date(self.timestamp_ms),
        }


@dataclass
class SyncResult:
    """
    Outcome of one background synchronization task.

    Attributes:
        status: The consent status the task tried to synchronize
        version: Record version the task was started for
        synced: True if the remote acknowledged this version
        attempts: Number of remote attempts made
        superseded: True if a newer decision replaced this one
        error: The last failure, if any
    """
    status: ConsentStatus
    version: int
    synced: bool = False
    attempts: int = 0
    superseded: bool = False
    error: Optional[BaseException] = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.synced and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.name,
            "version": self.version,
            "synced": self.synced,
            "attempts": self.attempts,
            "superseded": self.superseded,
            "error": f"{type(self.error).__name__}: {self.error}" if self.error else None,
            "finished_at": self.finished_at.isoformat(),
        }


def format_wire_date(timestamp_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string (second precision)."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime(WIRE_DATE_FORMAT)


def now_ms() -> int:
    """Current epoch time in milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)
