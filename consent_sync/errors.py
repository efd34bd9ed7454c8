"""
Consent Sync Error Handling

Every failure on the synchronization path is one of these classes:

    ConsentError
    ├── InvalidConsentStatus       programming error (e.g. UNDEFINED sent)
    ├── IdentifierUnavailable      device identifier could not be fetched
    │   ├── PlatformUnavailable
    │   ├── PlatformNeedsUserAction
    │   └── InvalidIdentifierState
    └── RemoteSyncError            remote endpoint did not acknowledge
        ├── RemoteRejected         non-2xx HTTP status
        └── TransportUnavailable   network/transport failure

Usage:
    from consent_sync.errors import RemoteRejected, is_transient

    try:
        await coordinator.send_to_remote(status)
    except RemoteRejected as e:
        logger.warning(f"Rejected with {e.status_code}")
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""
    INVALID_STATUS = "INVALID_STATUS"
    IDENTIFIER_UNAVAILABLE = "IDENTIFIER_UNAVAILABLE"
    PLATFORM_UNAVAILABLE = "PLATFORM_UNAVAILABLE"
    PLATFORM_NEEDS_USER_ACTION = "PLATFORM_NEEDS_USER_ACTION"
    INVALID_IDENTIFIER_STATE = "INVALID_IDENTIFIER_STATE"
    REMOTE_SYNC_FAILED = "REMOTE_SYNC_FAILED"
    REMOTE_REJECTED = "REMOTE_REJECTED"
    TRANSPORT_UNAVAILABLE = "TRANSPORT_UNAVAILABLE"


# HTTP statuses worth retrying later
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class ConsentError(Exception):
    """Base class for consent sync errors."""

    code: ErrorCode = ErrorCode.REMOTE_SYNC_FAILED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        error_dict: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            error_dict["details"] = self.details
        return {"error": error_dict}


class InvalidConsentStatus(ConsentError, ValueError):
    """Raised when UNDEFINED (or an unknown value) is used as a user decision."""
    code = ErrorCode.INVALID_STATUS


class IdentifierUnavailable(ConsentError):
    """The device identifier could not be fetched."""
    code = ErrorCode.IDENTIFIER_UNAVAILABLE


class PlatformUnavailable(IdentifierUnavailable):
    """The platform identifier service is missing."""
    code = ErrorCode.PLATFORM_UNAVAILABLE


class PlatformNeedsUserAction(IdentifierUnavailable):
    """The platform identifier service exists but needs repair by the user."""
    code = ErrorCode.PLATFORM_NEEDS_USER_ACTION


class InvalidIdentifierState(IdentifierUnavailable):
    """The identifier was requested from an invalid caller state."""
    code = ErrorCode.INVALID_IDENTIFIER_STATE


class RemoteSyncError(ConsentError):
    """The remote consent endpoint did not acknowledge the record."""
    code = ErrorCode.REMOTE_SYNC_FAILED


class RemoteRejected(RemoteSyncError):
    """The remote endpoint answered with a non-success HTTP status."""
    code = ErrorCode.REMOTE_REJECTED

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(
            message or f"Failed to send consent to remote server, response code: {status_code}",
            details={"status_code": status_code},
        )
        self.status_code = status_code


class TransportUnavailable(RemoteSyncError):
    """The request never got an HTTP answer (unreachable host, timeout, ...)."""
    code = ErrorCode.TRANSPORT_UNAVAILABLE


def is_transient(error: BaseException) -> bool:
    """Check whether a sync failure is worth retrying later."""
    if isinstance(error, TransportUnavailable):
        return True
    if isinstance(error, RemoteRejected):
        return error.status_code in TRANSIENT_STATUS_CODES
    return False
