"""
Consent Sync.

Client-side consent-state manager: stores the user's data-processing
decision locally and synchronizes it with a remote consent endpoint.

Usage:
    from consent_sync import (
        ConsentStatus,
        ConsolePrompt,
        build_coordinator,
    )

    coordinator = build_coordinator()

    # On startup: prompt if undecided, resend if not acknowledged
    coordinator.initialize_and_reconcile(
        lambda: coordinator.request_consent(ConsolePrompt())
    )

    # Record a decision and wait for the server
    result = await coordinator.set_status(ConsentStatus.ACCEPTED)
    await coordinator.close()
"""

from consent_sync.app import build_coordinator
from consent_sync.config import Config
from consent_sync.coordinator import ConsentCoordinator
from consent_sync.device_id import (
    DeviceIdProvider,
    FileDeviceIdProvider,
    StaticDeviceIdProvider,
)
from consent_sync.errors import (
    ConsentError,
    IdentifierUnavailable,
    InvalidConsentStatus,
    InvalidIdentifierState,
    PlatformNeedsUserAction,
    PlatformUnavailable,
    RemoteRejected,
    RemoteSyncError,
    TransportUnavailable,
)
from consent_sync.models import (
    ConsentRecord,
    ConsentStatus,
    ConsentTransmission,
    SyncResult,
)
from consent_sync.prompt import ConsolePrompt, PresentationTrigger
from consent_sync.remote import ConsentSink, RemoteConsentSink, SubmitResult
from consent_sync.retry import RetryPolicy
from consent_sync.store import ConsentStore, MemoryConsentStore, SQLiteConsentStore

__version__ = "0.1.0"

__all__ = [
    # Coordinator
    "ConsentCoordinator",
    "build_coordinator",
    "Config",
    "RetryPolicy",
    # Models
    "ConsentStatus",
    "ConsentRecord",
    "ConsentTransmission",
    "SyncResult",
    # Collaborators
    "ConsentStore",
    "MemoryConsentStore",
    "SQLiteConsentStore",
    "DeviceIdProvider",
    "FileDeviceIdProvider",
    "StaticDeviceIdProvider",
    "ConsentSink",
    "RemoteConsentSink",
    "SubmitResult",
    "PresentationTrigger",
    "ConsolePrompt",
    # Errors
    "ConsentError",
    "InvalidConsentStatus",
    "IdentifierUnavailable",
    "PlatformUnavailable",
    "PlatformNeedsUserAction",
    "InvalidIdentifierState",
    "RemoteSyncError",
    "RemoteRejected",
    "TransportUnavailable",
]
