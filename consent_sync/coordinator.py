"""
Consent Coordinator - keeps local consent state and the remote endpoint in sync.

Policy:
- On startup: prompt if no decision is stored; resend the stored decision
  in the background if it was never acknowledged; otherwise do nothing.
- On a user decision: persist status, timestamp and a cleared sync flag in
  one write, then send it in the background (single attempt).
- The sync flag is set only when the remote acknowledges the exact record
  version that is still stored. Newer decisions win over older ones.

Usage:
    coordinator = build_coordinator(Config().load())
    coordinator.initialize_and_reconcile(lambda: coordinator.request_consent(ConsolePrompt()))

    task = coordinator.set_status(ConsentStatus.ACCEPTED)
    result = await task
    await coordinator.close()
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from consent_sync.device_id import DeviceIdProvider
from consent_sync.errors import InvalidConsentStatus, RemoteRejected, is_transient
from consent_sync.models import (
    ConsentRecord,
    ConsentStatus,
    ConsentTransmission,
    SyncResult,
    now_ms,
)
from consent_sync.prompt import PresentationTrigger
from consent_sync.remote import ConsentSink
from consent_sync.retry import SINGLE_ATTEMPT, RetryPolicy
from consent_sync.store import ConsentStore
from consent_sync.tasks import TaskTracker

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[], Any]
ErrorCallback = Callable[[BaseException], Any]


class ConsentCoordinator:
    """
    Orchestrates the consent record between the local store and the remote sink.

    Write-triggering methods return immediately with an asyncio.Task that
    resolves to a SyncResult; they must be called from a running event loop.
    """

    def __init__(
        self,
        store: ConsentStore,
        id_provider: DeviceIdProvider,
        sink: ConsentSink,
        reconcile_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            store: Local consent state store
            id_provider: Device identifier provider
            sink: Remote consent sink
            reconcile_policy: Backoff for startup reconciliation (default: 3 attempts)
            clock: Returns the current epoch time in milliseconds
            sleep: Awaitable used between retries
        """
        self._store = store
        self._id_provider = id_provider
        self._sink = sink
        self._reconcile_policy = reconcile_policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep
        self._send_lock = asyncio.Lock()
        self._tracker = TaskTracker("consent")

    # =========================================================================
    # Reads
    # =========================================================================

    def get_status(self) -> ConsentStatus:
        """The last decision, or UNDEFINED if the user never chose."""
        return self._store.get_status()

    def is_synced(self) -> bool:
        """True if the remote acknowledged the current decision."""
        return self._store.is_synced()

    def get_record(self) -> ConsentRecord:
        return self._store.read_record()

    # =========================================================================
    # Startup
    # =========================================================================

    def initialize_and_reconcile(
        self, prompt_callback: Callable[[], Any]
    ) -> Optional["asyncio.Task[SyncResult]"]:
        """
        Decide what to do with the stored consent on application start.

        Args:
            prompt_callback: Invoked (with no arguments) when no decision is stored

        Returns:
            The background reconciliation task, or None if nothing is sent
        """
        record = self._store.read_record()

        if record.status is ConsentStatus.UNDEFINED:
            logger.info("No consent decision stored, prompting user")
            prompt_callback()
            return None

        if not record.remotely_synced:
            logger.info(
                f"Consent {record.status.name} (v{record.version}) not acknowledged remotely, resending"
            )
            return self._tracker.create_task(
                self._sync(record, self._reconcile_policy),
                name="reconcile",
            )

        logger.debug(f"Consent {record.status.name} already synchronized")
        return None

    def request_consent(
        self,
        trigger: PresentationTrigger,
        title: Optional[str] = None,
        message: Optional[str] = None,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional["asyncio.Task[SyncResult]"]:
        """
        Ask the user through `trigger` and record the answer.

        Returns:
            The sync task for the answer, or None if the user dismissed the prompt
        """
        status = trigger.prompt(title, message)
        return self._record_answer(status, on_success, on_error)

    async def ask_consent(
        self,
        trigger: PresentationTrigger,
        title: Optional[str] = None,
        message: Optional[str] = None,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional["asyncio.Task[SyncResult]"]:
        """
        Like request_consent, for triggers that block (terminal input).

        The trigger runs in a worker thread so syncs already scheduled keep
        making progress while the user answers.
        """
        status = await asyncio.to_thread(trigger.prompt, title, message)
        return self._record_answer(status, on_success, on_error)

    def _record_answer(
        self,
        status: ConsentStatus,
        on_success: Optional[SuccessCallback],
        on_error: Optional[ErrorCallback],
    ) -> Optional["asyncio.Task[SyncResult]"]:
        if not status.is_decided:
            logger.info("Consent prompt dismissed without a decision")
            return None
        return self.set_status(status, on_success=on_success, on_error=on_error)

    # =========================================================================
    # Writes
    # =========================================================================

    def set_status(
        self,
        status: ConsentStatus,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> "asyncio.Task[SyncResult]":
        """
        Save a user decision locally and send it to the remote endpoint.

        The local write happens before this method returns; the remote send
        is a single background attempt.

        Args:
            status: ACCEPTED or DENIED
            on_success: Called once the remote acknowledged the decision
            on_error: Called with the failure if the send failed

        Raises:
            InvalidConsentStatus: If status is UNDEFINED
        """
        if not status.is_decided:
            raise InvalidConsentStatus("UNDEFINED is not a consent decision")

        record = self._store.read_record().with_status(status, self._clock())
        self._store.write_record(record)
        logger.info(f"Consent set to {status.name} (v{record.version})")

        return self._tracker.create_task(
            self._sync(record, SINGLE_ATTEMPT, on_success, on_error),
            name="set_status",
        )

    def reset(self) -> None:
        """
        Forget the stored decision; the next startup prompts again.

        The version keeps counting, so an acknowledgment still in flight for
        a decision made before the reset can never mark a later one synced.
        """
        current = self._store.read_record()
        self._store.write_record(ConsentRecord(version=current.version + 1))
        logger.info(f"Consent record cleared (v{current.version + 1})")

    async def send_to_remote(self, status: ConsentStatus) -> None:
        """
        Send the stored decision with its stored timestamp, marking it synced on success.

        Args:
            status: Must equal the stored status

        Raises:
            InvalidConsentStatus: If `status` is not the stored decision
            IdentifierUnavailable: If the device identifier cannot be fetched
            RemoteRejected: If the remote answered with an error status
            TransportUnavailable: If the remote could not be reached
        """
        async with self._send_lock:
            record = self._store.read_record()
            if not status.is_decided or status is not record.status:
                raise InvalidConsentStatus(
                    f"Cannot send {status.name}: stored consent is {record.status.name}"
                )
            await self._send(status, record.updated_at_ms, record.version)

    async def _send(self, status: ConsentStatus, timestamp_ms: int, version: int) -> bool:
        device_id = await self._id_provider.fetch()
        transmission = ConsentTransmission(
            status=status,
            device_id=device_id,
            timestamp_ms=timestamp_ms,
        )

        result = await self._sink.submit(transmission)
        if not result.succeeded:
            raise RemoteRejected(result.status_code)

        if self._store.mark_synced(version):
            logger.info(f"Consent {status.name} (v{version}) acknowledged remotely")
            return True

        logger.info(f"Consent v{version} acknowledged but superseded by a newer decision")
        return False

    def _is_superseded(self, record: ConsentRecord) -> bool:
        return self._store.read_record().version != record.version

    async def _sync(
        self,
        record: ConsentRecord,
        policy: RetryPolicy,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> SyncResult:
        """Background task body; never raises except on cancellation."""
        result = SyncResult(status=record.status, version=record.version)
        acknowledged = False

        for attempt in range(policy.max_attempts):
            async with self._send_lock:
                if self._is_superseded(record):
                    result.superseded = True
                    result.error = None
                    logger.debug(f"Consent v{record.version} superseded before sending")
                    break

                result.attempts += 1
                try:
                    result.synced = await self._send(
                        record.status, record.updated_at_ms, record.version
                    )
                    result.superseded = not result.synced
                    result.error = None
                    acknowledged = True
                    break
                except Exception as e:
                    result.error = e

            if attempt + 1 < policy.max_attempts and is_transient(result.error):
                delay = policy.get_delay(attempt)
                logger.warning(
                    f"Consent sync failed ({result.error}), retrying in {delay}s "
                    f"(attempt {attempt + 1}/{policy.max_attempts})"
                )
                await self._sleep(delay)
                continue

            logger.error(f"Consent sync failed: {type(result.error).__name__}: {result.error}")
            break

        result.finished_at = datetime.now(timezone.utc)

        if acknowledged and on_success:
            self._notify(on_success)
        elif result.error is not None and on_error:
            self._notify(on_error, result.error)

        return result

    @staticmethod
    def _notify(callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as callback_err:
            logger.error(f"Consent callback failed: {callback_err}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def wait_idle(self, timeout: Optional[float] = None) -> int:
        """Wait for every background sync to finish. Returns the number waited for."""
        return await self._tracker.wait_all(timeout=timeout)

    async def close(self, timeout: Optional[float] = 10.0) -> None:
        """Finish outstanding syncs, then release the sink and store."""
        try:
            await self.wait_idle(timeout=timeout)
        except asyncio.TimeoutError:
            cancelled = await self._tracker.cancel_all()
            logger.warning(f"Cancelled {cancelled} consent sync task(s) on close")
        await self._sink.close()
        self._store.close()

    def get_stats(self) -> dict:
        return {
            "record": self.get_record().to_dict(),
            "tasks": self._tracker.get_stats(),
        }
