"""Composition root: builds a ConsentCoordinator from configuration."""

import logging
from pathlib import Path
from typing import Optional

from consent_sync.config import Config
from consent_sync.coordinator import ConsentCoordinator
from consent_sync.device_id import DeviceIdProvider, FileDeviceIdProvider, StaticDeviceIdProvider
from consent_sync.remote import RemoteConsentSink
from consent_sync.retry import RetryPolicy
from consent_sync.store import SQLiteConsentStore

logger = logging.getLogger(__name__)


def build_id_provider(config: Config) -> DeviceIdProvider:
    settings = config.device_settings()
    if settings.device_id:
        return StaticDeviceIdProvider(settings.device_id)
    return FileDeviceIdProvider(
        id_file=settings.id_file,
        machine_id_paths=settings.machine_id_paths,
    )


def build_coordinator(config: Optional[Config] = None) -> ConsentCoordinator:
    """
    Wire the SQLite store, device id provider and HTTP sink into a coordinator.

    The caller owns the returned coordinator and must `await close()` it.
    """
    config = config or Config().load()

    storage = config.storage_settings()
    remote = config.remote_settings()
    retry = config.retry_settings()

    store = SQLiteConsentStore(
        db_path=str(Path(storage.db_path).expanduser()),
        namespace=storage.namespace,
    )
    sink = RemoteConsentSink(
        base_url=remote.base_url,
        endpoint=remote.endpoint,
        timeout=remote.timeout,
    )
    policy = RetryPolicy(
        max_attempts=retry.max_attempts,
        base_delay=retry.base_delay,
        max_delay=retry.max_delay,
        exponential_base=retry.exponential_base,
    )

    logger.debug(f"Built consent coordinator: store={store.db_path} sink={sink.url}")
    return ConsentCoordinator(
        store=store,
        id_provider=build_id_provider(config),
        sink=sink,
        reconcile_policy=policy,
    )
