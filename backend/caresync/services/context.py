"""
Offline Context - one engine instance per Flask application

Wires the local store, the queue, the remote adapter, the connectivity
adapter, the notifier, the sync manager and the record service together,
and keeps them in ``app.extensions['caresync']``.
"""
import atexit
from dataclasses import dataclass
from typing import Optional

from flask import Flask, current_app

from ..utils.logger import get_logger
from .record_service import OfflineRecordService
from .sync.connectivity import ConnectivityAdapter, ManualConnectivity, ProbeConnectivity
from .sync.local_store import LocalStore
from .sync.pending_queue import PendingOperationQueue
from .sync.remote_client import RemoteStore, RestTableClient
from .sync_manager import SyncManager
from .sync_status_notifier import SyncStatusNotifier

logger = get_logger('context')

EXTENSION_KEY = 'caresync'


@dataclass
class OfflineContext:
    store: LocalStore
    queue: PendingOperationQueue
    remote: RemoteStore
    connectivity: ConnectivityAdapter
    notifier: SyncStatusNotifier
    manager: SyncManager
    records: OfflineRecordService
    started: bool = False

    def start(self) -> None:
        if self.started:
            return
        self.manager.start()
        self.started = True

    def shutdown(self) -> None:
        """Stop background threads and release network resources."""
        if self.started:
            self.manager.stop()
            self.started = False
        self.remote.close()


def build_connectivity(config) -> ConnectivityAdapter:
    mode = (config.get('CONNECTIVITY_MODE') or 'probe').lower()
    wake_signal = config.get('SYNC_WAKE_SIGNAL')

    if mode == 'manual':
        return ManualConnectivity(online=True, wake_signal=wake_signal)
    if mode == 'probe':
        probe_url = config.get('CONNECTIVITY_PROBE_URL') or config.get('REMOTE_BASE_URL') or ''
        return ProbeConnectivity(
            probe_url=probe_url,
            check_interval=config.get('CONNECTIVITY_CHECK_INTERVAL', 15),
            timeout=config.get('CONNECTIVITY_PROBE_TIMEOUT', 5),
            wake_signal=wake_signal,
        )
    raise ValueError(f"Unknown CONNECTIVITY_MODE: {mode}")


def init_offline_context(
    app: Flask,
    remote: Optional[RemoteStore] = None,
    connectivity: Optional[ConnectivityAdapter] = None,
    auto_start: Optional[bool] = None,
) -> OfflineContext:
    """Build the engine for ``app`` and run local schema migrations.

    Args:
        app: Flask application
        remote: Remote store adapter, defaults to a RestTableClient from config
        connectivity: Connectivity adapter, defaults to CONNECTIVITY_MODE
        auto_start: Start hooks and the periodic timer (defaults to SYNC_AUTO_START)
    """
    config = app.config

    previous = app.extensions.get(EXTENSION_KEY)
    if previous is not None:
        previous.shutdown()

    store = LocalStore()
    with app.app_context():
        version = store.initialize()

    queue = PendingOperationQueue(store)
    if remote is None:
        remote = RestTableClient(
            base_url=config.get('REMOTE_BASE_URL', ''),
            api_key=config.get('REMOTE_API_KEY', ''),
            timeout=config.get('REMOTE_TIMEOUT', 10),
        )
    if connectivity is None:
        connectivity = build_connectivity(config)

    notifier = SyncStatusNotifier()
    manager = SyncManager(
        queue=queue,
        remote=remote,
        connectivity=connectivity,
        notifier=notifier,
        max_retries=config.get('SYNC_MAX_RETRIES', SyncManager.DEFAULT_MAX_RETRIES),
        interval=config.get('SYNC_INTERVAL', SyncManager.DEFAULT_INTERVAL),
        backoff_factor=config.get('SYNC_BACKOFF_FACTOR', 2.0),
        backoff_max=config.get('SYNC_BACKOFF_MAX', 300),
        backoff_jitter=config.get('SYNC_BACKOFF_JITTER', 0.0),
        backoff_recovery=config.get('SYNC_BACKOFF_RECOVERY', 1),
        app=app,
    )
    records = OfflineRecordService(store, queue, remote, connectivity)

    context = OfflineContext(
        store=store,
        queue=queue,
        remote=remote,
        connectivity=connectivity,
        notifier=notifier,
        manager=manager,
        records=records,
    )
    app.extensions[EXTENSION_KEY] = context
    logger.info(f"[OfflineContext] Ready (schema v{version}, connectivity={type(connectivity).__name__})")

    if auto_start is None:
        auto_start = config.get('SYNC_AUTO_START', False)
    if auto_start:
        context.start()
        atexit.register(context.shutdown)

    return context


def get_offline_context(app: Optional[Flask] = None) -> OfflineContext:
    app = app or current_app
    try:
        return app.extensions[EXTENSION_KEY]
    except KeyError:
        raise RuntimeError("Offline engine not initialised, call init_offline_context(app)") from None
