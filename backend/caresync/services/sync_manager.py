"""
Sync Manager - drains the pending operation queue against the remote store

Cycles are started by an explicit request, a connectivity transition, the
periodic timer or a host wake signal. Only one cycle runs at a time; a
trigger that arrives while a cycle is in flight is dropped, never queued.

Per cycle the queue is snapshotted and replayed strictly in insertion order:

* items at or past the retry ceiling are skipped, counted as failed and
  left in place
* a successful replay removes the item
* any exception from the remote (or a malformed envelope) bumps the item's
  retry counter and the cycle moves on to the next item

Store failures are not item failures: they publish ``error`` and propagate.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, List, Optional

from flask import has_app_context

from ..exceptions import InvalidOperationError, StorageUnavailableError
from ..models.base import isoformat, utcnow
from ..utils.logger import get_logger, log_sync_event
from .sync.backoff import AdaptiveBackoff
from .sync.connectivity import ConnectivityAdapter
from .sync.cycle_report import SyncCycleReport, classify_failure
from .sync.pending_queue import Operation, PendingOperation, PendingOperationQueue
from .sync.remote_client import RemoteStore
from .sync_status_notifier import SyncStatus, SyncStatusNotifier

logger = get_logger('sync_manager')


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one trigger.

    ``started`` is False when the trigger was dropped (already syncing,
    offline, or nothing to do); both counters are then zero.
    """

    success: int = 0
    failed: int = 0
    started: bool = False
    status: Optional[SyncStatus] = None

    def to_dict(self):
        return {
            'success': self.success,
            'failed': self.failed,
            'started': self.started,
            'status': self.status.value if self.status else None,
        }


class SyncManager:
    """Drain loop state machine (idle/syncing/success/error/offline).

    Example:
        >>> manager = SyncManager(queue, remote, connectivity, notifier, app=app)
        >>> manager.start()
        >>> manager.force_sync()
        SyncResult(success=2, failed=0, started=True, status=<SyncStatus.SUCCESS: 'success'>)
        >>> manager.stop()
    """

    DEFAULT_MAX_RETRIES = 5
    DEFAULT_INTERVAL = 30.0

    def __init__(
        self,
        queue: PendingOperationQueue,
        remote: RemoteStore,
        connectivity: ConnectivityAdapter,
        notifier: SyncStatusNotifier,
        max_retries: int = DEFAULT_MAX_RETRIES,
        interval: float = DEFAULT_INTERVAL,
        backoff_factor: float = 2.0,
        backoff_max: float = 300.0,
        backoff_jitter: float = 0.0,
        backoff_recovery: int = 1,
        app=None,
    ):
        self._queue = queue
        self._remote = remote
        self._connectivity = connectivity
        self._notifier = notifier
        self.max_retries = max_retries
        self.interval = interval
        self._backoff_factor = backoff_factor
        self._backoff_max = backoff_max
        self._backoff_jitter = backoff_jitter
        self._backoff_recovery = backoff_recovery
        self._backoff = self._make_backoff(interval)
        self._app = app

        self._flight_lock = threading.Lock()
        self._in_flight = False

        self._status = SyncStatus.IDLE
        self._last_pending_count = 0
        self._last_report: Optional[dict] = None
        self._last_synced_at: Optional[str] = None

        self._timer_stop = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None
        self._unregister: List[Callable[[], None]] = []
        self._wake_registered = False

    def _make_backoff(self, interval: float) -> AdaptiveBackoff:
        return AdaptiveBackoff(
            base_delay=interval,
            max_delay=self._backoff_max,
            backoff_factor=self._backoff_factor,
            recovery_threshold=self._backoff_recovery,
            jitter=self._backoff_jitter,
        )

    @contextmanager
    def _app_scope(self):
        """Enter the application context when called from a worker thread."""
        if has_app_context() or self._app is None:
            yield
        else:
            with self._app.app_context():
                yield

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _publish(self, status: SyncStatus, pending_count: int) -> None:
        self._status = status
        self._last_pending_count = pending_count
        self._notifier.publish(status, pending_count)

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    @property
    def last_report(self) -> Optional[dict]:
        return self._last_report

    def get_status(self) -> dict:
        """Snapshot for the API and CLI."""
        with self._app_scope():
            pending_count = self._queue.count()
            exhausted_count = len(self._queue.list_exhausted(self.max_retries))
        return {
            'status': self._status.value,
            'pending_count': pending_count,
            'exhausted_count': exhausted_count,
            'is_online': self._connectivity.is_online(),
            'is_syncing': self._in_flight,
            'max_retries': self.max_retries,
            'periodic': self.is_periodic_running,
            'next_interval': self._backoff.get_delay(),
            'backoff': self._backoff.get_stats(),
            'remote': self._remote.get_stats(),
            'last_synced_at': self._last_synced_at,
            'last_report': self._last_report,
        }

    # ------------------------------------------------------------------
    # Drain cycle
    # ------------------------------------------------------------------

    def sync_pending_operations(self, trigger: str = 'manual') -> SyncResult:
        """Run one drain cycle unless one is already in flight.

        Raises:
            StorageUnavailableError: the queue could not be read or updated
        """
        with self._flight_lock:
            if self._in_flight:
                logger.debug(f"[SyncManager] Cycle already in flight, dropping '{trigger}' trigger")
                return SyncResult(started=False, status=self._status)
            self._in_flight = True

        try:
            with self._app_scope():
                return self._run_cycle(trigger)
        finally:
            with self._flight_lock:
                self._in_flight = False

    def force_sync(self) -> SyncResult:
        """Explicit drain request."""
        return self.sync_pending_operations(trigger='manual')

    def _run_cycle(self, trigger: str) -> SyncResult:
        try:
            pending_count = self._queue.count()
        except StorageUnavailableError:
            self._publish(SyncStatus.ERROR, self._last_pending_count)
            raise

        if not self._connectivity.is_online():
            logger.info(f"[SyncManager] Offline, '{trigger}' trigger ignored ({pending_count} pending)")
            self._publish(SyncStatus.OFFLINE, pending_count)
            return SyncResult(started=False, status=SyncStatus.OFFLINE)

        if pending_count == 0:
            self._publish(SyncStatus.IDLE, 0)
            return SyncResult(started=False, status=SyncStatus.IDLE)

        report = SyncCycleReport(trigger=trigger)
        try:
            items = self._queue.list_pending()
            report.set_total(len(items))
            self._publish(SyncStatus.SYNCING, len(items))
            log_sync_event('cycle_started', {'trigger': trigger, 'pending': len(items)})

            success, failed, interrupted = self._drain(items, report)
            remaining = self._queue.count()
        except StorageUnavailableError as e:
            logger.error(f"[SyncManager] Local store failed during '{trigger}' cycle: {e}")
            self._last_report = report.finalize(SyncStatus.ERROR.value)
            self._backoff.record_failure()
            self._publish(SyncStatus.ERROR, self._last_pending_count)
            raise

        if interrupted:
            final = SyncStatus.OFFLINE
        elif failed > 0:
            final = SyncStatus.ERROR
        else:
            final = SyncStatus.SUCCESS

        if failed > 0:
            self._backoff.record_failure()
        else:
            self._backoff.record_success()
        if final == SyncStatus.SUCCESS:
            self._last_synced_at = isoformat(utcnow())

        self._last_report = report.finalize(final.value)
        self._publish(final, remaining)
        log_sync_event('cycle_finished', {
            'trigger': trigger,
            'status': final.value,
            'success': success,
            'failed': failed,
            'remaining': remaining,
        })
        return SyncResult(success=success, failed=failed, started=True, status=final)

    def _drain(self, items: List[PendingOperation], report: SyncCycleReport):
        success = failed = 0

        for index, item in enumerate(items):
            if not self._connectivity.is_online():
                left = len(items) - index
                logger.warning(f"[SyncManager] Connectivity lost, {left} item(s) left for the next cycle")
                report.add_issue(
                    SyncCycleReport.TYPE_INTERRUPTED,
                    message=f"{left} item(s) not attempted",
                )
                return success, failed, True

            if item.retry_count >= self.max_retries:
                logger.error(
                    f"[SyncManager] {item.operation.value} on {item.collection} ({item.id}) "
                    f"exceeded {self.max_retries} retries, skipping"
                )
                report.add_issue(
                    SyncCycleReport.TYPE_MAX_RETRIES,
                    operation_id=item.id,
                    collection=item.collection,
                    message=item.last_error,
                    retry_count=item.retry_count,
                )
                failed += 1
                continue

            try:
                self._execute_operation(item)
            except StorageUnavailableError:
                raise
            except Exception as e:
                retry_count = self._queue.increment_retry(item.id, error=str(e))
                logger.warning(
                    f"[SyncManager] {item.operation.value} on {item.collection} ({item.id}) "
                    f"failed (retry {retry_count}/{self.max_retries}): {e}"
                )
                report.add_issue(
                    classify_failure(e),
                    operation_id=item.id,
                    collection=item.collection,
                    message=str(e),
                    retry_count=retry_count,
                )
                failed += 1
                continue

            self._queue.remove(item.id)
            report.record_success()
            success += 1

        return success, failed, False

    def _execute_operation(self, item: PendingOperation) -> None:
        """Translate one queued item into a remote call."""
        if item.operation == Operation.INSERT:
            self._remote.create(item.collection, dict(item.payload))
            return

        record_id = item.target_id
        if record_id is None:
            raise InvalidOperationError(f"{item.operation.value} on {item.collection} requires 'id'")

        if item.operation == Operation.UPDATE:
            changes = {k: v for k, v in item.payload.items() if k != 'id'}
            self._remote.update(item.collection, record_id, changes)
        elif item.operation == Operation.DELETE:
            self._remote.delete(item.collection, record_id)
        else:
            raise InvalidOperationError(f"Unknown operation: {item.operation}")

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def handle_online(self) -> SyncResult:
        logger.info("[SyncManager] Network online, triggering sync")
        return self.sync_pending_operations(trigger='online')

    def handle_offline(self) -> None:
        """Publish ``offline``; an in-flight cycle stops before its next item."""
        logger.info("[SyncManager] Network offline")
        try:
            with self._app_scope():
                pending_count = self._queue.count()
        except StorageUnavailableError:
            pending_count = self._last_pending_count
        self._publish(SyncStatus.OFFLINE, pending_count)

    def _on_wake(self) -> None:
        try:
            self.sync_pending_operations(trigger='wake')
        except Exception:
            logger.exception("[SyncManager] Wake-triggered sync failed")

    # ------------------------------------------------------------------
    # Periodic timer
    # ------------------------------------------------------------------

    @property
    def is_periodic_running(self) -> bool:
        return self._timer_thread is not None and self._timer_thread.is_alive()

    def start_periodic_sync(self, interval: Optional[float] = None) -> None:
        """Start the periodic timer. A second call while it runs is a no-op."""
        if self.is_periodic_running:
            return
        if interval is not None and interval != self.interval:
            self.interval = interval
            self._backoff = self._make_backoff(interval)
        else:
            self._backoff.reset()

        self._timer_stop.clear()
        self._timer_thread = threading.Thread(target=self._periodic_loop, name='sync-periodic', daemon=True)
        self._timer_thread.start()
        logger.info(f"[SyncManager] Periodic sync every {self.interval}s")

    def stop_periodic_sync(self) -> None:
        self._timer_stop.set()
        thread = self._timer_thread
        self._timer_thread = None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=5)
            logger.info("[SyncManager] Periodic sync stopped")

    def _periodic_loop(self) -> None:
        while not self._timer_stop.wait(self._backoff.get_delay()):
            self._periodic_tick()

    def _periodic_tick(self) -> None:
        try:
            with self._app_scope():
                if not self._connectivity.is_online() or not self._queue.has_any():
                    return
                self.sync_pending_operations(trigger='periodic')
        except Exception:
            logger.exception("[SyncManager] Periodic sync failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, interval: Optional[float] = None) -> None:
        """Hook into connectivity, the wake signal and the periodic timer."""
        if not self._unregister:
            self._unregister.append(self._connectivity.on_online(self.handle_online))
            self._unregister.append(self._connectivity.on_offline(self.handle_offline))
            self._wake_registered = self._connectivity.register_wake_handler(self._on_wake)
            self._connectivity.start()
        self.start_periodic_sync(interval)
        log_sync_event('manager_started', {'interval': self.interval, 'wake': self._wake_registered})

    def stop(self) -> None:
        self.stop_periodic_sync()
        for unregister in self._unregister:
            unregister()
        self._unregister = []
        self._connectivity.stop()
        log_sync_event('manager_stopped')
