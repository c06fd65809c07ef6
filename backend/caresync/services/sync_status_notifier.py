"""
Sync Status Notifier - publish/subscribe channel for sync lifecycle state

Subscribers are plain callables ``callback(status, pending_count)``. Delivery
is synchronous and follows subscription order; a failing subscriber is
logged and skipped. Late subscribers get no history.

Server-Sent Events clients are served through :meth:`open_stream`, which
wraps a bounded per-client queue around an ordinary subscription.
"""
import itertools
import json
import queue
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Generator, Tuple

from ..utils.logger import get_logger

logger = get_logger('status_notifier')

StatusCallback = Callable[['SyncStatus', int], None]


class SyncStatus(str, Enum):
    """Process-wide sync state shown to observers."""

    IDLE = 'idle'
    SYNCING = 'syncing'
    SUCCESS = 'success'
    ERROR = 'error'
    OFFLINE = 'offline'


class SyncStatusNotifier:
    """Observer list for sync status changes.

    Example:
        >>> notifier = SyncStatusNotifier()
        >>> unsubscribe = notifier.subscribe(lambda status, count: print(status, count))
        >>> notifier.publish(SyncStatus.SUCCESS, 0)
        >>> unsubscribe()
    """

    # SSE client queue size
    STREAM_QUEUE_SIZE = 100
    # Seconds between SSE heartbeats
    STREAM_HEARTBEAT = 30

    def __init__(self):
        # Insertion ordered, so iteration follows subscription order
        self._subscribers: Dict[int, StatusCallback] = {}
        self._sub_lock = threading.Lock()
        self._ids = itertools.count(1)

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register ``callback``.

        Returns:
            A function that removes the subscription (safe to call twice)
        """
        with self._sub_lock:
            token = next(self._ids)
            self._subscribers[token] = callback

        def unsubscribe() -> None:
            with self._sub_lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def publish(self, status: SyncStatus, pending_count: int) -> None:
        """Deliver ``(status, pending_count)`` to every current subscriber."""
        status = SyncStatus(status)
        with self._sub_lock:
            callbacks = list(self._subscribers.values())

        for callback in callbacks:
            try:
                callback(status, pending_count)
            except Exception:
                logger.exception(f"[StatusNotifier] Subscriber {callback!r} failed on {status.value}")

    @property
    def subscriber_count(self) -> int:
        with self._sub_lock:
            return len(self._subscribers)

    # ------------------------------------------------------------------
    # Server-Sent Events
    # ------------------------------------------------------------------

    def open_stream(self) -> Tuple[Callable[[], None], Generator[str, None, None]]:
        """Subscribe an SSE client.

        Returns:
            (close, generator) where the generator yields SSE frames and
            ``close`` ends the stream
        """
        q: queue.Queue = queue.Queue(maxsize=self.STREAM_QUEUE_SIZE)

        def enqueue(status: SyncStatus, pending_count: int) -> None:
            event = {
                'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'status': status.value,
                'pending_count': pending_count,
            }
            try:
                q.put_nowait(event)
            except queue.Full:
                # Slow client: drop the oldest event
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
                q.put_nowait(event)

        unsubscribe = self.subscribe(enqueue)

        def close() -> None:
            unsubscribe()
            try:
                q.put_nowait(None)
            except queue.Full:
                pass

        def generate() -> Generator[str, None, None]:
            try:
                while True:
                    try:
                        message = q.get(timeout=self.STREAM_HEARTBEAT)
                    except queue.Empty:
                        yield ": heartbeat\n\n"
                        continue
                    if message is None:
                        break
                    yield f"data: {json.dumps(message, ensure_ascii=False)}\n\n"
            finally:
                unsubscribe()

        return close, generate()
