"""
Connectivity/Lifecycle Adapter - online/offline signals and host wake hook

The sync manager only depends on :class:`ConnectivityAdapter`:

* ``is_online()`` - current belief about the network
* ``on_online(cb)`` / ``on_offline(cb)`` - transition hooks
* ``register_wake_handler(handler)`` - best-effort host wake-up (POSIX
  signal), the periodic timer remains the portable fallback

Implementations:

* :class:`ManualConnectivity` - the host reports transitions explicitly
* :class:`ProbeConnectivity` - a daemon thread probes a URL with requests
"""
import itertools
import signal
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import requests

from ...utils.logger import get_logger

logger = get_logger('connectivity')

Callback = Callable[[], None]


class ConnectivityAdapter(ABC):
    """Base adapter with callback bookkeeping and the signal wake hook."""

    def __init__(self, wake_signal: Optional[str] = None):
        self._wake_signal = wake_signal
        self._online_callbacks: Dict[int, Callback] = {}
        self._offline_callbacks: Dict[int, Callback] = {}
        self._cb_lock = threading.Lock()
        self._ids = itertools.count(1)

    @abstractmethod
    def is_online(self) -> bool:
        """Whether the remote store is believed reachable."""

    def _register(self, registry: Dict[int, Callback], callback: Callback) -> Callable[[], None]:
        with self._cb_lock:
            token = next(self._ids)
            registry[token] = callback

        def unregister() -> None:
            with self._cb_lock:
                registry.pop(token, None)

        return unregister

    def on_online(self, callback: Callback) -> Callable[[], None]:
        """Call ``callback`` whenever connectivity is restored."""
        return self._register(self._online_callbacks, callback)

    def on_offline(self, callback: Callback) -> Callable[[], None]:
        """Call ``callback`` whenever connectivity is lost."""
        return self._register(self._offline_callbacks, callback)

    def _fire(self, online: bool) -> None:
        registry = self._online_callbacks if online else self._offline_callbacks
        with self._cb_lock:
            callbacks = list(registry.values())

        label = 'online' if online else 'offline'
        logger.info(f"[Connectivity] Network: {label}")
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception(f"[Connectivity] {label} callback {callback!r} failed")

    def register_wake_handler(self, handler: Callback) -> bool:
        """Let the host wake a drain cycle through a POSIX signal.

        Best effort: unsupported platforms, a missing signal name or a call
        from a non-main thread are logged and reported as False.

        Returns:
            True if the handler was installed
        """
        if not self._wake_signal:
            logger.debug("[Connectivity] Wake signal disabled")
            return False

        signum = getattr(signal, self._wake_signal, None)
        if signum is None:
            logger.warning(f"[Connectivity] Wake signal {self._wake_signal} not available on this platform")
            return False

        def _on_signal(received, frame):
            # Never run a drain cycle inside the signal handler itself
            threading.Thread(target=handler, name='sync-wake', daemon=True).start()

        try:
            signal.signal(signum, _on_signal)
        except (ValueError, OSError) as e:
            logger.warning(f"[Connectivity] Wake handler not registered: {e}")
            return False

        logger.info(f"[Connectivity] Wake handler registered on {self._wake_signal}")
        return True

    def start(self) -> None:
        """Begin watching the network (no-op by default)."""

    def stop(self) -> None:
        """Stop watching the network (no-op by default)."""


class ManualConnectivity(ConnectivityAdapter):
    """Connectivity reported by the host application.

    Example:
        >>> adapter = ManualConnectivity(online=True)
        >>> adapter.on_offline(lambda: print('lost'))
        >>> adapter.set_online(False)
        lost
    """

    def __init__(self, online: bool = True, wake_signal: Optional[str] = None):
        super().__init__(wake_signal=wake_signal)
        self._online = online
        self._state_lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> bool:
        """Record the current state; transitions fire the hooks.

        Returns:
            True if the state changed
        """
        online = bool(online)
        with self._state_lock:
            changed = online != self._online
            self._online = online
        if changed:
            self._fire(online)
        return changed


class ProbeConnectivity(ConnectivityAdapter):
    """Detects connectivity by probing a URL on a daemon thread.

    Any HTTP answer below 500 counts as online; connection errors,
    timeouts and 5xx count as offline. Without a probe URL the adapter
    assumes it is online and never fires transitions.
    """

    def __init__(
        self,
        probe_url: str = '',
        check_interval: float = 15.0,
        timeout: float = 5.0,
        wake_signal: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(wake_signal=wake_signal)
        self.probe_url = probe_url
        self.check_interval = check_interval
        self.timeout = timeout
        self._session = session or requests.Session()
        self._online = True
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_online(self) -> bool:
        return self._online

    def _probe(self) -> bool:
        try:
            resp = self._session.head(self.probe_url, timeout=self.timeout, allow_redirects=True)
            return resp.status_code < 500
        except requests.RequestException as e:
            logger.debug(f"[Connectivity] Probe failed: {e}")
            return False

    def check_now(self) -> bool:
        """Probe once, fire a transition if the state changed.

        Returns:
            The probed state
        """
        if not self.probe_url:
            return self._online

        online = self._probe()
        with self._state_lock:
            changed = online != self._online
            self._online = online
        if changed:
            self._fire(online)
        return online

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.check_now()
            except Exception:
                logger.exception("[Connectivity] Probe loop error")
            self._stop_event.wait(self.check_interval)

    def start(self) -> None:
        if not self.probe_url:
            logger.warning("[Connectivity] No probe URL configured, assuming online")
            return
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='connectivity-probe', daemon=True)
        self._thread.start()
        logger.info(f"[Connectivity] Probing {self.probe_url} every {self.check_interval}s")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self.timeout + 1)
            self._thread = None
        self._session.close()
