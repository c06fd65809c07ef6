"""
Request Session Pool - HTTP connection pooling for the remote store

Reuses TCP/TLS connections across replayed operations instead of paying a
handshake per request.
"""
import threading
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from ...utils.logger import get_logger

logger = get_logger('session_pool')


class RequestSessionPool:
    """Pooled requests.Session with request/error counters.

    Example:
        >>> pool = RequestSessionPool(default_headers={'apikey': '...'})
        >>> response = pool.request('GET', 'https://example.supabase.co/rest/v1/children', timeout=10)
        >>> pool.get_stats()
    """

    # Connection pool configuration
    POOL_CONNECTIONS = 10  # Number of connection pools to cache
    POOL_MAXSIZE = 10      # Max connections per host
    MAX_RETRIES = 3        # Connection-level retries (reads of POST/PATCH are never retried)

    def __init__(self, default_headers: Optional[Dict[str, str]] = None):
        self._session = requests.Session()

        adapter = HTTPAdapter(
            pool_connections=self.POOL_CONNECTIONS,
            pool_maxsize=self.POOL_MAXSIZE,
            max_retries=self.MAX_RETRIES,
            pool_block=False
        )
        self._session.mount('http://', adapter)
        self._session.mount('https://', adapter)

        if default_headers:
            self._session.headers.update(default_headers)

        self._stats = {'requests': 0, 'errors': 0}
        self._stats_lock = threading.Lock()

        logger.info(
            f"[RequestSessionPool] Initialized: "
            f"pool_connections={self.POOL_CONNECTIONS}, pool_maxsize={self.POOL_MAXSIZE}"
        )

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request through the pooled session.

        Raises:
            requests.RequestException: on transport failure
        """
        with self._stats_lock:
            self._stats['requests'] += 1

        try:
            return self._session.request(method, url, **kwargs)
        except requests.RequestException:
            with self._stats_lock:
                self._stats['errors'] += 1
            raise

    @property
    def session(self) -> requests.Session:
        return self._session

    def get_stats(self) -> Dict:
        with self._stats_lock:
            return self._stats.copy()

    def close(self) -> None:
        """Close all connections in the pool."""
        self._session.close()
        logger.info("[RequestSessionPool] Session pool closed")
