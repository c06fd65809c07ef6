"""
Remote Store Adapter - the system of record

:class:`RemoteStore` is the contract the sync manager consumes. Any result
other than success is an exception; the manager treats every exception as
a retryable failure.

:class:`RestTableClient` talks to a PostgREST table API (Supabase style):

    POST   {base}/rest/v1/{table}                 create
    PATCH  {base}/rest/v1/{table}?id=eq.{id}      update
    DELETE {base}/rest/v1/{table}?id=eq.{id}      delete
    GET    {base}/rest/v1/{table}?{field}=eq.{v}  fetch
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ...exceptions import RemoteRejectedError, RemoteTransientError
from ...utils.logger import get_logger
from .session_pool import RequestSessionPool

logger = get_logger('remote_client')


class RemoteStore(ABC):
    """Network-accessible table store with insert/update/delete by id."""

    @abstractmethod
    def create(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a record, returning the stored record."""

    @abstractmethod
    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> None:
        """Update the record ``record_id`` with ``changes``."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        """Delete the record ``record_id``."""

    def fetch(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Read records matching ``filters`` (field equality)."""
        raise NotImplementedError(f"{type(self).__name__} does not support reads")

    def get_stats(self) -> Dict[str, Any]:
        """Transport counters, empty when the adapter keeps none."""
        return {}

    def close(self) -> None:
        """Release network resources."""


class RestTableClient(RemoteStore):
    """PostgREST client over a pooled requests session.

    Error mapping:
        * connection errors, timeouts, 5xx, 408, 429 -> RemoteTransientError
        * any other non-2xx                       -> RemoteRejectedError
    """

    TRANSIENT_STATUS = frozenset({408, 425, 429})

    def __init__(
        self,
        base_url: str,
        api_key: str = '',
        timeout: float = 10.0,
        pool: Optional[RequestSessionPool] = None,
    ):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        headers = {'Content-Type': 'application/json'}
        if api_key:
            headers['apikey'] = api_key
            headers['Authorization'] = f'Bearer {api_key}'
        self._pool = pool or RequestSessionPool(default_headers=headers)

    def _url(self, collection: str) -> str:
        return f"{self.base_url}/rest/v1/{collection}"

    @staticmethod
    def _eq(value: Any) -> str:
        return f"eq.{value}"

    def _send(self, method: str, collection: str, **kwargs) -> requests.Response:
        if not self.base_url:
            raise RemoteTransientError("Remote store is not configured (REMOTE_BASE_URL)")

        try:
            resp = self._pool.request(method, self._url(collection), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteTransientError(f"{method} {collection} failed: {e}") from e

        if resp.status_code < 300:
            return resp

        message = self._error_message(resp)
        if resp.status_code >= 500 or resp.status_code in self.TRANSIENT_STATUS:
            raise RemoteTransientError(
                f"{method} {collection} -> {resp.status_code}: {message}",
                status_code=resp.status_code,
            )
        raise RemoteRejectedError(
            f"{method} {collection} -> {resp.status_code}: {message}",
            status_code=resp.status_code,
        )

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return (resp.text or '')[:200]
        if isinstance(body, dict):
            return str(body.get('message') or body.get('error') or body)[:200]
        return str(body)[:200]

    def create(self, collection: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._send(
            'POST', collection,
            json=payload,
            headers={'Prefer': 'return=representation'},
        )
        try:
            body = resp.json()
        except ValueError:
            return dict(payload)
        if isinstance(body, list):
            return body[0] if body else dict(payload)
        return body if isinstance(body, dict) else dict(payload)

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> None:
        self._send(
            'PATCH', collection,
            params={'id': self._eq(record_id)},
            json=changes,
            headers={'Prefer': 'return=minimal'},
        )

    def delete(self, collection: str, record_id: str) -> None:
        self._send(
            'DELETE', collection,
            params={'id': self._eq(record_id)},
            headers={'Prefer': 'return=minimal'},
        )

    def fetch(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params = {'select': '*'}
        for field, value in (filters or {}).items():
            params[field] = self._eq(value)
        resp = self._send('GET', collection, params=params)
        try:
            body = resp.json()
        except ValueError as e:
            raise RemoteTransientError(f"GET {collection} returned invalid JSON") from e
        return body if isinstance(body, list) else [body]

    def get_stats(self) -> Dict:
        return self._pool.get_stats()

    def close(self) -> None:
        self._pool.close()
