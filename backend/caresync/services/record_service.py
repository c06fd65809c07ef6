"""
Offline Record Service - the caller side of the offline data flow

Writes go to the remote store first while online. When the device is
offline, or the remote fails transiently, the change is applied to the local
cache and queued for the sync manager instead. A remote rejection is
returned to the caller untouched; queueing it would only fail again.

Reads are remote-wins: a successful fetch overwrites the cached scope
wholesale, the cache is only served while the remote cannot be reached.
"""
import uuid
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import RemoteError, RemoteRejectedError, StorageUnavailableError, UnknownCollectionError
from ..models.base import isoformat, utcnow
from ..utils.logger import get_logger
from .sync import schema
from .sync.connectivity import ConnectivityAdapter
from .sync.local_store import LocalStore
from .sync.pending_queue import Operation, PendingOperationQueue
from .sync.remote_client import RemoteStore

logger = get_logger('record_service')

SOURCE_REMOTE = 'remote'
SOURCE_CACHE = 'cache'


class OfflineRecordService:
    """Write-through / read-through access to the cached collections.

    Write methods return ``{'record', 'queued', 'queue_id'}``; read methods
    return the records along with the ``source`` they came from.
    """

    def __init__(
        self,
        store: LocalStore,
        queue: PendingOperationQueue,
        remote: RemoteStore,
        connectivity: ConnectivityAdapter,
    ):
        self._store = store
        self._queue = queue
        self._remote = remote
        self._connectivity = connectivity

    @staticmethod
    def _require_cached(collection: str) -> None:
        if collection not in schema.CACHED_COLLECTIONS:
            raise UnknownCollectionError(f"Unknown collection: {collection}")

    @staticmethod
    def _result(record: Optional[Dict[str, Any]], queue_id: Optional[str] = None) -> Dict[str, Any]:
        return {'record': record, 'queued': queue_id is not None, 'queue_id': queue_id}

    def _queue_write(self, operation: Operation, collection: str, payload: Dict[str, Any],
                     reason: str, update_cache: Callable[[], Optional[Dict[str, Any]]]) -> Dict[str, Any]:
        """Queue the write, then mirror it in the cache.

        Nothing is cached unless the write is queued. When the cache update
        fails the queued item is withdrawn again.
        """
        queue_id = self._queue.enqueue(operation.value, collection, payload)
        try:
            cached = update_cache()
        except StorageUnavailableError:
            self._queue.remove(queue_id)
            raise
        logger.info(f"[RecordService] {operation.value} on {collection} queued ({reason})")
        return self._result(cached, queue_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a record. A client-side id is generated when missing.

        Raises:
            RemoteRejectedError: the remote refused the record
            StorageUnavailableError: offline and nowhere durable to queue it
        """
        self._require_cached(collection)
        now = isoformat(utcnow())
        record = dict(data)
        record['id'] = str(record.get('id') or uuid.uuid4())
        record.setdefault('created_at', now)
        record.setdefault('updated_at', now)

        reason = 'offline'
        if self._connectivity.is_online():
            try:
                stored = self._remote.create(collection, record)
            except RemoteRejectedError:
                raise
            except RemoteError as e:
                reason = str(e)
            else:
                merged = {**record, **(stored or {})}
                return self._result(self._store.put(collection, merged))

        return self._queue_write(
            Operation.INSERT, collection, record, reason,
            lambda: self._store.put(collection, record),
        )

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``changes`` to one record."""
        self._require_cached(collection)
        changes = {k: v for k, v in changes.items() if k != 'id'}
        changes.setdefault('updated_at', isoformat(utcnow()))

        reason = 'offline'
        if self._connectivity.is_online():
            try:
                self._remote.update(collection, record_id, changes)
            except RemoteRejectedError:
                raise
            except RemoteError as e:
                reason = str(e)
            else:
                return self._result(self._merge_cached(collection, record_id, changes))

        return self._queue_write(
            Operation.UPDATE, collection, {'id': record_id, **changes}, reason,
            lambda: self._merge_cached(collection, record_id, changes),
        )

    def _merge_cached(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        current = self._store.get_by_id(collection, record_id) or {}
        return self._store.put(collection, {**current, **changes, 'id': record_id})

    def _evict_cached(self, collection: str, record_id: str) -> None:
        self._store.delete(collection, record_id)

    def delete(self, collection: str, record_id: str) -> Dict[str, Any]:
        """Delete one record."""
        self._require_cached(collection)

        reason = 'offline'
        if self._connectivity.is_online():
            try:
                self._remote.delete(collection, record_id)
            except RemoteRejectedError:
                raise
            except RemoteError as e:
                reason = str(e)
            else:
                self._store.delete(collection, record_id)
                return self._result(None)

        return self._queue_write(
            Operation.DELETE, collection, {'id': record_id}, reason,
            lambda: self._evict_cached(collection, record_id),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch(self, collection: str, filters: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
        """Remote read, or None when the cache has to be used."""
        if not self._connectivity.is_online():
            return None
        try:
            return self._remote.fetch(collection, filters)
        except NotImplementedError:
            return None
        except RemoteError as e:
            logger.warning(f"[RecordService] Fetch {collection} failed, serving cache: {e}")
            return None

    def list(self, collection: str, index_name: Optional[str] = None, key: Any = None) -> Dict[str, Any]:
        """All records of a collection, or of one index bucket.

        Returns:
            {'records': [...], 'source': 'remote' | 'cache'}
        """
        self._require_cached(collection)
        field = schema.get_index_field(collection, index_name) if index_name else None
        filters = {field: key} if field else None

        fetched = self._fetch(collection, filters)
        if fetched is None:
            if index_name:
                records = self._store.get_by_index(collection, index_name, key)
            else:
                records = self._store.get_all(collection)
            return {'records': records, 'source': SOURCE_CACHE}

        # The remote copy replaces the cached scope
        if index_name:
            self._store.delete_by_index(collection, index_name, key)
        else:
            self._store.clear(collection)
        self._store.put_many(collection, [r for r in fetched if r.get('id') is not None])
        return {'records': fetched, 'source': SOURCE_REMOTE}

    def get(self, collection: str, record_id: str) -> Dict[str, Any]:
        """One record by id.

        Returns:
            {'record': {...} | None, 'source': 'remote' | 'cache'}
        """
        self._require_cached(collection)

        fetched = self._fetch(collection, {'id': record_id})
        if fetched is None:
            return {'record': self._store.get_by_id(collection, record_id), 'source': SOURCE_CACHE}

        if not fetched:
            self._store.delete(collection, record_id)
            return {'record': None, 'source': SOURCE_REMOTE}

        record = fetched[0]
        self._store.put(collection, {**record, 'id': record.get('id', record_id)})
        return {'record': record, 'source': SOURCE_REMOTE}
