"""
Pending Operation Queue - durable log of remote mutations not yet applied

Built on the local store's ``pending_operations`` collection. Items keep
their insertion order and carry a retry counter that only ever grows.
"""
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ...exceptions import InvalidOperationError
from ...models.base import isoformat, utcnow
from ...utils.logger import get_logger
from ...utils.validators import sanitize_string, validate_collection_name, validate_operation, validate_payload
from .local_store import LocalStore
from .schema import PENDING_COLLECTION

logger = get_logger('pending_queue')


class Operation(str, Enum):
    """Kind of remote mutation."""

    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'


@dataclass(frozen=True)
class PendingOperation:
    """Snapshot of one queued mutation.

    The payload stays opaque here; the remote adapter decides how to
    interpret it.
    """

    id: str
    operation: Operation
    collection: str
    payload: Dict[str, Any] = field(default_factory=dict)
    enqueued_at: Optional[str] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    last_attempt_at: Optional[str] = None

    @property
    def target_id(self) -> Optional[str]:
        record_id = self.payload.get('id')
        return str(record_id) if record_id is not None else None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'PendingOperation':
        return cls(
            id=record['id'],
            operation=Operation(record['operation']),
            collection=record['collection'],
            payload=record.get('payload') or {},
            enqueued_at=record.get('enqueued_at'),
            retry_count=int(record.get('retry_count') or 0),
            last_error=record.get('last_error'),
            last_attempt_at=record.get('last_attempt_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'operation': self.operation.value,
            'collection': self.collection,
            'payload': self.payload,
            'enqueued_at': self.enqueued_at,
            'retry_count': self.retry_count,
            'last_error': self.last_error,
            'last_attempt_at': self.last_attempt_at,
        }


class PendingOperationQueue:
    """FIFO of pending operations persisted in the local store.

    Example:
        >>> queue = PendingOperationQueue(store)
        >>> op_id = queue.enqueue('insert', 'daily_logs', {'child_id': 'c1', 'notes': 'calm day'})
        >>> [item.id for item in queue.list_pending()]
        >>> queue.remove(op_id)
    """

    def __init__(self, store: LocalStore):
        self._store = store

    def enqueue(self, operation: str, collection: str, payload: Dict[str, Any]) -> str:
        """Persist a new pending operation with retry_count 0.

        Returns:
            The generated operation id

        Raises:
            InvalidOperationError: malformed envelope
            StorageUnavailableError: nowhere durable to queue it
        """
        is_valid, error_msg, operation = validate_operation(operation)
        if not is_valid:
            raise InvalidOperationError(error_msg)

        is_valid, error_msg = validate_collection_name(collection)
        if not is_valid:
            raise InvalidOperationError(error_msg)

        is_valid, error_msg = validate_payload(operation, payload)
        if not is_valid:
            raise InvalidOperationError(error_msg)

        op_id = str(uuid.uuid4())
        self._store.put(PENDING_COLLECTION, {
            'id': op_id,
            'operation': operation,
            'collection': collection,
            'payload': payload,
            'enqueued_at': isoformat(utcnow()),
            'retry_count': 0,
        })
        logger.info(f"[PendingQueue] Queued {operation} on {collection} ({op_id})")
        return op_id

    def list_pending(self) -> List[PendingOperation]:
        """All queued items in insertion order."""
        return [PendingOperation.from_record(r) for r in self._store.get_all(PENDING_COLLECTION)]

    def get(self, op_id: str) -> Optional[PendingOperation]:
        record = self._store.get_by_id(PENDING_COLLECTION, op_id)
        return PendingOperation.from_record(record) if record else None

    def list_by_collection(self, collection: str) -> List[PendingOperation]:
        records = self._store.get_by_index(PENDING_COLLECTION, 'by-collection', collection)
        return [PendingOperation.from_record(r) for r in records]

    def list_exhausted(self, max_retries: int) -> List[PendingOperation]:
        """Items that reached the retry ceiling and are no longer replayed."""
        return [item for item in self.list_pending() if item.retry_count >= max_retries]

    def remove(self, op_id: str) -> bool:
        """Delete one item. Removing an unknown id is a no-op."""
        removed = self._store.delete(PENDING_COLLECTION, op_id)
        if removed:
            logger.debug(f"[PendingQueue] Removed {op_id}")
        return removed

    def increment_retry(self, op_id: str, error: Optional[str] = None) -> Optional[int]:
        """Bump the retry counter of one item.

        Returns:
            The new retry count, or None if the item no longer exists
        """
        record = self._store.get_by_id(PENDING_COLLECTION, op_id)
        if record is None:
            return None

        record['retry_count'] = int(record.get('retry_count') or 0) + 1
        record['last_attempt_at'] = isoformat(utcnow())
        if error is not None:
            record['last_error'] = sanitize_string(error, max_length=1000)
        self._store.put(PENDING_COLLECTION, record)
        return record['retry_count']

    def count(self) -> int:
        return self._store.count(PENDING_COLLECTION)

    def has_any(self) -> bool:
        return self.count() > 0
