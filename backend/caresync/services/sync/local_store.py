"""
Local Durable Store - schema-indexed local database

Holds the cached copies of remote records and the pending operation queue.
Records go in and out as plain dicts; each collection is backed by a model
registered in :mod:`.schema`. Every write is committed on its own, and any
database failure is rolled back and surfaced as StorageUnavailableError.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ...exceptions import StorageUnavailableError
from ...extensions import db
from ...utils.logger import get_logger
from . import schema

logger = get_logger('local_store')


class LocalStore:
    """Generic record store over the local SQLAlchemy database.

    Must be used inside a Flask application context.

    Example:
        >>> store = LocalStore()
        >>> store.initialize()
        >>> store.put('medications', {'id': 'm1', 'child_id': 'c1', 'name': 'Ibuprofen'})
        >>> store.get_by_index('medications', 'by-child', 'c1')
    """

    def __init__(self):
        self._version = None

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"[LocalStore] {action} failed: {e}")
            raise StorageUnavailableError(f"Local store {action} failed: {e}") from e

    def initialize(self) -> int:
        """Open the store and run pending schema migrations.

        Returns:
            The schema version after initialization
        """
        with self._guard('initialize'):
            previous, current = schema.upgrade(db.engine)
        if previous != current:
            logger.info(f"[LocalStore] Schema upgraded v{previous} -> v{current}")
        self._version = current
        return current

    @property
    def schema_version(self) -> Optional[int]:
        return self._version

    # ------------------------------------------------------------------
    # Single record operations
    # ------------------------------------------------------------------

    def _find(self, model, record_id: Any):
        return model.query.filter_by(**{model.KEY_FIELD: str(record_id)}).first()

    def put(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace one record (keyed by its ``id``)."""
        model = schema.get_model(collection)
        if record.get(model.KEY_FIELD) is None:
            raise ValueError(f"{collection} record requires '{model.KEY_FIELD}'")

        with self._guard(f'put {collection}'):
            row = self._find(model, record[model.KEY_FIELD])
            if row is None:
                row = model.from_record(record)
                db.session.add(row)
            else:
                row.apply_record(record)
            db.session.commit()
            return row.to_record()

    def put_many(self, collection: str, records: Iterable[Dict[str, Any]]) -> int:
        """Insert or replace several records in one transaction."""
        model = schema.get_model(collection)
        count = 0
        with self._guard(f'put_many {collection}'):
            for record in records:
                row = self._find(model, record[model.KEY_FIELD])
                if row is None:
                    db.session.add(model.from_record(record))
                else:
                    row.apply_record(record)
                count += 1
                # Later records in the batch may hit the same key
                db.session.flush()
            db.session.commit()
        return count

    def get_by_id(self, collection: str, record_id: Any) -> Optional[Dict[str, Any]]:
        model = schema.get_model(collection)
        with self._guard(f'get {collection}'):
            row = self._find(model, record_id)
            return row.to_record() if row else None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        model = schema.get_model(collection)
        with self._guard(f'get_all {collection}'):
            rows = model.query.order_by(getattr(model, model.ORDER_BY)).all()
            return [row.to_record() for row in rows]

    def get_by_index(self, collection: str, index_name: str, key: Any) -> List[Dict[str, Any]]:
        """All records whose indexed field equals ``key``."""
        model = schema.get_model(collection)
        field = schema.get_index_field(collection, index_name)
        with self._guard(f'get_by_index {collection}.{index_name}'):
            rows = (
                model.query
                .filter(getattr(model, field) == str(key))
                .order_by(getattr(model, model.ORDER_BY))
                .all()
            )
            return [row.to_record() for row in rows]

    def count(self, collection: str) -> int:
        model = schema.get_model(collection)
        with self._guard(f'count {collection}'):
            return model.query.count()

    def delete(self, collection: str, record_id: Any) -> bool:
        """Delete one record. Missing ids are a no-op.

        Returns:
            True if a row was deleted
        """
        model = schema.get_model(collection)
        with self._guard(f'delete {collection}'):
            deleted = model.query.filter_by(
                **{model.KEY_FIELD: str(record_id)}
            ).delete(synchronize_session=False)
            db.session.commit()
            return deleted > 0

    def delete_by_index(self, collection: str, index_name: str, key: Any) -> int:
        """Delete every record of one index bucket (used to evict a stale scope)."""
        model = schema.get_model(collection)
        field = schema.get_index_field(collection, index_name)
        with self._guard(f'delete_by_index {collection}.{index_name}'):
            deleted = model.query.filter(
                getattr(model, field) == str(key)
            ).delete(synchronize_session=False)
            db.session.commit()
            return deleted

    def clear(self, collection: str) -> int:
        model = schema.get_model(collection)
        with self._guard(f'clear {collection}'):
            deleted = model.query.delete(synchronize_session=False)
            db.session.commit()
            logger.info(f"[LocalStore] Cleared {collection} ({deleted} records)")
            return deleted

    # ------------------------------------------------------------------
    # Whole store
    # ------------------------------------------------------------------

    def clear_all(self) -> Dict[str, int]:
        """Clear every collection, the pending queue included."""
        return {name: self.clear(name) for name in schema.COLLECTIONS}

    def export_all(self) -> Dict[str, List[Dict[str, Any]]]:
        """Dump every collection, for backup or diagnostics."""
        return {name: self.get_all(name) for name in schema.COLLECTIONS}
