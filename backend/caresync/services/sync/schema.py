"""
Local Store Schema - collection registry and version-gated migrations

Every collection maps to one model with a stable primary key and zero or more
named secondary indexes. The schema version lives in ``store_meta`` and only
ever grows; each migration step runs exactly once, in order, when the store
is initialized.
"""
from typing import Callable, Dict, List, Tuple, Type

from sqlalchemy import inspect, insert, select, text, update
from sqlalchemy.engine import Connection, Engine

from ...exceptions import StorageUnavailableError, UnknownCollectionError, UnknownIndexError
from ...models import Child, DailyLog, Medication, QueuedOperation, StoreMeta
from ...utils.logger import get_logger

logger = get_logger('schema')

SCHEMA_VERSION = 2

PENDING_COLLECTION = QueuedOperation.__tablename__

COLLECTIONS: Dict[str, Type] = {
    Child.__tablename__: Child,
    Medication.__tablename__: Medication,
    DailyLog.__tablename__: DailyLog,
    PENDING_COLLECTION: QueuedOperation,
}

CACHED_COLLECTIONS = tuple(name for name in COLLECTIONS if name != PENDING_COLLECTION)

_VERSION_KEY = 'schema_version'


def get_model(collection: str) -> Type:
    """Return the model backing ``collection``."""
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise UnknownCollectionError(f"Unknown collection: {collection}") from None


def get_index_field(collection: str, index_name: str) -> str:
    """Return the field behind ``index_name`` of ``collection``."""
    model = get_model(collection)
    try:
        return model.INDEXES[index_name]
    except KeyError:
        raise UnknownIndexError(
            f"Unknown index '{index_name}' on {collection}, "
            f"expected one of {sorted(model.INDEXES)}"
        ) from None


def describe() -> Dict[str, Dict]:
    """Collections, key paths and indexes, for diagnostics."""
    return {
        name: {'key': model.KEY_FIELD, 'indexes': dict(model.INDEXES)}
        for name, model in COLLECTIONS.items()
    }


# ==================== Migrations ====================

def _migrate_v1(connection: Connection) -> None:
    """Create the cached collections and the pending operation queue."""
    tables = [model.__table__ for model in COLLECTIONS.values()]
    StoreMeta.metadata.create_all(connection, tables=tables, checkfirst=True)


def _migrate_v2(connection: Connection) -> None:
    """Drop key_information (merged into children) and re-key children by created_by."""
    inspector = inspect(connection)
    tables = inspector.get_table_names()

    if 'key_information' in tables:
        connection.execute(text('DROP TABLE key_information'))
        logger.info("[Schema] Dropped legacy key_information table")

    if Child.__tablename__ in tables:
        columns = {column['name'] for column in inspector.get_columns(Child.__tablename__)}
        if 'created_by' not in columns:
            # Cached rows are a mirror of the remote, rebuilding loses nothing
            Child.__table__.drop(connection)
            Child.__table__.create(connection)
            logger.info("[Schema] Rebuilt children with the by-created-by index")
    else:
        Child.__table__.create(connection)


MIGRATIONS: List[Tuple[int, Callable[[Connection], None], str]] = [
    (1, _migrate_v1, 'create collections'),
    (2, _migrate_v2, 'drop key_information, re-key children by created_by'),
]


def read_version(connection: Connection) -> int:
    """Stored schema version, 0 for a brand new store."""
    if not inspect(connection).has_table(StoreMeta.__tablename__):
        return 0
    table = StoreMeta.__table__
    value = connection.execute(
        select(table.c.value).where(table.c.key == _VERSION_KEY)
    ).scalar()
    return int(value) if value else 0


def _write_version(connection: Connection, version: int) -> None:
    table = StoreMeta.__table__
    result = connection.execute(
        update(table).where(table.c.key == _VERSION_KEY).values(value=str(version))
    )
    if not result.rowcount:
        connection.execute(insert(table).values(key=_VERSION_KEY, value=str(version)))


def upgrade(engine: Engine) -> Tuple[int, int]:
    """Bring the store up to SCHEMA_VERSION.

    Returns:
        (previous_version, current_version)

    Raises:
        StorageUnavailableError: the store was written by a newer schema
    """
    with engine.begin() as connection:
        StoreMeta.__table__.create(connection, checkfirst=True)
        current = read_version(connection)

    if current > SCHEMA_VERSION:
        raise StorageUnavailableError(
            f"Local store schema v{current} is newer than supported v{SCHEMA_VERSION}"
        )

    previous = current
    for version, step, description in MIGRATIONS:
        if version <= current:
            continue
        with engine.begin() as connection:
            step(connection)
            _write_version(connection, version)
        current = version
        logger.info(f"[Schema] Migrated local store to v{version}: {description}")

    return previous, current
