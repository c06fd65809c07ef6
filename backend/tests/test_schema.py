"""
Schema Tests

Collection registry and version-gated migrations of the local store.
"""
import pytest
from sqlalchemy import create_engine, inspect, text

from caresync.exceptions import StorageUnavailableError, UnknownCollectionError, UnknownIndexError
from caresync.services.sync import schema


def _legacy_engine(path, version):
    """A store written by an older release: children keyed by user_id, key_information present."""
    from caresync.models import DailyLog, Medication, QueuedOperation, StoreMeta

    engine = create_engine(f'sqlite:///{path}')
    StoreMeta.metadata.create_all(engine, tables=[
        StoreMeta.__table__, Medication.__table__, DailyLog.__table__, QueuedOperation.__table__,
    ])
    with engine.begin() as conn:
        conn.execute(text(
            'CREATE TABLE children (id VARCHAR(64) PRIMARY KEY, user_id VARCHAR(64), '
            'data TEXT, created_at VARCHAR(64), updated_at VARCHAR(64))'
        ))
        conn.execute(text("INSERT INTO children (id, user_id, data) VALUES ('c1', 'u1', '{}')"))
        conn.execute(text('CREATE TABLE key_information (id VARCHAR(64) PRIMARY KEY, child_id VARCHAR(64))'))
        conn.execute(text("INSERT INTO medications (id, child_id, data) VALUES ('m1', 'c1', '{}')"))
        conn.execute(text(f"INSERT INTO store_meta (key, value) VALUES ('schema_version', '{version}')"))
    return engine


class TestRegistry:
    """Collection lookups."""

    def test_get_model(self):
        from caresync.models import Medication

        assert schema.get_model('medications') is Medication

    def test_unknown_collection(self):
        with pytest.raises(UnknownCollectionError):
            schema.get_model('documents')

    def test_get_index_field(self):
        assert schema.get_index_field('daily_logs', 'by-date') == 'date'
        assert schema.get_index_field('pending_operations', 'by-collection') == 'collection'

    def test_unknown_index(self):
        with pytest.raises(UnknownIndexError):
            schema.get_index_field('children', 'by-child')

    def test_describe(self):
        described = schema.describe()

        assert described['children'] == {'key': 'id', 'indexes': {'by-created-by': 'created_by'}}
        assert 'pending_operations' in described
        assert schema.PENDING_COLLECTION not in schema.CACHED_COLLECTIONS


class TestUpgrade:
    """Version-gated migrations."""

    def test_fresh_store(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'fresh.db'}")

        assert schema.upgrade(engine) == (0, schema.SCHEMA_VERSION)

        tables = set(inspect(engine).get_table_names())
        assert {'children', 'medications', 'daily_logs', 'pending_operations', 'store_meta'} <= tables
        with engine.connect() as conn:
            assert schema.read_version(conn) == schema.SCHEMA_VERSION
        engine.dispose()

    def test_upgrade_is_idempotent(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'again.db'}")
        schema.upgrade(engine)

        assert schema.upgrade(engine) == (schema.SCHEMA_VERSION, schema.SCHEMA_VERSION)
        engine.dispose()

    def test_v1_store_migrates_to_v2(self, tmp_path):
        engine = _legacy_engine(tmp_path / 'legacy.db', version=1)

        assert schema.upgrade(engine) == (1, 2)

        inspector = inspect(engine)
        assert 'key_information' not in inspector.get_table_names()
        columns = {column['name'] for column in inspector.get_columns('children')}
        assert 'created_by' in columns
        assert 'user_id' not in columns
        with engine.connect() as conn:
            # Other collections are untouched
            assert conn.execute(text('SELECT id FROM medications')).scalar() == 'm1'
            assert schema.read_version(conn) == 2
        engine.dispose()

    def test_newer_store_is_refused(self, tmp_path):
        engine = _legacy_engine(tmp_path / 'future.db', version=schema.SCHEMA_VERSION + 1)

        with pytest.raises(StorageUnavailableError):
            schema.upgrade(engine)
        engine.dispose()

    def test_failed_step_keeps_previous_version(self, tmp_path, monkeypatch):
        engine = _legacy_engine(tmp_path / 'broken.db', version=1)

        def broken_step(connection):
            raise RuntimeError('migration bug')

        monkeypatch.setattr(schema, 'MIGRATIONS', [(1, schema._migrate_v1, 'v1'), (2, broken_step, 'v2')])

        with pytest.raises(RuntimeError):
            schema.upgrade(engine)
        with engine.connect() as conn:
            assert schema.read_version(conn) == 1
        engine.dispose()


class TestAppStartup:
    """The app migrates a legacy store file on start."""

    def test_create_app_on_legacy_file(self, tmp_path):
        from caresync import create_app
        from caresync.config import TestingConfig

        path = tmp_path / 'caresync_offline.db'
        _legacy_engine(path, version=1).dispose()

        class LegacyFileConfig(TestingConfig):
            SQLALCHEMY_DATABASE_URI = f'sqlite:///{path}'

        app = create_app(LegacyFileConfig)
        ctx = app.extensions['caresync']
        try:
            assert ctx.store.schema_version == 2
            with app.app_context():
                assert ctx.store.get_by_id('medications', 'm1')['child_id'] == 'c1'
                ctx.store.put('children', {'id': 'c9', 'created_by': 'carer-1'})
                assert len(ctx.store.get_by_index('children', 'by-created-by', 'carer-1')) == 1
        finally:
            ctx.shutdown()
