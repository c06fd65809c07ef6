"""
Pytest Configuration and Fixtures

This module provides shared fixtures for all tests.
"""
import os
import sys
import pytest

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from caresync import create_app
from caresync.config import TestingConfig
from caresync.exceptions import RemoteTransientError
from caresync.services.context import init_offline_context
from caresync.services.sync.connectivity import ManualConnectivity
from caresync.services.sync.remote_client import RemoteStore


class FakeRemoteStore(RemoteStore):
    """In-memory remote store with scriptable failures.

    - ``failures``: exceptions (or None for success) consumed one per call
    - ``fail_ids``: record ids whose every call fails transiently
    - ``on_call``: hook run before each mutation, e.g. to re-enter the manager
    """

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.failures = []
        self.fail_ids = set()
        self.on_call = None
        self.closed = False

    def _check(self, op, collection, record_id):
        self.calls.append((op, collection, record_id))
        if self.on_call:
            self.on_call(op, collection, record_id)
        if record_id in self.fail_ids:
            raise RemoteTransientError(f'{op} {collection}/{record_id} unavailable', status_code=503)
        if self.failures:
            error = self.failures.pop(0)
            if error is not None:
                raise error

    def create(self, collection, payload):
        self._check('create', collection, payload.get('id'))
        record = dict(payload)
        self.tables.setdefault(collection, {})[record.get('id')] = record
        return record

    def update(self, collection, record_id, changes):
        self._check('update', collection, record_id)
        table = self.tables.setdefault(collection, {})
        table[record_id] = {**table.get(record_id, {'id': record_id}), **changes}

    def delete(self, collection, record_id):
        self._check('delete', collection, record_id)
        self.tables.get(collection, {}).pop(record_id, None)

    def fetch(self, collection, filters=None):
        self.calls.append(('fetch', collection, filters))
        if self.failures:
            error = self.failures.pop(0)
            if error is not None:
                raise error
        records = list(self.tables.get(collection, {}).values())
        for field, value in (filters or {}).items():
            records = [r for r in records if str(r.get(field)) == str(value)]
        return records

    def close(self):
        self.closed = True


@pytest.fixture
def fake_remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return ManualConnectivity(online=True)


@pytest.fixture(scope='function')
def app(fake_remote, connectivity):
    """Create application for testing, wired to the fake remote."""
    app = create_app(TestingConfig)
    init_offline_context(app, remote=fake_remote, connectivity=connectivity, auto_start=False)

    with app.app_context():
        yield app

    app.extensions['caresync'].shutdown()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def engine(app):
    """The offline context of the test app."""
    return app.extensions['caresync']


@pytest.fixture
def store(engine):
    return engine.store


@pytest.fixture
def queue(engine):
    return engine.queue


@pytest.fixture
def manager(engine):
    return engine.manager


@pytest.fixture
def status_events(engine):
    """Every (status, pending_count) published by the manager."""
    events = []
    unsubscribe = engine.notifier.subscribe(lambda status, count: events.append((status.value, count)))
    yield events
    unsubscribe()


@pytest.fixture
def admin_headers():
    return {'X-API-Key': TestingConfig.ADMIN_API_KEY}


@pytest.fixture
def sample_child_data():
    """Sample child profile for testing."""
    return {
        'id': 'child-1',
        'name': 'Sam',
        'created_by': 'carer-1',
        'date_of_birth': '2015-04-02',
        'allergies': ['peanuts'],
    }


@pytest.fixture
def sample_medication_data():
    """Sample medication for testing."""
    return {
        'id': 'med-1',
        'child_id': 'child-1',
        'name': 'Ibuprofen',
        'dosage': '100mg',
        'frequency': 'every 8 hours',
    }


@pytest.fixture
def sample_daily_log_data():
    """Sample daily log entry for testing."""
    return {
        'id': 'log-1',
        'child_id': 'child-1',
        'date': '2024-03-01',
        'mood': 'happy',
        'notes': 'Good day at school',
    }
