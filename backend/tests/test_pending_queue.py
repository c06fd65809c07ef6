"""
Pending Queue Tests

Tests for the durable queue of remote mutations.
"""
from datetime import datetime
from decimal import Decimal

import pytest

from caresync.exceptions import InvalidOperationError
from caresync.services.sync.pending_queue import Operation, PendingOperation


class TestEnqueue:
    """Tests for enqueue validation and persistence."""

    def test_enqueue_then_list(self, queue):
        op_id = queue.enqueue('insert', 'daily_logs', {'child_id': 'c1', 'notes': 'calm day'})

        items = queue.list_pending()
        assert len(items) == 1
        item = items[0]
        assert isinstance(item, PendingOperation)
        assert item.id == op_id
        assert item.operation is Operation.INSERT
        assert item.collection == 'daily_logs'
        assert item.payload == {'child_id': 'c1', 'notes': 'calm day'}
        assert item.retry_count == 0
        assert item.enqueued_at.endswith('Z')

    def test_ids_are_unique(self, queue):
        ids = {queue.enqueue('insert', 'children', {'name': str(i)}) for i in range(5)}
        assert len(ids) == 5

    def test_operation_is_normalised(self, queue):
        queue.enqueue(' UPDATE ', 'children', {'id': 'c1', 'name': 'x'})
        assert queue.list_pending()[0].operation is Operation.UPDATE

    @pytest.mark.parametrize('operation,collection,payload', [
        ('upsert', 'children', {'id': 'c1'}),
        ('insert', '', {'name': 'x'}),
        ('insert', 'drop table;', {'name': 'x'}),
        ('insert', 'children', ['not', 'a', 'dict']),
        ('update', 'children', {'name': 'missing id'}),
        ('delete', 'children', {'id': '  '}),
        ('insert', 'children', {'id': 'c1', 'amount': Decimal('2.5')}),
        ('update', 'daily_logs', {'id': 'l1', 'logged_at': datetime(2024, 3, 1)}),
        ('insert', 'children', {'id': 'c1', 'score': float('nan')}),
    ])
    def test_invalid_envelope(self, queue, operation, collection, payload):
        with pytest.raises(InvalidOperationError):
            queue.enqueue(operation, collection, payload)
        assert queue.count() == 0


class TestOrdering:
    """Insertion order is preserved."""

    def test_list_pending_in_insertion_order(self, queue):
        ids = [
            queue.enqueue('insert', 'children', {'id': 'z'}),
            queue.enqueue('update', 'children', {'id': 'a', 'name': 'A'}),
            queue.enqueue('delete', 'children', {'id': 'm'}),
        ]
        assert [item.id for item in queue.list_pending()] == ids

    def test_order_survives_removal_and_retry(self, queue):
        first = queue.enqueue('insert', 'children', {'id': '1'})
        second = queue.enqueue('insert', 'children', {'id': '2'})
        third = queue.enqueue('insert', 'children', {'id': '3'})

        queue.increment_retry(first, 'timeout')
        queue.remove(second)
        fourth = queue.enqueue('insert', 'children', {'id': '4'})

        assert [item.id for item in queue.list_pending()] == [first, third, fourth]


class TestRemoveAndRetry:
    """remove / increment_retry semantics."""

    def test_enqueue_remove_round_trip(self, queue):
        op_id = queue.enqueue('delete', 'medications', {'id': 'm1'})

        assert queue.remove(op_id) is True
        assert queue.list_pending() == []
        assert queue.has_any() is False

    def test_remove_unknown_is_noop(self, queue):
        queue.enqueue('delete', 'medications', {'id': 'm1'})

        assert queue.remove('does-not-exist') is False
        assert queue.count() == 1

    def test_increment_retry(self, queue):
        op_id = queue.enqueue('update', 'medications', {'id': 'm1', 'dosage': '5ml'})

        assert queue.increment_retry(op_id, 'HTTP 503') == 1
        assert queue.increment_retry(op_id) == 2

        item = queue.get(op_id)
        assert item.retry_count == 2
        assert item.last_error == 'HTTP 503'
        assert item.last_attempt_at is not None
        assert item.payload == {'id': 'm1', 'dosage': '5ml'}

    def test_increment_retry_on_removed_item(self, queue):
        op_id = queue.enqueue('insert', 'children', {'id': 'c1'})
        queue.remove(op_id)

        assert queue.increment_retry(op_id, 'late failure') is None
        assert queue.count() == 0

    def test_last_error_truncated(self, queue):
        op_id = queue.enqueue('insert', 'children', {'id': 'c1'})
        queue.increment_retry(op_id, 'x' * 5000)

        assert len(queue.get(op_id).last_error) == 1000


class TestQueries:
    """Diagnostic enumeration."""

    def test_count_and_has_any(self, queue):
        assert queue.count() == 0
        assert queue.has_any() is False

        queue.enqueue('insert', 'children', {'id': 'c1'})
        queue.enqueue('insert', 'children', {'id': 'c2'})

        assert queue.count() == 2
        assert queue.has_any() is True

    def test_list_by_collection(self, queue):
        queue.enqueue('insert', 'children', {'id': 'c1'})
        med = queue.enqueue('insert', 'medications', {'id': 'm1', 'child_id': 'c1'})
        queue.enqueue('insert', 'daily_logs', {'id': 'l1', 'child_id': 'c1'})

        items = queue.list_by_collection('medications')
        assert [item.id for item in items] == [med]

    def test_list_exhausted(self, queue):
        healthy = queue.enqueue('insert', 'children', {'id': 'c1'})
        stuck = queue.enqueue('insert', 'children', {'id': 'c2'})
        for _ in range(3):
            queue.increment_retry(stuck, 'HTTP 409')

        assert [item.id for item in queue.list_exhausted(3)] == [stuck]
        assert queue.list_exhausted(5) == []
        assert queue.get(healthy).retry_count == 0

    def test_get_unknown(self, queue):
        assert queue.get('missing') is None

    def test_target_id_and_to_dict(self, queue):
        op_id = queue.enqueue('delete', 'children', {'id': 42})
        item = queue.get(op_id)

        assert item.target_id == '42'
        data = item.to_dict()
        assert data['operation'] == 'delete'
        assert data['retry_count'] == 0


class TestDurability:
    """The queue lives in the store file, not in the process."""

    def test_queue_survives_restart(self, tmp_path, fake_remote):
        from caresync import create_app
        from caresync.config import TestingConfig
        from caresync.services.context import init_offline_context
        from caresync.services.sync.connectivity import ManualConnectivity

        path = tmp_path / 'caresync_offline.db'

        class FileStoreConfig(TestingConfig):
            SQLALCHEMY_DATABASE_URI = f'sqlite:///{path}'

        def boot():
            app = create_app(FileStoreConfig)
            return app, init_offline_context(
                app, remote=fake_remote, connectivity=ManualConnectivity(online=False), auto_start=False,
            )

        app, ctx = boot()
        with app.app_context():
            first = ctx.queue.enqueue('insert', 'children', {'id': 'c1', 'name': 'Sam'})
            second = ctx.queue.enqueue('update', 'medications', {'id': 'm1', 'dosage': '5ml'})
            ctx.queue.increment_retry(second, 'HTTP 503')
        ctx.shutdown()
        with app.app_context():
            from caresync.extensions import db
            db.engine.dispose()

        app, ctx = boot()
        try:
            with app.app_context():
                items = ctx.queue.list_pending()
                assert [item.id for item in items] == [first, second]
                assert [item.retry_count for item in items] == [0, 1]
                assert items[1].payload == {'id': 'm1', 'dosage': '5ml'}
                assert items[1].last_error == 'HTTP 503'
        finally:
            ctx.shutdown()
