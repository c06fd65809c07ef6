"""
Sync Module Tests

Tests for the small sync components: backoff, cycle report, session pool.
"""
import pytest
from unittest.mock import Mock, patch


class TestAdaptiveBackoff:
    """Tests for AdaptiveBackoff."""

    def test_initial_delay(self):
        """Without jitter the first delay is the base interval."""
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=30.0)

        assert backoff.get_delay() == 30.0

    def test_jitter_stays_in_range(self):
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=10.0, jitter=0.2)

        for _ in range(20):
            assert 8.0 <= backoff.get_delay() <= 12.0

    def test_failure_increases_delay(self):
        """Failing cycles stretch the wait."""
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=30.0, backoff_factor=2.0, max_delay=300.0)
        backoff.record_failure()

        stats = backoff.get_stats()
        assert stats['current_delay'] == 60.0
        assert stats['failure_count'] == 1

    def test_delay_capped_at_max(self):
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=30.0, backoff_factor=2.0, max_delay=100.0)
        for _ in range(10):
            backoff.record_failure()

        assert backoff.get_delay() == 100.0

    def test_success_recovery(self):
        """Successful cycles bring the wait back to the base interval, never below."""
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=30.0, backoff_factor=2.0, recovery_factor=0.5)
        backoff.record_failure()
        backoff.record_failure()
        assert backoff.get_delay() == 120.0

        backoff.record_success()
        assert backoff.get_delay() == 60.0
        backoff.record_success()
        backoff.record_success()
        assert backoff.get_delay() == 30.0
        assert backoff.get_stats()['failure_count'] == 0

    def test_recovery_threshold(self):
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=10.0, recovery_threshold=3)
        backoff.record_failure()
        high = backoff.get_delay()

        backoff.record_success()
        backoff.record_success()
        assert backoff.get_delay() == high

        backoff.record_success()
        assert backoff.get_delay() < high

    def test_reset(self):
        from caresync.services.sync.backoff import AdaptiveBackoff

        backoff = AdaptiveBackoff(base_delay=20.0)
        backoff.record_failure()
        backoff.record_failure()

        backoff.reset()
        stats = backoff.get_stats()

        assert stats['current_delay'] == 20.0
        assert stats['failure_count'] == 0


class TestSyncCycleReport:
    """Tests for SyncCycleReport."""

    def test_summary_counts(self):
        from caresync.services.sync.cycle_report import SyncCycleReport

        report = SyncCycleReport(trigger='manual')
        report.set_total(3)
        report.record_success()
        report.add_issue(SyncCycleReport.TYPE_REMOTE_TRANSIENT, operation_id='op-1', collection='children')
        report.add_issue(SyncCycleReport.TYPE_MAX_RETRIES, operation_id='op-2', retry_count=5)

        summary = report.get_summary()
        assert summary['total'] == 3
        assert summary['success'] == 1
        assert summary['remote_transient'] == 1
        assert summary['max_retries'] == 1
        assert report.get_issue_count() == 2
        assert report.has_problems()

    def test_no_problems(self):
        from caresync.services.sync.cycle_report import SyncCycleReport

        report = SyncCycleReport()
        report.set_total(1)
        report.record_success()

        assert not report.has_problems()

    def test_finalize(self):
        from caresync.services.sync.cycle_report import SyncCycleReport

        report = SyncCycleReport(trigger='periodic')
        report.add_issue(SyncCycleReport.TYPE_REMOTE_REJECTED, operation_id='op-1', message='x' * 2000)

        data = report.finalize('error')

        assert data['trigger'] == 'periodic'
        assert data['final_status'] == 'error'
        assert data['end_time'] is not None
        assert data['issues'][0]['operation_id'] == 'op-1'
        assert len(data['issues'][0]['message']) == SyncCycleReport.MAX_MESSAGE_LENGTH

    def test_issue_list_is_bounded(self):
        from caresync.services.sync.cycle_report import SyncCycleReport

        report = SyncCycleReport()
        for i in range(SyncCycleReport.MAX_ISSUES + 10):
            report.add_issue(SyncCycleReport.TYPE_REMOTE_TRANSIENT, operation_id=f'op-{i}')

        assert report.get_issue_count() == SyncCycleReport.MAX_ISSUES
        assert report.get_summary()['remote_transient'] == SyncCycleReport.MAX_ISSUES + 10

    def test_classify_failure(self):
        from caresync.exceptions import InvalidOperationError, RemoteRejectedError, RemoteTransientError
        from caresync.services.sync.cycle_report import SyncCycleReport, classify_failure

        assert classify_failure(RemoteTransientError('timeout')) == SyncCycleReport.TYPE_REMOTE_TRANSIENT
        assert classify_failure(RemoteRejectedError('bad', 400)) == SyncCycleReport.TYPE_REMOTE_REJECTED
        assert classify_failure(InvalidOperationError('no id')) == SyncCycleReport.TYPE_INVALID_OPERATION
        assert classify_failure(RuntimeError('boom')) == SyncCycleReport.TYPE_UNEXPECTED


class TestRequestSessionPool:
    """Tests for RequestSessionPool."""

    def test_default_headers(self):
        from caresync.services.sync.session_pool import RequestSessionPool

        pool = RequestSessionPool(default_headers={'apikey': 'k'})

        assert pool.session.headers['apikey'] == 'k'
        pool.close()

    def test_stats_count_requests_and_errors(self):
        import requests
        from caresync.services.sync.session_pool import RequestSessionPool

        pool = RequestSessionPool()
        with patch.object(pool.session, 'request', return_value=Mock(status_code=200)):
            pool.request('GET', 'https://remote.test/rest/v1/children')

        with patch.object(pool.session, 'request', side_effect=requests.ConnectionError('down')):
            with pytest.raises(requests.ConnectionError):
                pool.request('GET', 'https://remote.test/rest/v1/children')

        stats = pool.get_stats()
        assert stats['requests'] == 2
        assert stats['errors'] == 1
        pool.close()
