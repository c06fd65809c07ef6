"""
Sync Cycle Report - structured record of one drain cycle

Collects per-item outcomes while the manager replays the queue, so the
last cycle can be inspected through the API or the CLI after the fact.
Issue types are for diagnosis only; every failure is still retried the
same way.
"""
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ...exceptions import InvalidOperationError, RemoteRejectedError, RemoteTransientError
from ...utils.logger import get_logger

logger = get_logger('cycle_report')


class SyncCycleReport:
    """Issue collector for a single sync cycle.

    Example:
        >>> report = SyncCycleReport(trigger='manual')
        >>> report.set_total(3)
        >>> report.record_success()
        >>> report.add_issue(SyncCycleReport.TYPE_REMOTE_TRANSIENT, operation_id='...', collection='children')
        >>> report.finalize()
    """

    # Issue type constants
    TYPE_REMOTE_TRANSIENT = 'remote_transient'   # Network error, timeout, 5xx
    TYPE_REMOTE_REJECTED = 'remote_rejected'     # Remote refused the mutation (4xx)
    TYPE_INVALID_OPERATION = 'invalid_operation' # Item can never be replayed as stored
    TYPE_MAX_RETRIES = 'max_retries'             # Skipped, retry ceiling reached
    TYPE_INTERRUPTED = 'interrupted'             # Connectivity lost mid-cycle
    TYPE_UNEXPECTED = 'unexpected'               # Anything else raised by the adapter

    SUMMARY_KEYS = (
        TYPE_REMOTE_TRANSIENT,
        TYPE_REMOTE_REJECTED,
        TYPE_INVALID_OPERATION,
        TYPE_MAX_RETRIES,
        TYPE_INTERRUPTED,
        TYPE_UNEXPECTED,
    )

    # Maximum issues to keep per cycle
    MAX_ISSUES = 500

    MAX_MESSAGE_LENGTH = 500

    def __init__(self, trigger: str = 'manual'):
        """
        Args:
            trigger: What started the cycle ('manual', 'periodic', 'online', 'wake', 'startup')
        """
        self.trigger = trigger
        self.start_time = datetime.utcnow().isoformat() + 'Z'
        self.end_time: Optional[str] = None
        self.final_status: Optional[str] = None
        self.issues: List[Dict] = []
        self.summary = {'total': 0, 'success': 0}
        self.summary.update({key: 0 for key in self.SUMMARY_KEYS})
        self._lock = threading.Lock()

    def add_issue(
        self,
        issue_type: str,
        operation_id: Optional[str] = None,
        collection: Optional[str] = None,
        message: Optional[str] = None,
        retry_count: Optional[int] = None
    ) -> None:
        """Add an issue record.

        Args:
            issue_type: One of the TYPE_* constants
            operation_id: Related pending operation id
            collection: Target collection of the operation
            message: Error message (truncated to MAX_MESSAGE_LENGTH)
            retry_count: Retry count after this attempt
        """
        with self._lock:
            issue = {
                'type': issue_type,
                'time': datetime.utcnow().isoformat() + 'Z',
            }
            if operation_id:
                issue['operation_id'] = operation_id
            if collection:
                issue['collection'] = collection
            if message:
                issue['message'] = message[:self.MAX_MESSAGE_LENGTH]
            if retry_count is not None:
                issue['retry_count'] = retry_count

            if len(self.issues) < self.MAX_ISSUES:
                self.issues.append(issue)

            if issue_type in self.summary:
                self.summary[issue_type] += 1

    def record_success(self) -> None:
        with self._lock:
            self.summary['success'] += 1

    def set_total(self, total: int) -> None:
        with self._lock:
            self.summary['total'] = total

    def finalize(self, final_status: Optional[str] = None) -> Dict:
        """Close the report.

        Returns:
            Dictionary with trigger, times, final status, summary and issues
        """
        with self._lock:
            if self.end_time is None:
                self.end_time = datetime.utcnow().isoformat() + 'Z'
            if final_status is not None:
                self.final_status = final_status
            return {
                'trigger': self.trigger,
                'start_time': self.start_time,
                'end_time': self.end_time,
                'final_status': self.final_status,
                'summary': self.summary.copy(),
                'issues': list(self.issues),
            }

    def get_summary(self) -> Dict:
        with self._lock:
            return self.summary.copy()

    def get_issue_count(self) -> int:
        with self._lock:
            return len(self.issues)

    def has_problems(self) -> bool:
        """True if any item failed or was skipped during the cycle."""
        with self._lock:
            return any(self.summary[key] > 0 for key in self.SUMMARY_KEYS)


def classify_failure(error: BaseException) -> str:
    """Map an exception raised while replaying an item to an issue type."""
    if isinstance(error, RemoteTransientError):
        return SyncCycleReport.TYPE_REMOTE_TRANSIENT
    if isinstance(error, RemoteRejectedError):
        return SyncCycleReport.TYPE_REMOTE_REJECTED
    if isinstance(error, InvalidOperationError):
        return SyncCycleReport.TYPE_INVALID_OPERATION
    return SyncCycleReport.TYPE_UNEXPECTED
