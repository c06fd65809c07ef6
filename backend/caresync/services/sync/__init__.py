"""
Sync Components

Building blocks of the offline engine:
- schema / local_store: versioned local durable store
- pending_queue: durable FIFO of not-yet-applied remote mutations
- connectivity: online/offline signals and host wake hook
- remote_client / session_pool: remote store adapter over pooled HTTP
- backoff: spacing of periodic drain cycles
- cycle_report: per-cycle issue collection
"""
from .backoff import AdaptiveBackoff
from .connectivity import ConnectivityAdapter, ManualConnectivity, ProbeConnectivity
from .cycle_report import SyncCycleReport, classify_failure
from .local_store import LocalStore
from .pending_queue import Operation, PendingOperation, PendingOperationQueue
from .remote_client import RemoteStore, RestTableClient
from .session_pool import RequestSessionPool

__all__ = [
    'AdaptiveBackoff',
    'ConnectivityAdapter',
    'ManualConnectivity',
    'ProbeConnectivity',
    'SyncCycleReport',
    'classify_failure',
    'LocalStore',
    'Operation',
    'PendingOperation',
    'PendingOperationQueue',
    'RemoteStore',
    'RestTableClient',
    'RequestSessionPool',
]
