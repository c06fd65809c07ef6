"""
Service Layer

This module exports the offline engine services.
"""
from .context import OfflineContext, get_offline_context, init_offline_context
from .record_service import OfflineRecordService
from .sync_manager import SyncManager, SyncResult
from .sync_status_notifier import SyncStatus, SyncStatusNotifier

__all__ = [
    'OfflineContext',
    'get_offline_context',
    'init_offline_context',
    'OfflineRecordService',
    'SyncManager',
    'SyncResult',
    'SyncStatus',
    'SyncStatusNotifier',
]
