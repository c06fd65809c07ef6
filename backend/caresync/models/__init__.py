"""
Local store models
"""
from .child import Child
from .medication import Medication
from .daily_log import DailyLog
from .queued_operation import QueuedOperation
from .store_meta import StoreMeta

__all__ = ['Child', 'Medication', 'DailyLog', 'QueuedOperation', 'StoreMeta']
