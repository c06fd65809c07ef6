"""
Daily log cache
"""
from ..extensions import db
from .base import CachedEntityMixin


class DailyLog(CachedEntityMixin, db.Model):
    """Cached daily log entry, a time-series entity"""
    __tablename__ = 'daily_logs'

    __table_args__ = (
        db.Index('ix_daily_logs_child_date', 'child_id', 'date'),
    )

    INDEXES = {'by-child': 'child_id', 'by-date': 'date'}

    child_id = db.Column(db.String(64), index=True)
    date = db.Column(db.String(32), index=True)
