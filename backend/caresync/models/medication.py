"""
Medication cache
"""
from ..extensions import db
from .base import CachedEntityMixin


class Medication(CachedEntityMixin, db.Model):
    """Cached medication entry of a child"""
    __tablename__ = 'medications'

    INDEXES = {'by-child': 'child_id'}

    child_id = db.Column(db.String(64), index=True)
