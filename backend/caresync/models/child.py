"""
Child profile cache
"""
from ..extensions import db
from .base import CachedEntityMixin


class Child(CachedEntityMixin, db.Model):
    """Cached child profile, owned by the caregiver who created it"""
    __tablename__ = 'children'

    INDEXES = {'by-created-by': 'created_by'}

    created_by = db.Column(db.String(64), index=True)
