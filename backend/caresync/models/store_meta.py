"""
Local store metadata (schema version and friends)
"""
from ..extensions import db


class StoreMeta(db.Model):
    """Key/value metadata of the local store"""
    __tablename__ = 'store_meta'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(255))

    def __repr__(self):
        return f'<StoreMeta {self.key}={self.value}>'
