"""
Pending operation queue table
"""
import json
from typing import Any, Dict

from ..extensions import db
from .base import utcnow, isoformat, parse_datetime


class QueuedOperation(db.Model):
    """A remote mutation that has not been applied yet.

    ``seq`` only exists to keep insertion order; the public key is ``id``.
    """
    __tablename__ = 'pending_operations'

    KEY_FIELD = 'id'
    ORDER_BY = 'seq'
    INDEXES = {'by-collection': 'collection'}

    seq = db.Column(db.Integer, primary_key=True, autoincrement=True)
    id = db.Column(db.String(36), unique=True, nullable=False, index=True)
    operation = db.Column(db.String(16), nullable=False)  # insert / update / delete
    collection = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.Text, nullable=False)  # JSON
    enqueued_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    retry_count = db.Column(db.Integer, default=0, nullable=False)

    # Diagnostics of the latest failed replay
    last_error = db.Column(db.Text)
    last_attempt_at = db.Column(db.DateTime)

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        row = cls()
        row.apply_record(record)
        return row

    def apply_record(self, record: Dict[str, Any]) -> None:
        self.id = str(record['id'])
        self.operation = record['operation']
        self.collection = record['collection']
        self.payload = json.dumps(record.get('payload') or {}, ensure_ascii=False)
        self.enqueued_at = parse_datetime(record.get('enqueued_at')) or self.enqueued_at or utcnow()
        self.retry_count = int(record.get('retry_count') or 0)
        self.last_error = record.get('last_error')
        self.last_attempt_at = parse_datetime(record.get('last_attempt_at'))

    def get_payload(self) -> Dict[str, Any]:
        if self.payload:
            try:
                return json.loads(self.payload)
            except (json.JSONDecodeError, TypeError):
                return {}
        return {}

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'operation': self.operation,
            'collection': self.collection,
            'payload': self.get_payload(),
            'enqueued_at': isoformat(self.enqueued_at),
            'retry_count': self.retry_count or 0,
            'last_error': self.last_error,
            'last_attempt_at': isoformat(self.last_attempt_at),
        }

    def __repr__(self):
        return f'<QueuedOperation {self.operation} {self.collection} {self.id}>'
