"""
Shared behaviour of locally cached entities
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..extensions import db


def utcnow() -> datetime:
    """Naive UTC now, the way every timestamp column is stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + 'Z' if value else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO8601 string (optionally ending in Z) into naive UTC."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class CachedEntityMixin:
    """Local mirror of a remote record.

    The whole record is kept verbatim in ``data`` (JSON) and handed back
    unchanged. The primary key, the indexed fields and the timestamps are
    also copied into real columns, stringified, for lookups only.

    Subclasses declare ``INDEXES`` as ``{index_name: field_name}``.
    """

    KEY_FIELD = 'id'
    ORDER_BY = 'id'
    INDEXES: Dict[str, str] = {}

    id = db.Column(db.String(64), primary_key=True)
    data = db.Column(db.Text)
    created_at = db.Column(db.String(64))
    updated_at = db.Column(db.String(64))

    @classmethod
    def column_fields(cls):
        fields = list(dict.fromkeys(cls.INDEXES.values()))
        return fields + ['created_at', 'updated_at']

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        entity = cls()
        entity.apply_record(record)
        return entity

    def apply_record(self, record: Dict[str, Any]) -> None:
        """Overwrite this row with ``record`` (remote wins, no merge).

        Raises:
            ValueError: ``record`` is not plain JSON
        """
        try:
            self.data = json.dumps(record, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{self.__tablename__} record {record.get('id')!r} is not plain JSON: {e}") from e

        self.id = str(record['id'])
        for field in self.column_fields():
            value = record.get(field)
            setattr(self, field, str(value) if value is not None else None)

    def to_record(self) -> Dict[str, Any]:
        if self.data:
            try:
                record = json.loads(self.data)
            except (json.JSONDecodeError, TypeError):
                record = None
            if isinstance(record, dict) and 'id' in record:
                return record

        # Rows written by an older schema only carry the columns
        record = {'id': self.id}
        for field in self.column_fields():
            value = getattr(self, field)
            if value is not None:
                record[field] = value
        return record

    def __repr__(self):
        return f'<{type(self).__name__} {self.id}>'
