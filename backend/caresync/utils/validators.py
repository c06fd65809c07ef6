"""
Input validation helpers
"""
import json
import re
from typing import Any, Optional, Tuple

VALID_OPERATIONS = ('insert', 'update', 'delete')

# Remote table names are plain identifiers
_COLLECTION_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]{0,63}$')


def validate_operation(operation: Any) -> Tuple[bool, Optional[str], str]:
    """
    Validate a pending operation kind

    Returns:
        (is_valid, error_message, cleaned_operation)
    """
    if not operation:
        return False, 'operation is required', ''

    if not isinstance(operation, str):
        return False, 'operation must be a string', ''

    operation = operation.lower().strip()

    if operation not in VALID_OPERATIONS:
        return False, f"invalid operation, must be one of {list(VALID_OPERATIONS)}", ''

    return True, None, operation


def validate_collection_name(collection: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a collection (remote table) name

    Returns:
        (is_valid, error_message)
    """
    if not collection:
        return False, 'collection is required'

    if not isinstance(collection, str):
        return False, 'collection must be a string'

    if not _COLLECTION_RE.match(collection):
        return False, 'collection may only contain letters, digits and underscores'

    return True, None


def validate_payload(operation: str, payload: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate the payload of a pending operation

    update and delete must carry the id of the target record.

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(payload, dict):
        return False, 'payload must be an object'

    if operation in ('update', 'delete'):
        record_id = payload.get('id')
        if record_id is None or (isinstance(record_id, str) and not record_id.strip()):
            return False, f'{operation} requires payload.id'

    # Replayed verbatim: plain JSON only
    try:
        json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        return False, f'payload must be plain JSON: {e}'

    return True, None


def validate_record_id(record_id: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate a record primary key

    Returns:
        (is_valid, error_message)
    """
    if record_id is None:
        return False, 'id is required'

    record_id = str(record_id).strip()
    if not record_id:
        return False, 'id must not be empty'

    if len(record_id) > 64:
        return False, 'id must not exceed 64 characters'

    return True, None


def sanitize_string(value: Any, max_length: int = 255, default: str = '') -> str:
    """
    Clean a string input

    Args:
        value: raw value
        max_length: truncate to this many characters
        default: returned for empty values

    Returns:
        cleaned string
    """
    if not value:
        return default

    if not isinstance(value, str):
        value = str(value)

    value = value.strip()

    if len(value) > max_length:
        value = value[:max_length]

    return value
