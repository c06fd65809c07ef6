"""
Records API
Write-through / read-through access to the cached collections
"""
from flask import Blueprint, request

from ..exceptions import RemoteRejectedError
from ..middleware import require_auth
from ..services.context import get_offline_context
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response
from ..utils.validators import validate_record_id

records_bp = Blueprint('records', __name__)
logger = get_logger('api.records')


def _write_response(result, message):
    """202 when the write was queued, 200/201 when the remote applied it"""
    if result['queued']:
        return ApiResponse.accepted(result)
    if message == 'Created':
        return ApiResponse.created(result)
    return success_response(result, message=message)


def _rejected(e: RemoteRejectedError):
    return ApiResponse.error(
        str(e), 422, 'REMOTE_REJECTED',
        {'status_code': e.status_code} if e.status_code else None
    )


@records_bp.route('/records/<collection>', methods=['GET'])
@require_auth
def list_records(collection):
    """
    List records, remote first

    Query parameters:
    - index: index name (e.g. by-child)
    - key: index key, required with index
    """
    index_name = request.args.get('index', '').strip() or None
    key = request.args.get('key')
    if index_name and not key:
        return ApiResponse.validation_error('key is required when index is given')

    result = get_offline_context().records.list(collection, index_name, key)
    return success_response({
        'records': result['records'],
        'total': len(result['records']),
        'source': result['source'],
    })


@records_bp.route('/records/<collection>/<record_id>', methods=['GET'])
@require_auth
def get_record(collection, record_id):
    result = get_offline_context().records.get(collection, record_id)
    if result['record'] is None:
        return ApiResponse.not_found('Record not found')
    return success_response(result)


@records_bp.route('/records/<collection>', methods=['POST'])
@require_auth
def create_record(collection):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return ApiResponse.validation_error('Request body must be a JSON object')

    if 'id' in data:
        is_valid, error_msg = validate_record_id(data['id'])
        if not is_valid:
            return ApiResponse.validation_error(error_msg)

    try:
        result = get_offline_context().records.create(collection, data)
    except RemoteRejectedError as e:
        return _rejected(e)
    return _write_response(result, 'Created')


@records_bp.route('/records/<collection>/<record_id>', methods=['PATCH'])
@require_auth
def update_record(collection, record_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return ApiResponse.validation_error('Request body must be a non-empty JSON object')

    is_valid, error_msg = validate_record_id(record_id)
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    try:
        result = get_offline_context().records.update(collection, record_id, data)
    except RemoteRejectedError as e:
        return _rejected(e)
    return _write_response(result, 'Updated')


@records_bp.route('/records/<collection>/<record_id>', methods=['DELETE'])
@require_auth
def delete_record(collection, record_id):
    try:
        result = get_offline_context().records.delete(collection, record_id)
    except RemoteRejectedError as e:
        return _rejected(e)
    return _write_response(result, 'Deleted')
