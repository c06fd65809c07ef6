"""
Sync API
Drain control, pending queue inspection, status stream and store administration
"""
import json

from flask import Blueprint, Response, request, stream_with_context

from ..middleware import require_admin, require_auth
from ..services.context import get_offline_context
from ..services.sync.connectivity import ManualConnectivity, ProbeConnectivity
from ..services.sync.schema import COLLECTIONS
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response
from ..utils.validators import validate_collection_name

sync_bp = Blueprint('sync', __name__)
logger = get_logger('api.sync')


@sync_bp.route('/sync/status', methods=['GET'])
@require_auth
def get_sync_status():
    """Current sync state, pending count and connectivity"""
    return success_response(get_offline_context().manager.get_status())


@sync_bp.route('/sync/run', methods=['POST'])
@require_auth
def run_sync():
    """
    Force a drain cycle

    The cycle runs inside the request. A trigger that arrives while another
    cycle is in flight, or while offline, returns started=false.
    """
    ctx = get_offline_context()
    result = ctx.manager.force_sync()

    if not result.started:
        status = result.status.value if result.status else ctx.manager.status.value
        return success_response(result.to_dict(), message=f'Sync not started ({status})')

    logger.info(f"[SyncAPI] Manual sync: {result.success} synced, {result.failed} failed")
    return success_response(
        result.to_dict(),
        message=f'Synced {result.success}, failed {result.failed}'
    )


@sync_bp.route('/sync/pending', methods=['GET'])
@require_auth
def list_pending():
    """
    Pending operations in replay order

    Query parameters:
    - collection: only operations targeting this collection
    """
    ctx = get_offline_context()
    collection = request.args.get('collection', '').strip()

    if collection:
        is_valid, error_msg = validate_collection_name(collection)
        if not is_valid:
            return ApiResponse.validation_error(error_msg)
        items = ctx.queue.list_by_collection(collection)
    else:
        items = ctx.queue.list_pending()

    max_retries = ctx.manager.max_retries
    return success_response({
        'items': [dict(item.to_dict(), exhausted=item.retry_count >= max_retries) for item in items],
        'total': len(items),
        'max_retries': max_retries,
    })


@sync_bp.route('/sync/pending/<op_id>', methods=['DELETE'])
@require_admin
def discard_pending(op_id):
    """Administrative discard of one queued operation (the write is lost)"""
    ctx = get_offline_context()
    item = ctx.queue.get(op_id)
    if item is None:
        return ApiResponse.not_found('Pending operation not found')

    ctx.queue.remove(op_id)
    logger.warning(
        f"[SyncAPI] Discarded {item.operation.value} on {item.collection} ({op_id}), "
        f"retry_count={item.retry_count}, last_error={item.last_error}"
    )
    return success_response(item.to_dict(), message='Pending operation discarded')


@sync_bp.route('/sync/report', methods=['GET'])
@require_auth
def get_last_report():
    """Report of the most recent drain cycle"""
    report = get_offline_context().manager.last_report
    if report is None:
        return ApiResponse.not_found('No sync cycle has run yet')
    return success_response(report)


@sync_bp.route('/sync/stream', methods=['GET'])
def stream_sync_status():
    """
    SSE endpoint - live sync status

    Response format (SSE):
        data: {"timestamp": "...", "status": "idle|syncing|success|error|offline", "pending_count": 0}
    """
    ctx = get_offline_context()
    current = {'status': ctx.manager.status.value, 'connected': True}
    close, generator = ctx.notifier.open_stream()

    def generate():
        try:
            yield f"data: {json.dumps(current)}\n\n"
            yield from generator
        finally:
            close()

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no',  # disable nginx buffering
        }
    )


@sync_bp.route('/sync/connectivity', methods=['POST'])
@require_auth
def report_connectivity():
    """
    Report a connectivity transition

    Request Body:
        - online: bool (manual mode)

    With the probe adapter the body is ignored and a probe runs instead.
    """
    ctx = get_offline_context()
    adapter = ctx.connectivity

    if isinstance(adapter, ManualConnectivity):
        data = request.get_json(silent=True) or {}
        online = data.get('online')
        if not isinstance(online, bool):
            return ApiResponse.validation_error('online must be a boolean')
        changed = adapter.set_online(online)
    elif isinstance(adapter, ProbeConnectivity):
        before = adapter.is_online()
        changed = adapter.check_now() != before
    else:
        return ApiResponse.error('Connectivity is managed by the host', 409, 'CONNECTIVITY_MANAGED')

    return success_response({
        'is_online': adapter.is_online(),
        'changed': changed,
        'status': ctx.manager.status.value,
    })


# ==================== Store administration ====================

@sync_bp.route('/store/export', methods=['GET'])
@require_admin
def export_store():
    """Dump every local collection, pending queue included"""
    ctx = get_offline_context()
    return success_response({
        'schema_version': ctx.store.schema_version,
        'collections': ctx.store.export_all(),
    })


@sync_bp.route('/store/clear', methods=['POST'])
@require_admin
def clear_store():
    """
    Clear local collections

    Request Body:
        - collections: optional list of names, default all (queued writes included)
    """
    ctx = get_offline_context()
    data = request.get_json(silent=True) or {}
    names = data.get('collections')

    if names is None:
        cleared = ctx.store.clear_all()
    else:
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            return ApiResponse.validation_error('collections must be a list of names')
        unknown = [n for n in names if n not in COLLECTIONS]
        if unknown:
            return ApiResponse.validation_error('Unknown collections', {'unknown': unknown})
        cleared = {name: ctx.store.clear(name) for name in names}

    logger.warning(f"[SyncAPI] Local store cleared: {cleared}")
    return success_response({'cleared': cleared}, message='Local store cleared')
