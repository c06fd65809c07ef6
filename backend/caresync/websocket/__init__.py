"""
WebSocket module - real-time sync status push with Flask-SocketIO
"""
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..utils.logger import get_logger

logger = get_logger('websocket')

# Global SocketIO instance
socketio = SocketIO(cors_allowed_origins="*")

STATUS_ROOM = 'sync_status'


def init_socketio(app):
    """Initialize SocketIO with the Flask app"""
    socketio.init_app(app, async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'))
    logger.info("[WebSocket] SocketIO initialized")
    return socketio


@socketio.on('connect')
def handle_connect():
    """Handle client connection"""
    logger.info("[WebSocket] Client connected")
    emit('connected', {'status': 'ok', 'message': 'WebSocket connected'})


@socketio.on('disconnect')
def handle_disconnect():
    logger.info("[WebSocket] Client disconnected")


@socketio.on('subscribe_sync')
def handle_subscribe_sync(data=None):
    """Subscribe to sync status updates"""
    join_room(STATUS_ROOM)
    logger.info("[WebSocket] Client subscribed to sync status")
    emit('subscribed', {'room': STATUS_ROOM})


@socketio.on('unsubscribe_sync')
def handle_unsubscribe_sync(data=None):
    leave_room(STATUS_ROOM)
    logger.info("[WebSocket] Client unsubscribed from sync status")


def broadcast_sync_status(status, pending_count: int):
    """Status notifier subscriber: push ``(status, pending_count)`` to the room

    Args:
        status: SyncStatus
        pending_count: Items still queued
    """
    socketio.emit('sync_status', {
        'status': getattr(status, 'value', status),
        'pending_count': pending_count,
    }, to=STATUS_ROOM)
