"""
Flask Application Factory

This module creates and configures the Flask application and its offline
sync engine.
"""
import time
from flask import Flask, g, request, jsonify
from flask_cors import CORS

from .config import Config, get_config
from .exceptions import (
    InvalidOperationError,
    StorageUnavailableError,
    UnknownCollectionError,
    UnknownIndexError,
)
from .extensions import db, migrate
from .api import records_bp, sync_bp
from .utils.logger import setup_logger, get_logger


def create_app(config_class=None):
    """Create and configure Flask application.

    Args:
        config_class: Configuration class to use. If None, auto-detect from environment.

    Returns:
        Configured Flask application instance
    """
    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Ensure data directories exist
    Config.init_paths()

    # Initialize logging
    setup_logger(
        log_level=app.config.get('LOG_LEVEL', 'INFO'),
        log_file=app.config.get('LOG_FILE')
    )

    logger = get_logger('app')

    # Initialize CORS
    cors_config = config_class.get_cors_config()
    CORS(app, resources={r"/api/*": cors_config})

    # Initialize database
    db.init_app(app)

    # Initialize Flask-Migrate
    migrate.init_app(app, db)

    _register_blueprints(app)

    # Local schema migrations run here; the engine starts if SYNC_AUTO_START
    _init_offline_engine(app)

    _register_error_handlers(app)
    _register_request_hooks(app)
    _register_health_check(app)

    if app.config.get('WEBSOCKET_ENABLED'):
        _init_websocket(app, logger)

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    logger.info(f"Application initialized, local store: {db_uri}")

    return app


def _register_blueprints(app):
    """Register API blueprints under /api."""
    app.register_blueprint(sync_bp, url_prefix='/api')
    app.register_blueprint(records_bp, url_prefix='/api')


def _init_offline_engine(app):
    from .services.context import init_offline_context
    init_offline_context(app)


def _init_websocket(app, logger):
    """Initialize WebSocket push of sync status."""
    try:
        from .websocket import init_socketio, broadcast_sync_status
        from .services.context import get_offline_context
        init_socketio(app)
        get_offline_context(app).notifier.subscribe(broadcast_sync_status)
        logger.info("WebSocket real-time push enabled")
    except Exception as e:
        logger.warning(f"WebSocket initialization failed, falling back to SSE: {e}")


def _register_error_handlers(app):
    """Register global error handlers."""
    from .utils.responses import ApiResponse

    @app.errorhandler(StorageUnavailableError)
    def storage_unavailable(error):
        get_logger('error').error(f"Local store unavailable: {error}")
        return ApiResponse.storage_unavailable(str(error))

    @app.errorhandler(InvalidOperationError)
    def invalid_operation(error):
        return ApiResponse.validation_error(str(error))

    @app.errorhandler(UnknownCollectionError)
    def unknown_collection(error):
        return ApiResponse.not_found(str(error))

    @app.errorhandler(UnknownIndexError)
    def unknown_index(error):
        return ApiResponse.error(str(error), 400, 'UNKNOWN_INDEX')

    @app.errorhandler(400)
    def bad_request(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Bad request'
        return ApiResponse.error(msg, 400, 'BAD_REQUEST')

    @app.errorhandler(404)
    def not_found(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Resource not found'
        return ApiResponse.not_found(msg)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return ApiResponse.error('Method not allowed', 405, 'METHOD_NOT_ALLOWED')

    @app.errorhandler(500)
    def internal_error(error):
        logger = get_logger('error')
        logger.exception(error)
        return ApiResponse.server_error('Internal server error')


def _register_request_hooks(app):
    """Register request timing hooks."""

    @app.before_request
    def before_request():
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        if hasattr(g, 'start_time'):
            duration = (time.time() - g.start_time) * 1000
            if duration > 1000:  # Log slow requests
                logger = get_logger('slow_request')
                logger.warning(f"Slow request: {request.method} {request.path} took {duration:.2f}ms")
        return response


def _register_health_check(app):
    """Register health check endpoint."""

    @app.route('/api/health')
    def health_check():
        """Health check endpoint for container orchestration."""
        from .services.context import get_offline_context
        ctx = get_offline_context(app)
        try:
            pending = ctx.queue.count()
        except StorageUnavailableError:
            return jsonify({
                'status': 'degraded',
                'service': 'caresync-offline',
                'local_store': 'unavailable',
            }), 503

        return jsonify({
            'status': 'healthy',
            'service': 'caresync-offline',
            'schema_version': ctx.store.schema_version,
            'sync_status': ctx.manager.status.value,
            'pending_count': pending,
            'is_online': ctx.connectivity.is_online(),
        })
