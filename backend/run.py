"""
Application entry point
CareSync offline engine - backend service

Usage:
    python run.py              # plain Flask server
    python run.py --websocket  # SocketIO server with live sync status push

Configuration:
    - copy env.example to .env
    - adjust the values as needed
"""
import sys
import os

# Add the backend directory to the Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from caresync import create_app
from caresync.config import Config, get_config

# Initialize data directories
Config.init_paths()

config_class = get_config()

use_websocket = '--websocket' in sys.argv or os.environ.get('USE_WEBSOCKET', '').lower() in ('1', 'true', 'yes')
if use_websocket:
    os.environ['WEBSOCKET_ENABLED'] = '1'
    config_class.WEBSOCKET_ENABLED = True

app = create_app(config_class)

if __name__ == '__main__':
    env = os.environ.get('FLASK_ENV', 'development')
    if env == 'production':
        for problem in config_class.validate():
            print(f"WARNING: {problem}")

    port = int(os.environ.get('PORT', '8000'))

    print("=" * 60)
    print("CareSync offline engine - backend service")
    print("=" * 60)
    print(f"Server:        http://localhost:{port}")
    print(f"API:           http://localhost:{port}/api")
    print(f"Environment:   {env}")
    print(f"Local store:   {app.config['SQLALCHEMY_DATABASE_URI']}")
    print(f"Remote store:  {app.config.get('REMOTE_BASE_URL') or '(not configured, writes are queued)'}")
    print(f"Connectivity:  {app.config.get('CONNECTIVITY_MODE')}")
    print(f"Sync interval: {app.config.get('SYNC_INTERVAL')}s, max retries {app.config.get('SYNC_MAX_RETRIES')}")
    print(f"CORS origins:  {', '.join(config_class.CORS_ORIGINS)}")
    print(f"WebSocket:     {'enabled' if use_websocket else 'disabled (use --websocket)'}")
    print(f"Admin API:     {'enabled' if app.config.get('ADMIN_API_KEY') else 'disabled (set ADMIN_API_KEY)'}")
    print("=" * 60)

    if use_websocket:
        from caresync.websocket import socketio
        socketio.run(app, host='0.0.0.0', port=port, debug=(env == 'development'),
                     use_reloader=False, allow_unsafe_werkzeug=True)
    else:
        app.run(host='0.0.0.0', port=port, debug=(env == 'development'), use_reloader=False)
