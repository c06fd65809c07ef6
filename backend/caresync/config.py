"""
Application configuration
Values are read from environment variables (and an optional .env file)
"""
import os
import secrets

from dotenv import load_dotenv

load_dotenv()

# Absolute path of the backend directory
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration"""

    # ==================== Security ====================
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

    # Client API key for the record and sync endpoints; unset disables the check
    API_KEY = os.environ.get('API_KEY')

    # Admin API key for destructive store operations
    ADMIN_API_KEY = os.environ.get('ADMIN_API_KEY')

    # ==================== Local store ====================
    DATA_PATH = os.path.join(BASE_DIR, 'datas')
    SQLALCHEMY_DATABASE_URI = os.environ.get('LOCAL_STORE_URL') or \
        f'sqlite:///{os.path.join(DATA_PATH, "caresync_offline.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ==================== Remote store ====================
    REMOTE_BASE_URL = os.environ.get('REMOTE_BASE_URL', '')
    REMOTE_API_KEY = os.environ.get('REMOTE_API_KEY', '')
    # Per-request network timeout (seconds)
    REMOTE_TIMEOUT = float(os.environ.get('REMOTE_TIMEOUT', '10'))

    # ==================== Sync ====================
    SYNC_MAX_RETRIES = int(os.environ.get('SYNC_MAX_RETRIES', '5'))
    SYNC_INTERVAL = float(os.environ.get('SYNC_INTERVAL', '30'))
    SYNC_BACKOFF_FACTOR = float(os.environ.get('SYNC_BACKOFF_FACTOR', '2.0'))
    SYNC_BACKOFF_MAX = float(os.environ.get('SYNC_BACKOFF_MAX', '300'))
    # Relative random spread of the periodic wait (0.2 = +-20%)
    SYNC_BACKOFF_JITTER = float(os.environ.get('SYNC_BACKOFF_JITTER', '0'))
    # Clean cycles needed before a stretched wait shrinks again
    SYNC_BACKOFF_RECOVERY = int(os.environ.get('SYNC_BACKOFF_RECOVERY', '1'))
    # Start connectivity monitor, wake handler and periodic timer with the app
    SYNC_AUTO_START = _env_bool('SYNC_AUTO_START', True)
    # POSIX signal that wakes a drain cycle; empty disables it
    SYNC_WAKE_SIGNAL = os.environ.get('SYNC_WAKE_SIGNAL', 'SIGUSR1') or None

    # ==================== Connectivity ====================
    # 'probe': poll CONNECTIVITY_PROBE_URL, 'manual': host reports transitions
    CONNECTIVITY_MODE = os.environ.get('CONNECTIVITY_MODE', 'probe')
    CONNECTIVITY_PROBE_URL = os.environ.get('CONNECTIVITY_PROBE_URL', '')
    CONNECTIVITY_CHECK_INTERVAL = float(os.environ.get('CONNECTIVITY_CHECK_INTERVAL', '15'))
    CONNECTIVITY_PROBE_TIMEOUT = float(os.environ.get('CONNECTIVITY_PROBE_TIMEOUT', '5'))

    # ==================== CORS ====================
    CORS_ORIGINS = os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173'
    ).split(',')

    # ==================== WebSocket ====================
    WEBSOCKET_ENABLED = _env_bool('WEBSOCKET_ENABLED', False)
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')

    # ==================== Logging ====================
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')  # optional log file path

    @staticmethod
    def init_paths():
        """Create data directories"""
        if not os.path.exists(Config.DATA_PATH):
            os.makedirs(Config.DATA_PATH)

    @classmethod
    def get_cors_config(cls):
        """CORS settings for the /api/* resources"""
        return {
            "origins": cls.CORS_ORIGINS,
            "methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-API-Key", "Authorization"],
            "supports_credentials": True,
        }


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    LOG_LEVEL = 'WARNING'

    @classmethod
    def validate(cls):
        """Report missing production settings"""
        errors = []

        if not os.environ.get('SECRET_KEY'):
            errors.append('SECRET_KEY is not set')

        if not os.environ.get('REMOTE_BASE_URL'):
            errors.append('REMOTE_BASE_URL is not set (every write will be queued)')

        if not os.environ.get('ADMIN_API_KEY'):
            errors.append('ADMIN_API_KEY is not set (store administration is disabled)')

        return errors


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    REMOTE_BASE_URL = 'https://remote.test'
    REMOTE_API_KEY = 'test-key'
    API_KEY = None
    ADMIN_API_KEY = 'admin-test-key'
    SYNC_AUTO_START = False
    SYNC_WAKE_SIGNAL = None
    CONNECTIVITY_MODE = 'manual'
    WEBSOCKET_ENABLED = False
    LOG_LEVEL = 'WARNING'


# Config map
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Pick the config class from FLASK_ENV"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
