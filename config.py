import os
import secrets
from dotenv import load_dotenv
from typing import Optional

# Find the absolute path of the root directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load the .env file from the root directory
load_dotenv(os.path.join(basedir, '.env'))


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid"""
    pass


def _env_float(key: str, default: float) -> float:
    value = os.environ.get(key)
    if value in (None, ''):
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a number, got {value!r}")


def _env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be an integer, got {value!r}")


class Config:
    """
    Base configuration class. Contains default configuration settings
    and settings applicable to all environments.
    """
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    FLASK_ENV = os.environ.get('FLASK_ENV')
    JSON_SORT_KEYS = False

    @classmethod
    def validate_required_config(cls) -> None:
        """Validate that all required configuration is present"""
        if os.environ.get('FLASK_ENV') == 'testing' or os.environ.get('SKIP_ENV_VALIDATION'):
            return

        required_vars = [
            'WHATSAPP_ACCESS_TOKEN',
            'WHATSAPP_PHONE_NUMBER_ID',
            'WHATSAPP_VERIFY_TOKEN',
        ]

        missing_vars = [var for var in required_vars if not os.environ.get(var)]
        if missing_vars:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

    @staticmethod
    def get_required_env(key: str) -> str:
        """Get required environment variable or raise error"""
        value = os.environ.get(key)
        if not value:
            raise ConfigurationError(f"Required environment variable {key} is not set")
        return value

    # Database settings
    SQLALCHEMY_DATABASE_URI = os.environ.get('POSTGRES_URI') or \
        'sqlite:///' + os.path.join(basedir, 'engagement.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # WhatsApp Cloud API (Meta Graph)
    WHATSAPP_ACCESS_TOKEN = os.environ.get('WHATSAPP_ACCESS_TOKEN')
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get('WHATSAPP_PHONE_NUMBER_ID')
    WHATSAPP_VERIFY_TOKEN = os.environ.get('WHATSAPP_VERIFY_TOKEN')
    WHATSAPP_APP_SECRET = os.environ.get('WHATSAPP_APP_SECRET')
    WHATSAPP_API_VERSION = os.environ.get('WHATSAPP_API_VERSION', 'v18.0')
    WHATSAPP_API_BASE_URL = os.environ.get('WHATSAPP_API_BASE_URL', 'https://graph.facebook.com')

    # Gemini API
    GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY')
    GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-1.5-flash')

    # Workflow automation (n8n) webhook target used by trigger actions
    AUTOMATION_WEBHOOK_URL = os.environ.get('AUTOMATION_WEBHOOK_URL')

    # Pipeline tuning
    HANDOVER_CONFIDENCE_THRESHOLD = _env_float('HANDOVER_CONFIDENCE_THRESHOLD', 0.7)
    CONTEXT_WINDOW_SIZE = _env_int('CONTEXT_WINDOW_SIZE', 10)
    CAMPAIGN_SEND_INTERVAL_SECONDS = _env_float('CAMPAIGN_SEND_INTERVAL_SECONDS', 1.0)
    FOLLOW_UP_SEND_INTERVAL_SECONDS = _env_float('FOLLOW_UP_SEND_INTERVAL_SECONDS', 1.0)
    EXTERNAL_CALL_TIMEOUT_SECONDS = _env_float('EXTERNAL_CALL_TIMEOUT_SECONDS', 15.0)

    # Per-contact serialization of inbound events
    CONTACT_LOCK_BACKEND = os.environ.get('CONTACT_LOCK_BACKEND', 'redis')  # 'redis', or 'local' for a single process
    CONTACT_LOCK_TIMEOUT_SECONDS = _env_float('CONTACT_LOCK_TIMEOUT_SECONDS', 30.0)

    # Celery / Redis. Flask loads these and Celery maps them to its lowercase settings.
    REDIS_URL = os.environ.get('REDIS_URL') or 'redis://redis:6379/0'
    CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL') or REDIS_URL
    CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND') or REDIS_URL

    @classmethod
    def init_app(cls, app):
        """Initialize application with this config"""
        if not 0.0 <= app.config['HANDOVER_CONFIDENCE_THRESHOLD'] <= 1.0:
            raise ConfigurationError("HANDOVER_CONFIDENCE_THRESHOLD must be between 0 and 1")
        if app.config['CONTEXT_WINDOW_SIZE'] < 1:
            raise ConfigurationError("CONTEXT_WINDOW_SIZE must be at least 1")
        if app.config['CONTACT_LOCK_BACKEND'] not in ('redis', 'local'):
            raise ConfigurationError(
                f"Unknown CONTACT_LOCK_BACKEND: {app.config['CONTACT_LOCK_BACKEND']}"
            )


class DevelopmentConfig(Config):
    """Development environment configuration"""
    DEBUG = True
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        Config.SQLALCHEMY_DATABASE_URI


class TestingConfig(Config):
    """Testing environment configuration"""
    TESTING = True
    DEBUG = True

    # Use in-memory SQLite for tests
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    WHATSAPP_ACCESS_TOKEN = 'test-access-token'
    WHATSAPP_PHONE_NUMBER_ID = '1234567890'
    WHATSAPP_VERIFY_TOKEN = 'test-verify-token'
    WHATSAPP_APP_SECRET = None
    GEMINI_API_KEY = None
    AUTOMATION_WEBHOOK_URL = 'http://automation.test/webhook'

    HANDOVER_CONFIDENCE_THRESHOLD = 0.7
    CONTEXT_WINDOW_SIZE = 10
    CAMPAIGN_SEND_INTERVAL_SECONDS = 0.0
    FOLLOW_UP_SEND_INTERVAL_SECONDS = 0.0
    EXTERNAL_CALL_TIMEOUT_SECONDS = 1.0

    CONTACT_LOCK_BACKEND = 'local'
    CONTACT_LOCK_TIMEOUT_SECONDS = 1.0

    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True


class ProductionConfig(Config):
    """Production environment configuration"""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')

    REDIS_URL = os.environ.get('REDIS_URL', '')
    CELERY_BROKER_URL = os.environ.get('REDIS_URL', '')
    CELERY_RESULT_BACKEND = os.environ.get('REDIS_URL', '')

    # If using rediss:// (SSL), append required parameters
    if CELERY_BROKER_URL.startswith('rediss://'):
        if 'ssl_cert_reqs' not in CELERY_BROKER_URL:
            separator = '&' if '?' in CELERY_BROKER_URL else '?'
            ssl_params = f"{separator}ssl_cert_reqs=CERT_NONE"
            CELERY_BROKER_URL += ssl_params
            CELERY_RESULT_BACKEND += ssl_params

    @classmethod
    def init_app(cls, app):
        """Production-specific initialization"""
        Config.init_app(app)

        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            app.config['SQLALCHEMY_DATABASE_URI'] = cls.get_required_env('POSTGRES_URI')
        if not app.config.get('REDIS_URL'):
            raise ConfigurationError("REDIS_URL is required in production")

        cls.validate_required_config()

        if not app.config.get('WHATSAPP_APP_SECRET'):
            import logging
            logging.getLogger(__name__).warning(
                "WHATSAPP_APP_SECRET is not set; webhook signatures will not be verified"
            )


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type[Config]:
    """Get configuration class based on environment"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    return config.get(config_name, DevelopmentConfig)
