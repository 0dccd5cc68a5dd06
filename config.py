"""Configuration module for the Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _postgres_url(default_db):
    host = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
    port = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
    user = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'salonhub')
    password = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'salonhub')
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{default_db}"


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO' if ENV == 'production' else 'DEBUG')

    # Databases - one per partition
    # Platform: users, subscriptions, notifications. Tenant: salons and their data.
    PLATFORM_DATABASE_URI = (
        os.getenv('PLATFORM_DATABASE_URL')
        or os.getenv('SUPER_ADMIN_DATABASE_URL')
        or _postgres_url('salonhub_platform')
    )
    TENANT_DATABASE_URI = (
        os.getenv('TENANT_DATABASE_URL')
        or os.getenv('SALON_ADMIN_DATABASE_URL')
        or _postgres_url('salonhub_tenant')
    )
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Scheduling
    DEFAULT_APPOINTMENT_DURATION = int(os.getenv('DEFAULT_APPOINTMENT_DURATION', '60'))  # minutes
    SLOT_INTERVAL_MINUTES = int(os.getenv('SLOT_INTERVAL_MINUTES', '30'))
    BOOKING_MAX_RETRIES = int(os.getenv('BOOKING_MAX_RETRIES', '3'))

    # Billing and subscriptions
    DEFAULT_TAX_RATE = os.getenv('DEFAULT_TAX_RATE', '0')  # 0.18 == 18%
    TRIAL_DAYS = int(os.getenv('TRIAL_DAYS', '14'))

    # Super-admin API
    SUPER_ADMIN_API_TOKEN = os.getenv('SUPER_ADMIN_API_TOKEN')

    # Notifications: 'email' (Flask-Mail) or 'log'
    NOTIFIER = os.getenv('NOTIFIER', 'log')

    # Email configuration
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = False

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'salonhub')

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestingConfig(Config):
    """Test configuration: SQLite partitions, no Redis, no SMTP."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    LOG_LEVEL = 'DEBUG'

    PLATFORM_DATABASE_URI = 'sqlite://'
    TENANT_DATABASE_URI = 'sqlite://'

    CACHE_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    NOTIFIER = 'log'
    SUPER_ADMIN_API_TOKEN = 'test-admin-token'
    SENTRY_DSN = None
