"""
Field Capture Orders
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'field_capture_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

# 7 days
DEFAULT_SESSION_RETENTION_MS = 7 * 24 * 60 * 60 * 1000


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Redis (cache + rate limit storage)
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Cleanup cron
    CRON_SECRET = os.getenv("CRON_SECRET", "")
    SESSION_RETENTION_MS = int(os.getenv("SESSION_RETENTION_MS", str(DEFAULT_SESSION_RETENTION_MS)))

    # Logging: empty means INFO in production, DEBUG elsewhere
    LOG_LEVEL = os.getenv("LOG_LEVEL", "")

    # Blob store (empty URL → in-memory store)
    BLOB_STORE_URL = os.getenv("BLOB_STORE_URL", "")
    BLOB_STORE_TOKEN = os.getenv("BLOB_STORE_TOKEN", "")
    BLOB_PUBLIC_BASE_URL = os.getenv("BLOB_PUBLIC_BASE_URL", "memory://blobs")

    # Uploads
    MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    MAX_CONTENT_LENGTH = 64 * 1024 * 1024

    # Extraction service
    EXTRACTION_SERVICE_URL = os.getenv("EXTRACTION_SERVICE_URL", "")
    EXTRACTION_API_KEY = os.getenv("EXTRACTION_API_KEY", "")
    EXTRACTION_DEFAULT_MODEL = os.getenv("EXTRACTION_DEFAULT_MODEL", "default")
    EXTRACTION_TIMEOUT = int(os.getenv("EXTRACTION_TIMEOUT", "120"))
    AUTO_EXTRACT_ON_READY = _env_flag("AUTO_EXTRACT_ON_READY")

    # Background task queue: False → run tasks inline on the calling thread
    TASK_QUEUE_ASYNC = True


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a StaticPool, which rejects QueuePool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    REDIS_URL = "memory://"
    CRON_SECRET = "test-cron-secret"
    BLOB_STORE_URL = ""
    EXTRACTION_SERVICE_URL = ""
    AUTO_EXTRACT_ON_READY = False
    TASK_QUEUE_ASYNC = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
