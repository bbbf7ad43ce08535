"""
Review API
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'review_api_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str = "false") -> bool:
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
        "pool_recycle": 300,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging: LOG_LEVEL defaults per environment, LOG_FORMAT is "json" or "text"
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")

    # Token verification
    AUTH_SECRET = os.getenv("AUTH_SECRET", "mysecret")
    JWT_ALGORITHMS = [a.strip() for a in os.getenv("JWT_ALGORITHMS", "HS256").split(",") if a.strip()]
    VALID_ISSUERS = [i.strip() for i in os.getenv("VALID_ISSUERS", "").split(",") if i.strip()]
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")

    # External services
    CHALLENGE_API_URL = os.getenv("CHALLENGE_API_URL", "http://localhost:4000/challenges/")
    RESOURCE_API_URL = os.getenv("RESOURCE_API_URL", "https://api.topcoder-dev.com/v6/")
    MEMBER_API_URL = os.getenv("MEMBER_API_URL", "http://localhost:4000/members")
    BUS_API_URL = os.getenv("BUS_API_URL", "http://localhost:4000/eventBus")
    ONLINE_REVIEW_URL_BASE = os.getenv(
        "ONLINE_REVIEW_URL_BASE", "https://review.topcoder.com/review/active-challenges/"
    )
    GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", "5"))

    # M2M client credentials
    M2M_AUTH_URL = os.getenv("M2M_AUTH_URL", "http://localhost:4000/oauth/token")
    M2M_AUTH_AUDIENCE = os.getenv("M2M_AUTH_AUDIENCE", "https://m2m.topcoder-dev.com/")
    M2M_CLIENT_ID = os.getenv("M2M_CLIENT_ID")
    M2M_CLIENT_SECRET = os.getenv("M2M_CLIENT_SECRET")

    # E-mail via event bus
    EMAIL_FROM = os.getenv("EMAIL_FROM", "Topcoder <noreply@topcoder.com>")
    SENDGRID_ACCEPT_REVIEW_APPLICATION_TEMPLATE = os.getenv(
        "SENDGRID_ACCEPT_REVIEW_APPLICATION_TEMPLATE", "d-2de72880bd69499e9c16369398d34bb9"
    )
    SENDGRID_REJECT_REVIEW_APPLICATION_TEMPLATE = os.getenv(
        "SENDGRID_REJECT_REVIEW_APPLICATION_TEMPLATE", "d-82ed74e778e84d8c9bc02eeda0f44b5e"
    )
    SENDGRID_CONTACT_MANAGERS_TEMPLATE = os.getenv(
        "SENDGRID_CONTACT_MANAGERS_TEMPLATE", "d-00000000000000000000000000000000"
    )

    # Object storage
    AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
    ARTIFACTS_S3_BUCKET = os.getenv("ARTIFACTS_S3_BUCKET")
    SUBMISSIONS_S3_BUCKET = os.getenv("SUBMISSIONS_S3_BUCKET")

    # Review applications: reject approve/reject on a terminal record
    REVIEW_APPLICATION_STRICT_TRANSITIONS = _env_bool("REVIEW_APPLICATION_STRICT_TRANSITIONS")
    REVIEW_HISTORY_DAYS = int(os.getenv("REVIEW_HISTORY_DAYS", "60"))

    # Upload size cap
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(50 * 1024 * 1024)))


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
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTH_SECRET = "test-secret"
    JWT_ALGORITHMS = ["HS256"]
    VALID_ISSUERS = []
    API_AUTH_ENABLED = "true"
    RATELIMIT_ENABLED = False
    GATEWAY_TIMEOUT = 1.0
    ARTIFACTS_S3_BUCKET = "test-artifacts"
    SUBMISSIONS_S3_BUCKET = "test-submissions"
    M2M_CLIENT_ID = "test-client"
    M2M_CLIENT_SECRET = "test-client-secret"
    REVIEW_APPLICATION_STRICT_TRANSITIONS = False


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
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not os.getenv("AUTH_SECRET"):
            raise RuntimeError("AUTH_SECRET environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
