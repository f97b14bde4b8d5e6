"""Testing configuration."""
from datetime import timedelta

from .base import BaseConfig

class TestingConfig(BaseConfig):
    """Testing configuration class."""

    # Basic Flask config
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    # Deterministic secrets
    SIGNED_CODE_KEY = 'test-signed-code-key'
    ENROLLMENT_ENCRYPTION_KEY = 'test-enrollment-key'

    # Disable external services in testing
    VISION_ORACLE_API_KEY = 'test-oracle-key'
    VISION_ORACLE_BACKOFF_SECONDS = 0
    SWEEPER_ENABLED = False

    # Logging
    LOG_LEVEL = 'WARNING'
