"""Development configuration."""
import os

from .base import BaseConfig

class DevelopmentConfig(BaseConfig):
    """Development configuration class."""

    DEBUG = True
    TESTING = False

    # Database (SQLite keeps local runs dependency-free)
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL') or 'sqlite:///rollcall_dev.db'
    SQLALCHEMY_ECHO = True

    # Sessions are swept every minute in development too
    SWEEPER_ENABLED = os.getenv('SWEEPER_ENABLED', 'true').lower() == 'true'

    LOG_LEVEL = 'DEBUG'
