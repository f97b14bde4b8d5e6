"""Base configuration shared by every environment."""
import os
from datetime import timedelta

class BaseConfig:
    """Base configuration class."""

    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"

    # Attendance window
    DEFAULT_WINDOW_MINUTES = 15
    DEFAULT_DURATION_MINUTES = 60
    MAX_DURATION_MINUTES = 480

    # Signed rotating codes
    SIGNED_CODE_KEY = os.getenv('SIGNED_CODE_KEY')  # Falls back to SECRET_KEY
    SIGNED_CODE_TTL_SECONDS = 30

    # Face channel thresholds (product tuning values)
    FACE_UNCERTAIN_MIN_CONFIDENCE = 70
    ENROLLMENT_MIN_QUALITY = 60
    DUPLICATE_SIMILARITY_THRESHOLD = 85
    ENROLLMENT_ENCRYPTION_KEY = os.getenv('ENROLLMENT_ENCRYPTION_KEY')  # Falls back to SECRET_KEY

    # Vision oracle
    VISION_ORACLE_URL = os.getenv('VISION_ORACLE_URL') or 'https://ai.gateway.lovable.dev/v1/chat/completions'
    VISION_ORACLE_API_KEY = os.getenv('VISION_ORACLE_API_KEY')
    VISION_ORACLE_MODEL = os.getenv('VISION_ORACLE_MODEL', 'google/gemini-2.5-flash')
    VISION_ORACLE_TIMEOUT = 45
    VISION_ORACLE_MAX_RETRIES = 3
    VISION_ORACLE_BACKOFF_SECONDS = 2

    # Session sweeper
    SWEEPER_ENABLED = True
    SWEEPER_INTERVAL_SECONDS = 60

    # File Upload (face captures arrive as base64 in JSON)
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
