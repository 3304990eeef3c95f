import os
from datetime import timedelta

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))

load_dotenv(os.path.join(basedir, '.env'))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER") or os.path.join(basedir, 'uploads')
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", 10 * 1024 * 1024))
    JSON_SORT_KEYS = False

    # Gunakan PostgreSQL jika DATABASE_URL diset, fallback ke SQLite
    SQLALCHEMY_DATABASE_URI = (
        os.environ.get("DATABASE_URL") or
        f"sqlite:///{os.path.join(basedir, 'simlok.db')}"
    )

    TIMEZONE = os.environ.get("TIMEZONE", "Asia/Jakarta")

    LOG_DIR = os.environ.get("LOG_DIR") or os.path.join(basedir, 'logs')
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", 30))
    LOG_STREAM_POLL_INTERVAL = float(os.environ.get("LOG_STREAM_POLL_INTERVAL", 1))
    LOG_STREAM_HEARTBEAT_INTERVAL = float(os.environ.get("LOG_STREAM_HEARTBEAT_INTERVAL", 30))

    # Session disimpan di database, cookie hanya membawa token
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_MAX_AGE = timedelta(hours=24)
    PERMANENT_SESSION_LIFETIME = SESSION_MAX_AGE
    SESSION_IDLE_TIMEOUT = timedelta(hours=2)
    SESSION_ACTIVITY_UPDATE_INTERVAL = timedelta(minutes=5)
    MAX_SESSIONS_PER_USER = 5

    QR_SECRET = os.environ.get("QR_SECRET")
    QR_PREFIX = "SL"

    SIMLOK_NUMBER_SUFFIX = os.environ.get("SIMLOK_NUMBER_SUFFIX", "SMKT/OPR")
    SIMLOK_ISSUE_PLACE = os.environ.get("SIMLOK_ISSUE_PLACE", "Jakarta")

    PER_PAGE = 10
    MAX_PER_PAGE = 100


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_STREAM_POLL_INTERVAL = 0
    LOG_STREAM_HEARTBEAT_INTERVAL = 0


def get_config():
    env = os.environ.get("FLASK_ENV", "development").lower()
    if env == "production":
        return ProductionConfig
    return DevelopmentConfig
