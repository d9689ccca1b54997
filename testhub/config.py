"""
Test Hub Ingestion
Configuration classes for the app factory.

Selected by name in ``create_app``; the name defaults to ``APP_ENV``:
    development  local SQLite file under instance/
    testing      in-memory SQLite, no retry backoff
    production   DATABASE_URL required, PostgreSQL pool sizing
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'testhub_dev.db')}"
_SQLITE_MEMORY = "sqlite:///:memory:"


def _database_url(default=None):
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        return default
    # Heroku-style URLs; SQLAlchemy 2.x only accepts the postgresql:// scheme
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


def _env_float(name, default):
    return float(os.getenv(name, str(default)))


class Config:
    """Settings shared by every environment."""

    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Display ids: <prefix>-<n>, unique per project
    TESTCASE_ID_PREFIX = os.getenv("TESTCASE_ID_PREFIX", "TC")
    DEFECT_ID_PREFIX = os.getenv("DEFECT_ID_PREFIX", "DEF")

    # Interactive creation: attempts per entity and linear backoff step (seconds)
    ID_RETRY_ATTEMPTS = _env_int("ID_RETRY_ATTEMPTS", 5)
    ID_RETRY_BACKOFF_SECONDS = _env_float("ID_RETRY_BACKOFF_SECONDS", 0.1)


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_MEMORY)
    # Flask-SQLAlchemy gives :memory: a single static connection
    SQLALCHEMY_ENGINE_OPTIONS = {}
    ID_RETRY_BACKOFF_SECONDS = 0


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": 10,
        "pool_recycle": 300,
        # Large imports hold one connection for the whole batch
        "connect_args": {"options": "-c statement_timeout=60000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
