"""
ESG Governance Core
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

from sqlalchemy.pool import StaticPool

# The governance store lives for the life of the process: an in-memory
# SQLite database shared by every thread unless DATABASE_URL says otherwise
_SQLITE_MEMORY = "sqlite:///:memory:"
_SQLITE_MEMORY_ENGINE_OPTIONS = {
    "poolclass": StaticPool,
    "connect_args": {"check_same_thread": False},
}

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(var="DATABASE_URL"):
    raw = os.getenv(var, "")
    # Heroku-style URLs use postgres:// but SQLAlchemy 2.0 requires postgresql://
    return raw.replace("postgres://", "postgresql://", 1) if raw else None


def _engine_options(uri):
    if uri == _SQLITE_MEMORY:
        return _SQLITE_MEMORY_ENGINE_OPTIONS
    return {"pool_pre_ping": True, "pool_recycle": 300}


def _int_env(name, default):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _database_url() or _SQLITE_MEMORY
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiting (Flask-Limiter)
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # ── Governance ───────────────────────────────────────────────────────
    BREAK_GLASS_MIN_REASON_LENGTH = _int_env("BREAK_GLASS_MIN_REASON_LENGTH", 20)
    BREAK_GLASS_AUTHORIZED_ROLE_IDS = [
        r.strip()
        for r in os.getenv("BREAK_GLASS_AUTHORIZED_ROLE_IDS", "role-admin").split(",")
        if r.strip()
    ]
    # None = walk every rollover link back to the origin
    LINEAGE_MAX_DEPTH = _int_env("LINEAGE_MAX_DEPTH", None)
    PERMISSION_CHECK_AUDIT = os.getenv("PERMISSION_CHECK_AUDIT", "true").lower() == "true"
    ROLE_CACHE_TTL = _int_env("ROLE_CACHE_TTL", 300)
    SEED_PREDEFINED_ROLES = True
    BREAK_GLASS_ENABLED = os.getenv("BREAK_GLASS_ENABLED", "true").lower() == "true"


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL") or _SQLITE_MEMORY
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)
    RATELIMIT_ENABLED = False
    # Tables are re-created per test; conftest seeds roles itself
    SEED_PREDEFINED_ROLES = False


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
