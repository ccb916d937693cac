"""
Environment configuration for the clarity service.

``create_app`` instantiates one of the classes in ``config`` (keyed by
APP_ENV), so checks in ``__init__`` run at startup.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _database_url(fallback: str | None) -> str | None:
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return fallback
    # hosted Postgres URLs still use the legacy scheme
    return "postgresql://" + raw[len("postgres://"):] if raw.startswith("postgres://") else raw


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

    # pasted role descriptions stay well under this
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    # generative backend
    LLM_DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")
    LLM_TIMEOUT_SECONDS = _env_float("LLM_TIMEOUT_SECONDS", 60)
    CLARITY_MAX_RETRIES = int(os.getenv("CLARITY_MAX_RETRIES", "1"))
    CLARITY_TEMPERATURE = 0.2
    PROMPTS_DIR = os.getenv("PROMPTS_DIR", os.path.join(basedir, "ai_knowledge", "prompts"))

    # extraction input
    MIN_INPUT_CHARS = 20
    URL_FETCH_TIMEOUT_SECONDS = _env_float("URL_FETCH_TIMEOUT_SECONDS", 10)
    URL_CONTENT_MAX_CHARS = 15000


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'roleclarity_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    LLM_DEFAULT_CHAT_MODEL = "local-stub"
    LLM_TIMEOUT_SECONDS = 5.0

    def __init__(self):
        # resolved per instance so TEST_DATABASE_URL can change between apps
        self.SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url(None)
    # no wildcard default outside development
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [name for name in ("DATABASE_URL", "SECRET_KEY") if not os.getenv(name)]
        if missing:
            raise RuntimeError(f"Production config requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
