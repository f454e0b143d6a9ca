"""
Squads Virtuais
Configuration classes for the Flask App Factory.

Environment variables are read when a config object is instantiated, and
missing required settings fail the process at startup instead of at the
first request that needs them.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name]())
"""

import os
import re
import secrets

from cryptography.fernet import Fernet

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not configured
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'squads_virtuais_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

DEFAULT_JWT_EXPIRES_IN = 7 * 24 * 3600   # 7 days
DEFAULT_OAUTH_STATE_TTL = 600            # 10 minutes

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value, default: int) -> int:
    """Parse "604800", "7d", "12h", "30m" into seconds."""
    if value is None or str(value).strip() == "":
        return default
    match = _DURATION_RE.match(str(value))
    if not match:
        raise RuntimeError(f"Invalid duration value: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit]


def normalize_database_url(raw: str) -> str:
    """Railway/Heroku hand out postgres:// but SQLAlchemy 2.x needs an explicit driver."""
    if raw.startswith("postgres://"):
        return raw.replace("postgres://", "postgresql+psycopg://", 1)
    if raw.startswith("postgresql://"):
        return raw.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw


class Config:
    """Base configuration shared across all environments."""

    DEBUG = False
    TESTING = False

    # Request guard
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2 MB

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Settings that must be non-empty for the app to boot
    REQUIRED_SETTINGS: tuple[str, ...] = (
        "JWT_SECRET",
        "GOOGLE_CLIENT_ID",
        "GITHUB_CLIENT_ID",
        "GITHUB_CLIENT_SECRET",
    )

    def __init__(self):
        # Session tokens
        self.JWT_SECRET = os.getenv("JWT_SECRET", "")
        self.JWT_EXPIRES_IN = parse_duration(os.getenv("JWT_EXPIRES_IN"), DEFAULT_JWT_EXPIRES_IN)
        # Flask's own signing key; falls back to a per-process random value
        self.SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)

        # Identity providers
        self.GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
        self.GITHUB_CLIENT_ID = os.getenv("GITHUB_CLIENT_ID", "")
        self.GITHUB_CLIENT_SECRET = os.getenv("GITHUB_CLIENT_SECRET", "")
        self.GITHUB_REDIRECT_URI = os.getenv("GITHUB_REDIRECT_URI", "")
        self.OAUTH_STATE_TTL = parse_duration(os.getenv("OAUTH_STATE_TTL"), DEFAULT_OAUTH_STATE_TTL)
        self.FRONTEND_URL = os.getenv("FRONTEND_URL", "https://squadsvirtuais.com").rstrip("/")
        self.GITHUB_CONNECT_REDIRECT_URI = os.getenv("GITHUB_CONNECT_REDIRECT_URI", "")

        # Fernet key for third-party tokens stored at rest
        self.ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "")

        # Database
        raw_db_url = os.getenv("DATABASE_URL", "")
        self.SQLALCHEMY_DATABASE_URI = normalize_database_url(raw_db_url) if raw_db_url else None

        # CORS
        self.CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

        # AI gateway
        self.AI_PROVIDER = os.getenv("AI_PROVIDER", "openai").lower()
        self.AI_MODEL = os.getenv("AI_MODEL", "")
        self.AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.7"))
        self.AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "60"))
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

    def missing_settings(self) -> list[str]:
        return [name for name in self.REQUIRED_SETTINGS if not getattr(self, name, None)]

    def validate(self):
        missing = self.missing_settings()
        if missing:
            raise RuntimeError(
                "Missing required environment variables: " + ", ".join(missing)
            )


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True

    def __init__(self):
        super().__init__()
        if not self.SQLALCHEMY_DATABASE_URI:
            os.makedirs(os.path.join(basedir, "instance"), exist_ok=True)
            self.SQLALCHEMY_DATABASE_URI = _SQLITE_DEV
        if self.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            self.SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
        self.FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
        # Per-process key: stored GitHub tokens do not survive a restart
        self.ENCRYPTION_KEY = self.ENCRYPTION_KEY or Fernet.generate_key().decode()
        # Without an OpenAI key, development runs against the deterministic stub
        if not os.getenv("AI_PROVIDER") and not self.OPENAI_API_KEY:
            self.AI_PROVIDER = "local"
        self.validate()


class TestingConfig(Config):
    """Testing environment configuration. Never reads secrets from the environment."""

    TESTING = True
    RATELIMIT_ENABLED = False
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
        self.SECRET_KEY = "test-secret-key"
        self.JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
        self.JWT_EXPIRES_IN = DEFAULT_JWT_EXPIRES_IN
        self.GOOGLE_CLIENT_ID = "test-google-client-id.apps.googleusercontent.com"
        self.GITHUB_CLIENT_ID = "test-github-client-id"
        self.GITHUB_CLIENT_SECRET = "test-github-client-secret"
        self.GITHUB_REDIRECT_URI = "http://localhost/api/v1/auth/github/callback"
        self.GITHUB_CONNECT_REDIRECT_URI = "http://localhost/api/v1/integrations/github/callback"
        self.ENCRYPTION_KEY = Fernet.generate_key().decode()
        self.OAUTH_STATE_TTL = DEFAULT_OAUTH_STATE_TTL
        self.FRONTEND_URL = "http://frontend.test"
        self.CORS_ORIGINS = "*"
        self.AI_PROVIDER = "local"
        self.AI_MODEL = ""
        self.OPENAI_API_KEY = ""
        self.ANTHROPIC_API_KEY = ""
        self.validate()


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False

    # Override engine options with PostgreSQL statement timeout
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
        super().__init__()
        self.CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
        self.validate()

    def missing_settings(self) -> list[str]:
        missing = super().missing_settings()
        if not self.SQLALCHEMY_DATABASE_URI:
            missing.append("DATABASE_URL")
        if not self.ENCRYPTION_KEY:
            missing.append("ENCRYPTION_KEY")
        if self.AI_PROVIDER == "openai" and not self.OPENAI_API_KEY:
            missing.append("OPENAI_API_KEY")
        if self.AI_PROVIDER == "anthropic" and not self.ANTHROPIC_API_KEY:
            missing.append("ANTHROPIC_API_KEY")
        return missing


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
