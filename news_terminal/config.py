"""
News Terminal Configuration

Centralized configuration. All environment variables MUST be read here.
No os.getenv() calls allowed elsewhere.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from news_terminal.core.types import ConfigurationError

__all__ = [
    "AuthConfig",
    "ConfigurationError",
    "HttpConfig",
    "JobsConfig",
    "SessionConfig",
    "Settings",
    "StoreConfig",
    "load_settings",
]


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}", variable=name)


def _optional_env_float(name: str, default: float) -> float:
    """Get an optional float environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid number value for {name}: {value}", variable=name)


def _optional_env_bool(name: str, default: bool) -> bool:
    """Get an optional boolean environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class StoreConfig:
    """Backend store and change-feed configuration."""
    backend: str = "sqlite"
    database_path: str = "news_terminal.db"
    redis_url: str = ""
    seed_defaults: bool = True

    @property
    def uses_redis(self) -> bool:
        return bool(self.redis_url)


@dataclass(frozen=True)
class HttpConfig:
    """HTTP job/API server configuration."""
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class AuthConfig:
    """Shared job secret and user JWT verification settings."""
    internal_secret: str = ""
    jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    jwt_issuer: str = ""


@dataclass(frozen=True)
class JobsConfig:
    """Ingestion and retention scheduling."""
    ingest_interval_seconds: int = 300
    archive_interval_seconds: int = 86400
    retention_days: int = 10
    fetch_timeout_seconds: float = 15.0
    user_agent: str = "News Terminal RSS Reader/1.0"


@dataclass(frozen=True)
class SessionConfig:
    """Per-viewer feed session tuning."""
    max_items: int = 10
    sound_cooldown_ms: int = 5000
    sound_settings_path: str = "sound_settings.json"


@dataclass(frozen=True)
class Settings:
    """Root configuration container."""
    store: StoreConfig
    http: HttpConfig
    auth: AuthConfig
    jobs: JobsConfig
    session: SessionConfig

    def validate_backend(self) -> None:
        """
        Refuse to serve the job/API surface without its secrets.

        Raises:
            ConfigurationError: If a secret the HTTP surface needs is absent.
        """
        if self.store.backend not in ("sqlite", "memory"):
            raise ConfigurationError(
                f"Unknown STORE_BACKEND: {self.store.backend} (expected sqlite or memory)",
                variable="STORE_BACKEND",
            )
        if not self.auth.internal_secret:
            raise ConfigurationError(
                "Missing required environment variable: INTERNAL_CRON_SECRET\n"
                "Description: shared secret for POST /ingest and POST /archive",
                variable="INTERNAL_CRON_SECRET",
            )
        if not self.auth.jwt_secret:
            raise ConfigurationError(
                "Missing required environment variable: JWT_SECRET\n"
                "Description: HS256 secret used to verify user tokens",
                variable="JWT_SECRET",
            )


def load_settings() -> Settings:
    """
    Load all settings from environment variables.

    Every value has a default so one-shot commands (ingest, archive) work
    without a .env file; `Settings.validate_backend()` enforces the secrets
    the HTTP server needs.
    """
    store = StoreConfig(
        backend=_optional_env("STORE_BACKEND", "sqlite").lower(),
        database_path=_optional_env("DATABASE_PATH", "news_terminal.db"),
        redis_url=_optional_env("REDIS_URL", ""),
        seed_defaults=_optional_env_bool("SEED_DEFAULT_PANES", True),
    )

    http = HttpConfig(
        host=_optional_env("HTTP_HOST", "0.0.0.0"),
        port=_optional_env_int("HTTP_PORT", 8080),
    )

    auth = AuthConfig(
        internal_secret=_optional_env("INTERNAL_CRON_SECRET", ""),
        jwt_secret=_optional_env("JWT_SECRET", ""),
        jwt_audience=_optional_env("JWT_AUDIENCE", "authenticated"),
        jwt_issuer=_optional_env("JWT_ISSUER", ""),
    )

    jobs = JobsConfig(
        ingest_interval_seconds=_optional_env_int("INGEST_INTERVAL_SECONDS", 300),
        archive_interval_seconds=_optional_env_int("ARCHIVE_INTERVAL_SECONDS", 86400),
        retention_days=_optional_env_int("RETENTION_DAYS", 10),
        fetch_timeout_seconds=_optional_env_float("FETCH_TIMEOUT_SECONDS", 15.0),
        user_agent=_optional_env("FEED_USER_AGENT", "News Terminal RSS Reader/1.0"),
    )

    session = SessionConfig(
        max_items=_optional_env_int("PANE_MAX_ITEMS", 10),
        sound_cooldown_ms=_optional_env_int("SOUND_COOLDOWN_MS", 5000),
        sound_settings_path=_optional_env("SOUND_SETTINGS_PATH", "sound_settings.json"),
    )

    return Settings(
        store=store,
        http=http,
        auth=auth,
        jobs=jobs,
        session=session,
    )

