from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_DATABASE_URL = "sqlite:///docketsync.db"


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Sync engine configuration loaded at process startup."""

    api_url: str
    database_url: str = DEFAULT_DATABASE_URL
    rate_limit_delay_seconds: float = 0.6
    max_retries: int = 3
    page_size: int = 200
    max_pages: int = 500
    batch_size: int = 50
    batch_timeout_seconds: float = 30.0
    details_batch_size: int = 100
    request_timeout_seconds: float = 30.0


def _require_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


def database_url_from_env() -> str:
    return os.environ.get("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL


def load_sync_config_from_env() -> SyncConfig:
    """Load sync config from env and validate startup requirements."""
    api_url = _require_env("DOCKETWISE_API_URL").rstrip("/")

    return SyncConfig(
        api_url=api_url,
        database_url=database_url_from_env(),
        rate_limit_delay_seconds=_float_env(
            "DOCKETSYNC_RATE_LIMIT_DELAY_SECONDS", 0.6
        ),
        max_retries=_int_env("DOCKETSYNC_MAX_RETRIES", 3),
        page_size=_int_env("DOCKETSYNC_PAGE_SIZE", 200, minimum=1),
        max_pages=_int_env("DOCKETSYNC_MAX_PAGES", 500, minimum=1),
        batch_size=_int_env("DOCKETSYNC_BATCH_SIZE", 50, minimum=1),
        batch_timeout_seconds=_float_env("DOCKETSYNC_BATCH_TIMEOUT_SECONDS", 30.0),
        details_batch_size=_int_env("DOCKETSYNC_DETAILS_BATCH_SIZE", 100, minimum=1),
        request_timeout_seconds=_float_env(
            "DOCKETSYNC_REQUEST_TIMEOUT_SECONDS", 30.0
        ),
    )
