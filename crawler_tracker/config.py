import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


RETENTION_SECONDS = 60 * 60 * 24 * 30
LOG_KEY_PREFIX = "log:"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration handed to the app factory."""

    endpoint: str = "http://localhost:8000"
    token: Optional[str] = None
    # Retrieval is open unless this is switched on.
    require_token: bool = False
    default_limit: int = 200
    max_limit: int = 1000
    retention_seconds: int = RETENTION_SECONDS
    key_prefix: str = LOG_KEY_PREFIX
    store_backend: str = "memory"
    azure_account_name: Optional[str] = None
    azure_account_key: Optional[str] = None
    azure_container: str = "crawler-logs"
    log_file: str = "crawler-tracker.log"


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def load_settings() -> Settings:
    load_dotenv()
    account_name = _env_str("AZURE_STORAGE_ACCOUNT_NAME")
    default_backend = "azure" if account_name else Settings.store_backend
    return Settings(
        endpoint=(_env_str("TRACKER_ENDPOINT") or Settings.endpoint).rstrip("/"),
        token=_env_str("TRACKER_TOKEN"),
        require_token=_env_bool("TRACKER_REQUIRE_TOKEN", Settings.require_token),
        default_limit=_env_int("TRACKER_DEFAULT_LIMIT", Settings.default_limit),
        max_limit=_env_int("TRACKER_MAX_LIMIT", Settings.max_limit),
        retention_seconds=_env_int("TRACKER_RETENTION_SECONDS", Settings.retention_seconds),
        store_backend=(_env_str("TRACKER_STORE") or default_backend).lower(),
        azure_account_name=account_name,
        azure_account_key=_env_str("AZURE_STORAGE_ACCOUNT_KEY"),
        azure_container=_env_str("AZURE_CONTAINER") or Settings.azure_container,
        log_file=_env_str("TRACKER_LOG_FILE") or Settings.log_file,
    )
