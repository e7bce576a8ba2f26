"""
Runtime configuration.

All tunables have sensible defaults so the library can be used without any
environment at all (tests construct 'LifecycleSettings' directly). Entry points
call 'LifecycleSettings.from_env()'. Secrets are looked up in a mounted secret
file first and then in the environment.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field

SECRETS_DIR = Path("/secrets")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_secret(name: str, default: str | None = None) -> str | None:
    """Load a secret from '/secrets/<name>' or the '<name>' environment variable."""
    secret_file = SECRETS_DIR / name
    if secret_file.exists():
        return secret_file.read_text().strip()
    return os.environ.get(name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


class LifecycleSettings(BaseModel):
    """Tunables for the completion transport, retries, animation and storage."""

    completion_base_url: str = "http://localhost:54321/functions/v1"
    completion_timeout_s: float = Field(default=30.0, gt=0)
    send_max_retries: int = Field(default=3, ge=0)
    retry_delay_s: float = Field(default=1.0, ge=0)
    retry_exponential: bool = True
    typing_tick_s: float = Field(default=0.015, ge=0)
    typing_chunk_size: int = Field(default=3, ge=1)
    default_model: str = "gpt-4o-mini"
    log_level: str = "INFO"
    store_url: str | None = None
    store_api_key: str | None = None

    @classmethod
    def from_env(cls) -> "LifecycleSettings":
        return cls(
            completion_base_url=os.environ.get("CHAT_COMPLETION_BASE_URL", cls.model_fields["completion_base_url"].default),
            completion_timeout_s=_env_float("CHAT_COMPLETION_TIMEOUT_S", 30.0),
            send_max_retries=_env_int("CHAT_SEND_MAX_RETRIES", 3),
            retry_delay_s=_env_float("CHAT_RETRY_DELAY_S", 1.0),
            retry_exponential=_env_bool("CHAT_RETRY_EXPONENTIAL", True),
            typing_tick_s=_env_float("CHAT_TYPING_TICK_S", 0.015),
            typing_chunk_size=_env_int("CHAT_TYPING_CHUNK_SIZE", 3),
            default_model=os.environ.get("CHAT_DEFAULT_MODEL", "gpt-4o-mini"),
            log_level=os.environ.get("CHAT_LOG_LEVEL", "INFO"),
            store_url=os.environ.get("CHAT_STORE_URL") or None,
            store_api_key=get_secret("CHAT_STORE_API_KEY"),
        )
