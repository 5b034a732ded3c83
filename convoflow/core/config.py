"""Environment-driven configuration for the conversation core.

Values are read from the process environment (optionally seeded from a
``.env`` file by :mod:`convoflow.main`). ``get_settings`` caches the parsed
result; tests that mutate the environment call ``reset_settings_cache``.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

__all__ = [
    "ConfigurationError",
    "Settings",
    "get_env",
    "get_settings",
    "is_production",
    "reset_settings_cache",
]


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or invalid."""


def get_env(name: str, *, required: bool = False, default: str | None = None) -> str:
    """Fetch an environment variable with optional requirement enforcement.

    Args:
        name: Name of the environment variable to read.
        required: Whether to raise when the variable is missing or empty.
        default: Value to use when the variable is undefined.

    Returns:
        str: Stripped environment variable value, the default, or ``""``.

    Raises:
        ConfigurationError: If ``required`` is ``True`` and the variable is
            missing or blank.
    """

    value = os.getenv(name, default)
    if required and (value is None or not value.strip()):
        raise ConfigurationError(f"Environment variable '{name}' must be set.")
    if value is None:
        return ""
    return value.strip()


def is_production() -> bool:
    """Return ``True`` when the deployment declares itself as production."""

    env = os.getenv("APP_ENV") or os.getenv("ENVIRONMENT") or ""
    return env.strip().lower() == "production"


def _int_env(name: str, default: int) -> int:
    raw = get_env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Environment variable '{name}' must be an integer.") from exc


@dataclasses.dataclass(frozen=True)
class Settings:
    """Runtime configuration for webhooks, channels and background jobs."""

    database_url: str | None = None
    internal_api_secret: str | None = None
    public_app_url: str = ""
    retell_webhook_secret: str | None = None
    bolna_webhook_secret: str | None = None
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_from_number: str | None = None
    resend_api_key: str | None = None
    resend_from_email: str = "noreply@example.com"
    openai_api_key: str | None = None
    analysis_model: str = "gpt-4o-mini"
    followup_batch_size: int = 50
    webhook_retry_batch_size: int = 20
    processing_retry_batch_size: int = 10
    background_workers: int = 4
    tool_modules: tuple[str, ...] = ()

    def voice_webhook_secret(self, provider: str) -> str | None:
        return {
            "retell": self.retell_webhook_secret,
            "bolna": self.bolna_webhook_secret,
        }.get(provider.lower())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment."""

    tool_modules = tuple(
        item.strip() for item in get_env("TOOL_MODULES").split(",") if item.strip()
    )
    return Settings(
        database_url=get_env("DATABASE_URL") or None,
        internal_api_secret=get_env("INTERNAL_API_SECRET") or None,
        public_app_url=get_env("PUBLIC_APP_URL").rstrip("/"),
        retell_webhook_secret=get_env("RETELL_WEBHOOK_SECRET") or None,
        bolna_webhook_secret=get_env("BOLNA_WEBHOOK_SECRET") or None,
        twilio_account_sid=get_env("TWILIO_ACCOUNT_SID") or None,
        twilio_auth_token=get_env("TWILIO_AUTH_TOKEN") or None,
        twilio_from_number=get_env("TWILIO_FROM_NUMBER") or None,
        resend_api_key=get_env("RESEND_API_KEY") or None,
        resend_from_email=get_env("RESEND_FROM_EMAIL", default="noreply@example.com"),
        openai_api_key=get_env("OPENAI_API_KEY") or None,
        analysis_model=get_env("ANALYSIS_MODEL", default="gpt-4o-mini"),
        followup_batch_size=_int_env("FOLLOWUP_BATCH_SIZE", 50),
        webhook_retry_batch_size=_int_env("WEBHOOK_RETRY_BATCH_SIZE", 20),
        processing_retry_batch_size=_int_env("PROCESSING_RETRY_BATCH_SIZE", 10),
        background_workers=_int_env("BACKGROUND_WORKERS", 4),
        tool_modules=tool_modules,
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
