"""Vault API configuration settings.

VaultSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_SHARE_BASE_URL = "http://localhost:5173"
DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "http://localhost:3000",
)


def _env_bool(raw: str | None, default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(env: dict[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}") from exc


def _env_int(env: dict[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class VaultSettings:
    """Configuration for the vault FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply real Supabase values.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Service-role key for PostgREST calls. Never log this."""

    supabase_jwt_secret: str = ""
    """HS256 project secret. When empty, tokens are verified against JWKS."""

    supabase_timeout_seconds: float = 10.0

    # ── Sharing ────────────────────────────────────────────────────
    share_base_url: str = DEFAULT_SHARE_BASE_URL
    """Origin of the web app; links are ``{share_base_url}/shared/{token}``."""

    share_default_hours: float = 1.0
    share_max_hours: float = 720.0

    share_verify_record_ownership: bool = True
    """Re-check that every shared record belongs to the owner at issue time."""

    share_pin_max_failures: int = 5
    """Failed PINs per token before lockout. 0 disables the lockout."""

    share_pin_window_seconds: float = 900.0

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"
    """``json`` or ``console``."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
        if self.share_max_hours <= 0:
            errors.append("share_max_hours must be positive")
        if not 0 < self.share_default_hours <= self.share_max_hours:
            errors.append("share_default_hours must be in (0, share_max_hours]")
        if self.share_pin_max_failures < 0:
            errors.append("share_pin_max_failures must be >= 0")
        if self.share_pin_window_seconds <= 0:
            errors.append("share_pin_window_seconds must be positive")
        if self.supabase_timeout_seconds <= 0:
            errors.append("supabase_timeout_seconds must be positive")
        if self.log_format not in ("json", "console"):
            errors.append(f"log_format must be 'json' or 'console', got {self.log_format!r}")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> VaultSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct VaultSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else DEFAULT_CORS_ORIGINS

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_jwt_secret=env.get("SUPABASE_JWT_SECRET", ""),
            supabase_timeout_seconds=_env_float(env, "SUPABASE_TIMEOUT_SECONDS", 10.0),
            share_base_url=env.get("SHARE_BASE_URL", "") or DEFAULT_SHARE_BASE_URL,
            share_default_hours=_env_float(env, "SHARE_DEFAULT_HOURS", 1.0),
            share_max_hours=_env_float(env, "SHARE_MAX_HOURS", 720.0),
            share_verify_record_ownership=_env_bool(
                env.get("SHARE_VERIFY_RECORD_OWNERSHIP"), True,
            ),
            share_pin_max_failures=_env_int(env, "SHARE_PIN_MAX_FAILURES", 5),
            share_pin_window_seconds=_env_float(env, "SHARE_PIN_WINDOW_SECONDS", 900.0),
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
