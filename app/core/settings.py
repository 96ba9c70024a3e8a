"""Runtime configuration for the intake service."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

_BACKENDS = ("memory", "postgres", "rest")


@dataclasses.dataclass(frozen=True)
class IntakeSettings:
    """Settings read from the environment once per process."""

    case_backend: str = "memory"
    database_url: str | None = None
    database_pool_size: int = 10
    tenant_database_url: str | None = None
    rest_url: str | None = None
    rest_api_key: str | None = None
    rest_table: str = "reports"
    default_tenant_id: str | None = None
    allowed_tenant_ids: tuple[str, ...] = ()
    max_cached_tenants: int = 256
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    upload_max_size: int = 5 * 1024 * 1024
    upload_allowed_mime_types: tuple[str, ...] = ("image/*", "application/pdf")
    max_message_length: int = 5000
    submission_rate_limit: str = "10/minute"
    lookup_rate_limit: str = "30/minute"
    brand_name: str = "SilentDrop"


def _split(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@lru_cache(maxsize=1)
def get_settings() -> IntakeSettings:
    """Load settings from the environment with defaults suited to development."""

    backend = os.getenv("CASE_BACKEND", "memory").strip().lower()
    if backend not in _BACKENDS:
        raise RuntimeError(
            f"CASE_BACKEND must be one of {', '.join(_BACKENDS)}; got '{backend}'."
        )
    return IntakeSettings(
        case_backend=backend,
        database_url=os.getenv("DATABASE_URL"),
        database_pool_size=int(os.getenv("DATABASE_POOL_SIZE", "10")),
        tenant_database_url=os.getenv("ADMIN_DATABASE_URL") or os.getenv("DATABASE_URL"),
        rest_url=os.getenv("CASE_REST_URL"),
        rest_api_key=os.getenv("CASE_REST_API_KEY"),
        rest_table=os.getenv("CASE_REST_TABLE", "reports"),
        default_tenant_id=os.getenv("TENANT_ID"),
        allowed_tenant_ids=_split(os.getenv("ALLOWED_TENANT_IDS", "")),
        max_cached_tenants=int(os.getenv("CASE_MAX_CACHED_TENANTS", "256")),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        upload_max_size=int(os.getenv("UPLOAD_MAX_SIZE", str(5 * 1024 * 1024))),
        upload_allowed_mime_types=_split(
            os.getenv("UPLOAD_ALLOWED_MIME_TYPES", "image/*,application/pdf")
        ),
        max_message_length=int(os.getenv("CASE_MAX_MESSAGE_LENGTH", "5000")),
        submission_rate_limit=os.getenv("SUBMISSION_RATE_LIMIT", "10/minute"),
        lookup_rate_limit=os.getenv("LOOKUP_RATE_LIMIT", "30/minute"),
        brand_name=os.getenv("BRAND_NAME", "SilentDrop"),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = ["IntakeSettings", "get_settings", "reset_settings_cache"]
