from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .domain import TotalPolicy
from .stores import DocumentStore, SqlStore, business_clock

STORE_KINDS = ("sql", "document")


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


def _env_flag(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    env: str = "dev"
    store: str = "sql"
    db_url: str = "sqlite+pysqlite:////tmp/billing.db"
    doc_path: str = "/tmp/billing.json"
    store_timeout_secs: float = 5.0
    total_policy: TotalPolicy = TotalPolicy.TRUST
    strict_mobile: bool = True
    mobile_digits: int = 10
    timezone: str = "UTC"
    allowed_origins: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        store = _env_or("BILLING_STORE", "sql").strip().lower()
        if store not in STORE_KINDS:
            raise ValueError(f"BILLING_STORE must be one of {STORE_KINDS}, got {store!r}")
        try:
            policy = TotalPolicy(_env_or("BILLING_TOTAL_POLICY", "trust").strip().lower())
        except ValueError:
            raise ValueError("BILLING_TOTAL_POLICY must be trust, recompute or verify") from None
        try:
            timeout = float(_env_or("BILLING_STORE_TIMEOUT_SECS", "5"))
            digits = int(_env_or("BILLING_MOBILE_DIGITS", "10"))
        except ValueError:
            raise ValueError("BILLING_STORE_TIMEOUT_SECS and BILLING_MOBILE_DIGITS must be numeric") from None
        if timeout <= 0 or digits <= 0:
            raise ValueError("BILLING_STORE_TIMEOUT_SECS and BILLING_MOBILE_DIGITS must be positive")
        tz = _env_or("BILLING_TIMEZONE", "UTC").strip() or "UTC"
        try:
            ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown BILLING_TIMEZONE {tz!r}") from None
        return cls(
            env=_env_or("ENV", "dev"),
            store=store,
            db_url=_env_or("BILLING_DB_URL", _env_or("DB_URL", cls.db_url)),
            doc_path=_env_or("BILLING_DOC_PATH", cls.doc_path),
            store_timeout_secs=timeout,
            total_policy=policy,
            strict_mobile=_env_flag("BILLING_STRICT_MOBILE", True),
            mobile_digits=digits,
            timezone=tz,
            allowed_origins=os.getenv("ALLOWED_ORIGINS"),
        )


def build_store(settings: Settings):
    """The configured persistence strategy; both satisfy BillStore and CatalogStore."""
    clock = business_clock(settings.timezone)
    if settings.store == "document":
        return DocumentStore(settings.doc_path, clock=clock)
    return SqlStore(settings.db_url, clock=clock, lock_timeout_secs=settings.store_timeout_secs)
