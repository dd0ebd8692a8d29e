"""Application configuration.

Environment variables override all defaults. A backend/.env file is loaded
for local development and never overrides variables already set.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./poultry.db")
    # Terminals wait this long on a locked SQLite file before failing
    SQLITE_BUSY_TIMEOUT_SECONDS: float = _env_float("SQLITE_BUSY_TIMEOUT_SECONDS", 30.0)

    # Ledger posting: a lost version race rolls back and retries the whole unit
    LEDGER_MAX_RETRIES: int = _env_int("LEDGER_MAX_RETRIES", 25)
    LEDGER_RETRY_BACKOFF_MS: int = _env_int("LEDGER_RETRY_BACKOFF_MS", 20)

    # Invoice numbers: per-date counter row; scan-and-retry when disabled
    INVOICE_COUNTER_ENABLED: bool = _env_bool("INVOICE_COUNTER_ENABLED", True)

    # Wastage analytics defaults
    DEFAULT_ANOMALY_WINDOW_DAYS: int = _env_int("DEFAULT_ANOMALY_WINDOW_DAYS", 30)
    DEFAULT_ANOMALY_K: float = _env_float("DEFAULT_ANOMALY_K", 2.0)
    HIGH_WASTAGE_THRESHOLD: float = _env_float("HIGH_WASTAGE_THRESHOLD", 10.0)

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"


settings = Settings()
