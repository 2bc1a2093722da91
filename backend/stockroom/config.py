# backend/stockroom/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Relative sqlite paths resolve against the instance folder
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///stockroom.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Whole-transaction retries for write conflicts and order-number races
    TX_RETRY_ATTEMPTS = _env_int("TX_RETRY_ATTEMPTS", 3)
    TX_RETRY_BACKOFF_SECONDS = _env_float("TX_RETRY_BACKOFF_SECONDS", 0.1)

    # page/limit query args on list endpoints
    DEFAULT_PAGE_SIZE = _env_int("DEFAULT_PAGE_SIZE", 20)
    MAX_PAGE_SIZE = _env_int("MAX_PAGE_SIZE", 100)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
