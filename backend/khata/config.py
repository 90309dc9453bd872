# backend/khata/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class Config:
    # Override in any shared deployment
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Relative SQLite paths resolve under backend/instance/
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///khata.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Level for the app logger and the khata.* module loggers beneath it
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Transaction history paging
    HISTORY_DEFAULT_LIMIT = _env_int("HISTORY_DEFAULT_LIMIT", 50)
    HISTORY_MAX_LIMIT = _env_int("HISTORY_MAX_LIMIT", 500)

    # Reorder threshold applied when a product is created without one
    DEFAULT_MIN_STOCK_LEVEL = _env_int("DEFAULT_MIN_STOCK_LEVEL", 5)

    # IANA zone (e.g. "Asia/Kolkata") for the dashboard's "today" and
    # "this month"; empty means the server's local time
    REPORTING_TIMEZONE = os.environ.get("REPORTING_TIMEZONE", "").strip() or None
