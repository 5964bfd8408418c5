# backend/pdv/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pdv.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pdv.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Stores without an explicit timezone close their day on this clock
    DEFAULT_STORE_TIMEZONE = os.environ.get("DEFAULT_STORE_TIMEZONE", "America/Sao_Paulo")

    # Receivables created by credit sales fall due this many days after the sale
    SALE_RECEIVABLE_DUE_DAYS = int(os.environ.get("SALE_RECEIVABLE_DUE_DAYS", "30"))

    # Bounded retry for lock contention (SQLite busy, deadlocks, stale versions)
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    CORS_ALLOWED_ORIGINS = os.environ.get(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    )
