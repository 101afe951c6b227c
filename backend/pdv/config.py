# backend/pdv/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///pdv.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Bearer tokens live as long as a working shift
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "8"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]

    # Desktop (offline) deployments queue every write for later replay
    OFFLINE_MODE = _env_bool("OFFLINE_MODE")

    DEFAULT_MIN_STOCK = int(os.environ.get("DEFAULT_MIN_STOCK", "5"))

    # 0 disables automatic loyalty earning on sales
    LOYALTY_CENTS_PER_POINT = int(os.environ.get("LOYALTY_CENTS_PER_POINT", "0"))

    # Retry policy for units of work that hit lock or version conflicts
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF_SECONDS = float(os.environ.get("DB_RETRY_BACKOFF_SECONDS", "0.1"))
