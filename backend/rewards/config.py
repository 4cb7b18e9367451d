# backend/rewards/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/rewards.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///rewards.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor for password hashes
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Session tokens issued by POST /auth/tokens
    SESSION_TTL_HOURS = _env_int("SESSION_TTL_HOURS", 24)

    # Password reset / account activation tokens
    RESET_TOKEN_TTL_MINUTES = _env_int("RESET_TOKEN_TTL_MINUTES", 60)
    ACTIVATION_TOKEN_TTL_DAYS = _env_int("ACTIVATION_TOKEN_TTL_DAYS", 7)

    # One reset request per client address per window
    RESET_RATE_LIMIT_SECONDS = _env_int("RESET_RATE_LIMIT_SECONDS", 60)

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    )
