# backend/voltshop/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/voltshop.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///voltshop.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Calendar day used for ORD-/SALE- numbering (IANA zone name)
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    # Money is in cents of the store currency (UGX).
    # 1800 basis points = 18% VAT on the subtotal.
    TAX_RATE_BPS = _env_int("TAX_RATE_BPS", 1800)
    SHIPPING_BASE_FEE_CENTS = _env_int("SHIPPING_BASE_FEE_CENTS", 500_000)
    SHIPPING_PER_ITEM_CENTS = _env_int("SHIPPING_PER_ITEM_CENTS", 100_000)
    SHIPPING_REMOTE_SURCHARGE_CENTS = _env_int("SHIPPING_REMOTE_SURCHARGE_CENTS", 300_000)
    SHIPPING_REMOTE_AREAS = _env_list("SHIPPING_REMOTE_AREAS", "entebbe,mukono,wakiso")

    DEFAULT_LOW_STOCK_ALERT = _env_int("DEFAULT_LOW_STOCK_ALERT", 10)

    CORS_ALLOWED_ORIGINS = _env_list(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )

    # Password hashing cost; tests lower it
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Bearer sessions end 24h after login, or after 2h without a request
    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_MINUTES = _env_int("SESSION_IDLE_TIMEOUT_MINUTES", 120)
