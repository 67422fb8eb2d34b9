# backend/marketplace/config.py
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

    # SQLite DB stored in backend/instance/marketplace.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///marketplace.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Order lifecycle
    RETURN_WINDOW_DAYS = _env_int("RETURN_WINDOW_DAYS", 30)

    # Vendors (percent, 0-100)
    DEFAULT_COMMISSION_RATE = _env_int("DEFAULT_COMMISSION_RATE", 10)

    # Categories: root is level 0
    MAX_CATEGORY_LEVEL = _env_int("MAX_CATEGORY_LEVEL", 3)

    # Checkout pricing (tax in basis points, money in cents)
    CHECKOUT_TAX_RATE_BPS = _env_int("CHECKOUT_TAX_RATE_BPS", 800)
    FREE_SHIPPING_THRESHOLD_CENTS = _env_int("FREE_SHIPPING_THRESHOLD_CENTS", 5000)
    FLAT_SHIPPING_CENTS = _env_int("FLAT_SHIPPING_CENTS", 599)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
