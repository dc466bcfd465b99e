# backend/tablepos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tablepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tablepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Percentage, used when system_settings has no tax_rate row
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "11.0")

    # Fraud guards (amounts are minor units)
    MAX_PAYMENT_AMOUNT = int(os.environ.get("MAX_PAYMENT_AMOUNT", "50000000"))
    PAYMENT_RATE_LIMIT = int(os.environ.get("PAYMENT_RATE_LIMIT", "5"))
    PAYMENT_RATE_WINDOW_SECONDS = int(os.environ.get("PAYMENT_RATE_WINDOW_SECONDS", "60"))
    FAILED_PAYMENT_ALERT_THRESHOLD = int(os.environ.get("FAILED_PAYMENT_ALERT_THRESHOLD", "3"))
    FAILED_PAYMENT_WINDOW_SECONDS = int(os.environ.get("FAILED_PAYMENT_WINDOW_SECONDS", "3600"))

    # Public (QR) endpoint limits, requests per minute per client
    QR_SCAN_RATE_LIMIT = int(os.environ.get("QR_SCAN_RATE_LIMIT", "10"))
    CUSTOMER_ORDER_RATE_LIMIT = int(os.environ.get("CUSTOMER_ORDER_RATE_LIMIT", "5"))
    CUSTOMER_PAYMENT_RATE_LIMIT = int(os.environ.get("CUSTOMER_PAYMENT_RATE_LIMIT", "5"))

    # One-time request tokens for the public order form
    CSRF_ENABLED = _env_bool("CSRF_ENABLED", True)
    CSRF_REQUIRE_TOKEN = _env_bool("CSRF_REQUIRE_TOKEN", False)
    CSRF_TOKEN_TTL_SECONDS = int(os.environ.get("CSRF_TOKEN_TTL_SECONDS", "1800"))
    TOKEN_SWEEP_INTERVAL_SECONDS = int(os.environ.get("TOKEN_SWEEP_INTERVAL_SECONDS", "300"))

    # "permissive" accepts any known status from any status; "strict" enforces the graph
    ORDER_TRANSITION_POLICY = os.environ.get("ORDER_TRANSITION_POLICY", "permissive")

    # Per-transaction deadline handed to the driver (0 disables)
    TRANSACTION_TIMEOUT_SECONDS = float(os.environ.get("TRANSACTION_TIMEOUT_SECONDS", "10"))

    AUTH_TOKEN_MAX_AGE_SECONDS = int(os.environ.get("AUTH_TOKEN_MAX_AGE_SECONDS", str(12 * 3600)))

    BACKGROUND_WORKERS_ENABLED = _env_bool("BACKGROUND_WORKERS_ENABLED", True)
