# backend/invoicing/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///invoicing.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Base URL customers are sent back to after paying on a provider page
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    # Outbound payment provider calls
    GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "30"))
    # Optional httpx transport override (tests install httpx.MockTransport here)
    GATEWAY_HTTP_TRANSPORT = None

    # Inventory floors per call site. Manual adjustments clamp at 0, barcode
    # scans clamp at 1; both are kept configurable until product owners settle it.
    STOCK_FLOOR_MANUAL = _int_env("STOCK_FLOOR_MANUAL", 0)
    STOCK_FLOOR_BARCODE = _int_env("STOCK_FLOOR_BARCODE", 1)
    STOCK_FLOOR_SALE = _int_env("STOCK_FLOOR_SALE", 0)

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "NGN")
