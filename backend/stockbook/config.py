# backend/stockbook/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Document numbering prefixes
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV")
    PURCHASE_PREFIX = os.environ.get("PURCHASE_PREFIX", "PUR")
    CUSTOMER_CODE_PREFIX = os.environ.get("CUSTOMER_CODE_PREFIX", "CUST")
    PRODUCT_CODE_PREFIX = os.environ.get("PRODUCT_CODE_PREFIX", "PRD")

    # Catalog defaults
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
    DEFAULT_UNIT = os.environ.get("DEFAULT_UNIT", "pcs")

    # Concurrency retry loop
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))
