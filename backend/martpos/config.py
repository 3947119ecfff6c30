# backend/martpos/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/martpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///martpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound on how long a checkout waits for the store's write lock.
    # An unbounded wait leaves the cashier unable to tell whether a sale landed.
    COMMIT_TIMEOUT_SECONDS = float(os.environ.get("COMMIT_TIMEOUT_SECONDS", "15"))

    CURRENCY_PREFIX = os.environ.get("CURRENCY_PREFIX", "GHS")

    # Scanner vs. typed-name classification thresholds
    BARCODE_MIN_LENGTH_PASSIVE = 8
    BARCODE_MIN_LENGTH_CONFIRM = 3

    # Live suggestion search
    SEARCH_MIN_CHARS = 2
    SEARCH_DEFAULT_LIMIT = 10
    SEARCH_DEBOUNCE_SECONDS = 0.3

    # Fraction applied to (subtotal - discount); the shop currently charges none
    TAX_RATE = Decimal(os.environ.get("TAX_RATE", "0"))

    DEFAULT_MIN_STOCK_LEVEL = 10

    # Receipt header
    STORE_NAME = os.environ.get("STORE_NAME", "Dee Wholesale Mart")
    STORE_TAGLINE = "Your One-Stop Shop"
    STORE_ADDRESS = os.environ.get("STORE_ADDRESS", "Accra, Ghana")
    STORE_PHONE = os.environ.get("STORE_PHONE", "+233 XX XXX XXXX")
