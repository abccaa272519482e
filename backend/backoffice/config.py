# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Roles that see every branch (treasury, dashboard, archives, staff lists)
    HEAD_OFFICE_ROLES = ("admin", "general_manager", "it_support")

    # Dashboard profit estimate: revenue is assumed to cost 70% to acquire.
    # This is a heuristic, not derived from per-item wholesale cost.
    ASSUMED_COGS_RATIO = float(os.environ.get("ASSUMED_COGS_RATIO", "0.7"))

    DEFAULT_LOW_STOCK_THRESHOLD = 5
    TOP_PRODUCTS_LIMIT = 5

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "12"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
