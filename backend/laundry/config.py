# backend/laundry/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/laundry.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///laundry.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Basis points (750 = 7.5%)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "750"))

    # Upper bound for a single unit of work (order write + side effects)
    UNIT_OF_WORK_TIMEOUT_SECONDS = float(os.environ.get("UNIT_OF_WORK_TIMEOUT_SECONDS", "10"))

    ORDER_NUMBER_PREFIX = "ORD"

    # Status transition -> inventory consumption.
    # Each rule fires when a move enters "to", including stages a skip passes.
    # "from" optionally pins the stage just before "to"; None matches any.
    INVENTORY_CONSUMPTION_RULES = [
        {"from": None, "to": "WASHING", "category": "DETERGENT", "quantity": 1},
        {"from": None, "to": "DRYING", "category": "SOFTENER", "quantity": 1},
        {"from": None, "to": "READY", "category": "PACKAGING", "quantity": 1},
    ]

    LOW_STOCK_NOTIFICATIONS_ENABLED = True
