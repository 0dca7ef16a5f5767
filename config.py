"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, ledger
storage backend and logging. It uses environment variables for sensitive information and defaults for development.
In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'solar_epc.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger storage: "database" (kv_entries table) or "memory"
    LEDGER_STORE = os.environ.get("LEDGER_STORE", "database")
    LEDGER_KEY_PREFIX = "solarEpc_"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Role assumed when a request carries no X-Active-Role header
    DEFAULT_ROLE = "owner"

    APP_NAME = "Solar EPC Procurement Ledger"


class TestConfig(Config):
    """In-memory everything for the test suite."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LEDGER_STORE = "memory"
