"""
solar_epc/__init__.py

Flask application factory for the Solar EPC Procurement Ledger.

Scope:
- Vendors, vendor invoices (procurement entries), advance payments,
  material consumption and the stock figures derived from them.
- JSON API for the browser client; every screen's data comes from here.

Storage:
- LEDGER_STORE="database": one kv_entries row per record list (SQLAlchemy).
- LEDGER_STORE="memory": process-local dict (tests, demos).

Access:
- Roles are advisory (see security.py). Nothing here authenticates.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .exceptions import LedgerError
from .extensions import db, migrate
from .ledger import ProcurementLedger
from .store import DatabaseStore, KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    """Module loggers under 'solar_epc' follow LOG_LEVEL."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("solar_epc").setLevel(level)


def _build_store(app: Flask) -> KeyValueStore:
    backend = app.config.get("LEDGER_STORE", "database")
    prefix = app.config.get("LEDGER_KEY_PREFIX", "")
    if backend == "memory":
        return MemoryStore(key_prefix=prefix)
    if backend == "database":
        return DatabaseStore(key_prefix=prefix)
    raise ValueError(f"Unknown LEDGER_STORE {backend!r} (expected 'database' or 'memory').")


def create_app(config_object: str | object = "config.Config", **overrides) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    store = _build_store(app)
    app.extensions["procurement_ledger"] = ProcurementLedger(store)

    if isinstance(store, DatabaseStore):
        with app.app_context():
            db.create_all()

    logger.info("Ledger ready (%s store)", type(store).__name__)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.admin import admin_bp
    from .blueprints.procurements import procurements_bp
    from .blueprints.stock import stock_bp

    app.register_blueprint(procurements_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(admin_bp)

    # ----------------------------------------------------------------------
    # Errors: JSON everywhere
    # ----------------------------------------------------------------------
    @app.errorhandler(LedgerError)
    def _ledger_error(exc: LedgerError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed the demo vendor, invoice, advance and consumption."""
        from .seed import seed_demo_data

        created = seed_demo_data(app.extensions["procurement_ledger"])
        click.echo("Demo data seeded." if created else "Demo data already present.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        return jsonify({"app": app.config.get("APP_NAME"), "status": "ok"})

    return app
