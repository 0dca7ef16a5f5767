"""
Pytest fixtures for the Solar EPC ledger test suite.

Provides:
- ledger: ProcurementLedger over a fresh MemoryStore (no Flask needed)
- app / client: Flask app built from config.TestConfig and its test client
- make_entry: helper that records an invoice with sensible defaults
"""

import pytest

from solar_epc import create_app
from solar_epc.ledger import ProcurementLedger
from solar_epc.store import MemoryStore


@pytest.fixture
def store():
    return MemoryStore(key_prefix="solarEpc_")


@pytest.fixture
def ledger(store):
    return ProcurementLedger(store)


@pytest.fixture
def app():
    return create_app("config.TestConfig")


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_entry(ledger):
    """Record an invoice for a fresh or given vendor; totals are derived."""

    def _make(items, project_id="p1", vendor_id=None, **kwargs):
        if vendor_id is None:
            vendor_id = ledger.find_or_create_vendor("Solar Parts India", "Jaipur", "NA").id
        kwargs.setdefault("gst_available", False)
        return ledger.create_procurement_entry(
            vendor_id=vendor_id,
            invoice_number=kwargs.pop("invoice_number", "INV-1"),
            invoice_date=kwargs.pop("invoice_date", "2024-06-01"),
            items=items,
            project_id=project_id,
            **kwargs,
        )

    return _make
