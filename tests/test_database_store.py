"""DatabaseStore: ledger records persisted in the kv_entries table."""

import json

import pytest

from solar_epc import create_app
from solar_epc.extensions import db, get_ledger
from solar_epc.models import KeyValueEntry
from solar_epc.store import DatabaseStore, VENDORS
from tests.helpers import line


@pytest.fixture
def db_app():
    app = create_app("config.TestConfig", LEDGER_STORE="database")
    with app.app_context():
        yield app


def test_database_backend_selected(db_app):
    assert isinstance(get_ledger().store, DatabaseStore)


def test_records_persist_as_one_row_per_key(db_app):
    ledger = get_ledger()
    vendor = ledger.find_or_create_vendor("Solar Parts India", "Jaipur", "")
    ledger.create_procurement_entry(
        vendor_id=vendor.id,
        invoice_number="INV-1",
        invoice_date="2024-06-01",
        items=[line("540W Panel", 10, 12000)],
        gst_available=False,
        project_id="p1",
    )

    row = db.session.get(KeyValueEntry, "solarEpc_vendors")
    assert [v["name"] for v in json.loads(row.value)] == ["Solar Parts India"]

    entries = json.loads(db.session.get(KeyValueEntry, "solarEpc_procurementEntries").value)
    assert entries[0]["totalAmount"] == 120000
    assert ledger.get_procurement_entries("p1")[0].vendor_id == vendor.id


def test_update_rewrites_existing_row(db_app):
    ledger = get_ledger()
    ledger.find_or_create_vendor("Solar Parts India", "Jaipur", "NA")
    ledger.find_or_create_vendor("solar parts india", "Jodhpur", "NA")

    assert db.session.query(KeyValueEntry).count() == 1
    assert [v.address for v in ledger.get_vendors()] == ["Jodhpur"]


def test_corrupt_row_reads_as_empty(db_app):
    db.session.add(KeyValueEntry(key="solarEpc_vendors", value="{not json"))
    db.session.commit()

    assert get_ledger().store.load(VENDORS) == []
    assert get_ledger().get_vendors() == []


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        create_app("config.TestConfig", LEDGER_STORE="redis")
