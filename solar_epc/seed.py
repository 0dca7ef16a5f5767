"""
solar_epc/seed.py

Seed a small demo data set into the ledger.

Rules:
- Safe to run multiple times (idempotent): if the demo invoice number is
  already on record, nothing is written.
- Goes through the public ledger API, so the seeded records look exactly like
  records entered through the screens.

Demo outcome: balance due 70000 on the invoice, 6 panels in stock.
"""

from __future__ import annotations

from decimal import Decimal

from .ledger import ProcurementLedger

DEMO_PROJECT_ID = "demo-project"
DEMO_INVOICE_NUMBER = "INV-DEMO-001"

DEMO_VENDOR = ("Solar Parts India", "Plot 12, Industrial Area, Jaipur", "NA")

DEMO_ITEMS = [
    # itemName, category, quantity, unit, unitPrice
    ("540W Panel", "Solar Panel", Decimal("10"), "Nos", Decimal("12000")),
]

DEMO_ADVANCE = Decimal("50000")
DEMO_CONSUMED = Decimal("4")


def seed_demo_data(ledger: ProcurementLedger) -> bool:
    """Write the demo records. Returns False if they were already present."""
    if any(e.invoice_number == DEMO_INVOICE_NUMBER for e in ledger.get_procurement_entries()):
        return False

    vendor = ledger.find_or_create_vendor(*DEMO_VENDOR)

    entry = ledger.create_procurement_entry(
        vendor_id=vendor.id,
        invoice_number=DEMO_INVOICE_NUMBER,
        invoice_date="2024-06-01",
        items=[
            {"itemName": name, "category": category, "quantity": qty, "unit": unit, "unitPrice": price}
            for name, category, qty, unit, price in DEMO_ITEMS
        ],
        gst_available=False,
        project_id=DEMO_PROJECT_ID,
    )

    ledger.create_advance_payment(entry.id, DEMO_ADVANCE, paid_on="2024-06-02", remarks="Advance against PO")

    name, category, _qty, unit, _price = DEMO_ITEMS[0]
    ledger.create_material_consumed(
        project_id=DEMO_PROJECT_ID,
        procurement_entry_id=entry.id,
        item_name=name,
        category=category,
        quantity_consumed=DEMO_CONSUMED,
        unit=unit,
        consumed_by="siteEngineer",
    )
    return True
