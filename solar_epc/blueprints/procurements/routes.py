"""
solar_epc/blueprints/procurements/routes.py

Procurement routes – vendors, invoices, advance payments, vendor ledger.

Includes:
- Vendor list (with per-vendor totals) / detail / ledger statement
- Invoice entry: vendor find-or-create + invoice in one request
- Advance payments and balance due per invoice
- Summary cards (count, value, balance due), optionally per project

IMPORTANT:
- Request checks here play the part of the entry form (required fields,
  non-negative numbers, positive advances). The ledger records what it is given.
- Role gates are advisory: see solar_epc/security.py.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Tuple

from flask import Blueprint, jsonify, request

from ...audit import log_action, serialize_record
from ...exceptions import LedgerValidationError
from ...extensions import get_ledger
from ...ledger import ProcurementLedger
from ...models import ProcurementLineItem, Vendor, _json_number
from ...security import SCREEN_PROCUREMENT, SCREEN_VENDOR_LEDGER, screen_gate
from ...store import VENDORS
from ...utils import parse_decimal, parse_optional_str

procurements_bp = Blueprint("procurements", __name__, url_prefix="/procurements")


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------
def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _parse_line_items(raw_items: Any) -> Tuple[List[Dict[str, Any]], str | None]:
    """
    Keep rows that have an item name; quantity and unit price must be
    non-negative numbers. Returns (items, error).
    """
    if not isinstance(raw_items, list):
        return [], "items must be a list."

    items = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            return [], f"Line item {idx} is not an object."
        name = (str(raw.get("itemName") or "")).strip()
        if not name:
            continue

        quantity = parse_decimal(raw.get("quantity"))
        unit_price = parse_decimal(raw.get("unitPrice"))
        if quantity is None or quantity < 0:
            return [], f"Quantity for '{name}' must be a non-negative number."
        if unit_price is None or unit_price < 0:
            return [], f"Unit price for '{name}' must be a non-negative number."

        items.append(
            {
                "itemName": name,
                "category": (str(raw.get("category") or "")).strip(),
                "quantity": quantity,
                "unit": (str(raw.get("unit") or "")).strip(),
                "unitPrice": unit_price,
            }
        )
    return items, None


def _find_or_create_vendor_audited(name: str, address: str, gst_no: str) -> Vendor:
    """Find-or-create through the ledger, auditing CREATE or address UPDATE."""
    ledger = get_ledger()
    with ledger.store.locked(VENDORS):
        before = ledger.find_vendor(name, gst_no)
        vendor = ledger.find_or_create_vendor(name, address, gst_no)

    if before is None:
        log_action(vendor, "CREATE", after=serialize_record(vendor))
    elif before.address != vendor.address:
        log_action(vendor, "UPDATE", before=serialize_record(before), after=serialize_record(vendor))
    return vendor


def _vendor_with_stats(vendor: Vendor) -> Dict[str, Any]:
    data = vendor.to_dict()
    data["stats"] = get_ledger().get_vendor_stats(vendor.id).to_dict()
    return data


# ---------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------
@procurements_bp.route("/vendors")
@screen_gate(SCREEN_VENDOR_LEDGER)
def list_vendors():
    vendors = get_ledger().get_vendors(search=request.args.get("search"))
    return jsonify({"vendors": [_vendor_with_stats(v) for v in vendors]})


@procurements_bp.route("/vendors", methods=["POST"])
@screen_gate(SCREEN_PROCUREMENT)
def create_vendor():
    body = _json_body()
    name = (str(body.get("name") or "")).strip()
    if not name:
        return _error("Vendor name is required.")

    vendor = _find_or_create_vendor_audited(name, body.get("address") or "", body.get("gstNo") or "NA")
    return jsonify({"vendor": vendor.to_dict()})


@procurements_bp.route("/vendors/<vendor_id>")
@screen_gate(SCREEN_VENDOR_LEDGER)
def vendor_detail(vendor_id: str):
    vendor = get_ledger().get_vendor(vendor_id)
    if vendor is None:
        return _error("Vendor not found.", 404)
    return jsonify({"vendor": _vendor_with_stats(vendor)})


@procurements_bp.route("/vendors/<vendor_id>/ledger")
@screen_gate(SCREEN_VENDOR_LEDGER)
def vendor_ledger(vendor_id: str):
    statement = get_ledger().get_vendor_ledger(vendor_id)
    if statement is None:
        return _error("Vendor not found.", 404)
    return jsonify(statement.to_dict())


# ---------------------------------------------------------------------
# Procurement entries
# ---------------------------------------------------------------------
@procurements_bp.route("/entries")
@screen_gate(SCREEN_PROCUREMENT)
def list_entries():
    ledger = get_ledger()
    project_id = parse_optional_str(request.args.get("project_id"))
    payments = ledger.get_advance_payments()

    rows = []
    for entry in ledger.get_procurement_entries(project_id):
        data = entry.to_dict()
        data["balanceDue"] = _json_number(ledger.balance_of(entry, payments))
        rows.append(data)
    return jsonify({"entries": rows})


@procurements_bp.route("/entries", methods=["POST"])
@screen_gate(SCREEN_PROCUREMENT)
def create_entry():
    body = _json_body()

    vendor_name = (str(body.get("vendorName") or "")).strip()
    if not vendor_name:
        return _error("Vendor name is required.")

    invoice_number = (str(body.get("invoiceNumber") or "")).strip()
    if not invoice_number:
        return _error("Invoice number is required.")

    project_id = parse_optional_str(body.get("projectId"))
    if project_id is None:
        return _error("Please select a project.")

    items, items_error = _parse_line_items(body.get("items") or [])
    if items_error:
        return _error(items_error)
    if not items:
        return _error("Add at least one line item.")

    gst_available = body.get("gstAvailable", True)
    if not isinstance(gst_available, bool):
        return _error("gstAvailable must be true or false.")
    taxes = {}
    for field_name in ("cgst", "sgst", "igst"):
        value = parse_decimal(body.get(field_name)) if gst_available else None
        if value is not None and value < 0:
            return _error(f"{field_name.upper()} must be a non-negative number.")
        taxes[field_name] = value or 0

    base_amount = parse_decimal(body.get("baseAmount"))
    total_amount = parse_decimal(body.get("totalAmount"))
    try:
        ProcurementLedger.derive_totals(
            [ProcurementLineItem.from_dict(item) for item in items],
            gst_available=gst_available,
            base_amount=base_amount,
            total_amount=total_amount,
            **taxes,
        )
    except LedgerValidationError as exc:
        return _error(str(exc))

    vendor = _find_or_create_vendor_audited(
        vendor_name,
        body.get("vendorAddress") or "",
        body.get("vendorGstNo") or "NA",
    )

    entry = get_ledger().create_procurement_entry(
        vendor_id=vendor.id,
        invoice_number=invoice_number,
        invoice_date=(str(body.get("invoiceDate") or "")).strip() or date.today().isoformat(),
        invoice_image_data_url=body.get("invoiceImageDataUrl") or "",
        items=items,
        gst_available=gst_available,
        project_id=project_id,
        base_amount=base_amount,
        total_amount=total_amount,
        **taxes,
    )
    log_action(entry, "CREATE", after=serialize_record(entry))

    return jsonify({"entry": entry.to_dict(), "vendor": vendor.to_dict()}), 201


@procurements_bp.route("/entries/<entry_id>")
@screen_gate(SCREEN_PROCUREMENT)
def entry_detail(entry_id: str):
    ledger = get_ledger()
    entry = ledger.get_procurement_entry(entry_id)
    if entry is None:
        return _error("Entry not found.", 404)

    payments = ledger.get_advance_payments(entry_id)
    vendor = ledger.get_vendor(entry.vendor_id)
    return jsonify(
        {
            "entry": entry.to_dict(),
            "vendor": vendor.to_dict() if vendor else None,
            "payments": [p.to_dict() for p in payments],
            "totalPaid": _json_number(sum((p.amount for p in payments), 0)),
            "balanceDue": _json_number(ledger.get_balance_due(entry_id)),
        }
    )


# ---------------------------------------------------------------------
# Advance payments
# ---------------------------------------------------------------------
@procurements_bp.route("/entries/<entry_id>/payments")
@screen_gate(SCREEN_PROCUREMENT)
def list_payments(entry_id: str):
    payments = get_ledger().get_advance_payments(entry_id)
    return jsonify({"payments": [p.to_dict() for p in payments]})


@procurements_bp.route("/entries/<entry_id>/payments", methods=["POST"])
@screen_gate(SCREEN_PROCUREMENT)
def create_payment(entry_id: str):
    body = _json_body()
    amount = parse_decimal(body.get("amount"))
    if amount is None or amount <= 0:
        return _error("Enter a valid advance amount.")

    ledger = get_ledger()
    payment = ledger.create_advance_payment(
        procurement_entry_id=entry_id,
        amount=amount,
        paid_on=(str(body.get("paidOn") or "")).strip() or None,
        remarks=(str(body.get("remarks") or "")).strip(),
    )
    log_action(payment, "CREATE", after=serialize_record(payment))

    return (
        jsonify(
            {
                "payment": payment.to_dict(),
                "balanceDue": _json_number(ledger.get_balance_due(entry_id)),
            }
        ),
        201,
    )


@procurements_bp.route("/entries/<entry_id>/balance")
@screen_gate(SCREEN_PROCUREMENT)
def entry_balance(entry_id: str):
    return jsonify({"entryId": entry_id, "balanceDue": _json_number(get_ledger().get_balance_due(entry_id))})


@procurements_bp.route("/summary")
@screen_gate(SCREEN_PROCUREMENT)
def summary():
    project_id = parse_optional_str(request.args.get("project_id"))
    return jsonify(get_ledger().get_procurement_summary(project_id).to_dict())
