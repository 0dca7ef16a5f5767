"""
solar_epc/blueprints/stock/routes.py

Stock routes – reconciliation views and material consumption.

Includes:
- Global stock summary and per-item availability
- Per-project purchased items (with the global availability)
- Material consumption log and batch recording

IMPORTANT:
- The ledger records consumption without checking stock. This module is the
  caller that checks: every item in a batch must satisfy
  0 < quantity <= availability before ANY record is written.
- Stock is global: an item bought for one project may be consumed on another.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from flask import Blueprint, jsonify, request

from ...audit import log_action, serialize_record
from ...extensions import get_ledger
from ...ledger import ProcurementLedger
from ...models import MaterialConsumed, _json_number
from ...security import SCREEN_MATERIAL_CONSUMED, SCREEN_PROCUREMENT, current_role, screen_gate
from ...store import MATERIAL_CONSUMED
from ...utils import normalize_item_name, parse_decimal, parse_optional_str

stock_bp = Blueprint("stock", __name__, url_prefix="/stock")


def _error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _fmt(value: Decimal) -> str:
    """Quantity for messages: 6 not 6.000."""
    return str(_json_number(value))


# ---------------------------------------------------------------------
# Reconciliation views
# ---------------------------------------------------------------------
@stock_bp.route("/summary")
@screen_gate(SCREEN_PROCUREMENT)
def stock_summary():
    return jsonify({"items": [row.to_dict() for row in get_ledger().get_stock_summary()]})


@stock_bp.route("/availability")
def stock_availability():
    item_name = (request.args.get("item") or "").strip()
    if not item_name:
        return _error("item is required.")
    available = get_ledger().get_stock_availability(item_name)
    return jsonify({"itemName": item_name, "available": _json_number(available)})


@stock_bp.route("/projects/<project_id>")
@screen_gate(SCREEN_MATERIAL_CONSUMED)
def project_stock(project_id: str):
    rows = get_ledger().get_project_stock(project_id)
    return jsonify({"projectId": project_id, "items": [row.to_dict() for row in rows]})


# ---------------------------------------------------------------------
# Material consumption
# ---------------------------------------------------------------------
@stock_bp.route("/consumption")
@screen_gate(SCREEN_MATERIAL_CONSUMED)
def list_consumption():
    project_id = parse_optional_str(request.args.get("project_id"))
    records = get_ledger().get_material_consumed(project_id)
    return jsonify({"records": [r.to_dict() for r in records]})


def _consume_batch(
    ledger: ProcurementLedger, project_id: str, raw_items: List[Any], consumed_by: str
) -> Tuple[List[MaterialConsumed], Optional[str]]:
    """Validate every row against availability, then record them all. Returns (records, error)."""
    purchased: Dict[str, Any] = {
        normalize_item_name(row.item_name): row for row in ledger.get_project_stock(project_id)
    }

    to_consume = []
    requested: Dict[str, Decimal] = {}
    for raw in raw_items:
        if not isinstance(raw, dict):
            return [], "Each item must be an object."
        item_name = (str(raw.get("itemName") or "")).strip()
        quantity = parse_decimal(raw.get("quantityConsumed"))
        if quantity is None or quantity < 0:
            return [], f"Quantity consumed for '{item_name}' must be a non-negative number."
        if not item_name or quantity == 0:
            continue

        key = normalize_item_name(item_name)
        requested[key] = requested.get(key, Decimal("0")) + quantity
        to_consume.append((raw, item_name, quantity, purchased.get(key)))

    if not to_consume:
        return [], "Enter quantity consumed for at least one item."

    for raw, item_name, _quantity, row in to_consume:
        key = normalize_item_name(item_name)
        available = ledger.get_stock_availability(item_name)
        if requested[key] > available:
            unit = raw.get("unit") or (row.unit if row else "")
            return [], (
                f"Cannot consume {_fmt(requested[key])} {unit} of \"{item_name}\"; "
                f"only {_fmt(available)} in stock."
            )

    records = []
    for raw, item_name, quantity, row in to_consume:
        record = ledger.create_material_consumed(
            project_id=project_id,
            procurement_entry_id=raw.get("procurementEntryId") or (row.entry_ids[0] if row and row.entry_ids else ""),
            item_name=row.item_name if row else item_name,
            category=raw.get("category") or (row.category if row else ""),
            quantity_consumed=quantity,
            unit=raw.get("unit") or (row.unit if row else ""),
            consumed_by=consumed_by,
        )
        log_action(record, "CREATE", after=serialize_record(record))
        records.append(record)
    return records, None


@stock_bp.route("/consumption", methods=["POST"])
@screen_gate(SCREEN_MATERIAL_CONSUMED)
def record_consumption():
    """
    Record consumption for one project.

    Body: {projectId, consumedBy?, items: [{itemName, quantityConsumed,
    category?, unit?, procurementEntryId?}]}. Rows with quantity 0 are ignored.
    Missing category/unit/entry id come from the project's purchases of the item.
    """
    body = request.get_json(silent=True)
    body = body if isinstance(body, dict) else {}

    project_id = parse_optional_str(body.get("projectId"))
    if project_id is None:
        return _error("Please select a project.")

    raw_items = body.get("items")
    if not isinstance(raw_items, list):
        return _error("items must be a list.")

    consumed_by = (str(body.get("consumedBy") or "")).strip() or current_role()

    ledger = get_ledger()
    # Availability check and writes form one critical section.
    with ledger.store.locked(MATERIAL_CONSUMED):
        records, error = _consume_batch(ledger, project_id, raw_items, consumed_by)
    if error:
        return _error(error)

    return jsonify({"records": [r.to_dict() for r in records]}), 201
