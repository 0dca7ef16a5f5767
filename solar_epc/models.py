"""
Solar EPC Procurement Ledger – Domain Models

Two kinds of model live here:
- KeyValueEntry: the only database table. Each row holds one JSON array of
  ledger records under a fixed key (see solar_epc/store.py).
- Ledger records (Vendor, ProcurementEntry, AdvancePayment, MaterialConsumed,
  AuditEntry) and derived rows (StockSummaryItem, ProjectStockItem). These are
  plain dataclasses serialized to/from the camelCase JSON layout used by the
  browser application, so exported dumps stay interchangeable.

IMPORTANT:
- Money and quantities are Decimal in memory and JSON numbers on disk.
- Records are immutable after creation, except Vendor.address.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _to_decimal(value) -> Decimal:
    """Convert number/str/None to Decimal safely."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _json_number(value: Decimal):
    """
    Decimal -> JSON-friendly number:
    - 120000.00 => 120000 (int)
    - 0.5       => 0.5 (float)
    """
    value = _to_decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _list(value: Any) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"Expected a list, not {type(value).__name__}")
    return value


# ---------------------------------------------------------------------
# Storage table
# ---------------------------------------------------------------------
class KeyValueEntry(db.Model):
    """One persisted JSON list per ledger key."""

    __tablename__ = "kv_entries"

    key = db.Column(db.String(120), primary_key=True)
    value = db.Column(db.Text, nullable=False, default="[]")

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<KeyValueEntry {self.key}>"


# ---------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------
@dataclass
class Vendor:
    """Supplier of an invoice. gst_no is "NA" when the vendor has no GSTIN."""

    id: str
    name: str
    address: str
    gst_no: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "gstNo": self.gst_no,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vendor":
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name")),
            address=_str(data.get("address")),
            gst_no=_str(data.get("gstNo", data.get("taxId", "NA"))),
            created_at=_str(data.get("createdAt")),
        )


# ---------------------------------------------------------------------
# Procurement entries (invoices)
# ---------------------------------------------------------------------
@dataclass
class ProcurementLineItem:
    item_name: str
    category: str
    quantity: Decimal
    unit: str
    unit_price: Decimal

    @property
    def amount(self) -> Decimal:
        return _to_decimal(self.quantity) * _to_decimal(self.unit_price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "itemName": self.item_name,
            "category": self.category,
            "quantity": _json_number(self.quantity),
            "unit": self.unit,
            "unitPrice": _json_number(self.unit_price),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcurementLineItem":
        if not isinstance(data, dict):
            raise TypeError(f"Line item must be an object, not {type(data).__name__}")
        return cls(
            item_name=_str(data.get("itemName")),
            category=_str(data.get("category")),
            quantity=_to_decimal(data.get("quantity")),
            unit=_str(data.get("unit")),
            unit_price=_to_decimal(data.get("unitPrice")),
        )


@dataclass
class ProcurementEntry:
    """
    Vendor invoice.

    base_amount and total_amount are stored denormalized; the ledger derives
    and checks them once, at creation time.
    """

    id: str
    vendor_id: str
    invoice_number: str
    invoice_date: str
    invoice_image_data_url: str
    items: List[ProcurementLineItem] = field(default_factory=list)
    base_amount: Decimal = Decimal("0")
    cgst: Decimal = Decimal("0")
    sgst: Decimal = Decimal("0")
    igst: Decimal = Decimal("0")
    gst_available: bool = True
    total_amount: Decimal = Decimal("0")
    project_id: Optional[Any] = None
    created_at: str = ""

    @property
    def tax_total(self) -> Decimal:
        return _to_decimal(self.cgst) + _to_decimal(self.sgst) + _to_decimal(self.igst)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vendorId": self.vendor_id,
            "invoiceNumber": self.invoice_number,
            "invoiceDate": self.invoice_date,
            "invoiceImageDataUrl": self.invoice_image_data_url,
            "items": [item.to_dict() for item in self.items],
            "baseAmount": _json_number(self.base_amount),
            "cgst": _json_number(self.cgst),
            "sgst": _json_number(self.sgst),
            "igst": _json_number(self.igst),
            "gstAvailable": bool(self.gst_available),
            "totalAmount": _json_number(self.total_amount),
            "projectId": self.project_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcurementEntry":
        return cls(
            id=_str(data.get("id")),
            vendor_id=_str(data.get("vendorId")),
            invoice_number=_str(data.get("invoiceNumber")),
            invoice_date=_str(data.get("invoiceDate")),
            invoice_image_data_url=_str(data.get("invoiceImageDataUrl", data.get("invoiceImageRef"))),
            items=[ProcurementLineItem.from_dict(i) for i in _list(data.get("items"))],
            base_amount=_to_decimal(data.get("baseAmount")),
            cgst=_to_decimal(data.get("cgst")),
            sgst=_to_decimal(data.get("sgst")),
            igst=_to_decimal(data.get("igst")),
            gst_available=bool(data.get("gstAvailable", data.get("taxAvailable", True))),
            total_amount=_to_decimal(data.get("totalAmount")),
            project_id=data.get("projectId"),
            created_at=_str(data.get("createdAt")),
        )


# ---------------------------------------------------------------------
# Advance payments
# ---------------------------------------------------------------------
@dataclass
class AdvancePayment:
    id: str
    procurement_entry_id: str
    amount: Decimal
    paid_on: str
    remarks: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "procurementEntryId": self.procurement_entry_id,
            "amount": _json_number(self.amount),
            "paidOn": self.paid_on,
            "remarks": self.remarks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdvancePayment":
        return cls(
            id=_str(data.get("id")),
            procurement_entry_id=_str(data.get("procurementEntryId")),
            amount=_to_decimal(data.get("amount")),
            paid_on=_str(data.get("paidOn")),
            remarks=_str(data.get("remarks")),
        )


# ---------------------------------------------------------------------
# Material consumption
# ---------------------------------------------------------------------
@dataclass
class MaterialConsumed:
    """
    Withdrawal of purchased stock for installation on a project.

    procurement_entry_id is a best-effort pointer to one contributing invoice;
    stock is matched by item name, not by entry.
    """

    id: str
    project_id: Any
    procurement_entry_id: str
    item_name: str
    category: str
    quantity_consumed: Decimal
    unit: str
    consumed_by: str
    consumed_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "procurementEntryId": self.procurement_entry_id,
            "itemName": self.item_name,
            "category": self.category,
            "quantityConsumed": _json_number(self.quantity_consumed),
            "unit": self.unit,
            "consumedBy": self.consumed_by,
            "consumedAt": self.consumed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaterialConsumed":
        return cls(
            id=_str(data.get("id")),
            project_id=data.get("projectId"),
            procurement_entry_id=_str(data.get("procurementEntryId")),
            item_name=_str(data.get("itemName")),
            category=_str(data.get("category")),
            quantity_consumed=_to_decimal(data.get("quantityConsumed")),
            unit=_str(data.get("unit")),
            consumed_by=_str(data.get("consumedBy")),
            consumed_at=_str(data.get("consumedAt")),
        )


# ---------------------------------------------------------------------
# Derived (never persisted)
# ---------------------------------------------------------------------
@dataclass
class StockSummaryItem:
    item_name: str
    category: str
    unit: str
    total_purchased: Decimal = Decimal("0")
    total_consumed: Decimal = Decimal("0")
    available: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "itemName": self.item_name,
            "category": self.category,
            "unit": self.unit,
            "totalPurchased": _json_number(self.total_purchased),
            "totalConsumed": _json_number(self.total_consumed),
            "available": _json_number(self.available),
        }


@dataclass
class ProjectStockItem:
    """Project purchases of one item, with the global stock still on hand."""

    item_name: str
    category: str
    unit: str
    total_purchased: Decimal = Decimal("0")
    entry_ids: List[str] = field(default_factory=list)
    stock_available: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "itemName": self.item_name,
            "category": self.category,
            "unit": self.unit,
            "totalPurchased": _json_number(self.total_purchased),
            "entryIds": list(self.entry_ids),
            "stockAvailable": _json_number(self.stock_available),
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
@dataclass
class AuditEntry:
    """WHO did WHAT to WHICH ledger record, with BEFORE/AFTER snapshots."""

    id: str
    entity_type: str
    entity_id: str
    action: str
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    actor: str
    role: str
    ip_address: Optional[str]
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action,
            "before": self.before,
            "after": self.after,
            "actor": self.actor,
            "role": self.role,
            "ipAddress": self.ip_address,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            id=_str(data.get("id")),
            entity_type=_str(data.get("entityType")),
            entity_id=_str(data.get("entityId")),
            action=_str(data.get("action")),
            before=data.get("before"),
            after=data.get("after"),
            actor=_str(data.get("actor")),
            role=_str(data.get("role")),
            ip_address=data.get("ipAddress"),
            created_at=_str(data.get("createdAt")),
        )


# ---------------------------------------------------------------------
# Vendor ledger views (derived)
# ---------------------------------------------------------------------
@dataclass
class VendorStats:
    total_invoiced: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalInvoiced": _json_number(self.total_invoiced),
            "totalPaid": _json_number(self.total_paid),
            "balance": _json_number(self.balance),
        }


@dataclass
class VendorLedgerRow:
    entry: ProcurementEntry
    paid: Decimal
    balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry": self.entry.to_dict(),
            "paid": _json_number(self.paid),
            "balance": _json_number(self.balance),
        }


@dataclass
class VendorLedger:
    """Per-invoice statement of one vendor. grand_balance sums per-invoice balances."""

    vendor: Vendor
    rows: List[VendorLedgerRow] = field(default_factory=list)

    @property
    def grand_total(self) -> Decimal:
        return sum((_to_decimal(r.entry.total_amount) for r in self.rows), Decimal("0"))

    @property
    def grand_paid(self) -> Decimal:
        return sum((r.paid for r in self.rows), Decimal("0"))

    @property
    def grand_balance(self) -> Decimal:
        return sum((r.balance for r in self.rows), Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor.to_dict(),
            "rows": [r.to_dict() for r in self.rows],
            "grandTotal": _json_number(self.grand_total),
            "grandPaid": _json_number(self.grand_paid),
            "grandBalance": _json_number(self.grand_balance),
        }


@dataclass
class ProcurementSummary:
    entry_count: int = 0
    total_value: Decimal = Decimal("0")
    balance_due: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entryCount": self.entry_count,
            "totalValue": _json_number(self.total_value),
            "balanceDue": _json_number(self.balance_due),
        }
