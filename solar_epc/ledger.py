"""
solar_epc/ledger.py

Procurement ledger: vendors, invoices, advance payments, material consumption
and the stock figures derived from them.

Rules:
- Records are created, never deleted. Only Vendor.address is ever updated.
- Lookup misses return None (or 0 for balances); they are not errors.
- Stock is ONE global pool per item name (trimmed, case-insensitive). It is
  not partitioned by project or invoice.
- Over-payment and payments against unknown invoices are recorded as given;
  the balance due floors at zero.
- Consumption is recorded as given. Checking quantity against availability is
  the caller's job (see blueprints/stock/routes.py).
- The only check made here is that invoice totals agree with their items.

Storage:
- Every read-modify-write runs under store.locked(<key>).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from .exceptions import LedgerValidationError
from .models import (
    AdvancePayment,
    MaterialConsumed,
    ProcurementEntry,
    ProcurementLineItem,
    ProcurementSummary,
    ProjectStockItem,
    StockSummaryItem,
    Vendor,
    VendorLedger,
    VendorLedgerRow,
    VendorStats,
    _money,
    _to_decimal,
)
from .store import ADVANCE_PAYMENTS, MATERIAL_CONSUMED, PROCUREMENT_ENTRIES, VENDORS, KeyValueStore
from .utils import new_id, normalize_gst_no, normalize_item_name, normalize_vendor_name, utc_now_iso

logger = logging.getLogger(__name__)

R = TypeVar("R")

ZERO = Decimal("0")

# Largest difference tolerated between supplied and derived invoice figures
AMOUNT_TOLERANCE = Decimal("0.01")


def _sort_key_item_name(name: str):
    return (name.casefold(), name)


class ProcurementLedger:
    """All ledger operations over one KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------
    def _load(self, key: str, record_cls: Type[R]) -> List[R]:
        """Decode stored records; malformed rows are skipped, not fatal."""
        records: List[R] = []
        for raw in self.store.load(key):
            if not isinstance(raw, dict):
                logger.warning("Skipping non-object record under %s", key)
                continue
            try:
                records.append(record_cls.from_dict(raw))
            except (InvalidOperation, ValueError, TypeError):
                logger.warning("Skipping malformed record %r under %s", raw.get("id"), key)
        return records

    def _upsert(self, key: str, record: Any) -> None:
        """Replace the stored record with the same id, or append it."""
        with self.store.locked(key):
            rows = self.store.load(key)
            data = record.to_dict()
            for idx, row in enumerate(rows):
                if isinstance(row, dict) and row.get("id") == record.id:
                    rows[idx] = data
                    break
            else:
                rows.append(data)
            self.store.save(key, rows)

    # ------------------------------------------------------------------
    # Vendors
    # ------------------------------------------------------------------
    def get_vendors(self, search: Optional[str] = None) -> List[Vendor]:
        vendors = self._load(VENDORS, Vendor)
        term = (search or "").strip().lower()
        if not term:
            return vendors
        return [v for v in vendors if term in v.name.lower() or term in v.gst_no.lower()]

    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        return next((v for v in self.get_vendors() if v.id == vendor_id), None)

    def find_vendor(self, name: str, gst_no: str = "NA") -> Optional[Vendor]:
        """Vendor with the same normalized name and GSTIN, if any."""
        normalized_name = normalize_vendor_name(name)
        normalized_gst = normalize_gst_no(gst_no)
        return next(
            (
                v
                for v in self.get_vendors()
                if normalize_vendor_name(v.name) == normalized_name
                and normalize_gst_no(v.gst_no) == normalized_gst
            ),
            None,
        )

    def find_or_create_vendor(self, name: str, address: str = "", gst_no: str = "NA") -> Vendor:
        """
        Reuse the vendor with the same name and GSTIN, or create one.

        Matching ignores case and surrounding whitespace of the name and case of
        the GSTIN; a blank GSTIN counts as "NA". A reused vendor takes the new
        address.
        """
        normalized_gst = normalize_gst_no(gst_no)
        clean_address = str(address or "").strip()

        with self.store.locked(VENDORS):
            existing = self.find_vendor(name, gst_no)

            if existing:
                updated = replace(existing, address=clean_address)
                self._upsert(VENDORS, updated)
                logger.debug("Reusing vendor %s (%s)", updated.id, updated.name)
                return updated

            vendor = Vendor(
                id=new_id(),
                name=str(name or "").strip(),
                address=clean_address,
                gst_no=normalized_gst,
                created_at=utc_now_iso(),
            )
            self._upsert(VENDORS, vendor)
            logger.info("Created vendor %s (%s, GSTIN %s)", vendor.id, vendor.name, vendor.gst_no)
            return vendor

    # ------------------------------------------------------------------
    # Procurement entries
    # ------------------------------------------------------------------
    @staticmethod
    def _checked_amount(label: str, supplied: Any, derived: Decimal) -> Decimal:
        if supplied is None:
            return derived
        value = _to_decimal(supplied)
        if abs(_money(value) - _money(derived)) > AMOUNT_TOLERANCE:
            raise LedgerValidationError(f"{label} {value} does not match line items ({derived}).")
        return value

    @classmethod
    def derive_totals(
        cls,
        items: Iterable[ProcurementLineItem],
        *,
        cgst: Any = 0,
        sgst: Any = 0,
        igst: Any = 0,
        gst_available: bool = True,
        base_amount: Any = None,
        total_amount: Any = None,
    ) -> Tuple[Decimal, Decimal]:
        """
        (base_amount, total_amount) for an invoice.

        base_amount = sum(quantity * unit_price); total_amount adds
        cgst + sgst + igst only when gst_available. Omitted figures are derived;
        supplied ones must agree within AMOUNT_TOLERANCE.
        """
        derived_base = sum((item.amount for item in items), ZERO)
        base = cls._checked_amount("baseAmount", base_amount, derived_base)
        tax = (_to_decimal(cgst) + _to_decimal(sgst) + _to_decimal(igst)) if gst_available else ZERO
        total = cls._checked_amount("totalAmount", total_amount, base + tax)
        return base, total

    def create_procurement_entry(
        self,
        *,
        vendor_id: str,
        invoice_number: str,
        invoice_date: str,
        items: Iterable[Any],
        cgst: Any = 0,
        sgst: Any = 0,
        igst: Any = 0,
        gst_available: bool = True,
        project_id: Any = None,
        invoice_image_data_url: str = "",
        base_amount: Any = None,
        total_amount: Any = None,
    ) -> ProcurementEntry:
        """Record an invoice. Totals follow derive_totals()."""
        line_items = [
            item if isinstance(item, ProcurementLineItem) else ProcurementLineItem.from_dict(item)
            for item in items
        ]
        cgst, sgst, igst = _to_decimal(cgst), _to_decimal(sgst), _to_decimal(igst)

        base, total = self.derive_totals(
            line_items,
            cgst=cgst,
            sgst=sgst,
            igst=igst,
            gst_available=gst_available,
            base_amount=base_amount,
            total_amount=total_amount,
        )

        entry = ProcurementEntry(
            id=new_id(),
            vendor_id=vendor_id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            invoice_image_data_url=invoice_image_data_url or "",
            items=line_items,
            base_amount=base,
            cgst=cgst,
            sgst=sgst,
            igst=igst,
            gst_available=bool(gst_available),
            total_amount=total,
            project_id=project_id,
            created_at=utc_now_iso(),
        )
        self._upsert(PROCUREMENT_ENTRIES, entry)
        logger.info(
            "Recorded invoice %s from vendor %s: %s items, total %s",
            entry.invoice_number, entry.vendor_id, len(line_items), entry.total_amount,
        )
        return entry

    def get_procurement_entries(self, project_id: Any = None) -> List[ProcurementEntry]:
        """Entries in insertion order; with project_id, exact matches only."""
        entries = self._load(PROCUREMENT_ENTRIES, ProcurementEntry)
        if project_id is None:
            return entries
        return [e for e in entries if e.project_id is not None and e.project_id == project_id]

    def get_procurement_entry(self, entry_id: str) -> Optional[ProcurementEntry]:
        return next((e for e in self.get_procurement_entries() if e.id == entry_id), None)

    def get_procurement_items_for_project(self, project_id: Any) -> List[ProcurementLineItem]:
        return [item for entry in self.get_procurement_entries(project_id) for item in entry.items]

    # ------------------------------------------------------------------
    # Advance payments
    # ------------------------------------------------------------------
    def create_advance_payment(
        self,
        procurement_entry_id: str,
        amount: Any,
        paid_on: Optional[str] = None,
        remarks: str = "",
    ) -> AdvancePayment:
        """Record a payment as given; the parent invoice is not checked."""
        payment = AdvancePayment(
            id=new_id(),
            procurement_entry_id=procurement_entry_id,
            amount=_to_decimal(amount),
            paid_on=paid_on or date.today().isoformat(),
            remarks=remarks or "",
        )
        self._upsert(ADVANCE_PAYMENTS, payment)
        logger.info("Recorded advance %s of %s against %s", payment.id, payment.amount, procurement_entry_id)
        return payment

    def get_advance_payments(self, procurement_entry_id: Optional[str] = None) -> List[AdvancePayment]:
        payments = self._load(ADVANCE_PAYMENTS, AdvancePayment)
        if procurement_entry_id:
            return [p for p in payments if p.procurement_entry_id == procurement_entry_id]
        return payments

    @staticmethod
    def balance_of(entry: ProcurementEntry, payments: Iterable[AdvancePayment]) -> Decimal:
        paid = sum((p.amount for p in payments if p.procurement_entry_id == entry.id), ZERO)
        return max(ZERO, _to_decimal(entry.total_amount) - paid)

    def get_balance_due(self, procurement_entry_id: str) -> Decimal:
        """Invoice total minus its advances, floored at 0. Unknown invoice => 0."""
        entry = self.get_procurement_entry(procurement_entry_id)
        if entry is None:
            return ZERO
        return self.balance_of(entry, self.get_advance_payments(procurement_entry_id))

    def get_procurement_summary(self, project_id: Any = None) -> ProcurementSummary:
        entries = self.get_procurement_entries(project_id)
        payments = self.get_advance_payments()
        return ProcurementSummary(
            entry_count=len(entries),
            total_value=sum((_to_decimal(e.total_amount) for e in entries), ZERO),
            balance_due=sum((self.balance_of(e, payments) for e in entries), ZERO),
        )

    # ------------------------------------------------------------------
    # Vendor ledger
    # ------------------------------------------------------------------
    def get_vendor_stats(self, vendor_id: str) -> VendorStats:
        """Totals across the vendor's invoices; balance is floored once, on the aggregate."""
        entries = [e for e in self.get_procurement_entries() if e.vendor_id == vendor_id]
        entry_ids = {e.id for e in entries}
        invoiced = sum((_to_decimal(e.total_amount) for e in entries), ZERO)
        paid = sum(
            (p.amount for p in self.get_advance_payments() if p.procurement_entry_id in entry_ids),
            ZERO,
        )
        return VendorStats(total_invoiced=invoiced, total_paid=paid, balance=max(ZERO, invoiced - paid))

    def get_vendor_ledger(self, vendor_id: str) -> Optional[VendorLedger]:
        vendor = self.get_vendor(vendor_id)
        if vendor is None:
            return None

        payments = self.get_advance_payments()
        rows = []
        for entry in self.get_procurement_entries():
            if entry.vendor_id != vendor_id:
                continue
            paid = sum((p.amount for p in payments if p.procurement_entry_id == entry.id), ZERO)
            rows.append(VendorLedgerRow(entry=entry, paid=paid, balance=self.balance_of(entry, payments)))
        return VendorLedger(vendor=vendor, rows=rows)

    # ------------------------------------------------------------------
    # Material consumption
    # ------------------------------------------------------------------
    def create_material_consumed(
        self,
        *,
        project_id: Any,
        procurement_entry_id: str,
        item_name: str,
        category: str,
        quantity_consumed: Any,
        unit: str,
        consumed_by: str,
    ) -> MaterialConsumed:
        """Append a consumption record. Availability is NOT checked here."""
        record = MaterialConsumed(
            id=new_id(),
            project_id=project_id,
            procurement_entry_id=procurement_entry_id or "",
            item_name=item_name,
            category=category,
            quantity_consumed=_to_decimal(quantity_consumed),
            unit=unit,
            consumed_by=consumed_by,
            consumed_at=utc_now_iso(),
        )
        self._upsert(MATERIAL_CONSUMED, record)
        logger.info(
            "Recorded consumption of %s %s %s on project %s",
            record.quantity_consumed, record.unit, record.item_name, record.project_id,
        )
        return record

    def get_material_consumed(self, project_id: Any = None) -> List[MaterialConsumed]:
        records = self._load(MATERIAL_CONSUMED, MaterialConsumed)
        if project_id:
            return [m for m in records if m.project_id == project_id]
        return records

    # ------------------------------------------------------------------
    # Stock reconciliation
    # ------------------------------------------------------------------
    def get_stock_availability(self, item_name: str) -> Decimal:
        """Purchased minus consumed across ALL invoices and projects, floored at 0."""
        key = normalize_item_name(item_name)

        purchased = sum(
            (
                _to_decimal(item.quantity)
                for entry in self.get_procurement_entries()
                for item in entry.items
                if normalize_item_name(item.item_name) == key
            ),
            ZERO,
        )
        consumed = sum(
            (
                _to_decimal(m.quantity_consumed)
                for m in self.get_material_consumed()
                if normalize_item_name(m.item_name) == key
            ),
            ZERO,
        )
        return max(ZERO, purchased - consumed)

    def get_stock_summary(self) -> List[StockSummaryItem]:
        """
        One row per distinct item name seen on any invoice.

        Name, category and unit come from the first occurrence. Consumption of
        items never purchased is ignored.
        """
        summary: Dict[str, StockSummaryItem] = {}

        for entry in self.get_procurement_entries():
            for item in entry.items:
                key = normalize_item_name(item.item_name)
                row = summary.get(key)
                if row is None:
                    summary[key] = StockSummaryItem(
                        item_name=item.item_name,
                        category=item.category,
                        unit=item.unit,
                        total_purchased=_to_decimal(item.quantity),
                    )
                else:
                    row.total_purchased += _to_decimal(item.quantity)

        for record in self.get_material_consumed():
            row = summary.get(normalize_item_name(record.item_name))
            if row is not None:
                row.total_consumed += _to_decimal(record.quantity_consumed)

        for row in summary.values():
            row.available = max(ZERO, row.total_purchased - row.total_consumed)

        return sorted(summary.values(), key=lambda r: _sort_key_item_name(r.item_name))

    def get_project_stock(self, project_id: Any) -> List[ProjectStockItem]:
        """
        Items bought for one project, grouped by item name.

        total_purchased counts this project's invoices only; stock_available is
        the global figure from get_stock_availability.
        """
        grouped: Dict[str, ProjectStockItem] = {}

        for entry in self.get_procurement_entries(project_id):
            for item in entry.items:
                key = normalize_item_name(item.item_name)
                row = grouped.get(key)
                if row is None:
                    grouped[key] = ProjectStockItem(
                        item_name=item.item_name,
                        category=item.category,
                        unit=item.unit,
                        total_purchased=_to_decimal(item.quantity),
                        entry_ids=[entry.id],
                    )
                else:
                    row.total_purchased += _to_decimal(item.quantity)
                    if entry.id not in row.entry_ids:
                        row.entry_ids.append(entry.id)

        for row in grouped.values():
            row.stock_available = self.get_stock_availability(row.item_name)

        return sorted(
            grouped.values(),
            key=lambda r: (r.category.casefold(), _sort_key_item_name(r.item_name)),
        )
