"""
solar_epc/audit.py

Audit trail helper utilities.

Goals:
- Capture WHO did WHAT to WHICH ledger record, with BEFORE/AFTER snapshots.
- Store actor and role snapshots as sent by the client, plus the IP address.

IMPORTANT:
- Entries are appended to the auditLog key of the same store as the ledger,
  under that key's lock.
- Routes call log_action() after the ledger call succeeded.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import has_request_context, request

from .extensions import get_ledger
from .models import AuditEntry
from .security import current_actor, current_role
from .store import AUDIT_LOG, KeyValueStore
from .utils import new_id, utc_now_iso


def serialize_record(record: Any) -> Optional[Dict[str, Any]]:
    """Snapshot of a ledger record in its stored JSON shape."""
    if record is None:
        return None
    return record.to_dict()


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    store: Optional[KeyValueStore] = None,
) -> AuditEntry:
    """
    Append an audit entry for a ledger record.

    Parameters:
        entity: ledger record with .id
        action: CREATE / UPDATE
        before: dict snapshot (optional)
        after: dict snapshot (optional)
        store: defaults to the current app's ledger store
    """
    entity_id = getattr(entity, "id", None)
    if not entity_id:
        raise ValueError("log_action entity must have an 'id' attribute.")

    entry = AuditEntry(
        id=new_id(),
        entity_type=entity.__class__.__name__,
        entity_id=str(entity_id),
        action=str(action),
        before=before,
        after=after,
        actor=current_actor(),
        role=current_role(),
        ip_address=request.remote_addr if has_request_context() else None,
        created_at=utc_now_iso(),
    )

    store = store or get_ledger().store
    with store.locked(AUDIT_LOG):
        rows = store.load(AUDIT_LOG)
        rows.append(entry.to_dict())
        store.save(AUDIT_LOG, rows)
    return entry


def get_audit_log(store: KeyValueStore, entity_type: Optional[str] = None) -> List[AuditEntry]:
    """Audit entries, newest first."""
    entries = [AuditEntry.from_dict(row) for row in store.load(AUDIT_LOG) if isinstance(row, dict)]
    if entity_type:
        entries = [e for e in entries if e.entity_type == entity_type]
    return list(reversed(entries))
