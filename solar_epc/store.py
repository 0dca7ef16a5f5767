"""
solar_epc/store.py

Key-value storage adapter for the procurement ledger.

Every ledger record type lives as ONE JSON array under a fixed string key
(vendors, procurement entries, advance payments, material consumed, audit log).

Contract (shared by all backends):
- load(key) never raises: an absent key or unparsable value yields [].
- save(key, items) never raises: a failed write is logged and dropped.
- locked(key) serializes read-modify-write cycles on one key. The ledger
  wraps every load/modify/save in it, so concurrent requests on a threaded
  server cannot lose each other's updates.

Backends:
- MemoryStore: dict-backed (tests, LEDGER_STORE="memory").
- DatabaseStore: kv_entries table via Flask-SQLAlchemy (needs an app context).
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import KeyValueEntry, _json_number

logger = logging.getLogger(__name__)

VENDORS = "vendors"
PROCUREMENT_ENTRIES = "procurementEntries"
ADVANCE_PAYMENTS = "advancePayments"
MATERIAL_CONSUMED = "materialConsumed"
AUDIT_LOG = "auditLog"


def _json_default(value: Any):
    """json.dumps hook: Decimal values are written as plain numbers."""
    if isinstance(value, Decimal):
        return _json_number(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class KeyValueStore:
    """Base adapter: JSON list load/save on top of raw string read/write."""

    def __init__(self, key_prefix: str = ""):
        self.key_prefix = key_prefix
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # -- backend primitives -------------------------------------------
    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, text: str) -> None:
        raise NotImplementedError

    # -- public API ----------------------------------------------------
    def full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def load(self, key: str) -> List[Any]:
        full_key = self.full_key(key)
        try:
            raw = self._read(full_key)
        except Exception:
            logger.warning("Storage read failed for %s", full_key, exc_info=True)
            return []
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unparsable value stored under %s", full_key)
            return []
        if not isinstance(items, list):
            logger.warning("Discarding non-list value stored under %s", full_key)
            return []
        return items

    def save(self, key: str, items: List[Any]) -> None:
        full_key = self.full_key(key)
        try:
            text = json.dumps(items, default=_json_default, ensure_ascii=False)
            self._write(full_key, text)
        except Exception:
            logger.warning("Storage write failed for %s", full_key, exc_info=True)

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """Hold the per-key lock for one read-modify-write cycle (re-entrant)."""
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield


class MemoryStore(KeyValueStore):
    """Process-local store. Values are kept as JSON text to mirror persistence."""

    def __init__(self, key_prefix: str = ""):
        super().__init__(key_prefix)
        self.data: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def _write(self, key: str, text: str) -> None:
        self.data[key] = text


class DatabaseStore(KeyValueStore):
    """
    One kv_entries row per key.

    IMPORTANT:
    - Each save commits its own transaction; a failed commit is rolled back
      so the session stays usable for the rest of the request.
    - Locks are per process. Multi-process deployments sharing one database
      rely on the database's own row locking for the commit itself only.
    """

    def _read(self, key: str) -> Optional[str]:
        entry = db.session.get(KeyValueEntry, key)
        return entry.value if entry else None

    def _write(self, key: str, text: str) -> None:
        try:
            entry = db.session.get(KeyValueEntry, key)
            if entry is None:
                db.session.add(KeyValueEntry(key=key, value=text))
            else:
                entry.value = text
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
