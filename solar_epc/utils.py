"""
Utility functions shared across the app. This includes:
- new_id / utc_now_iso: identifiers and timestamps in the browser application's format.
- normalize_item_name / normalize_vendor_name / normalize_gst_no: matching keys.
- parse_decimal / parse_optional_str: request input parsing.
"""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

_BASE36 = string.digits + string.ascii_lowercase


def new_id() -> str:
    """Millisecond timestamp plus a 7 char base36 suffix, e.g. 1718000000000_k3j9x0a."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"{int(time.time() * 1000)}_{suffix}"


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_item_name(name: Any) -> str:
    """Stock matching key: trimmed, lowercased."""
    return str(name or "").strip().lower()


def normalize_vendor_name(name: Any) -> str:
    return str(name or "").strip().lower()


def normalize_gst_no(gst_no: Any) -> str:
    """Trimmed, uppercased GSTIN; blank becomes "NA"."""
    return str(gst_no or "").strip().upper() or "NA"


def parse_decimal(value: Any) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        parsed = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_optional_str(value: Any) -> str | None:
    """Strip a value to str; empty becomes None. Numbers are kept as their string form."""
    if value is None:
        return None
    raw = str(value).strip()
    return raw or None
