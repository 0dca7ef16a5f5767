"""
solar_epc/blueprints/stock/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose stock_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import stock_bp  # noqa: F401
