"""
Admin blueprint package.

This file just exposes the Blueprint object to be imported in solar_epc.__init__.
The actual routes are in routes.py.
"""

from .routes import admin_bp  # noqa: F401
