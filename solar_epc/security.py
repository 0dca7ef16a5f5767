"""
solar_epc/security.py

Advisory role gates for the Solar EPC screens.

Key rules:
- The active role travels in the X-Active-Role header (the browser keeps it
  in its own storage and lets the user switch freely).
- Gates are ADVISORY ONLY. They tell the client whether a screen should be
  shown; no request is ever refused because of a role.
- Unknown or missing roles fall back to DEFAULT_ROLE from config.

Screen access (mirrors the client):
- procurement, vendor_ledger: owner, procurement
- material_consumed: siteEngineer, owner, admin
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import current_app, has_request_context, make_response, request

ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_PROCUREMENT = "procurement"
ROLE_SITE_ENGINEER = "siteEngineer"

ROLES = (ROLE_OWNER, ROLE_ADMIN, ROLE_PROCUREMENT, ROLE_SITE_ENGINEER)

SCREEN_PROCUREMENT = "procurement"
SCREEN_VENDOR_LEDGER = "vendor_ledger"
SCREEN_MATERIAL_CONSUMED = "material_consumed"

SCREEN_ROLES: Dict[str, frozenset] = {
    SCREEN_PROCUREMENT: frozenset({ROLE_OWNER, ROLE_PROCUREMENT}),
    SCREEN_VENDOR_LEDGER: frozenset({ROLE_OWNER, ROLE_PROCUREMENT}),
    SCREEN_MATERIAL_CONSUMED: frozenset({ROLE_SITE_ENGINEER, ROLE_OWNER, ROLE_ADMIN}),
}

ROLE_HEADER = "X-Active-Role"
USER_HEADER = "X-User"
ADVISORY_HEADER = "X-Access-Advisory"

SYSTEM_ACTOR = "system"


def current_role() -> str:
    """Active role of the request; 'system' outside a request."""
    if not has_request_context():
        return SYSTEM_ACTOR
    role = (request.headers.get(ROLE_HEADER) or "").strip()
    if role in ROLES:
        return role
    return current_app.config.get("DEFAULT_ROLE", ROLE_OWNER)


def current_actor() -> str:
    """User identifier for audit; falls back to the active role."""
    if not has_request_context():
        return SYSTEM_ACTOR
    user = (request.headers.get(USER_HEADER) or "").strip()
    return user or current_role()


def can_access(screen: str, role: Optional[str] = None) -> bool:
    """True if the role would see the screen. Unknown screens are open."""
    allowed = SCREEN_ROLES.get(screen)
    if allowed is None:
        return True
    return (role or current_role()) in allowed


def capabilities(role: Optional[str] = None) -> Dict[str, bool]:
    role = role or current_role()
    return {screen: can_access(screen, role) for screen in SCREEN_ROLES}


def screen_gate(screen: str) -> Callable[..., Any]:
    """
    Decorator: tag the response with X-Access-Advisory: allowed|restricted.

    The view always runs; the header only lets the client hide the screen.
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            response = make_response(view_func(*args, **kwargs))
            response.headers[ADVISORY_HEADER] = "allowed" if can_access(screen) else "restricted"
            return response

        return wrapper

    return decorator
