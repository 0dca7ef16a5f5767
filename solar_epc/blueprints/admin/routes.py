"""
solar_epc/blueprints/admin/routes.py

Admin Routes – audit trail and session info.

Includes:
- Audit log (newest first, optional entity_type filter)
- Session: active role, actor and advisory screen capabilities

NOTES:
- Read-only module. Audit entries are written by the mutating routes through
  solar_epc/audit.py.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...audit import get_audit_log
from ...extensions import get_ledger
from ...security import capabilities, current_actor, current_role

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.route("/audit-log")
def audit_log():
    entity_type = (request.args.get("entity_type") or "").strip() or None
    entries = get_audit_log(get_ledger().store, entity_type=entity_type)
    return jsonify({"entries": [e.to_dict() for e in entries]})


@admin_bp.route("/session")
def session_info():
    return jsonify(
        {
            "role": current_role(),
            "actor": current_actor(),
            "capabilities": capabilities(),
        }
    )
