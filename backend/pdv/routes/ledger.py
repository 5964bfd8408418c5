# Overview: Flask API routes for the audit ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_user, require_capability, store_scope_error
from ..permissions import VIEW
from ..services.ledger_service import list_ledger_events

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
@require_user
@require_capability(VIEW)
def list_ledger_events_route():
    store_id = request.args.get("store_id", type=int)
    scope_error = store_scope_error(store_id)
    if scope_error:
        return scope_error

    limit = request.args.get("limit", default=100, type=int)
    events = list_ledger_events(
        store_id,
        category=request.args.get("category"),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in events], "limit": max(1, min(limit, 500))}), 200
