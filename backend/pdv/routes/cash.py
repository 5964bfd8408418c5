# Overview: Flask API routes for the daily cash drawer; parses input and returns JSON responses.

"""
Cash Drawer API Routes

Lifecycle per store and calendar day: open -> (sangria / suprimento)* -> close.
Closed records are immutable; the summary endpoint shows the expected totals
the close would freeze right now.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_capability, store_scope_error
from ..errors import PDVError, ValidationError
from ..permissions import VIEW, MANAGE_CASH
from ..services import cash_service
from ..services.reconciliation_service import drawer_cash_estimate, summarize_day, summarize_movements
from ..time_utils import parse_iso_date
from ..validation import get_int, get_cents, get_text


cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


def _date_arg(raw):
    if raw is not None and not isinstance(raw, str):
        raise ValidationError("date must be YYYY-MM-DD")
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")


@cash_bp.post("/open")
@require_user
@require_capability(MANAGE_CASH)
def open_cash_route():
    """
    Open the store's cash drawer for a day (default: today on the store clock).

    Request body:
    {
        "store_id": 1,
        "date": "2024-03-15"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        store_id = data.get("store_id")
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error

        closing = cash_service.open_cash_drawer(store_id, _date_arg(data.get("date")), g.current_user.id)
        return jsonify({"closing": closing.to_dict()}), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to open cash drawer")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.post("/movements")
@require_user
@require_capability(MANAGE_CASH)
def record_movement_route():
    """
    Record a sangria or suprimento.

    Request body:
    {
        "store_id": 1,
        "movement_type": "sangria",
        "amount_cents": 20000,
        "reason": "Depósito bancário",
        "closing_id": 3  (optional; otherwise "date" or today)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        store_id = data.get("store_id")
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error

        movement = cash_service.record_movement(
            store_id,
            data.get("movement_type"),
            get_int(data, "amount_cents"),
            get_text(data, "reason") or "",
            user_id=g.current_user.id,
            closing_date=_date_arg(data.get("date")),
            closing_id=get_int(data, "closing_id", required=False),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.post("/<int:closing_id>/close")
@require_user
@require_capability(MANAGE_CASH)
def close_cash_route(closing_id: int):
    """
    Close the drawer with the counted amounts.

    Request body:
    {
        "counted_cash_cents": 150000,
        "counted_card_cents": 80000,
        "counted_pix_cents": 20000,
        "notes": "optional"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        existing = cash_service.get_closing(closing_id)
        scope_error = store_scope_error(existing.store_id)
        if scope_error:
            return scope_error

        closing = cash_service.close_cash_drawer(
            closing_id,
            counted_cash_cents=get_cents(data, "counted_cash_cents"),
            counted_card_cents=get_cents(data, "counted_card_cents", required=False, default=0),
            counted_pix_cents=get_cents(data, "counted_pix_cents", required=False, default=0),
            notes=get_text(data, "notes", max_length=2000),
            user_id=g.current_user.id,
        )
        return jsonify({"closing": closing.to_dict()}), 200

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to close cash drawer")
        return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/summary")
@require_user
@require_capability(VIEW)
def cash_summary_route():
    """Expected totals, movements and closing state for a store-day."""
    try:
        store_id = request.args.get("store_id", type=int)
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error

        day = _date_arg(request.args.get("date")) or cash_service.store_today(store_id)
        closing = cash_service.get_closing_for_day(store_id, day)
        summary = summarize_day(store_id, day)
        movements = summarize_movements(closing.id if closing else None)

        return jsonify({
            "summary": summary.to_dict(),
            "movements": movements.to_dict(),
            "drawer_cash_estimate_cents": drawer_cash_estimate(summary, movements),
            "closing": closing.to_dict() if closing else None,
            "movement_log": [m.to_dict() for m in cash_service.list_movements(closing.id)] if closing else [],
        }), 200

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status


@cash_bp.get("/closings")
@require_user
@require_capability(VIEW)
def list_closings_route():
    store_id = request.args.get("store_id", type=int)
    scope_error = store_scope_error(store_id)
    if scope_error:
        return scope_error

    limit = request.args.get("limit", default=30, type=int)
    closings = cash_service.list_closings(store_id, limit=limit)
    return jsonify({"closings": [c.to_dict() for c in closings]}), 200
