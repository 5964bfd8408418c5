# Overview: Flask API routes for customer credit (crediário); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_capability
from ..errors import PDVError
from ..permissions import VIEW, RECEIVE_PAYMENTS, MANAGE_CREDIT
from ..services import credit_service
from ..validation import get_int, get_cents, get_text


credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


@credit_bp.get("/customers/<int:customer_id>")
@require_user
@require_capability(VIEW)
def credit_status_route(customer_id: int):
    try:
        status = credit_service.get_credit_status(customer_id)
        receivables = credit_service.list_receivables(customer_id, status=request.args.get("status"))
        status["receivables"] = [r.to_dict() for r in receivables]
        return jsonify(status), 200
    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status


@credit_bp.post("/customers/<int:customer_id>/payments")
@require_user
@require_capability(RECEIVE_PAYMENTS)
def record_payment_route(customer_id: int):
    """
    Record a payment against the customer's open receivables (oldest first).

    Request body:
    {
        "amount_cents": 2500,
        "payment_method_id": 1,
        "notes": "optional"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        payment = credit_service.record_credit_payment(
            customer_id,
            get_cents(data, "amount_cents"),
            user_id=g.current_user.id,
            payment_method_id=get_int(data, "payment_method_id", required=False),
            notes=get_text(data, "notes", max_length=2000),
        )
        return jsonify({
            "payment": payment.to_dict(),
            "credit": credit_service.get_credit_status(customer_id),
        }), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record credit payment")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.put("/customers/<int:customer_id>/limit")
@require_user
@require_capability(MANAGE_CREDIT)
def set_limit_route(customer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        customer = credit_service.set_credit_limit(
            customer_id,
            get_cents(data, "credit_limit_cents"),
            g.current_user,
            notes=get_text(data, "notes", max_length=2000),
        )
        return jsonify({"customer": customer.to_dict(), "credit": credit_service.get_credit_status(customer_id)}), 200

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change credit limit")
        return jsonify({"error": "Internal server error"}), 500


@credit_bp.get("/customers/<int:customer_id>/history")
@require_user
@require_capability(VIEW)
def credit_history_route(customer_id: int):
    try:
        limit = request.args.get("limit", default=100, type=int)
        history = credit_service.get_credit_history(customer_id, limit=limit)
        return jsonify({"items": [h.to_dict() for h in history]}), 200
    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
