# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API Routes

- POST /api/sales               finalize a cart into a sale (Idempotency-Key header honored)
- GET  /api/sales/<id>          sale with items and payments
- GET  /api/sales?store_id&date list a store's sales for a business day
- POST /api/sales/<id>/cancel   cancel a completed sale
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_capability, store_scope_error
from ..errors import PDVError, ValidationError
from ..permissions import SELL, VIEW, CANCEL_SALE
from ..pricing import parse_cart
from ..services import sales_service
from ..services.sales_service import PICKUP_NOW, Delivery, PaymentPlan, Tender
from ..time_utils import parse_iso_date
from ..validation import get_int, get_cents


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_delivery(data) -> Delivery:
    if data is None:
        return PICKUP_NOW
    if not isinstance(data, dict):
        raise ValidationError("delivery must be an object")
    try:
        delivery_date = parse_iso_date(data.get("date"))
    except ValueError:
        raise ValidationError("delivery date must be YYYY-MM-DD")
    return Delivery(
        delivery_type=data.get("type") or "pickup",
        address_id=get_int(data, "address_id", required=False),
        delivery_date=delivery_date,
    )


def _parse_payment(data: dict | None) -> PaymentPlan:
    if not isinstance(data, dict):
        raise ValidationError("payment is required")
    raw_tenders = data.get("tenders") or []
    if not isinstance(raw_tenders, list):
        raise ValidationError("tenders must be a list")
    if not all(isinstance(raw, dict) for raw in raw_tenders):
        raise ValidationError("Each tender must be an object")
    tenders = tuple(
        Tender(
            payment_method_id=get_int(raw, "payment_method_id"),
            amount_cents=get_cents(raw, "amount_cents"),
            installments=get_int(raw, "installments", required=False, default=1, minimum=1),
        )
        for raw in raw_tenders
    )
    return PaymentPlan(
        tenders=tenders,
        credit_cents=get_cents(data, "credit_cents", required=False, default=0),
        credit_installments=get_int(data, "credit_installments", required=False, default=1, minimum=1),
    )


@sales_bp.post("/")
@sales_bp.post("")
@require_user
@require_capability(SELL)
def finalize_sale_route():
    """
    Finalize a sale.

    Request body:
    {
        "store_id": 1,
        "cart": {"customer_id": 7, "lines": [...], "discount": {...}},
        "payment": {
            "tenders": [{"payment_method_id": 1, "amount_cents": 6000}],
            "credit_cents": 4000,
            "credit_installments": 1
        },
        "delivery": {"type": "delivery", "address_id": 4, "date": "2024-03-20"}  (optional; default pickup),
        "notes": "optional"
    }

    Returns 201 with the sale, 200 when the Idempotency-Key was already used
    for the same request, 409 when it was used for a different one.
    """
    try:
        data = request.get_json(silent=True) or {}
        store_id = data.get("store_id")
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error

        cart = parse_cart(data.get("cart") or {})
        payment = _parse_payment(data.get("payment"))
        delivery = _parse_delivery(data.get("delivery"))
        idempotency_key = request.headers.get("Idempotency-Key") or data.get("idempotency_key")

        request_hash = sales_service.request_fingerprint(store_id, cart, payment, delivery)
        replay = sales_service.find_replay(store_id, idempotency_key, request_hash)
        if replay:
            return jsonify({"sale": replay.to_dict(include_children=True), "replayed": True}), 200

        sale = sales_service.finalize_sale(
            store_id=store_id,
            cart=cart,
            payment=payment,
            user_id=g.current_user.id,
            idempotency_key=idempotency_key,
            notes=data.get("notes"),
            delivery=delivery,
        )
        return jsonify({"sale": sale.to_dict(include_children=True), "replayed": False}), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_user
@require_capability(VIEW)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        scope_error = store_scope_error(sale.store_id)
        if scope_error:
            return scope_error
        return jsonify({"sale": sale.to_dict(include_children=True)}), 200
    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/")
@sales_bp.get("")
@require_user
@require_capability(VIEW)
def list_sales_route():
    store_id = request.args.get("store_id", type=int)
    scope_error = store_scope_error(store_id)
    if scope_error:
        return scope_error

    try:
        business_date = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD", "code": "validation_error"}), 400

    limit = request.args.get("limit", default=100, type=int)
    sales = sales_service.list_sales(
        store_id,
        business_date=business_date,
        status=request.args.get("status"),
        limit=limit,
    )
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_user
@require_capability(CANCEL_SALE)
def cancel_sale_route(sale_id: int):
    """
    Cancel a sale.

    Request body:
    {
        "reason": "Cliente desistiu"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.get_sale(sale_id)
        scope_error = store_scope_error(sale.store_id)
        if scope_error:
            return scope_error

        sale = sales_service.cancel_sale(sale_id, g.current_user.id, data.get("reason") or "")
        return jsonify({"sale": sale.to_dict(include_children=True)}), 200

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
