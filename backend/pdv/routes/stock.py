# backend/pdv/routes/stock.py
"""
Stock routes.

- View operations require the view capability
- Manual adjustments and limits require edit
- Receipts require receive_stock; cancelling a receipt requires delete
Quantities only ever change through movements (see stock_service).
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_capability, store_scope_error
from ..errors import PDVError, ValidationError
from ..permissions import VIEW, EDIT, DELETE, RECEIVE_STOCK
from ..services import stock_service, receipt_service
from ..services.receipt_service import ReceiptLineInput
from ..validation import get_int, get_cents, get_text


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/<int:store_id>/<int:product_id>")
@require_user
@require_capability(VIEW)
def get_stock_route(store_id: int, product_id: int):
    scope_error = store_scope_error(store_id)
    if scope_error:
        return scope_error

    limit = request.args.get("limit", default=50, type=int)
    movements = stock_service.list_movements(store_id, product_id=product_id, limit=limit)
    pricing = receipt_service.get_current_pricing(product_id, store_id)
    return jsonify({
        "store_id": store_id,
        "product_id": product_id,
        "quantity": stock_service.get_stock_quantity(product_id, store_id),
        "replayed_quantity": stock_service.replay_quantity(product_id, store_id),
        "pricing": pricing.to_dict() if pricing else None,
        "movements": [m.to_dict() for m in movements],
    }), 200


@stock_bp.get("/<int:store_id>/verify")
@require_user
@require_capability(VIEW)
def verify_stock_route(store_id: int):
    scope_error = store_scope_error(store_id)
    if scope_error:
        return scope_error

    mismatches = stock_service.verify_stock(store_id)
    return jsonify({"store_id": store_id, "ok": not mismatches, "mismatches": mismatches}), 200


@stock_bp.get("/<int:store_id>/low")
@require_user
@require_capability(VIEW)
def low_stock_route(store_id: int):
    scope_error = store_scope_error(store_id)
    if scope_error:
        return scope_error
    rows = stock_service.list_low_stock(store_id)
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@stock_bp.post("/adjust")
@require_user
@require_capability(EDIT)
def adjust_stock_route():
    """
    Manual stock adjustment.

    Request body:
    {
        "store_id": 1,
        "product_id": 10,
        "delta": -2,
        "reason": "Avaria"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        store_id = data.get("store_id")
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error

        result = stock_service.adjust_stock_manually(
            product_id=get_int(data, "product_id"),
            store_id=store_id,
            delta=get_int(data, "delta"),
            reason=get_text(data, "reason") or "",
            user_id=g.current_user.id,
        )
        return jsonify({"quantity": result.quantity, "movement": result.movement.to_dict()}), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.put("/<int:store_id>/<int:product_id>/limits")
@require_user
@require_capability(EDIT)
def set_limits_route(store_id: int, product_id: int):
    try:
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error
        data = request.get_json(silent=True) or {}
        row = stock_service.set_stock_limits(
            product_id,
            store_id,
            min_quantity=get_int(data, "min_quantity", minimum=0),
            max_quantity=get_int(data, "max_quantity", required=False),
        )
        return jsonify({"stock": row.to_dict()}), 200
    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.post("/receipts")
@require_user
@require_capability(RECEIVE_STOCK)
def receive_stock_route():
    """
    Register a stock receipt.

    Request body:
    {
        "store_id": 1,
        "supplier_name": "Distribuidora X",
        "invoice_number": "NF-123",
        "lines": [
            {"product_id": 10, "quantity": 12, "cost_cents": 500, "sale_price_cents": 900}
        ]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        store_id = data.get("store_id")
        scope_error = store_scope_error(store_id)
        if scope_error:
            return scope_error

        raw_lines = data.get("lines")
        if not isinstance(raw_lines, list) or not all(isinstance(raw, dict) for raw in raw_lines):
            raise ValidationError("lines must be a list of objects")
        lines = [
            ReceiptLineInput(
                product_id=get_int(raw, "product_id"),
                quantity=get_int(raw, "quantity", minimum=1),
                cost_cents=get_cents(raw, "cost_cents"),
                sale_price_cents=get_cents(raw, "sale_price_cents"),
            )
            for raw in raw_lines
        ]
        receipt = receipt_service.receive_stock(
            store_id,
            lines,
            user_id=g.current_user.id,
            supplier_name=get_text(data, "supplier_name", max_length=160),
            invoice_number=get_text(data, "invoice_number", max_length=64),
            notes=get_text(data, "notes", max_length=2000),
        )
        return jsonify({"receipt": receipt.to_dict(include_lines=True)}), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/receipts/<int:receipt_id>/cancel")
@require_user
@require_capability(DELETE)
def cancel_receipt_route(receipt_id: int):
    try:
        data = request.get_json(silent=True) or {}
        receipt = receipt_service.get_receipt(receipt_id)
        scope_error = store_scope_error(receipt.store_id)
        if scope_error:
            return scope_error

        receipt = receipt_service.cancel_receipt(receipt_id, g.current_user.id, data.get("reason") or "")
        return jsonify({"receipt": receipt.to_dict(include_lines=True)}), 200

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel stock receipt")
        return jsonify({"error": "Internal server error"}), 500
