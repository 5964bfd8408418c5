# Overview: Flask API route for authoritative cart pricing; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_user, require_capability
from ..errors import PDVError
from ..permissions import SELL
from ..pricing import parse_cart, price_cart

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.post("/quote")
@require_user
@require_capability(SELL)
def quote_cart_route():
    """
    Price a cart without persisting anything.

    Request body:
    {
        "customer_id": 7,
        "lines": [
            {"product_id": 1, "quantity": 2, "unit_price_cents": 1000,
             "discount": {"type": "percentage", "value": 10}}
        ],
        "discount": {"type": "fixed", "value": 500}
    }
    """
    try:
        cart = parse_cart(request.get_json(silent=True) or {})
        return jsonify(price_cart(cart).to_dict()), 200
    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to quote cart")
        return jsonify({"error": "Internal server error"}), 500
