# Overview: Flask API routes for customer delivery addresses; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_user, require_capability
from ..errors import PDVError
from ..permissions import VIEW, SELL
from ..services import customer_service
from ..services.customer_service import ADDRESS_FIELDS
from ..validation import get_text


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/addresses")
@require_user
@require_capability(VIEW)
def list_addresses_route(customer_id: int):
    addresses = customer_service.list_delivery_addresses(customer_id)
    return jsonify({"addresses": [a.to_dict() for a in addresses]}), 200


@customers_bp.post("/<int:customer_id>/addresses")
@require_user
@require_capability(SELL)
def add_address_route(customer_id: int):
    """
    Register a delivery address while selling.

    Request body:
    {
        "name": "Casa",
        "street": "Rua das Flores",
        "number": "120",
        "city": "Campinas",
        "state": "SP",
        "zip_code": "13010-000",
        "is_default": true
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        extra = {}
        for field in ADDRESS_FIELDS:
            value = get_text(data, field, max_length=160)
            if value is not None:
                extra[field] = value
        address = customer_service.add_delivery_address(
            customer_id,
            name=get_text(data, "name", required=True, max_length=64),
            street=get_text(data, "street", required=True, max_length=160),
            city=get_text(data, "city", required=True, max_length=80),
            is_default=bool(data.get("is_default", False)),
            **extra,
        )
        return jsonify({"address": address.to_dict()}), 201

    except PDVError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add delivery address")
        return jsonify({"error": "Internal server error"}), 500
