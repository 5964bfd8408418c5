"""
Customer delivery addresses

A customer keeps any number of named addresses; a delivery sale points at
one of them. At most one active address per customer is the default.
"""

from __future__ import annotations

import logging

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Customer, CustomerDeliveryAddress
from .concurrency import atomic

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = (
    "number",
    "complement",
    "neighborhood",
    "state",
    "zip_code",
    "contact_name",
    "contact_phone",
)


def list_delivery_addresses(customer_id: int, include_inactive: bool = False) -> list[CustomerDeliveryAddress]:
    query = db.session.query(CustomerDeliveryAddress).filter_by(customer_id=customer_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(CustomerDeliveryAddress.is_default.desc(), CustomerDeliveryAddress.id.asc()).all()


def get_delivery_address(address_id: int) -> CustomerDeliveryAddress:
    address = db.session.get(CustomerDeliveryAddress, address_id)
    if not address:
        raise NotFound("Delivery address not found", {"address_id": address_id})
    return address


def add_delivery_address(
    customer_id: int,
    name: str,
    street: str,
    city: str,
    is_default: bool = False,
    **fields,
) -> CustomerDeliveryAddress:
    """
    Register a delivery address for a customer.

    Extra keyword fields are limited to ADDRESS_FIELDS. Making the new address
    the default clears the flag on the customer's other addresses.
    """
    unknown = set(fields) - set(ADDRESS_FIELDS)
    if unknown:
        raise ValidationError("Unknown address fields", {"fields": sorted(unknown)})
    for label, value in (("name", name), ("street", street), ("city", city)):
        if not value or not value.strip():
            raise ValidationError(f"{label} is required")

    customer = db.session.get(Customer, customer_id)
    if not customer or not customer.is_active:
        raise NotFound("Customer not found", {"customer_id": customer_id})

    with atomic("add_delivery_address", customer_id=customer_id):
        if is_default:
            (
                db.session.query(CustomerDeliveryAddress)
                .filter_by(customer_id=customer_id, is_default=True)
                .update({"is_default": False}, synchronize_session="fetch")
            )
        address = CustomerDeliveryAddress(
            customer_id=customer_id,
            name=name.strip(),
            street=street.strip(),
            city=city.strip(),
            is_default=is_default,
            is_active=True,
            **fields,
        )
        db.session.add(address)

    logger.info(
        "delivery_address_added",
        extra={"event": "delivery_address_added", "customer_id": customer_id, "address_id": address.id},
    )
    return address
