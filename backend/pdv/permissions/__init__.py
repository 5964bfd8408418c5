# Overview: Capability system package.
# Re-exports all public APIs.

from .definitions import (
    CAPABILITY_DEFINITIONS,
    ALL_CAPABILITIES,
    VIEW,
    SELL,
    EDIT,
    DELETE,
    CANCEL_SALE,
    MANAGE_CASH,
    RECEIVE_STOCK,
    RECEIVE_PAYMENTS,
    MANAGE_CREDIT,
)
from .roles import Role, DEFAULT_ROLE_CAPABILITIES
from .helpers import (
    capabilities_for,
    has_capability,
    get_capability_definition,
    validate_capability_code,
)

__all__ = [
    "CAPABILITY_DEFINITIONS",
    "ALL_CAPABILITIES",
    "VIEW",
    "SELL",
    "EDIT",
    "DELETE",
    "CANCEL_SALE",
    "MANAGE_CASH",
    "RECEIVE_STOCK",
    "RECEIVE_PAYMENTS",
    "MANAGE_CREDIT",
    "Role",
    "DEFAULT_ROLE_CAPABILITIES",
    "capabilities_for",
    "has_capability",
    "get_capability_definition",
    "validate_capability_code",
]
