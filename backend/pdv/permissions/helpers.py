# Overview: Utility functions for capability lookups and validation.

from __future__ import annotations

from .definitions import CAPABILITY_DEFINITIONS, ALL_CAPABILITIES
from .roles import Role, DEFAULT_ROLE_CAPABILITIES


def capabilities_for(role: str | Role | None) -> frozenset[str]:
    """Capability set of a role; unknown roles get nothing."""
    try:
        return DEFAULT_ROLE_CAPABILITIES[Role(role)]
    except ValueError:
        return frozenset()


def has_capability(role: str | Role | None, capability: str) -> bool:
    return capability in capabilities_for(role)


def get_capability_definition(code):
    """Get full definition for a capability code."""
    for cap in CAPABILITY_DEFINITIONS:
        if cap[0] == code:
            return {
                "code": cap[0],
                "name": cap[1],
                "description": cap[2],
            }
    return None


def validate_capability_code(code):
    """Check if a capability code is valid."""
    return code in ALL_CAPABILITIES
