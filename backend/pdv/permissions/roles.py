# Overview: Role to capability mapping, resolved once per role.

from __future__ import annotations

from enum import Enum

from .definitions import (
    ALL_CAPABILITIES,
    VIEW,
    SELL,
    EDIT,
    CANCEL_SALE,
    MANAGE_CASH,
    RECEIVE_STOCK,
    RECEIVE_PAYMENTS,
)


class Role(str, Enum):
    ADMIN = "admin"
    OPERADOR = "operador"
    CAIXA = "caixa"
    PAGADOR = "pagador"
    LEITOR = "leitor"


# Least privilege: only admin deletes and changes credit limits
DEFAULT_ROLE_CAPABILITIES: dict[Role, frozenset[str]] = {
    Role.ADMIN: ALL_CAPABILITIES,
    Role.OPERADOR: frozenset({
        VIEW, SELL, EDIT, CANCEL_SALE, MANAGE_CASH, RECEIVE_STOCK, RECEIVE_PAYMENTS,
    }),
    Role.CAIXA: frozenset({VIEW, SELL, MANAGE_CASH, RECEIVE_PAYMENTS}),
    Role.PAGADOR: frozenset({VIEW, RECEIVE_PAYMENTS}),
    Role.LEITOR: frozenset({VIEW}),
}
