"""Roles and the operations granted to them."""

from dataclasses import dataclass
from typing import ClassVar

from sqlalchemy import Column, String, Table

from nightingale.models.common import (
    ADMIN_ROLE,
    _id_column,
    _pluck,
    _Record,
    _select,
    _where,
    exists,
    metadata,
)

role_table = Table(
    "role",
    metadata,
    _id_column(),
    Column("name", String(191), nullable=False, default=""),
    Column("note", String(255), nullable=False, default=""),
)

role_operation_table = Table(
    "role_operation",
    metadata,
    Column("role_name", String(128), nullable=False),
    Column("operation", String(191), nullable=False),
)


@dataclass
class Role(_Record):
    """A named role."""

    table: ClassVar[Table] = role_table

    id: int = 0
    name: str = ""
    note: str = ""


def role_gets(where: str, *args) -> list[Role]:
    """Return the roles matching a condition, ordered by name."""
    rows = _select(role_table, _where(where, *args), order_by="name")
    return [Role._from_row(row) for row in rows]


def role_gets_all() -> list[Role]:
    """Return every role, ordered by name."""
    return role_gets("")


def role_has_operation(roles: list[str], operation: str) -> bool:
    """Tell whether any of the roles is granted the operation."""
    if not roles:
        return False
    return exists(role_operation_table, "operation = ? and role_name in ?", operation, list(roles))


def operations_of_role(roles: list[str]) -> list[str]:
    """Return the distinct operations granted to the roles; admins get all."""
    conditions = [] if ADMIN_ROLE in roles else [_where("role_name in ?", list(roles))]
    return _pluck(role_operation_table, "operation", *conditions, distinct=True)