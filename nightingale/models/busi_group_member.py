"""Membership of user groups in business groups, with a permission flag."""

from dataclasses import dataclass
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, String, Table

from nightingale.models.common import (
    _delete_rows,
    _pluck,
    _Record,
    _select,
    _update_rows,
    _where,
    count,
    metadata,
)

busi_group_member_table = Table(
    "busi_group_member",
    metadata,
    Column("busi_group_id", BigInteger, nullable=False),
    Column("user_group_id", BigInteger, nullable=False),
    Column("perm_flag", String(2), nullable=False),
)


@dataclass
class BusiGroupMember(_Record):
    """A user group's access to a business group; perm_flag is 'ro' or 'rw'."""

    table: ClassVar[Table] = busi_group_member_table

    busi_group_id: int = 0
    user_group_id: int = 0
    perm_flag: str = ""


def busi_group_ids(user_group_ids: list[int], *args: str) -> list[int]:
    """Return the business groups the user groups belong to.

    An optional first extra argument restricts the result to one permission flag.
    """
    if not user_group_ids:
        return []
    conditions = [_where("user_group_id in ?", list(user_group_ids))]
    if args:
        conditions.append(_where("perm_flag=?", args[0]))
    return _pluck(busi_group_member_table, "busi_group_id", *conditions)


def user_group_ids_of_busi_group(busi_group_id: int, *args: str) -> list[int]:
    """Return the user groups of a business group, optionally of one permission flag."""
    conditions = [_where("busi_group_id = ?", busi_group_id)]
    if args:
        conditions.append(_where("perm_flag=?", args[0]))
    return _pluck(busi_group_member_table, "user_group_id", *conditions)


def busi_group_member_count(where: str, *args) -> int:
    return count(busi_group_member_table, where, *args)


def busi_group_member_add(member: BusiGroupMember) -> None:
    """Add a membership, or change the permission flag of an existing one."""
    condition = "busi_group_id = ? and user_group_id = ?"
    existing = busi_group_member_get(condition, member.busi_group_id, member.user_group_id)
    if existing is None:
        BusiGroupMember(
            busi_group_id=member.busi_group_id,
            user_group_id=member.user_group_id,
            perm_flag=member.perm_flag,
        )._insert()
        return
    if existing.perm_flag == member.perm_flag:
        return
    _update_rows(
        busi_group_member_table,
        {"perm_flag": member.perm_flag},
        _where(condition, member.busi_group_id, member.user_group_id),
    )


def busi_group_member_get(where: str, *args) -> Optional[BusiGroupMember]:
    rows = _select(busi_group_member_table, _where(where, *args))
    return BusiGroupMember._from_row(rows[0]) if rows else None


def busi_group_member_del(where: str, *args) -> None:
    _delete_rows(busi_group_member_table, _where(where, *args))


def busi_group_member_gets(where: str, *args) -> list[BusiGroupMember]:
    """Return the memberships matching a condition, ordered by permission flag."""
    rows = _select(busi_group_member_table, _where(where, *args), order_by="perm_flag")
    return [BusiGroupMember._from_row(row) for row in rows]


def busi_group_member_gets_by_busi_group_id(busi_group_id: int) -> list[BusiGroupMember]:
    return busi_group_member_gets("busi_group_id=?", busi_group_id)