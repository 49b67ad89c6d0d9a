"""Business groups: the unit that owns targets, rules and dashboards."""

import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, text

from nightingale.models.busi_group_member import (
    BusiGroupMember,
    busi_group_member_add,
    busi_group_member_count,
    busi_group_member_del,
    busi_group_member_gets_by_busi_group_id,
    busi_group_member_table,
)
from nightingale.models.common import (
    Statistics,
    _connect,
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _transaction,
    _where,
    count,
    metadata,
    statistics,
)
from nightingale.models.user import UserGroup, user_group_get, user_group_get_by_id

busi_group_table = Table(
    "busi_group",
    metadata,
    _id_column(),
    Column("name", String(191), nullable=False),
    Column("label_enable", Integer, nullable=False, default=0),
    Column("label_value", String(191), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

# Tables whose rows keep a business group from being deleted, checked in order.
_DEPENDENTS = (
    ("alert_mute", "Some alert mutes still in the BusiGroup"),
    ("alert_subscribe", "Some alert subscribes still in the BusiGroup"),
    ("target", "Some targets still in the BusiGroup"),
    ("dashboard", "Some dashboards still in the BusiGroup"),
    ("task_tpl", "Some recovery scripts still in the BusiGroup"),
    ("alert_rule", "Some alert rules still in the BusiGroup"),
)


def _now() -> int:
    return int(time.time())


def _has_rows_in_group(table_name: str, group_id: int) -> bool:
    stmt = text(f"select count(*) from {table_name} where group_id = :gid")
    with _connect() as conn:
        return conn.execute(stmt, {"gid": group_id}).scalar_one() > 0


@dataclass
class UserGroupWithPermFlag:
    """A user group together with its permission on a business group."""

    user_group: Optional[UserGroup]
    perm_flag: str


@dataclass
class BusiGroup(_Record):
    """A business group; label_value is kept only when label_enable is 1."""

    table: ClassVar[Table] = busi_group_table

    id: int = 0
    name: str = ""
    label_enable: int = 0
    label_value: str = ""
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    user_groups: list[UserGroupWithPermFlag] = field(default_factory=list)

    def fill_user_groups(self) -> None:
        """Load the user groups that are members of this business group."""
        for member in busi_group_member_gets_by_busi_group_id(self.id):
            self.user_groups.append(
                UserGroupWithPermFlag(
                    user_group=user_group_get_by_id(member.user_group_id),
                    perm_flag=member.perm_flag,
                )
            )

    def delete(self) -> None:
        """Delete the group, its memberships and its active alert events.

        Refuses while anything else still belongs to the group.
        """
        for table_name, message in _DEPENDENTS:
            if _has_rows_in_group(table_name, self.id):
                raise ValueError(message)
        with _transaction() as conn:
            _delete_rows(busi_group_member_table, _where("busi_group_id=?", self.id), conn=conn)
            _delete_rows(busi_group_table, _where("id=?", self.id), conn=conn)
            conn.execute(text("delete from alert_cur_event where group_id = :gid"), {"gid": self.id})

    def _touch(self, username: str) -> None:
        self.update_at = _now()
        self.update_by = username
        self._update_columns("update_at", "update_by")

    def add_members(self, members: list[BusiGroupMember], username: str) -> None:
        """Add user groups, or change their permission flag."""
        for member in members:
            busi_group_member_add(member)
        self._touch(username)

    def del_members(self, members: list[BusiGroupMember], username: str) -> None:
        """Remove user groups; the last remaining one cannot be removed."""
        for member in members:
            others = busi_group_member_count(
                "busi_group_id = ? and user_group_id <> ?",
                member.busi_group_id,
                member.user_group_id,
            )
            if others == 0:
                raise ValueError("The business group must retain at least one team")
            busi_group_member_del(
                "busi_group_id = ? and user_group_id = ?",
                member.busi_group_id,
                member.user_group_id,
            )
        self._touch(username)

    def update(self, name: str, label_enable: int, label_value: str, update_by: str) -> None:
        """Rename the group and change its label, keeping both unique."""
        if (
            self.name == name
            and self.label_enable == label_enable
            and self.label_value == label_value
        ):
            return
        if busi_group_exists("name = ? and id <> ?", name, self.id):
            raise ValueError("BusiGroup already exists")
        if label_enable == 1:
            if busi_group_exists(
                "label_enable = 1 and label_value = ? and id <> ?", label_value, self.id
            ):
                raise ValueError("BusiGroup already exists")
        else:
            label_value = ""
        self.name = name
        self.label_enable = label_enable
        self.label_value = label_value
        self.update_at = _now()
        self.update_by = update_by
        self._update_columns("name", "label_enable", "label_value", "update_at", "update_by")


def busi_group_get_map() -> dict[int, BusiGroup]:
    """Return every business group keyed by id."""
    groups = (BusiGroup._from_row(row) for row in _select(busi_group_table))
    return {group.id: group for group in groups}


def busi_group_get(where: str, *args) -> Optional[BusiGroup]:
    rows = _select(busi_group_table, _where(where, *args))
    return BusiGroup._from_row(rows[0]) if rows else None


def busi_group_get_by_id(group_id: int) -> Optional[BusiGroup]:
    return busi_group_get("id=?", group_id)


def busi_group_exists(where: str, *args) -> bool:
    return count(busi_group_table, where, *args) > 0


def busi_group_add(
    name: str,
    label_enable: int,
    label_value: str,
    members: list[BusiGroupMember],
    creator: str,
) -> BusiGroup:
    """Create a business group with its initial user-group members."""
    if busi_group_exists("name=?", name):
        raise ValueError("BusiGroup already exists")
    if label_enable == 1:
        if busi_group_exists("label_enable = 1 and label_value = ?", label_value):
            raise ValueError("BusiGroup already exists")
    else:
        label_value = ""
    for member in members:
        if user_group_get("id=?", member.user_group_id) is None:
            raise ValueError("Some UserGroup id not exists")

    now = _now()
    group = BusiGroup(
        name=name,
        label_enable=label_enable,
        label_value=label_value,
        create_at=now,
        create_by=creator,
        update_at=now,
        update_by=creator,
    )
    with _transaction() as conn:
        group._insert(conn=conn)
        for member in members:
            BusiGroupMember(
                busi_group_id=group.id,
                user_group_id=member.user_group_id,
                perm_flag=member.perm_flag,
            )._insert(conn=conn)
    return group


def busi_group_statistics() -> Statistics:
    return statistics(busi_group_table, "update_at", "")