"""Alert subscriptions: redirect matching events to other teams or channels."""

import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text

from nightingale.models.alert_mute import TagFilter, parse_tag_filters
from nightingale.models.alert_rule import _parse_int, alert_rule_get_name
from nightingale.models.common import (
    Statistics,
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _where,
    metadata,
    statistics,
)
from nightingale.models.user import UserGroup, user_group_get_by_id

alert_subscribe_table = Table(
    "alert_subscribe",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("cluster", String(128), nullable=False, default=""),
    Column("rule_id", BigInteger, nullable=False, default=0),
    Column("tags", Text),
    Column("redefine_severity", Integer, nullable=False, default=0),
    Column("new_severity", Integer, nullable=False, default=0),
    Column("redefine_channels", Integer, nullable=False, default=0),
    Column("new_channels", String(255), nullable=False, default=""),
    Column("user_group_ids", String(250), nullable=False, default=""),
    Column("create_by", String(64), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
)


@dataclass
class AlertSubscribe(_Record):
    """A subscription to events of a rule and/or matching tag filters."""

    table: ClassVar[Table] = alert_subscribe_table

    id: int = 0
    group_id: int = 0
    cluster: str = ""
    rule_id: int = 0
    tags: str = ""
    redefine_severity: int = 0
    new_severity: int = 0
    redefine_channels: int = 0
    new_channels: str = ""
    user_group_ids: str = ""
    create_by: str = ""
    create_at: int = 0
    update_by: str = ""
    update_at: int = 0
    rule_name: str = ""
    user_groups: list[UserGroup] = field(default_factory=list)
    itags: list[TagFilter] = field(default_factory=list)

    def verify(self) -> None:
        if not self.cluster:
            raise ValueError("cluster invalid")
        self.parse()
        if not self.itags and self.rule_id == 0:
            raise ValueError("rule_id and tags are both blank")
        for ugid in self.user_group_ids.split():
            if _parse_int(ugid) is None:
                raise ValueError("user_group_ids invalid")

    def parse(self) -> None:
        """Parse the stored tags into tag filters."""
        self.itags = parse_tag_filters(self.tags)

    def add(self) -> None:
        self.verify()
        now = int(time.time())
        self.create_at = now
        self.update_at = now
        self._insert()

    def fill_rule_name(self, cache: dict[int, str]) -> None:
        """Look up the subscribed rule's name through a cache."""
        if self.rule_id <= 0:
            self.rule_name = ""
            return
        if self.rule_id in cache:
            self.rule_name = cache[self.rule_id]
            return
        name = alert_rule_get_name(self.rule_id) or "Error: AlertRule not found"
        self.rule_name = name
        cache[self.rule_id] = name

    def fill_user_groups(self, cache: dict[int, UserGroup]) -> None:
        """Load the user groups, forgetting ids of groups that were deleted."""
        ugids = self.user_group_ids.split()
        if not ugids:
            self.user_groups = []
            return

        kept = []
        deleted = False
        for raw_id in ugids:
            group_id = _parse_int(raw_id) or 0
            group = cache.get(group_id)
            if group is None:
                group = user_group_get_by_id(group_id)
                if group is None:
                    deleted = True
                    continue
                cache[group_id] = group
            kept.append(raw_id)
            self.user_groups.append(group)

        if deleted:
            self.user_group_ids = " ".join(kept)
            self._update_columns("user_group_ids")

    def update(self, *args: str) -> None:
        """Write the named columns of this subscription."""
        self.verify()
        self._update_columns(*args)


def alert_subscribe_gets(group_id: int) -> list[AlertSubscribe]:
    rows = _select(alert_subscribe_table, _where("group_id=?", group_id), order_by="id desc")
    return [AlertSubscribe._from_row(row) for row in rows]


def alert_subscribe_get(where: str, *args) -> Optional[AlertSubscribe]:
    rows = _select(alert_subscribe_table, _where(where, *args))
    return AlertSubscribe._from_row(rows[0]) if rows else None


def alert_subscribe_del(ids: list[int]) -> None:
    if not ids:
        return
    _delete_rows(alert_subscribe_table, _where("id in ?", list(ids)))


def alert_subscribe_statistics(cluster: str) -> Statistics:
    if cluster:
        return statistics(alert_subscribe_table, "update_at", "cluster = ?", cluster)
    return statistics(alert_subscribe_table, "update_at", "")


def alert_subscribe_gets_by_cluster(cluster: str) -> list[AlertSubscribe]:
    conditions = [_where("cluster = ?", cluster)] if cluster else []
    return [AlertSubscribe._from_row(row) for row in _select(alert_subscribe_table, *conditions)]