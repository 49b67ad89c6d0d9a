"""Alert rules: a PromQL query evaluated per cluster, with notify settings."""

import re
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text, text
from sqlalchemy.exc import SQLAlchemyError

from nightingale.models.common import (
    Statistics,
    _connect,
    _delete_rows,
    _id_column,
    _pluck,
    _Record,
    _select,
    _where,
    dangerous,
    exists,
    metadata,
    statistics,
)
from nightingale.models.user import UserGroup, user_group_get_by_id

alert_rule_table = Table(
    "alert_rule",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("cluster", String(128), nullable=False, default=""),
    Column("name", String(255), nullable=False),
    Column("note", String(1024), nullable=False, default=""),
    Column("severity", Integer, nullable=False, default=0),
    Column("disabled", Integer, nullable=False, default=0),
    Column("prom_for_duration", Integer, nullable=False, default=0),
    Column("prom_ql", Text, nullable=False, default=""),
    Column("prom_eval_interval", Integer, nullable=False, default=0),
    Column("enable_stime", String(6), nullable=False, default=""),
    Column("enable_etime", String(6), nullable=False, default=""),
    Column("enable_days_of_week", String(32), nullable=False, default=""),
    Column("enable_in_bg", Integer, nullable=False, default=0),
    Column("notify_recovered", Integer, nullable=False, default=0),
    Column("notify_channels", String(255), nullable=False, default=""),
    Column("notify_groups", String(255), nullable=False, default=""),
    Column("notify_repeat_step", Integer, nullable=False, default=0),
    Column("recover_duration", BigInteger, nullable=False, default=0),
    Column("callbacks", String(255), nullable=False, default=""),
    Column("runbook_url", String(255), nullable=False, default=""),
    Column("append_tags", String(255), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

_INT = re.compile(r"[+-]?\d+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _parse_int(value: str) -> Optional[int]:
    """Parse a signed 64-bit decimal integer, or return None."""
    if not _INT.fullmatch(value):
        return None
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return None
    return number


def _now() -> int:
    return int(time.time())


@dataclass
class AlertRule(_Record):
    """An alert rule; list-like settings are stored space separated."""

    table: ClassVar[Table] = alert_rule_table

    id: int = 0
    group_id: int = 0
    cluster: str = ""
    name: str = ""
    note: str = ""
    severity: int = 0
    disabled: int = 0
    prom_for_duration: int = 0
    prom_ql: str = ""
    prom_eval_interval: int = 0
    enable_stime: str = ""
    enable_etime: str = ""
    enable_days_of_week: str = ""
    enable_in_bg: int = 0
    notify_recovered: int = 0
    notify_channels: str = ""
    notify_groups: str = ""
    notify_repeat_step: int = 0
    recover_duration: int = 0
    callbacks: str = ""
    runbook_url: str = ""
    append_tags: str = ""
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    enable_days_of_week_json: list[str] = field(default_factory=list)
    notify_channels_json: list[str] = field(default_factory=list)
    notify_groups_obj: list[UserGroup] = field(default_factory=list)
    notify_groups_json: list[str] = field(default_factory=list)
    callbacks_json: list[str] = field(default_factory=list)
    append_tags_json: list[str] = field(default_factory=list)

    def verify(self, allowed_channels: Iterable[str]) -> None:
        """Check the rule and drop notify channels that are not allowed."""
        if self.group_id <= 0:
            raise ValueError(f"GroupId({self.group_id}) invalid")
        if not self.cluster:
            raise ValueError("cluster is blank")
        if dangerous(self.name):
            raise ValueError("Name has invalid characters")
        if not self.name:
            raise ValueError("name is blank")
        if not self.prom_ql:
            raise ValueError("prom_ql is blank")
        if self.prom_eval_interval <= 0:
            self.prom_eval_interval = 15

        self.append_tags = self.append_tags.strip()
        for tag in self.append_tags.split():
            if len(tag.split("=")) != 2:
                raise ValueError(f"AppendTags({tag}) invalid")

        for gid in self.notify_groups.split():
            if _parse_int(gid) is None:
                raise ValueError(f"NotifyGroups({self.notify_groups}) invalid")

        allowed = set(allowed_channels)
        self.notify_channels = " ".join(
            channel for channel in self.notify_channels.split() if channel in allowed
        )

    def add(self, allowed_channels: Iterable[str]) -> None:
        self.verify(allowed_channels)
        if alert_rule_exists(
            "group_id=? and cluster=? and name=?", self.group_id, self.cluster, self.name
        ):
            raise ValueError("AlertRule already exists")
        now = _now()
        self.create_at = now
        self.update_at = now
        self._insert()

    def update(self, other: "AlertRule") -> None:
        """Replace this rule's settings with those of another, keeping identity."""
        if self.name != other.name and alert_rule_exists(
            "group_id=? and cluster=? and name=? and id <> ?",
            self.group_id,
            self.cluster,
            other.name,
            self.id,
        ):
            raise ValueError("AlertRule already exists")

        other.fe2db()
        other.id = self.id
        other.group_id = self.group_id
        other.create_at = self.create_at
        other.create_by = self.create_by
        other.update_at = _now()

        names = [column.name for column in alert_rule_table.columns if column.name != "id"]
        for name in names:
            setattr(self, name, getattr(other, name))
        self.db2fe()
        self._update_columns(*names)

    def update_fields(self, fields: dict[str, Any]) -> None:
        """Write the given column values to this rule."""
        for name, value in fields.items():
            setattr(self, name, value)
        self._update_columns(*fields)

    def fill_notify_groups(self, cache: dict[int, UserGroup]) -> None:
        """Load the notify groups, forgetting ids of groups that were deleted."""
        if not self.notify_groups_json:
            self.notify_groups_obj = []
            return

        kept = []
        deleted = False
        for raw_id in self.notify_groups_json:
            group_id = _parse_int(raw_id) or 0
            group = cache.get(group_id)
            if group is None:
                group = user_group_get_by_id(group_id)
                if group is None:
                    deleted = True
                    continue
                cache[group_id] = group
            kept.append(raw_id)
            self.notify_groups_obj.append(group)

        if deleted:
            self.notify_groups_json = kept
            self.notify_groups = " ".join(kept)
            self._update_columns("notify_groups")

    def fe2db(self) -> None:
        """Join the list fields into their stored form."""
        self.enable_days_of_week = " ".join(self.enable_days_of_week_json)
        self.notify_channels = " ".join(self.notify_channels_json)
        self.notify_groups = " ".join(self.notify_groups_json)
        self.callbacks = " ".join(self.callbacks_json)
        self.append_tags = " ".join(self.append_tags_json)

    def db2fe(self) -> None:
        """Split the stored fields into lists."""
        self.enable_days_of_week_json = (self.enable_days_of_week or "").split()
        self.notify_channels_json = (self.notify_channels or "").split()
        self.notify_groups_json = (self.notify_groups or "").split()
        self.callbacks_json = (self.callbacks or "").split()
        self.append_tags_json = (self.append_tags or "").split()


def _rule_from_row(row: dict) -> AlertRule:
    rule = AlertRule._from_row(row)
    rule.db2fe()
    return rule


def alert_rule_dels(ids: list[int], busi_group_id: int) -> None:
    """Delete rules of a business group together with their active alerts."""
    for rule_id in ids:
        removed = _delete_rows(
            alert_rule_table, _where("id = ? and group_id=?", rule_id, busi_group_id)
        )
        if removed > 0:
            # events of a deleted rule can never recover; failures here are not fatal
            try:
                with _connect() as conn:
                    conn.execute(
                        text("delete from alert_cur_event where rule_id = :rid"),
                        {"rid": rule_id},
                    )
            except SQLAlchemyError:
                pass


def alert_rule_exists(where: str, *args) -> bool:
    return exists(alert_rule_table, where, *args)


def alert_rule_gets(group_id: int) -> list[AlertRule]:
    rows = _select(alert_rule_table, _where("group_id=?", group_id), order_by="name")
    return [_rule_from_row(row) for row in rows]


def alert_rule_gets_by_cluster(cluster: str) -> list[AlertRule]:
    """Return enabled rules, of one cluster when given."""
    conditions = [_where("disabled = ?", 0)]
    if cluster:
        conditions.append(_where("cluster = ?", cluster))
    return [_rule_from_row(row) for row in _select(alert_rule_table, *conditions)]


def alert_rule_get(where: str, *args) -> Optional[AlertRule]:
    rows = _select(alert_rule_table, _where(where, *args))
    return _rule_from_row(rows[0]) if rows else None


def alert_rule_get_by_id(rule_id: int) -> Optional[AlertRule]:
    return alert_rule_get("id=?", rule_id)


def alert_rule_get_name(rule_id: int) -> str:
    """Return the rule's name, or an empty string if there is no such rule."""
    names = _pluck(alert_rule_table, "name", _where("id = ?", rule_id))
    return names[0] if names else ""


def alert_rule_statistics(cluster: str) -> Statistics:
    """Count enabled rules and find their latest update time."""
    if cluster:
        return statistics(alert_rule_table, "update_at", "disabled = ? and cluster = ?", 0, cluster)
    return statistics(alert_rule_table, "update_at", "disabled = ?", 0)