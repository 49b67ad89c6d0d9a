"""Historical alert events: every firing and recovery that was sent."""

from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text

from nightingale.models.alert_rule import _parse_int
from nightingale.models.common import (
    _count,
    _id_column,
    _Record,
    _select,
    _where,
    metadata,
)
from nightingale.models.user import UserGroup, user_group_get_by_id

alert_his_event_table = Table(
    "alert_his_event",
    metadata,
    _id_column(),
    Column("is_recovered", Integer, nullable=False, default=0),
    Column("cluster", String(128), nullable=False, default=""),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("group_name", String(255), nullable=False, default=""),
    Column("hash", String(64), nullable=False, default=""),
    Column("rule_id", BigInteger, nullable=False, default=0),
    Column("rule_name", String(255), nullable=False, default=""),
    Column("rule_note", String(512), nullable=False, default=""),
    Column("severity", Integer, nullable=False, default=0),
    Column("prom_for_duration", Integer, nullable=False, default=0),
    Column("prom_ql", Text, nullable=False, default=""),
    Column("prom_eval_interval", Integer, nullable=False, default=0),
    Column("callbacks", String(255), nullable=False, default=""),
    Column("runbook_url", String(255), nullable=False, default=""),
    Column("notify_recovered", Integer, nullable=False, default=0),
    Column("notify_channels", String(255), nullable=False, default=""),
    Column("notify_groups", String(255), nullable=False, default=""),
    Column("target_ident", String(191), nullable=False, default=""),
    Column("target_note", String(191), nullable=False, default=""),
    Column("trigger_time", BigInteger, nullable=False, default=0),
    Column("trigger_value", String(255), nullable=False, default=""),
    Column("recover_time", BigInteger, nullable=False, default=0),
    Column("last_eval_time", BigInteger, nullable=False, default=0),
    Column("tags", String(1024), nullable=False, default=""),
)


def _fill_groups(raw_ids: list[str], cache: dict[int, UserGroup]) -> list[UserGroup]:
    """Resolve user group ids, skipping unparsable ids and deleted groups."""
    groups = []
    for raw_id in raw_ids:
        group_id = _parse_int(raw_id)
        if group_id is None:
            continue
        group = cache.get(group_id)
        if group is None:
            group = user_group_get_by_id(group_id)
            if group is None:
                continue
            cache[group_id] = group
        groups.append(group)
    return groups


def _event_conditions(
    time_column: str,
    bgid: int,
    stime: int,
    etime: int,
    severity: int,
    clusters: list[str],
    query: str,
    recovered: Optional[int] = None,
) -> list:
    conditions = [_where(f"{time_column} between ? and ?", stime, etime)]
    if bgid > 0:
        conditions.append(_where("group_id = ?", bgid))
    if severity >= 0:
        conditions.append(_where("severity = ?", severity))
    if recovered is not None and recovered >= 0:
        conditions.append(_where("is_recovered = ?", recovered))
    if clusters:
        conditions.append(_where("cluster in ?", list(clusters)))
    for word in query.split():
        pattern = f"%{word}%"
        conditions.append(_where("rule_name like ? or tags like ?", pattern, pattern))
    return conditions


@dataclass
class AlertHisEvent(_Record):
    """A stored alert event; list-like fields are space separated, tags by ',,'."""

    table: ClassVar[Table] = alert_his_event_table

    id: int = 0
    is_recovered: int = 0
    cluster: str = ""
    group_id: int = 0
    group_name: str = ""
    hash: str = ""
    rule_id: int = 0
    rule_name: str = ""
    rule_note: str = ""
    severity: int = 0
    prom_for_duration: int = 0
    prom_ql: str = ""
    prom_eval_interval: int = 0
    callbacks: str = ""
    runbook_url: str = ""
    notify_recovered: int = 0
    notify_channels: str = ""
    notify_groups: str = ""
    target_ident: str = ""
    target_note: str = ""
    trigger_time: int = 0
    trigger_value: str = ""
    recover_time: int = 0
    last_eval_time: int = 0
    tags: str = ""
    callbacks_json: list[str] = field(default_factory=list)
    notify_channels_json: list[str] = field(default_factory=list)
    notify_groups_json: list[str] = field(default_factory=list)
    notify_groups_obj: list[UserGroup] = field(default_factory=list)
    tags_json: list[str] = field(default_factory=list)

    def add(self) -> None:
        self._insert()

    def db2fe(self) -> None:
        """Split the stored fields into lists."""
        self.notify_channels_json = (self.notify_channels or "").split()
        self.notify_groups_json = (self.notify_groups or "").split()
        self.callbacks_json = (self.callbacks or "").split()
        self.tags_json = (self.tags or "").split(",,")

    def fill_notify_groups(self, cache: dict[int, UserGroup]) -> None:
        """Load the notify groups that still exist, through a cache."""
        if not self.notify_groups_json:
            self.notify_groups_obj = []
            return
        self.notify_groups_obj.extend(_fill_groups(self.notify_groups_json, cache))


def _his_from_row(row: dict) -> AlertHisEvent:
    event = AlertHisEvent._from_row(row)
    event.db2fe()
    return event


def alert_his_event_total(
    bgid: int,
    stime: int,
    etime: int,
    severity: int,
    recovered: int,
    clusters: list[str],
    query: str,
) -> int:
    """Count events evaluated in [stime, etime]; negative filters match anything."""
    conditions = _event_conditions(
        "last_eval_time", bgid, stime, etime, severity, clusters, query, recovered
    )
    return _count(alert_his_event_table, *conditions)


def alert_his_event_gets(
    bgid: int,
    stime: int,
    etime: int,
    severity: int,
    recovered: int,
    clusters: list[str],
    query: str,
    limit: int,
    offset: int,
) -> list[AlertHisEvent]:
    """List events evaluated in [stime, etime], newest id first."""
    conditions = _event_conditions(
        "last_eval_time", bgid, stime, etime, severity, clusters, query, recovered
    )
    rows = _select(
        alert_his_event_table, *conditions, order_by="id desc", limit=limit, offset=offset
    )
    return [_his_from_row(row) for row in rows]


def alert_his_event_get(where: str, *args) -> Optional[AlertHisEvent]:
    rows = _select(alert_his_event_table, _where(where, *args))
    if not rows:
        return None
    event = _his_from_row(rows[0])
    event.fill_notify_groups({})
    return event


def alert_his_event_get_by_id(event_id: int) -> Optional[AlertHisEvent]:
    return alert_his_event_get("id=?", event_id)