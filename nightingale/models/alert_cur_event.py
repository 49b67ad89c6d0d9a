"""Active alert events: alerts that are currently firing."""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text, bindparam, text

from nightingale.models.alert_his_event import (
    AlertHisEvent,
    _event_conditions,
    _fill_groups,
)
from nightingale.models.common import (
    _connect,
    _count,
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _where,
    exists,
    metadata,
)
from nightingale.models.user import UserGroup

alert_cur_event_table = Table(
    "alert_cur_event",
    metadata,
    _id_column(),
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
    Column("tags", String(1024), nullable=False, default=""),
)


@dataclass
class AggrRule:
    """One part of an aggregation view: type is 'field' or 'tagkey'."""

    type: str = ""
    value: str = ""


@dataclass
class AlertCurEvent(_Record):
    """A firing alert; list-like fields are space separated, tags by ',,'."""

    table: ClassVar[Table] = alert_cur_event_table

    id: int = 0
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
    tags: str = ""
    callbacks_json: list[str] = field(default_factory=list)
    notify_channels_json: list[str] = field(default_factory=list)
    notify_groups_json: list[str] = field(default_factory=list)
    notify_groups_obj: list[UserGroup] = field(default_factory=list)
    tags_json: list[str] = field(default_factory=list)
    tags_map: dict[str, str] = field(default_factory=dict)
    is_recovered: bool = False
    notify_users_obj: list[Any] = field(default_factory=list)
    last_eval_time: int = 0
    last_sent_time: int = 0

    def add(self) -> None:
        self._insert()

    def gen_card_title(self, rules: list[AggrRule]) -> str:
        """Build the aggregation card title; missing parts become 'Null'."""
        parts = []
        for rule in rules:
            value = ""
            if rule.type == "field":
                value = self.get_field(rule.value)
            elif rule.type == "tagkey":
                value = self.get_tag_value(rule.value)
            parts.append(value or "Null")
        return "::".join(parts)

    def get_tag_value(self, tagkey: str) -> str:
        prefix = tagkey + "="
        for tag in self.tags_json:
            if prefix in tag:
                return tag[len(prefix):]
        return ""

    def get_field(self, field: str) -> str:
        """Return the string value of one of the aggregatable fields, else ''."""
        values = {
            "cluster": self.cluster,
            "group_id": str(self.group_id),
            "group_name": self.group_name,
            "rule_id": str(self.rule_id),
            "rule_name": self.rule_name,
            "severity": str(self.severity),
            "runbook_url": self.runbook_url,
            "target_ident": self.target_ident,
            "target_note": self.target_note,
        }
        return values.get(field, "")

    def to_his(self) -> AlertHisEvent:
        """Build the history record of this event."""
        return AlertHisEvent(
            is_recovered=1 if self.is_recovered else 0,
            cluster=self.cluster,
            group_id=self.group_id,
            group_name=self.group_name,
            hash=self.hash,
            rule_id=self.rule_id,
            rule_name=self.rule_name,
            rule_note=self.rule_note,
            severity=self.severity,
            prom_for_duration=self.prom_for_duration,
            prom_ql=self.prom_ql,
            prom_eval_interval=self.prom_eval_interval,
            callbacks=self.callbacks,
            runbook_url=self.runbook_url,
            notify_recovered=self.notify_recovered,
            notify_channels=self.notify_channels,
            notify_groups=self.notify_groups,
            target_ident=self.target_ident,
            target_note=self.target_note,
            trigger_time=self.trigger_time,
            trigger_value=self.trigger_value,
            tags=self.tags,
            recover_time=self.last_eval_time if self.is_recovered else 0,
            last_eval_time=self.last_eval_time,
        )

    def db2fe(self) -> None:
        """Split the stored fields into lists."""
        self.notify_channels_json = (self.notify_channels or "").split()
        self.notify_groups_json = (self.notify_groups or "").split()
        self.callbacks_json = (self.callbacks or "").split()
        self.tags_json = (self.tags or "").split(",,")

    def db2mem(self) -> None:
        """Prepare a loaded event for in-memory evaluation, including a tag map."""
        self.is_recovered = False
        self.db2fe()
        self.tags_map = {}
        for item in self.tags_json:
            pair = item.strip()
            if not pair:
                continue
            parts = pair.split("=")
            if len(parts) != 2:
                continue
            self.tags_map[parts[0]] = parts[1]

    def fill_notify_groups(self, cache: dict[int, UserGroup]) -> None:
        """Load the notify groups that still exist, through a cache."""
        if not self.notify_groups_json:
            self.notify_groups_obj = []
            return
        self.notify_groups_obj.extend(_fill_groups(self.notify_groups_json, cache))


def _cur_from_row(row: dict) -> AlertCurEvent:
    event = AlertCurEvent._from_row(row)
    event.db2fe()
    return event


def alert_cur_event_total(
    bgid: int, stime: int, etime: int, severity: int, clusters: list[str], query: str
) -> int:
    """Count events triggered in [stime, etime]; negative filters match anything."""
    conditions = _event_conditions("trigger_time", bgid, stime, etime, severity, clusters, query)
    return _count(alert_cur_event_table, *conditions)


def alert_cur_event_gets(
    bgid: int,
    stime: int,
    etime: int,
    severity: int,
    clusters: list[str],
    query: str,
    limit: int,
    offset: int,
) -> list[AlertCurEvent]:
    """List events triggered in [stime, etime], newest id first."""
    conditions = _event_conditions("trigger_time", bgid, stime, etime, severity, clusters, query)
    rows = _select(
        alert_cur_event_table, *conditions, order_by="id desc", limit=limit, offset=offset
    )
    return [_cur_from_row(row) for row in rows]


def alert_cur_event_del(ids: list[int]) -> None:
    if not ids:
        return
    _delete_rows(alert_cur_event_table, _where("id in ?", list(ids)))


def alert_cur_event_del_by_hash(hash_value: str) -> None:
    _delete_rows(alert_cur_event_table, _where("hash = ?", hash_value))


def alert_cur_event_exists(where: str, *args) -> bool:
    return exists(alert_cur_event_table, where, *args)


def alert_cur_event_get(where: str, *args) -> Optional[AlertCurEvent]:
    rows = _select(alert_cur_event_table, _where(where, *args))
    if not rows:
        return None
    event = _cur_from_row(rows[0])
    event.fill_notify_groups({})
    return event


def alert_cur_event_get_by_id(event_id: int) -> Optional[AlertCurEvent]:
    return alert_cur_event_get("id=?", event_id)


def alert_numbers(bgids: list[int]) -> dict[int, int]:
    """Count active events per business group."""
    if not bgids:
        return {}
    stmt = text(
        "select group_id, count(*) from alert_cur_event "
        "where group_id in :ids group by group_id"
    ).bindparams(bindparam("ids", value=list(bgids), expanding=True))
    with _connect() as conn:
        return {int(group_id): int(number) for group_id, number in conn.execute(stmt)}


def alert_cur_event_get_all(cluster: str) -> list[AlertCurEvent]:
    conditions = [_where("cluster = ?", cluster)] if cluster else []
    return [AlertCurEvent._from_row(row) for row in _select(alert_cur_event_table, *conditions)]


def alert_cur_event_get_by_ids(ids: list[int]) -> list[AlertCurEvent]:
    if not ids:
        return []
    rows = _select(alert_cur_event_table, _where("id in ?", list(ids)), order_by="id desc")
    return [_cur_from_row(row) for row in rows]


def alert_cur_event_get_by_rule(rule_id: int) -> list[AlertCurEvent]:
    rows = _select(alert_cur_event_table, _where("rule_id=?", rule_id))
    return [AlertCurEvent._from_row(row) for row in rows]


def alert_cur_event_get_map(cluster: str) -> dict[int, set[str]]:
    """Map each rule id to the hashes of its active events."""
    conditions = [_where("cluster = ?", cluster)] if cluster else []
    result: dict[int, set[str]] = {}
    for row in _select(alert_cur_event_table, *conditions):
        result.setdefault(row["rule_id"], set()).add(row["hash"])
    return result