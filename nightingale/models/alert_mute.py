"""Alert mutes: silence matching events of a cluster for a time window."""

import json
import re
import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

from sqlalchemy import BigInteger, Column, String, Table, Text

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

alert_mute_table = Table(
    "alert_mute",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("cluster", String(128), nullable=False, default=""),
    Column("tags", Text),
    Column("cause", String(255), nullable=False, default=""),
    Column("btime", BigInteger, nullable=False, default=0),
    Column("etime", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
)

# mutes ending within this many seconds are cleaned up as expired
_EXPIRE_BUFFER = 30


@dataclass
class TagFilter:
    """A condition on one tag: func is '==', '=~' (regexp) or 'in' (value set)."""

    key: str = ""
    func: str = ""
    value: str = ""
    regexp: Optional[re.Pattern] = None
    vset: set[str] = field(default_factory=set)


def parse_tag_filters(raw: Union[str, bytes, bytearray, None]) -> list[TagFilter]:
    """Parse a JSON array of tag filters, compiling regexps and value sets."""
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8")
    data = json.loads(raw or "")
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError("tag filters must be a JSON array")

    filters = []
    for item in data:
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise ValueError("tag filter must be a JSON object")
        values = {}
        for name in ("key", "func", "value"):
            value = item.get(name)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"tag filter {name} must be a string")
            values[name] = value
        tag_filter = TagFilter(**values)
        if tag_filter.func == "=~":
            try:
                tag_filter.regexp = re.compile(tag_filter.value)
            except re.error as exc:
                raise ValueError(f"invalid regexp {tag_filter.value!r}: {exc}") from exc
        elif tag_filter.func == "in":
            tag_filter.vset = set(tag_filter.value.split())
        filters.append(tag_filter)
    return filters


@dataclass
class AlertMute(_Record):
    """A mute of a business group's events in one cluster between btime and etime."""

    table: ClassVar[Table] = alert_mute_table

    id: int = 0
    group_id: int = 0
    cluster: str = ""
    tags: str = ""
    cause: str = ""
    btime: int = 0
    etime: int = 0
    create_by: str = ""
    create_at: int = 0
    itags: list[TagFilter] = field(default_factory=list)

    def verify(self) -> None:
        if self.group_id <= 0:
            raise ValueError("group_id invalid")
        if not self.cluster:
            raise ValueError("cluster invalid")
        if self.etime <= self.btime:
            raise ValueError(f"Oops... etime({self.etime}) <= btime({self.btime})")
        self.parse()
        if not self.itags:
            raise ValueError("tags is blank")

    def parse(self) -> None:
        """Parse the stored tags into tag filters."""
        self.itags = parse_tag_filters(self.tags)

    def add(self) -> None:
        self.verify()
        self.create_at = int(time.time())
        self._insert()


def alert_mute_gets(group_id: int) -> list[AlertMute]:
    rows = _select(alert_mute_table, _where("group_id=?", group_id), order_by="id desc")
    return [AlertMute._from_row(row) for row in rows]


def alert_mute_del(ids: list[int]) -> None:
    if not ids:
        return
    _delete_rows(alert_mute_table, _where("id in ?", list(ids)))


def alert_mute_statistics(cluster: str) -> Statistics:
    if cluster:
        return statistics(alert_mute_table, "create_at", "cluster = ?", cluster)
    return statistics(alert_mute_table, "create_at", "")


def alert_mute_gets_by_cluster(cluster: str) -> list[AlertMute]:
    """Delete expired mutes, then return those of a cluster, or all when blank."""
    _delete_rows(alert_mute_table, _where("etime < ?", int(time.time()) + _EXPIRE_BUFFER))
    conditions = [_where("cluster = ?", cluster)] if cluster else []
    return [AlertMute._from_row(row) for row in _select(alert_mute_table, *conditions)]