"""Dashboards, their chart groups, charts and shared charts."""

import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text

from nightingale.models.common import (
    _delete_rows,
    _id_column,
    _pluck,
    _Record,
    _select,
    _transaction,
    _where,
    count,
    dangerous,
    metadata,
)

dashboard_table = Table(
    "dashboard",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("name", String(191), nullable=False),
    Column("tags", String(255), nullable=False, default=""),
    Column("configs", Text),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

chart_group_table = Table(
    "chart_group",
    metadata,
    _id_column(),
    Column("dashboard_id", BigInteger, nullable=False),
    Column("name", String(255), nullable=False, default=""),
    Column("weight", Integer, nullable=False, default=0),
)

chart_table = Table(
    "chart",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False),
    Column("configs", Text),
    Column("weight", Integer, nullable=False, default=0),
)

chart_share_table = Table(
    "chart_share",
    metadata,
    _id_column(),
    Column("cluster", String(128), nullable=False, default=""),
    Column("configs", Text),
    Column("create_by", String(64), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
)

_LIST_COLUMNS = ("id", "group_id", "name", "tags", "create_at", "create_by", "update_at", "update_by")


@dataclass
class Dashboard(_Record):
    """A dashboard owned by a business group."""

    table: ClassVar[Table] = dashboard_table

    id: int = 0
    group_id: int = 0
    name: str = ""
    tags: str = ""
    configs: str = ""
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    tags_lst: list[str] = field(default_factory=list)

    def verify(self) -> None:
        if not self.name:
            raise ValueError("Name is blank")
        if dangerous(self.name):
            raise ValueError("Name has invalid characters")

    def add(self) -> None:
        self.verify()
        if dashboard_exists("group_id=? and name=?", self.group_id, self.name):
            raise ValueError("Dashboard already exists")
        now = int(time.time())
        self.create_at = now
        self.update_at = now
        self._insert()

    def update(self, *args: str) -> None:
        """Write the named columns of this dashboard."""
        self.verify()
        self._update_columns(*args)

    def delete(self) -> None:
        """Delete the dashboard with its chart groups and charts."""
        group_ids = chart_group_ids_of(self.id)
        with _transaction() as conn:
            if group_ids:
                _delete_rows(chart_table, _where("group_id in ?", group_ids), conn=conn)
                _delete_rows(chart_group_table, _where("dashboard_id=?", self.id), conn=conn)
            _delete_rows(dashboard_table, _where("id=?", self.id), conn=conn)


def _dashboard_with_tags(row: dict) -> Dashboard:
    dashboard = Dashboard._from_row(row)
    dashboard.tags_lst = (dashboard.tags or "").split()
    return dashboard


def dashboard_get(where: str, *args) -> Optional[Dashboard]:
    """Return the first dashboard matching a condition, or None."""
    rows = _select(dashboard_table, _where(where, *args))
    return _dashboard_with_tags(rows[0]) if rows else None


def dashboard_count(where: str, *args) -> int:
    return count(dashboard_table, where, *args)


def dashboard_exists(where: str, *args) -> bool:
    return dashboard_count(where, *args) > 0


def dashboard_gets(group_id: int, query: str) -> list[Dashboard]:
    """List a group's dashboards, without configs, filtered by query words.

    A word prefixed with '-' excludes dashboards whose name or tags contain it.
    """
    conditions = [_where("group_id=?", group_id)]
    for word in query.split():
        if word.startswith("-"):
            pattern = f"%{word[1:]}%"
            conditions.append(_where("name not like ? and tags not like ?", pattern, pattern))
        else:
            pattern = f"%{word}%"
            conditions.append(_where("name like ? or tags like ?", pattern, pattern))
    rows = _select(dashboard_table, *conditions, columns=_LIST_COLUMNS, order_by="name")
    return [_dashboard_with_tags(row) for row in rows]


def dashboard_gets_by_ids(ids: list[int]) -> list[Dashboard]:
    if not ids:
        return []
    rows = _select(dashboard_table, _where("id in ?", list(ids)), order_by="name")
    return [Dashboard._from_row(row) for row in rows]


@dataclass
class ChartGroup(_Record):
    """A group of charts on a dashboard."""

    table: ClassVar[Table] = chart_group_table

    id: int = 0
    dashboard_id: int = 0
    name: str = ""
    weight: int = 0

    def verify(self) -> None:
        if self.dashboard_id <= 0:
            raise ValueError("Arg(dashboard_id) invalid")
        if dangerous(self.name):
            raise ValueError("Name has invalid characters")

    def add(self) -> None:
        self.verify()
        self._insert()

    def update(self, *args: str) -> None:
        self.verify()
        self._update_columns(*args)

    def delete(self) -> None:
        with _transaction() as conn:
            _delete_rows(chart_table, _where("group_id=?", self.id), conn=conn)
            _delete_rows(chart_group_table, _where("id=?", self.id), conn=conn)


def new_default_chart_group(dash_id: int) -> ChartGroup:
    """Create the default chart group of a dashboard."""
    group = ChartGroup(dashboard_id=dash_id, name="Default chart group", weight=0)
    group._insert()
    return group


def chart_group_ids_of(dash_id: int) -> list[int]:
    return _pluck(chart_group_table, "id", _where("dashboard_id = ?", dash_id))


def chart_groups_of(dash_id: int) -> list[ChartGroup]:
    rows = _select(chart_group_table, _where("dashboard_id = ?", dash_id), order_by="weight")
    return [ChartGroup._from_row(row) for row in rows]


@dataclass
class Chart(_Record):
    """A chart inside a chart group."""

    table: ClassVar[Table] = chart_table

    id: int = 0
    group_id: int = 0
    configs: str = ""
    weight: int = 0

    def add(self) -> None:
        self._insert()

    def update(self, *args: str) -> None:
        self._update_columns(*args)

    def delete(self) -> None:
        _delete_rows(chart_table, _where("id=?", self.id))


def charts_of(chart_group_id: int) -> list[Chart]:
    rows = _select(chart_table, _where("group_id = ?", chart_group_id), order_by="weight")
    return [Chart._from_row(row) for row in rows]


@dataclass
class ChartShare(_Record):
    """A chart configuration shared by link."""

    table: ClassVar[Table] = chart_share_table

    id: int = 0
    cluster: str = ""
    configs: str = ""
    create_by: str = ""
    create_at: int = 0

    def add(self) -> None:
        self._insert()


def chart_share_gets_by_ids(ids: list[int]) -> list[ChartShare]:
    if not ids:
        return []
    rows = _select(chart_share_table, _where("id in ?", list(ids)), order_by="id")
    return [ChartShare._from_row(row) for row in rows]