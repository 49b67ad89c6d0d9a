"""Saved metric views, private to their creator or shared by the system."""

import time
from dataclasses import dataclass
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text

from nightingale.models.common import (
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _where,
    metadata,
)

metric_view_table = Table(
    "metric_view",
    metadata,
    _id_column(),
    Column("name", String(191), nullable=False, default=""),
    Column("cate", Integer, nullable=False, default=1),
    Column("configs", Text),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", BigInteger, nullable=False, default=0),
    Column("update_at", BigInteger, nullable=False, default=0),
)


@dataclass
class MetricView(_Record):
    """A metric view; cate 0 is shared by the system, 1 belongs to a user."""

    table: ClassVar[Table] = metric_view_table

    id: int = 0
    name: str = ""
    cate: int = 0
    configs: str = ""
    create_at: int = 0
    create_by: int = 0
    update_at: int = 0

    def verify(self) -> None:
        self.name = self.name.strip()
        if not self.name:
            raise ValueError("name is blank")
        self.configs = self.configs.strip()
        if not self.configs:
            raise ValueError("configs is blank")

    def add(self) -> None:
        self.verify()
        now = int(time.time())
        self.create_at = now
        self.update_at = now
        self.cate = 1
        self._insert()

    def update(self, name: str, configs: str) -> None:
        self.verify()
        self.update_at = int(time.time())
        self.name = name
        self.configs = configs
        self._update_columns("name", "configs", "update_at")


def metric_view_del(ids: list[int], create_by: int) -> None:
    """Delete views by id, only those created by the given user."""
    if not ids:
        return
    _delete_rows(metric_view_table, _where("id in ? and create_by = ?", list(ids), create_by))


def metric_view_gets(create_by: int) -> list[MetricView]:
    """Return system views and the user's own, system first, then by name."""
    rows = _select(metric_view_table, _where("create_by = ? or cate = 0", create_by))
    views = [MetricView._from_row(row) for row in rows]
    return sorted(views, key=lambda view: (view.cate, view.name))


def metric_view_get(where: str, *args) -> Optional[MetricView]:
    rows = _select(metric_view_table, _where(where, *args))
    return MetricView._from_row(rows[0]) if rows else None