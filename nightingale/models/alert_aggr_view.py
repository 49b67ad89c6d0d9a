"""Saved aggregation rules for the alert aggregation view."""

import time
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table

from nightingale.models.common import (
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _where,
    metadata,
)

alert_aggr_view_table = Table(
    "alert_aggr_view",
    metadata,
    _id_column(),
    Column("name", String(191), nullable=False, default=""),
    Column("rule", String(2048), nullable=False, default=""),
    Column("cate", Integer, nullable=False, default=0),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", BigInteger, nullable=False, default=0),
    Column("update_at", BigInteger, nullable=False, default=0),
)

_VALID_FIELDS = frozenset(
    {
        "cluster",
        "group_id",
        "group_name",
        "rule_id",
        "rule_name",
        "severity",
        "runbook_url",
        "target_ident",
        "target_note",
    }
)


@dataclass
class AlertAggrView(_Record):
    """A named aggregation rule such as 'field:cluster::tagkey:app'.

    cate 0 views are shared by everyone, cate 1 views belong to their creator.
    """

    table: ClassVar[Table] = alert_aggr_view_table

    id: int = 0
    name: str = ""
    rule: str = ""
    cate: int = 0
    create_at: int = 0
    create_by: int = 0
    update_at: int = 0

    def verify(self) -> None:
        self.name = self.name.strip()
        if not self.name:
            raise ValueError("name is blank")
        self.rule = self.rule.strip()
        if not self.rule:
            raise ValueError("rule is blank")
        for part in self.rule.split("::"):
            pair = part.split(":")
            if len(pair) != 2 or pair[0] not in ("field", "tagkey"):
                raise ValueError("rule invalid")
            if pair[0] == "field" and pair[1] not in _VALID_FIELDS:
                raise ValueError(f"unsupported field: {pair[1]}")

    def add(self) -> None:
        self.verify()
        now = int(time.time())
        self.create_at = now
        self.update_at = now
        self.cate = 1
        self._insert()

    def update(self, name: str, rule: str) -> None:
        """Check the current view, then store the new name and rule."""
        self.verify()
        self.update_at = int(time.time())
        self.name = name
        self.rule = rule
        self._update_columns("name", "rule", "update_at")


def alert_aggr_view_del(ids: list[int], create_by: Any) -> None:
    """Delete views, only those created by the given user."""
    if not ids:
        return
    _delete_rows(alert_aggr_view_table, _where("id in ? and create_by = ?", list(ids), create_by))


def alert_aggr_view_gets(create_by: Any) -> list[AlertAggrView]:
    """Return the user's views and the shared ones, ordered by cate then name."""
    rows = _select(alert_aggr_view_table, _where("create_by = ? or cate = 0", create_by))
    views = [AlertAggrView._from_row(row) for row in rows]
    return sorted(views, key=lambda view: (view.cate, view.name))


def alert_aggr_view_get(where: str, *args) -> Optional[AlertAggrView]:
    rows = _select(alert_aggr_view_table, _where(where, *args))
    return AlertAggrView._from_row(rows[0]) if rows else None