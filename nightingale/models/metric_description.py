"""Human readable descriptions of metric names."""

import time
from dataclasses import dataclass
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, String, Table, Text

from nightingale.models.common import (
    Statistics,
    _count,
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _where,
    metadata,
    statistics,
)

metric_description_table = Table(
    "metric_description",
    metadata,
    _id_column(),
    Column("metric", String(191), nullable=False, default=""),
    Column("description", Text, nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
)


@dataclass
class MetricDescription(_Record):
    """The description of one metric."""

    table: ClassVar[Table] = metric_description_table

    id: int = 0
    metric: str = ""
    description: str = ""
    update_at: int = 0

    def update(self, description: str, now: int) -> None:
        self.description = description
        self.update_at = now
        self._update_columns("description", "update_at")


def metric_description_update(descriptions: list[MetricDescription]) -> None:
    """Insert new descriptions and update existing ones, matched by metric."""
    now = int(time.time())
    for item in descriptions:
        item.metric = item.metric.strip()
        existing = metric_description_get("metric = ?", item.metric)
        if existing is None:
            item.update_at = now
            item._insert()
        else:
            existing.update(item.description, now)


def metric_description_get(where: str, *args) -> Optional[MetricDescription]:
    rows = _select(metric_description_table, _where(where, *args))
    return MetricDescription._from_row(rows[0]) if rows else None


def _query_conditions(query: str) -> list:
    if not query:
        return []
    pattern = f"%{query}%"
    return [_where("metric like ? or description like ?", pattern, pattern)]


def metric_description_total(query: str) -> int:
    return _count(metric_description_table, *_query_conditions(query))


def metric_description_gets(query: str, limit: int, offset: int) -> list[MetricDescription]:
    rows = _select(
        metric_description_table,
        *_query_conditions(query),
        order_by="metric",
        limit=limit,
        offset=offset,
    )
    return [MetricDescription._from_row(row) for row in rows]


def metric_desc_get_all() -> list[MetricDescription]:
    return [MetricDescription._from_row(row) for row in _select(metric_description_table)]


def metric_desc_statistics() -> Statistics:
    return statistics(metric_description_table, "update_at", "")


def metric_description_mapper(metrics: list[str]) -> dict[str, str]:
    """Map each known metric among the given names to its description."""
    if not metrics:
        return {}
    rows = _select(metric_description_table, _where("metric in ?", list(metrics)))
    return {row["metric"]: row["description"] for row in rows}


def metric_description_del(ids: list[int]) -> None:
    if not ids:
        return
    _delete_rows(metric_description_table, _where("id in ?", list(ids)))