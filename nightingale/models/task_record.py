"""Records of tasks that were started from the task centre."""

from dataclasses import dataclass
from typing import ClassVar

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text

from nightingale.models.common import (
    _count,
    _id_column,
    _Record,
    _select,
    _where,
    metadata,
)

task_record_table = Table(
    "task_record",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("ibex_address", String(128), nullable=False, default=""),
    Column("ibex_auth_user", String(128), nullable=False, default=""),
    Column("ibex_auth_pass", String(128), nullable=False, default=""),
    Column("title", String(255), nullable=False, default=""),
    Column("account", String(64), nullable=False, default=""),
    Column("batch", Integer, nullable=False, default=0),
    Column("tolerance", Integer, nullable=False, default=0),
    Column("timeout", Integer, nullable=False, default=0),
    Column("pause", String(255), nullable=False, default=""),
    Column("script", Text, nullable=False, default=""),
    Column("args", String(512), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("is_done", Integer, nullable=False, default=0),
)


@dataclass
class TaskRecord(_Record):
    """A task sent to the task executor on behalf of a business group."""

    table: ClassVar[Table] = task_record_table

    id: int = 0
    group_id: int = 0
    ibex_address: str = ""
    ibex_auth_user: str = ""
    ibex_auth_pass: str = ""
    title: str = ""
    account: str = ""
    batch: int = 0
    tolerance: int = 0
    timeout: int = 0
    pause: str = ""
    script: str = ""
    args: str = ""
    create_at: int = 0
    create_by: str = ""
    is_done: int = 0

    def add(self) -> None:
        self._insert()

    def update_is_done(self, is_done: int) -> None:
        self.is_done = is_done
        self._update_columns("is_done")


def _record_conditions(bgid: int, begin_time: int, create_by: str, query: str) -> list:
    conditions = [_where("create_at > ? and group_id = ?", begin_time, bgid)]
    if create_by:
        conditions.append(_where("create_by = ?", create_by))
    if query:
        conditions.append(_where("title like ?", f"%{query}%"))
    return conditions


def task_record_total(bgid: int, begin_time: int, create_by: str, query: str) -> int:
    """Count a group's records created after begin_time."""
    return _count(task_record_table, *_record_conditions(bgid, begin_time, create_by, query))


def task_record_gets(
    bgid: int, begin_time: int, create_by: str, query: str, limit: int, offset: int
) -> list[TaskRecord]:
    """List a group's records created after begin_time, newest first."""
    rows = _select(
        task_record_table,
        *_record_conditions(bgid, begin_time, create_by, query),
        order_by="create_at desc",
        limit=limit,
        offset=offset,
    )
    return [TaskRecord._from_row(row) for row in rows]