"""Task templates: reusable scripts with the hosts they run on."""

import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text, select

from nightingale.models.common import (
    _connect,
    _count,
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _transaction,
    _where,
    count,
    dangerous,
    metadata,
)

task_tpl_table = Table(
    "task_tpl",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("title", String(255), nullable=False, default=""),
    Column("batch", Integer, nullable=False, default=0),
    Column("tolerance", Integer, nullable=False, default=0),
    Column("timeout", Integer, nullable=False, default=0),
    Column("pause", String(255), nullable=False, default=""),
    Column("script", Text, nullable=False, default=""),
    Column("args", String(512), nullable=False, default=""),
    Column("tags", String(255), nullable=False, default=""),
    Column("account", String(64), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

task_tpl_host_table = Table(
    "task_tpl_host",
    metadata,
    Column("ii", Integer, primary_key=True, autoincrement=True),
    Column("id", BigInteger, nullable=False),
    Column("host", String(128), nullable=False),
)

_DEFAULT_TIMEOUT = 30
_MAX_TIMEOUT = 3600 * 24
_FULLWIDTH_COMMA = "\uff0c"

_UPDATE_COLUMNS = (
    "title",
    "batch",
    "tolerance",
    "timeout",
    "pause",
    "script",
    "args",
    "tags",
    "account",
    "update_by",
    "update_at",
)


def _now() -> int:
    return int(time.time())


def _insert_hosts(conn, tpl_id: int, hosts: list[str]) -> None:
    rows = [{"id": tpl_id, "host": host.strip()} for host in hosts if host.strip()]
    if rows:
        conn.execute(task_tpl_host_table.insert(), rows)


@dataclass
class TaskTpl(_Record):
    """A script template of a business group; tags are space separated."""

    table: ClassVar[Table] = task_tpl_table

    id: int = 0
    group_id: int = 0
    title: str = ""
    batch: int = 0
    tolerance: int = 0
    timeout: int = 0
    pause: str = ""
    script: str = ""
    args: str = ""
    tags: str = ""
    account: str = ""
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    tags_json: list[str] = field(default_factory=list)

    def clean_fields(self) -> None:
        """Check the fields and normalise separators; timeout defaults to 30s."""
        if self.batch < 0:
            raise ValueError("arg(batch) should be nonnegative")
        if self.tolerance < 0:
            raise ValueError("arg(tolerance) should be nonnegative")
        if self.timeout < 0:
            raise ValueError("arg(timeout) should be nonnegative")
        if self.timeout == 0:
            self.timeout = _DEFAULT_TIMEOUT
        if self.timeout > _MAX_TIMEOUT:
            raise ValueError("arg(timeout) longer than one day")

        self.pause = self.pause.replace(_FULLWIDTH_COMMA, ",").replace(" ", "")
        self.args = self.args.replace(_FULLWIDTH_COMMA, ",")
        self.tags = self.tags.replace(_FULLWIDTH_COMMA, ",")

        if not self.title:
            raise ValueError("arg(title) is required")
        if dangerous(self.title):
            raise ValueError("arg(title) is dangerous")
        if not self.script:
            raise ValueError("arg(script) is required")
        if dangerous(self.args):
            raise ValueError("arg(args) is dangerous")
        if dangerous(self.pause):
            raise ValueError("arg(pause) is dangerous")
        if dangerous(self.tags):
            raise ValueError("arg(tags) is dangerous")

    def save(self, hosts: list[str]) -> None:
        """Insert the template with its hosts; titles are unique per group."""
        self.clean_fields()
        if count(task_tpl_table, "group_id=? and title=?", self.group_id, self.title) > 0:
            raise ValueError("task template already exists")
        with _transaction() as conn:
            self._insert(conn=conn)
            _insert_hosts(conn, self.id, hosts)

    def hosts(self) -> list[str]:
        """Return the template's hosts in the order they were stored."""
        stmt = (
            select(task_tpl_host_table.c.host)
            .where(task_tpl_host_table.c.id == self.id)
            .order_by(task_tpl_host_table.c.ii)
        )
        with _connect() as conn:
            return list(conn.execute(stmt).scalars())

    def update(self, hosts: list[str]) -> None:
        """Store the template's fields and replace its hosts."""
        self.clean_fields()
        if (
            count(
                task_tpl_table,
                "group_id=? and title=? and id <> ?",
                self.group_id,
                self.title,
                self.id,
            )
            > 0
        ):
            raise ValueError("task template already exists")
        values = {name: getattr(self, name) for name in _UPDATE_COLUMNS}
        with _transaction() as conn:
            conn.execute(
                task_tpl_table.update().where(task_tpl_table.c.id == self.id).values(**values)
            )
            _delete_rows(task_tpl_host_table, _where("id = ?", self.id), conn=conn)
            _insert_hosts(conn, self.id, hosts)

    def delete(self) -> None:
        with _transaction() as conn:
            _delete_rows(task_tpl_host_table, _where("id=?", self.id), conn=conn)
            _delete_rows(task_tpl_table, _where("id=?", self.id), conn=conn)

    def add_tags(self, tags: list[str], update_by: str) -> None:
        """Add tags that are not present yet and store them sorted."""
        for tag in tags:
            if f"{tag} " not in self.tags:
                self.tags += f"{tag} "
        self.tags = " ".join(sorted(self.tags.split())) + " "
        self.update_by = update_by
        self.update_at = _now()
        self._update_columns("tags", "update_by", "update_at")

    def del_tags(self, tags: list[str], update_by: str) -> None:
        for tag in tags:
            self.tags = self.tags.replace(f"{tag} ", "")
        self.update_by = update_by
        self.update_at = _now()
        self._update_columns("tags", "update_by", "update_at")

    def update_group(self, group_id: int, update_by: str) -> None:
        """Move the template to another business group."""
        self.group_id = group_id
        self.update_by = update_by
        self.update_at = _now()
        self._update_columns("group_id", "update_by", "update_at")


def _tpl_from_row(row: dict) -> TaskTpl:
    tpl = TaskTpl._from_row(row)
    tpl.tags_json = (tpl.tags or "").split()
    return tpl


def _query_conditions(group_id: int, query: str) -> list:
    conditions = [_where("group_id = ?", group_id)]
    for word in query.split():
        pattern = f"%{word}%"
        conditions.append(_where("title like ? or tags like ?", pattern, pattern))
    return conditions


def task_tpl_total(group_id: int, query: str) -> int:
    """Count a group's templates whose title or tags contain every query word."""
    return _count(task_tpl_table, *_query_conditions(group_id, query))


def task_tpl_gets(group_id: int, query: str, limit: int, offset: int) -> list[TaskTpl]:
    """List a group's matching templates ordered by title."""
    rows = _select(
        task_tpl_table,
        *_query_conditions(group_id, query),
        order_by="title",
        limit=limit,
        offset=offset,
    )
    return [_tpl_from_row(row) for row in rows]


def task_tpl_get(where: str, *args) -> Optional[TaskTpl]:
    rows = _select(task_tpl_table, _where(where, *args))
    return _tpl_from_row(rows[0]) if rows else None