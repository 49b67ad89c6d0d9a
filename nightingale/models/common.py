"""Database access shared by every model, plus the configs key/value store."""

import hashlib
import itertools
import os
import random
import re
import socket
import string
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, ClassVar, Iterable, Iterator, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    bindparam,
    delete,
    func,
    select,
    text,
    update,
)
from sqlalchemy import insert as sa_insert
from sqlalchemy.engine import Connection, Engine

ADMIN_ROLE = "Admin"
_PASS_SEPARATOR = "<-*Uk30^96eY*->"
_DANGEROUS_MARKS = ("<", ">", "&", "'", '"', "file://", "../")
_PHONE = re.compile(r"^\+?\d[\d-]{4,19}\d$")
_MAIL = re.compile(r"^[A-Za-z0-9_.+-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_MISSING = object()

metadata = MetaData()


def _id_column() -> Column:
    return Column(
        "id",
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )


configs_table = Table(
    "configs",
    metadata,
    _id_column(),
    Column("ckey", String(191), nullable=False),
    Column("cval", Text, nullable=False, default=""),
)

_engine: Optional[Engine] = None
_param_ids = itertools.count()


@dataclass
class Statistics:
    """Row count and latest update time of a table."""

    total: int = 0
    last_updated: int = 0


def init_db(engine: Optional[Engine]) -> None:
    """Set the engine every model query runs on."""
    global _engine
    _engine = engine


def db() -> Engine:
    """Return the engine set by init_db."""
    if _engine is None:
        raise RuntimeError("database is not initialised, call init_db() first")
    return _engine


def create_tables(engine: Engine) -> None:
    """Create every table the loaded models declare."""
    metadata.create_all(engine)


def _where(where: str, *args: Any):
    """Turn a condition with '?' placeholders into a bound SQL clause."""
    where = where.strip()
    if not where:
        return None
    values = iter(args)
    binds = []

    def substitute(_match: re.Match) -> str:
        value = next(values, _MISSING)
        if value is _MISSING:
            raise ValueError(f"not enough arguments for condition {where!r}")
        name = f"w{next(_param_ids)}"
        if isinstance(value, (list, tuple, set, frozenset)):
            binds.append(bindparam(name, value=list(value), expanding=True))
        else:
            binds.append(bindparam(name, value=value))
        return f":{name}"

    sql = re.sub(r"\?", substitute, where)
    if next(values, _MISSING) is not _MISSING:
        raise ValueError(f"too many arguments for condition {where!r}")
    return text(f"({sql})").bindparams(*binds)


@contextmanager
def _connect(conn: Optional[Connection] = None) -> Iterator[Connection]:
    if conn is not None:
        yield conn
        return
    with db().begin() as new_conn:
        yield new_conn


def _transaction():
    return db().begin()


def _apply(stmt, conditions: Iterable):
    for condition in conditions:
        if condition is not None:
            stmt = stmt.where(condition)
    return stmt


def _select(
    table: Table,
    *conditions,
    columns: Optional[Iterable[str]] = None,
    order_by: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    conn: Optional[Connection] = None,
) -> list[dict]:
    cols = [table.c[name] for name in columns] if columns else [table]
    stmt = _apply(select(*cols), conditions)
    if order_by:
        stmt = stmt.order_by(text(order_by))
    if limit is not None and limit > 0:
        stmt = stmt.limit(limit)
    if offset is not None and offset > 0:
        stmt = stmt.offset(offset)
    with _connect(conn) as c:
        return [dict(row._mapping) for row in c.execute(stmt)]


def _pluck(
    table: Table,
    column: str,
    *conditions,
    order_by: Optional[str] = None,
    distinct: bool = False,
) -> list:
    stmt = _apply(select(table.c[column]), conditions)
    if distinct:
        stmt = stmt.distinct()
    if order_by:
        stmt = stmt.order_by(text(order_by))
    with _connect() as c:
        return [row[0] for row in c.execute(stmt)]


def _count(table: Table, *conditions, conn: Optional[Connection] = None) -> int:
    stmt = _apply(select(func.count()).select_from(table), conditions)
    with _connect(conn) as c:
        return c.execute(stmt).scalar_one()


def _update_rows(table: Table, values: dict, *conditions, conn: Optional[Connection] = None) -> int:
    stmt = _apply(update(table), conditions).values(**values)
    with _connect(conn) as c:
        return c.execute(stmt).rowcount


def _delete_rows(table: Table, *conditions, conn: Optional[Connection] = None) -> int:
    stmt = _apply(delete(table), conditions)
    with _connect(conn) as c:
        return c.execute(stmt).rowcount


def _insert_row(table: Table, row: dict, conn: Optional[Connection] = None):
    values = dict(row)
    if "id" in table.c and not values.get("id"):
        values.pop("id", None)
    with _connect(conn) as c:
        result = c.execute(sa_insert(table).values(**values))
        key = result.inserted_primary_key
        return key[0] if key else None


def count(table: Table, where: str, *args: Any) -> int:
    """Count the rows matching a condition."""
    return _count(table, _where(where, *args))


def exists(table: Table, where: str, *args: Any) -> bool:
    """Tell whether any row matches a condition."""
    return count(table, where, *args) > 0


def insert(table: Table, row: dict):
    """Insert one row and return its new primary key, if the table has one."""
    return _insert_row(table, row)


def statistics(table: Table, time_column: str, where: str, *args: Any) -> Statistics:
    """Count rows and find the latest value of a time column."""
    stmt = select(func.count(), func.max(table.c[time_column])).select_from(table)
    stmt = _apply(stmt, [_where(where, *args)])
    with _connect() as c:
        total, last = c.execute(stmt).one()
    return Statistics(total=total, last_updated=last or 0)


class _Record:
    """Mixin for dataclasses stored as rows of one table."""

    table: ClassVar[Table]

    @classmethod
    def _from_row(cls, row: dict):
        return cls(**row)

    def _values(self) -> dict:
        return {column.name: getattr(self, column.name) for column in self.table.columns}

    def _insert(self, conn: Optional[Connection] = None) -> None:
        key = _insert_row(self.table, self._values(), conn)
        if key is not None:
            self.id = key

    def _update_columns(self, *names: str, conn: Optional[Connection] = None) -> None:
        if not names:
            raise ValueError("no columns given to update")
        unknown = [name for name in names if name not in self.table.c]
        if unknown:
            raise ValueError(f"unknown columns: {', '.join(unknown)}")
        values = {name: getattr(self, name) for name in names}
        _update_rows(self.table, values, self.table.c.id == self.id, conn=conn)


def dangerous(text: str) -> bool:
    """Tell whether a string holds characters unsafe for names and titles."""
    return any(mark in text for mark in _DANGEROUS_MARKS)


def is_phone(text: str) -> bool:
    """Tell whether a string looks like a phone number."""
    return bool(_PHONE.match(text))


def is_mail(text: str) -> bool:
    """Tell whether a string looks like an e-mail address."""
    return bool(_MAIL.match(text))


def _md5(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def crypto_pass(raw: str) -> str:
    """Hash a password with the stored salt."""
    salt = configs_get("salt")
    return _md5(salt + _PASS_SEPARATOR + raw)


def configs_get(ckey: str) -> str:
    """Return the value stored under a key, or an empty string."""
    values = _pluck(configs_table, "cval", _where("ckey=?", ckey))
    return values[0] if values else ""


def configs_set(ckey: str, cval: str) -> None:
    """Store a value under a key, inserting or updating."""
    if count(configs_table, "ckey=?", ckey) == 0:
        _insert_row(configs_table, {"ckey": ckey, "cval": cval})
    else:
        _update_rows(configs_table, {"cval": cval}, _where("ckey=?", ckey))


def configs_gets(ckeys: list[str]) -> dict[str, str]:
    """Return the values of several keys, empty strings for missing ones."""
    result = {key: "" for key in ckeys}
    for row in _select(configs_table, _where("ckey in ?", list(ckeys))):
        result[row["ckey"]] = row["cval"]
    return result


def init_salt() -> None:
    """Generate and store a random salt unless one exists already."""
    if configs_get("salt"):
        return
    letters = "".join(random.choices(string.ascii_letters, k=6))
    content = f"{socket.gethostname()}{os.getpid()}{time.time_ns()}{letters}"
    configs_set("salt", _md5(content))