"""Collect rules: port, process, script and log collection settings for targets."""

import json
import time
from dataclasses import dataclass, field, fields
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, Integer, String, Table, Text

from nightingale.models.common import (
    _delete_rows,
    _id_column,
    _Record,
    _select,
    _where,
    dangerous,
    exists,
    metadata,
)

collect_rule_table = Table(
    "collect_rule",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("cluster", String(128), nullable=False, default=""),
    Column("target_idents", String(512), nullable=False, default=""),
    Column("target_tags", String(512), nullable=False, default=""),
    Column("name", String(191), nullable=False, default=""),
    Column("note", String(255), nullable=False, default=""),
    Column("step", Integer, nullable=False, default=0),
    Column("type", String(64), nullable=False, default=""),
    Column("data", Text, nullable=False, default=""),
    Column("append_tags", String(255), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

_DEFAULT_STEP = 15


@dataclass
class PortConfig:
    port: int = 0
    protocol: str = ""  # tcp or udp
    timeout: int = 0  # seconds


@dataclass
class ProcConfig:
    method: str = ""
    param: str = ""


@dataclass
class ScriptConfig:
    path: str = ""
    params: str = ""
    stdin: str = ""
    env: dict[str, str] = field(default_factory=dict)
    timeout: int = 0  # seconds


@dataclass
class LogConfig:
    file_path: str = ""
    func: str = ""
    pattern: str = ""
    tags_pattern: dict[str, str] = field(default_factory=dict)


_CONFIG_TYPES = {
    "port": PortConfig,
    "script": ScriptConfig,
    "log": LogConfig,
    "process": ProcConfig,
}


def _decode_config(cls, raw: str):
    """Decode a JSON object into a config dataclass, checking field types."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid {cls.__name__} data: {exc}") from exc
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"{cls.__name__} data must be a JSON object")

    values = {}
    for item in fields(cls):
        value = data.get(item.name)
        if value is None:
            continue
        if item.default_factory is dict:
            if not isinstance(value, dict) or not all(
                entry is None or isinstance(entry, str) for entry in value.values()
            ):
                raise ValueError(f"{item.name} must be an object of strings")
            values[item.name] = {key: entry or "" for key, entry in value.items()}
        elif isinstance(item.default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{item.name} must be an integer")
            values[item.name] = value
        else:
            if not isinstance(value, str):
                raise ValueError(f"{item.name} must be a string")
            values[item.name] = value
    return cls(**values)


@dataclass
class CollectRule(_Record):
    """A collect rule; target and tag lists are stored space separated."""

    table: ClassVar[Table] = collect_rule_table

    id: int = 0
    group_id: int = 0
    cluster: str = ""
    target_idents: str = ""
    target_tags: str = ""
    name: str = ""
    note: str = ""
    step: int = 0
    type: str = ""
    data: str = ""
    append_tags: str = ""
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    target_idents_json: list[str] = field(default_factory=list)
    target_tags_json: list[str] = field(default_factory=list)
    append_tags_json: list[str] = field(default_factory=list)

    def fe2db(self) -> None:
        """Join the list fields into their stored form."""
        self.target_idents = " ".join(self.target_idents_json)
        self.target_tags = " ".join(self.target_tags_json)
        self.append_tags = " ".join(self.append_tags_json)

    def db2fe(self) -> None:
        """Split the stored fields into lists."""
        self.target_idents_json = (self.target_idents or "").split()
        self.target_tags_json = (self.target_tags or "").split()
        self.append_tags_json = (self.append_tags or "").split()

    def verify(self) -> None:
        """Check the rule and that its data decodes for its type; step defaults to 15."""
        if dangerous(self.name):
            raise ValueError("Name has invalid characters")
        if not self.target_idents and not self.target_tags:
            raise ValueError("target_idents and target_tags are both blank")
        if self.step <= 0:
            self.step = _DEFAULT_STEP
        if not self.cluster:
            raise ValueError("cluster is blank")
        config_type = _CONFIG_TYPES.get(self.type)
        if config_type is None:
            raise ValueError("unsupported type")
        _decode_config(config_type, self.data)

    def add(self) -> None:
        self.verify()
        if collect_rule_exists(
            "group_id=? and type=? and name=? and cluster=?",
            self.group_id,
            self.type,
            self.name,
            self.cluster,
        ):
            raise ValueError("CollectRule already exists")
        now = int(time.time())
        self.create_at = now
        self.update_at = now
        self._insert()

    def update(self, other: "CollectRule") -> None:
        """Replace this rule's settings with another's, keeping identity and type."""
        if self.name != other.name and collect_rule_exists(
            "group_id=? and type=? and name=? and id <> ? and cluster=?",
            self.group_id,
            self.type,
            other.name,
            self.id,
            self.cluster,
        ):
            raise ValueError("CollectRule already exists")

        other.fe2db()
        other.id = self.id
        other.group_id = self.group_id
        other.type = self.type
        other.create_at = self.create_at
        other.create_by = self.create_by
        other.update_at = int(time.time())

        names = [column.name for column in collect_rule_table.columns if column.name != "id"]
        for name in names:
            setattr(self, name, getattr(other, name))
        self.db2fe()
        self._update_columns(*names)


def _rule_from_row(row: dict) -> CollectRule:
    rule = CollectRule._from_row(row)
    rule.db2fe()
    return rule


def collect_rule_dels(ids: list[int], busi_group_id: int) -> None:
    """Delete rules, only those of the given business group."""
    if not ids:
        return
    _delete_rows(collect_rule_table, _where("id in ? and group_id=?", list(ids), busi_group_id))


def collect_rule_exists(where: str, *args) -> bool:
    return exists(collect_rule_table, where, *args)


def collect_rule_gets(group_id: int, typ: str) -> list[CollectRule]:
    """List a group's rules ordered by name, of one type when given."""
    conditions = [_where("group_id=?", group_id)]
    if typ:
        conditions.append(_where("type = ?", typ))
    rows = _select(collect_rule_table, *conditions, order_by="name")
    return [_rule_from_row(row) for row in rows]


def collect_rule_get(where: str, *args) -> Optional[CollectRule]:
    rows = _select(collect_rule_table, _where(where, *args))
    return _rule_from_row(rows[0]) if rows else None


def collect_rule_get_by_id(rule_id: int) -> Optional[CollectRule]:
    return collect_rule_get("id=?", rule_id)