"""Monitored targets (hosts) and their tags."""

import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from sqlalchemy import BigInteger, Column, String, Table

from nightingale.models.busi_group import BusiGroup, busi_group_get_by_id
from nightingale.models.common import (
    Statistics,
    _count,
    _delete_rows,
    _id_column,
    _pluck,
    _Record,
    _select,
    _update_rows,
    _where,
    metadata,
    statistics,
)

target_table = Table(
    "target",
    metadata,
    _id_column(),
    Column("group_id", BigInteger, nullable=False, default=0),
    Column("cluster", String(128), nullable=False, default=""),
    Column("ident", String(191), nullable=False),
    Column("note", String(255), nullable=False, default=""),
    Column("tags", String(512), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
)


def _now() -> int:
    return int(time.time())


@dataclass
class Target(_Record):
    """A monitored host; tags are stored space separated with a trailing space."""

    table: ClassVar[Table] = target_table

    id: int = 0
    group_id: int = 0
    cluster: str = ""
    ident: str = ""
    note: str = ""
    tags: str = ""
    update_at: int = 0
    group_obj: Optional[BusiGroup] = None
    tags_json: list[str] = field(default_factory=list)
    tags_map: dict[str, str] = field(default_factory=dict)

    def add(self) -> None:
        """Insert the target unless one with the same ident exists."""
        if target_get("ident = ?", self.ident) is None:
            self._insert()

    def fill_group(self, cache: dict[int, Optional[BusiGroup]]) -> None:
        """Attach the owning business group, looking it up through a cache."""
        if self.group_id <= 0:
            return
        if self.group_id in cache:
            self.group_obj = cache[self.group_id]
            return
        group = busi_group_get_by_id(self.group_id)
        self.group_obj = group
        cache[self.group_id] = group

    def add_tags(self, tags: list[str]) -> None:
        """Add tags that are not present yet and store them sorted."""
        for tag in tags:
            if f"{tag} " not in self.tags:
                self.tags += f"{tag} "
        self.tags = " ".join(sorted(self.tags.split())) + " "
        self.update_at = _now()
        self._update_columns("tags", "update_at")

    def del_tags(self, tags: list[str]) -> None:
        for tag in tags:
            self.tags = self.tags.replace(f"{tag} ", "")
        self.update_at = _now()
        self._update_columns("tags", "update_at")


def _with_tags(row: dict) -> Target:
    target = Target._from_row(row)
    target.tags_json = (target.tags or "").split()
    return target


def target_statistics(cluster: str) -> Statistics:
    if cluster:
        return statistics(target_table, "update_at", "cluster = ?", cluster)
    return statistics(target_table, "update_at", "")


def target_del(idents: list[str]) -> None:
    if not idents:
        raise ValueError("idents empty")
    _delete_rows(target_table, _where("ident in ?", list(idents)))


def _target_conditions(bgid: int, clusters: list[str], query: str) -> list:
    conditions = []
    if bgid >= 0:
        conditions.append(_where("group_id=?", bgid))
    if clusters:
        conditions.append(_where("cluster in ?", list(clusters)))
    for word in query.split():
        pattern = f"%{word}%"
        conditions.append(
            _where("ident like ? or note like ? or tags like ?", pattern, pattern, pattern)
        )
    return conditions


def target_total(bgid: int, clusters: list[str], query: str) -> int:
    """Count targets; a negative bgid means any group."""
    return _count(target_table, *_target_conditions(bgid, clusters, query))


def target_gets(
    bgid: int, clusters: list[str], query: str, limit: int, offset: int
) -> list[Target]:
    """List targets ordered by ident; a negative bgid means any group."""
    rows = _select(
        target_table,
        *_target_conditions(bgid, clusters, query),
        order_by="ident",
        limit=limit,
        offset=offset,
    )
    return [_with_tags(row) for row in rows]


def target_gets_by_cluster(cluster: str) -> list[Target]:
    conditions = [_where("cluster = ?", cluster)] if cluster else []
    return [Target._from_row(row) for row in _select(target_table, *conditions)]


def target_update_note(idents: list[str], note: str) -> None:
    _update_rows(
        target_table,
        {"note": note, "update_at": _now()},
        _where("ident in ?", list(idents)),
    )


def target_update_bgid(idents: list[str], bgid: int, clear_tags: bool) -> None:
    values = {"group_id": bgid, "update_at": _now()}
    if clear_tags:
        values["tags"] = ""
    _update_rows(target_table, values, _where("ident in ?", list(idents)))


def target_get(where: str, *args) -> Optional[Target]:
    rows = _select(target_table, _where(where, *args))
    return _with_tags(rows[0]) if rows else None


def target_get_by_id(target_id: int) -> Optional[Target]:
    return target_get("id = ?", target_id)


def target_get_by_ident(ident: str) -> Optional[Target]:
    return target_get("ident = ?", ident)


def target_get_tags(idents: list[str]) -> list[str]:
    """Return the sorted union of the tags of the given targets."""
    if not idents:
        return []
    values = _pluck(target_table, "tags", _where("ident in ?", list(idents)), distinct=True)
    return sorted({tag for tags in values for tag in (tags or "").split()})


def target_idents(ids: list[int]) -> list[str]:
    if not ids:
        return []
    return _pluck(target_table, "ident", _where("id in ?", list(ids)))


def target_ids(idents: list[str]) -> list[int]:
    if not idents:
        return []
    return _pluck(target_table, "id", _where("ident in ?", list(idents)))


def idents_filter(idents: list[str], where: str, *args) -> list[str]:
    """Keep the idents whose targets also match a condition."""
    if not idents:
        return []
    return _pluck(
        target_table, "ident", _where("ident in ?", list(idents)), _where(where, *args)
    )