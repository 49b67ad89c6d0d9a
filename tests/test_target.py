import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from nightingale.models.busi_group import busi_group_add
from nightingale.models.common import create_tables, init_db
from nightingale.models.target import (
    Target,
    idents_filter,
    target_del,
    target_get,
    target_get_by_id,
    target_get_by_ident,
    target_get_tags,
    target_gets,
    target_gets_by_cluster,
    target_ids,
    target_idents,
    target_statistics,
    target_total,
    target_update_bgid,
    target_update_note,
)


@pytest.fixture(autouse=True)
def database():
    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    create_tables(engine)
    init_db(engine)
    yield engine
    init_db(None)


@pytest.fixture
def hosts():
    Target(ident="b-host", cluster="c1", group_id=1, note="db").add()
    Target(ident="a-host", cluster="c2", group_id=1).add()
    Target(ident="c-host", cluster="c1", group_id=2).add()


def _idents(targets):
    return [t.ident for t in targets]


def test_add_is_idempotent():
    Target(ident="host1").add()
    Target(ident="host1", note="other").add()
    assert target_total(-1, [], "") == 1
    assert target_get_by_ident("host1").note == ""


def test_gets_ordered_and_filtered(hosts):
    assert _idents(target_gets(-1, [], "", 0, 0)) == ["a-host", "b-host", "c-host"]
    assert _idents(target_gets(1, [], "", 0, 0)) == ["a-host", "b-host"]
    assert _idents(target_gets(-1, ["c1"], "", 0, 0)) == ["b-host", "c-host"]
    assert _idents(target_gets(-1, [], "db", 0, 0)) == ["b-host"]
    assert _idents(target_gets(-1, [], "", 1, 1)) == ["b-host"]


def test_total_matches_gets(hosts):
    for bgid, clusters, query in [(-1, [], ""), (1, [], ""), (-1, ["c1"], ""), (2, ["c1"], "host")]:
        assert target_total(bgid, clusters, query) == len(target_gets(bgid, clusters, query, 0, 0))


def test_add_tags_sorted_with_trailing_space():
    Target(ident="host1").add()
    target = target_get_by_ident("host1")
    target.add_tags(["zone=x", "app=y"])
    stored = target_get_by_ident("host1")
    assert stored.tags == "app=y zone=x "
    assert stored.tags_json == ["app=y", "zone=x"]
    stored.add_tags(["app=y"])
    assert target_get_by_ident("host1").tags_json == ["app=y", "zone=x"]


def test_del_tags():
    Target(ident="host1").add()
    target = target_get_by_ident("host1")
    target.add_tags(["zone=x", "app=y"])
    target.del_tags(["zone=x"])
    assert target_get_by_ident("host1").tags_json == ["app=y"]


def test_get_tags_union_sorted():
    Target(ident="h1", tags="b=1 a=1 ").add()
    Target(ident="h2", tags="c=1 a=1 ").add()
    Target(ident="h3", tags="z=1 ").add()
    assert target_get_tags(["h1", "h2"]) == ["a=1", "b=1", "c=1"]
    assert target_get_tags([]) == []


def test_del_requires_idents(hosts):
    with pytest.raises(ValueError, match="idents empty"):
        target_del([])
    target_del(["a-host"])
    assert target_get_by_ident("a-host") is None
    assert target_total(-1, [], "") == 2


def test_update_bgid_and_note():
    Target(ident="h1", group_id=1, tags="a=1 ").add()
    target_update_bgid(["h1"], 7, True)
    stored = target_get_by_ident("h1")
    assert stored.group_id == 7
    assert stored.tags == ""
    target_update_note(["h1"], "primary")
    assert target_get_by_ident("h1").note == "primary"


def test_update_bgid_keeps_tags():
    Target(ident="h1", group_id=1, tags="a=1 ").add()
    target_update_bgid(["h1"], 3, False)
    assert target_get_by_ident("h1").tags == "a=1 "


def test_ids_and_idents_round_trip(hosts):
    ids = target_ids(["a-host", "c-host"])
    assert sorted(target_idents(ids)) == ["a-host", "c-host"]
    assert target_get_by_id(ids[0]).ident in {"a-host", "c-host"}
    assert target_ids([]) == []
    assert target_idents([]) == []


def test_idents_filter(hosts):
    assert sorted(idents_filter(["a-host", "b-host", "c-host"], "cluster = ?", "c1")) == [
        "b-host",
        "c-host",
    ]
    assert idents_filter([], "cluster = ?", "c1") == []


def test_gets_by_cluster_and_statistics(hosts):
    assert sorted(_idents(target_gets_by_cluster("c1"))) == ["b-host", "c-host"]
    assert len(target_gets_by_cluster("")) == 3
    assert target_statistics("c1").total == 2
    assert target_statistics("").total == 3


def test_fill_group_uses_cache():
    group = busi_group_add("infra", 0, "", [], "root")
    target = Target(ident="h1", group_id=group.id)
    cache = {}
    target.fill_group(cache)
    assert target.group_obj.name == "infra"
    assert cache[group.id] is target.group_obj
    other = Target(ident="h2", group_id=group.id)
    other.fill_group(cache)
    assert other.group_obj is target.group_obj


def test_fill_group_skips_ungrouped():
    target = Target(ident="h1", group_id=0)
    cache = {}
    target.fill_group(cache)
    assert target.group_obj is None
    assert cache == {}


def test_get_returns_none_when_missing():
    assert target_get("ident = ?", "missing") is None