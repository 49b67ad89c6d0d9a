import pytest
from sqlalchemy import create_engine

from nightingale.models.alert_aggr_view import (
    AlertAggrView,
    alert_aggr_view_del,
    alert_aggr_view_get,
    alert_aggr_view_gets,
)
from nightingale.models.common import create_tables, init_db


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'aggr.sqlite'}")
    init_db(engine)
    create_tables(engine)
    yield engine
    engine.dispose()


def test_verify_trims_and_accepts_valid_rule():
    view = AlertAggrView(name="  By cluster ", rule=" field:cluster::tagkey:app ")
    view.verify()
    assert view.name == "By cluster"
    assert view.rule == "field:cluster::tagkey:app"


@pytest.mark.parametrize(
    "name, rule, message",
    [
        ("  ", "field:cluster", "name is blank"),
        ("v", "   ", "rule is blank"),
        ("v", "cluster", "rule invalid"),
        ("v", "label:app", "rule invalid"),
        ("v", "field:a:b", "rule invalid"),
        ("v", "field:prom_ql", "unsupported field: prom_ql"),
    ],
)
def test_verify_errors(name, rule, message):
    with pytest.raises(ValueError, match=message):
        AlertAggrView(name=name, rule=rule).verify()


def test_add_sets_cate_and_round_trips():
    view = AlertAggrView(name="mine", rule="field:severity", create_by=5)
    view.add()
    assert view.cate == 1
    loaded = alert_aggr_view_get("id=?", view.id)
    assert loaded.name == "mine"
    assert loaded.rule == "field:severity"
    assert loaded.create_by == 5
    assert loaded.create_at == view.create_at


def test_add_invalid_raises():
    with pytest.raises(ValueError, match="unsupported field: hash"):
        AlertAggrView(name="bad", rule="field:hash").add()


def test_gets_only_own_views_sorted_by_name():
    for name in ("zeta", "alpha", "mid"):
        AlertAggrView(name=name, rule="field:cluster", create_by=1).add()
    AlertAggrView(name="other", rule="field:cluster", create_by=2).add()
    names = [view.name for view in alert_aggr_view_gets(1)]
    assert names == ["alpha", "mid", "zeta"]


def test_update_changes_name_and_rule():
    view = AlertAggrView(name="old", rule="field:cluster", create_by=1)
    view.add()
    view.update("new", "tagkey:app")
    loaded = alert_aggr_view_get("id=?", view.id)
    assert loaded.name == "new"
    assert loaded.rule == "tagkey:app"


def test_delete_requires_creator():
    view = AlertAggrView(name="v", rule="field:cluster", create_by=1)
    view.add()
    alert_aggr_view_del([view.id], 2)
    assert alert_aggr_view_get("id=?", view.id) is not None and alert_aggr_view_get(
        "id=?", view.id
    ).name == "v"
    alert_aggr_view_del([view.id], 1)
    assert alert_aggr_view_get("id=?", view.id) is None


def test_get_missing_returns_none():
    assert alert_aggr_view_get("id=?", 12345) is None