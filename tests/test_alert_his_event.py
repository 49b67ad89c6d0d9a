import pytest
from sqlalchemy import create_engine

from nightingale.models.alert_his_event import (
    AlertHisEvent,
    alert_his_event_get,
    alert_his_event_get_by_id,
    alert_his_event_gets,
    alert_his_event_total,
)
from nightingale.models.common import create_tables, init_db
from nightingale.models.user import UserGroup


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'his.sqlite'}")
    init_db(engine)
    create_tables(engine)
    yield engine
    engine.dispose()


def _event(**kwargs):
    values = dict(
        cluster="c1",
        group_id=1,
        rule_id=7,
        rule_name="cpu high",
        severity=1,
        last_eval_time=100,
        tags="ident=host1,,app=web",
    )
    values.update(kwargs)
    event = AlertHisEvent(**values)
    event.add()
    return event


def test_db2fe_splits_fields():
    event = AlertHisEvent(
        notify_channels="email sms", notify_groups="1 2", callbacks="", tags="a=1,,b=2"
    )
    event.db2fe()
    assert event.notify_channels_json == ["email", "sms"]
    assert event.notify_groups_json == ["1", "2"]
    assert event.callbacks_json == []
    assert event.tags_json == ["a=1", "b=2"]


def test_db2fe_empty_tags_gives_one_empty_item():
    event = AlertHisEvent(tags="")
    event.db2fe()
    assert event.tags_json == [""]


def test_add_and_get_by_id_round_trip():
    event = _event(notify_channels="email")
    loaded = alert_his_event_get_by_id(event.id)
    assert loaded.rule_name == "cpu high"
    assert loaded.notify_channels_json == ["email"]
    assert loaded.tags_json == ["ident=host1", "app=web"]
    assert loaded.notify_groups_obj == []


def test_get_missing_returns_none():
    assert alert_his_event_get("id=?", 999) is None


def test_total_filters():
    _event(severity=1, is_recovered=0)
    _event(severity=2, is_recovered=1)
    _event(severity=2, is_recovered=1, cluster="c2")
    _event(last_eval_time=500)
    assert alert_his_event_total(0, 0, 200, -1, -1, [], "") == 3
    assert alert_his_event_total(0, 0, 200, 2, -1, [], "") == 2
    assert alert_his_event_total(0, 0, 200, -1, 1, ["c1"], "") == 1
    assert alert_his_event_total(0, 0, 1000, -1, -1, [], "") == 4


def test_query_matches_rule_name_or_tags():
    _event(rule_name="disk full", tags="mount=/data")
    _event(rule_name="cpu high", tags="app=api")
    assert alert_his_event_total(0, 0, 200, -1, -1, [], "disk") == 1
    assert alert_his_event_total(0, 0, 200, -1, -1, [], "api") == 1
    assert alert_his_event_total(0, 0, 200, -1, -1, [], "cpu api") == 1


def test_gets_orders_by_id_desc_and_pages():
    ids = [_event().id for _ in range(3)]
    events = alert_his_event_gets(0, 0, 200, -1, -1, [], "", 10, 0)
    assert [e.id for e in events] == sorted(ids, reverse=True)
    page = alert_his_event_gets(0, 0, 200, -1, -1, [], "", 1, 1)
    assert [e.id for e in page] == [sorted(ids, reverse=True)[1]]


def test_gets_filters_by_group():
    _event(group_id=1)
    other = _event(group_id=2)
    events = alert_his_event_gets(2, 0, 200, -1, -1, [], "", 10, 0)
    assert [e.id for e in events] == [other.id]


def test_fill_notify_groups_skips_missing_and_invalid():
    group = UserGroup(name="ops")
    group.add()
    event = AlertHisEvent(notify_groups_json=[str(group.id), "abc", "9999"])
    cache = {}
    event.fill_notify_groups(cache)
    assert [g.name for g in event.notify_groups_obj] == ["ops"]
    assert group.id in cache


def test_fill_notify_groups_uses_cache():
    cached = UserGroup(id=42, name="cached")
    event = AlertHisEvent(notify_groups_json=["42"])
    event.fill_notify_groups({42: cached})
    assert event.notify_groups_obj == [cached]