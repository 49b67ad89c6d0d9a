import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from nightingale.models.common import create_tables, init_db
from nightingale.models.metric_description import (
    MetricDescription,
    metric_desc_get_all,
    metric_desc_statistics,
    metric_description_del,
    metric_description_get,
    metric_description_gets,
    metric_description_mapper,
    metric_description_total,
    metric_description_update,
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
def described():
    metric_description_update(
        [
            MetricDescription(metric="mem_used", description="memory in use"),
            MetricDescription(metric="cpu_idle", description="idle cpu share"),
            MetricDescription(metric="disk_free", description="free disk bytes"),
        ]
    )


def test_update_inserts_then_updates():
    metric_description_update([MetricDescription(metric="cpu_idle", description="first")])
    metric_description_update([MetricDescription(metric="cpu_idle", description="second")])
    everything = metric_desc_get_all()
    assert [(d.metric, d.description) for d in everything] == [("cpu_idle", "second")]


def test_update_strips_metric_name():
    metric_description_update([MetricDescription(metric="  cpu_idle ", description="idle")])
    stored = metric_description_get("metric = ?", "cpu_idle")
    assert stored.description == "idle"
    assert stored.update_at > 0


def test_gets_ordered_by_metric(described):
    names = [d.metric for d in metric_description_gets("", 0, 0)]
    assert names == sorted(names)
    assert names == ["cpu_idle", "disk_free", "mem_used"]


def test_query_matches_metric_or_description(described):
    assert [d.metric for d in metric_description_gets("disk", 0, 0)] == ["disk_free"]
    assert [d.metric for d in metric_description_gets("memory", 0, 0)] == ["mem_used"]
    assert metric_description_total("disk") == 1
    assert metric_description_total("") == len(metric_description_gets("", 0, 0))


def test_gets_limit_and_offset(described):
    assert [d.metric for d in metric_description_gets("", 1, 1)] == ["disk_free"]


def test_mapper(described):
    mapping = metric_description_mapper(["cpu_idle", "unknown"])
    assert mapping == {"cpu_idle": "idle cpu share"}
    assert metric_description_mapper([]) == {}
    assert metric_description_mapper(["unknown"]) == {}


def test_delete(described):
    target = metric_description_get("metric = ?", "mem_used")
    metric_description_del([target.id])
    assert metric_description_get("metric = ?", "mem_used") is None
    assert metric_description_total("") == 2
    metric_description_del([])
    assert metric_description_total("") == 2


def test_statistics(described):
    stats = metric_desc_statistics()
    assert stats.total == len(metric_desc_get_all())
    assert stats.last_updated == max(d.update_at for d in metric_desc_get_all())


def test_method_update_writes_row(described):
    stored = metric_description_get("metric = ?", "cpu_idle")
    stored.update("changed", 42)
    again = metric_description_get("metric = ?", "cpu_idle")
    assert (again.description, again.update_at) == ("changed", 42)