import pytest
from sqlalchemy import create_engine

from nightingale.models.common import create_tables, init_db
from nightingale.models.task_record import (
    TaskRecord,
    task_record_gets,
    task_record_total,
)


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'n9e.db'}")
    init_db(engine)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def records():
    items = [
        TaskRecord(group_id=1, title="restart web", create_at=100, create_by="alice"),
        TaskRecord(group_id=1, title="clean disk", create_at=200, create_by="bob"),
        TaskRecord(group_id=1, title="restart db", create_at=300, create_by="alice"),
        TaskRecord(group_id=2, title="restart web", create_at=400, create_by="alice"),
    ]
    for item in items:
        item.add()
    return items


def test_add_assigns_ids(records):
    assert len({record.id for record in records}) == len(records)


def test_total_filters(records):
    assert task_record_total(1, 0, "", "") == 3
    assert task_record_total(1, 100, "", "") == 2
    assert task_record_total(1, 0, "alice", "") == 2
    assert task_record_total(1, 0, "", "restart") == 2
    assert task_record_total(1, 0, "bob", "restart") == 0


def test_gets_newest_first(records):
    found = task_record_gets(1, 0, "", "", 10, 0)
    assert [record.create_at for record in found] == [300, 200, 100]


def test_gets_limit_and_offset(records):
    found = task_record_gets(1, 0, "", "", 1, 1)
    assert [record.title for record in found] == ["clean disk"]


def test_update_is_done(records):
    records[0].update_is_done(1)
    found = {record.id: record for record in task_record_gets(1, 0, "", "", 10, 0)}
    assert found[records[0].id].is_done == 1
    assert found[records[1].id].is_done == 0