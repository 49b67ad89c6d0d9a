import pytest
from sqlalchemy import create_engine

from nightingale.models.busi_group_member import (
    BusiGroupMember,
    busi_group_ids,
    busi_group_member_add,
    busi_group_member_count,
    busi_group_member_del,
    busi_group_member_get,
    busi_group_member_gets,
    busi_group_member_gets_by_busi_group_id,
    user_group_ids_of_busi_group,
)
from nightingale.models.common import create_tables, init_db


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'n9e.db'}")
    create_tables(engine)
    init_db(engine)
    yield engine
    init_db(None)
    engine.dispose()


def add(bg, ug, flag):
    busi_group_member_add(BusiGroupMember(busi_group_id=bg, user_group_id=ug, perm_flag=flag))


def test_busi_group_ids_of_nothing_is_empty():
    assert busi_group_ids([]) == []


def test_add_then_get():
    add(1, 10, "rw")
    member = busi_group_member_get("busi_group_id = ? and user_group_id = ?", 1, 10)
    assert member == BusiGroupMember(busi_group_id=1, user_group_id=10, perm_flag="rw")


def test_get_missing_returns_none():
    assert busi_group_member_get("busi_group_id = ?", 99) is None


def test_add_existing_changes_flag_without_duplicating():
    add(1, 10, "ro")
    add(1, 10, "rw")
    add(1, 10, "rw")
    assert busi_group_member_count("busi_group_id = ?", 1) == 1
    assert busi_group_member_get("busi_group_id = ?", 1).perm_flag == "rw"


def test_busi_group_ids_with_flag_filter():
    add(1, 10, "rw")
    add(2, 10, "ro")
    add(3, 11, "rw")
    assert sorted(busi_group_ids([10, 11])) == [1, 2, 3]
    assert sorted(busi_group_ids([10, 11], "rw")) == [1, 3]
    assert busi_group_ids([10], "ro") == [2]


def test_user_group_ids_of_busi_group():
    add(1, 10, "rw")
    add(1, 11, "ro")
    add(2, 12, "rw")
    assert sorted(user_group_ids_of_busi_group(1)) == [10, 11]
    assert user_group_ids_of_busi_group(1, "ro") == [11]


def test_gets_ordered_by_flag():
    add(1, 10, "rw")
    add(1, 11, "ro")
    flags = [m.perm_flag for m in busi_group_member_gets_by_busi_group_id(1)]
    assert flags == sorted(flags)
    assert len(busi_group_member_gets("busi_group_id = ?", 1)) == 2


def test_delete_member():
    add(1, 10, "rw")
    add(1, 11, "rw")
    busi_group_member_del("busi_group_id = ? and user_group_id = ?", 1, 10)
    assert user_group_ids_of_busi_group(1) == [11]