import string

import pytest
from sqlalchemy import create_engine

from nightingale.models.common import (
    Statistics,
    configs_get,
    configs_gets,
    configs_set,
    configs_table,
    count,
    create_tables,
    crypto_pass,
    dangerous,
    db,
    exists,
    init_db,
    init_salt,
    insert,
    is_mail,
    is_phone,
    statistics,
)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'n9e.db'}")
    create_tables(engine)
    init_db(engine)
    yield engine
    init_db(None)
    engine.dispose()


def test_db_without_engine_raises():
    init_db(None)
    with pytest.raises(RuntimeError):
        db()


def test_db_returns_engine(engine):
    assert db() is engine


def test_configs_get_missing_is_blank(engine):
    assert configs_get("salt") == ""


def test_configs_set_inserts_then_updates(engine):
    configs_set("site", "one")
    assert configs_get("site") == "one"
    configs_set("site", "two")
    assert configs_get("site") == "two"
    assert count(configs_table, "ckey=?", "site") == 1


def test_configs_gets_fills_missing_keys(engine):
    configs_set("a", "1")
    assert configs_gets(["a", "b"]) == {"a": "1", "b": ""}


def test_insert_count_exists(engine):
    key = insert(configs_table, {"ckey": "k", "cval": "v"})
    assert key > 0
    assert exists(configs_table, "ckey = ? and cval = ?", "k", "v")
    assert not exists(configs_table, "ckey = ?", "other")
    assert count(configs_table, "") == 1


def test_count_with_list_argument(engine):
    for name in ("x", "y", "z"):
        insert(configs_table, {"ckey": name, "cval": ""})
    assert count(configs_table, "ckey in ?", ["x", "z", "missing"]) == 2


def test_where_argument_mismatch_raises(engine):
    with pytest.raises(ValueError):
        count(configs_table, "ckey = ? and cval = ?", "a")
    with pytest.raises(ValueError):
        count(configs_table, "ckey = ?", "a", "b")


def test_statistics(engine):
    assert statistics(configs_table, "id", "") == Statistics(total=0, last_updated=0)
    keys = [insert(configs_table, {"ckey": f"k{i}", "cval": ""}) for i in range(3)]
    stats = statistics(configs_table, "id", "")
    assert stats.total == 3
    assert stats.last_updated == max(keys)


def test_crypto_pass_depends_on_salt_and_input(engine):
    configs_set("salt", "first")
    hashed = crypto_pass("secret")
    assert len(hashed) == 32
    assert set(hashed) <= set(string.hexdigits.lower())
    assert crypto_pass("secret") == hashed
    assert crypto_pass("other") != hashed
    configs_set("salt", "second")
    assert crypto_pass("secret") != hashed


def test_init_salt_is_stable(engine):
    init_salt()
    salt = configs_get("salt")
    assert len(salt) == 32
    init_salt()
    assert configs_get("salt") == salt


@pytest.mark.parametrize("value", ["<script>", "a&b", "it's", "file://etc", "../up"])
def test_dangerous_detects_marks(value):
    assert dangerous(value)


def test_dangerous_accepts_plain_names():
    assert not dangerous("plain name-01")


def test_is_mail():
    assert is_mail("ops@example.com")
    assert not is_mail("not-a-mail")


def test_is_phone_rejects_garbage():
    assert not is_phone("abc")
    assert not is_phone("12")