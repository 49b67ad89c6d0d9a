import json

import pytest

from nightingale.ormx import Config, dump_json_arr, dump_json_obj, new_engine, scan_json


@pytest.mark.parametrize("raw", ["", b"", None])
def test_dump_json_obj_empty_gives_empty_object(raw):
    assert dump_json_obj(raw) == "{}"


def test_dump_json_obj_quoted_string_gives_empty_object():
    assert dump_json_obj('"not an object"') == "{}"


def test_dump_json_obj_passes_object_through():
    assert dump_json_obj('{"phone": "x"}') == '{"phone": "x"}'
    assert dump_json_obj(b'{"a": 1}') == '{"a": 1}'


@pytest.mark.parametrize("raw", ["", b"", None, '"quoted"'])
def test_dump_json_arr_fallback(raw):
    assert dump_json_arr(raw) == "[]"


def test_dump_json_arr_passes_array_through():
    raw = '[{"key": "ident", "func": "==", "value": "h1"}]'
    assert dump_json_arr(raw) == raw


def test_scan_json_accepts_bytes_and_str():
    assert scan_json(b'{"a": 1}') == '{"a": 1}'
    assert scan_json("[1, 2]") == "[1, 2]"


def test_scan_json_rejects_other_types():
    with pytest.raises(TypeError, match="Failed to unmarshal JSONB value"):
        scan_json(42)


def test_scan_json_rejects_invalid_json():
    with pytest.raises(ValueError):
        scan_json("{broken")


def test_scan_then_dump_round_trip():
    raw = '{"wecom": "abc", "dingtalk": "def"}'
    assert json.loads(dump_json_obj(scan_json(raw))) == json.loads(raw)


def test_new_engine_rejects_unknown_dialect():
    with pytest.raises(ValueError, match=r"dialector\(sqlite\) not supported"):
        new_engine(Config(db_type="sqlite", dsn="anything"))