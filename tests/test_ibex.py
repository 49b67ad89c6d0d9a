import base64
import json

import pytest
import requests
import responses

from nightingale.ibex import Ibex

BASE = "http://127.0.0.1:10090"


def _client():
    password = "password"
    return Ibex("127.0.0.1:10090", "user", password, 3000)


def test_get_decodes_json_and_sends_basic_auth():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE + "/ibex/v1/tasks", json={"dat": [1, 2], "err": ""})
        result = _client().path("/ibex/v1/tasks").get()
        request = rsps.calls[0].request
    assert result == {"dat": [1, 2], "err": ""}
    scheme, _, encoded = request.headers["Authorization"].partition(" ")
    assert scheme == "Basic"
    assert base64.b64decode(encoded).decode() == "user:password"
    assert "Content-Type" not in request.headers


def test_address_with_scheme_is_kept():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "https://ibex.example.com/ping", json={"ok": True})
        result = Ibex("https://ibex.example.com").path("/ping").get()
        request = rsps.calls[0].request
    assert result == {"ok": True}
    assert "Authorization" not in request.headers


def test_post_sends_json_body():
    payload = {"title": "restart", "hosts": ["h1"]}
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, BASE + "/ibex/v1/tasks", json={"dat": 7})
        result = _client().path("/ibex/v1/tasks").body(payload).post()
        request = rsps.calls[0].request
    assert result == {"dat": 7}
    assert json.loads(request.body) == payload
    assert request.headers["Content-Type"] == "application/json"


def test_query_strings_are_encoded_and_repeated():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE + "/api", json={"dat": "queried"})
        result = (
            _client()
            .path("/api")
            .query_string("a", "1")
            .query_string("a", "2")
            .query_string("b", "x y")
            .get()
        )
        url = rsps.calls[0].request.url
    assert result == {"dat": "queried"}
    assert url.endswith("/api?a=1&a=2&b=x+y")


def test_query_strings_extend_existing_query():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE + "/api", json={"dat": [10]})
        result = _client().path("/api?limit=10").query_string("p", "1").get()
        url = rsps.calls[0].request.url
    assert result == {"dat": [10]}
    assert url.endswith("/api?limit=10&p=1")


def test_custom_header_and_methods():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.PUT, BASE + "/x", json={"m": "put"})
        rsps.add(responses.DELETE, BASE + "/x", json={"m": "delete"})
        rsps.add(responses.PATCH, BASE + "/x", json={"m": "patch"})
        put = _client().path("/x").header("X-Trace", "abc").put()
        delete = _client().path("/x").delete()
        patch = _client().path("/x").patch()
        trace = rsps.calls[0].request.headers["X-Trace"]
        delete_type = rsps.calls[1].request.headers["Content-Type"]
    assert [put["m"], delete["m"], patch["m"]] == ["put", "delete", "patch"]
    assert trace == "abc"
    assert delete_type == "application/json"


def test_non_200_raises():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE + "/fail", status=500, body="boom")
        with pytest.raises(requests.HTTPError, match=r"url\(/fail\) response code: 500"):
            _client().path("/fail").get()


def test_invalid_json_raises():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, BASE + "/bad", body="not json")
        with pytest.raises(ValueError):
            _client().path("/bad").get()