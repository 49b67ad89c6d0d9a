"""A small client for the task executor's JSON HTTP API."""

import json
from typing import Any, Optional
from urllib.parse import quote_plus

import requests


class Ibex:
    """Builds one request to the task executor and decodes its JSON answer.

    The timeout is given in milliseconds; zero means no timeout.
    """

    def __init__(self, address: str, auth_user: str = "", auth_pass: str = "", timeout: int = 0):
        if not address.startswith("http"):
            address = "http://" + address
        self.address = address
        self.auth_user = auth_user
        self.auth_pass = auth_pass
        self.timeout: Optional[float] = timeout / 1000 if timeout > 0 else None
        self._method = ""
        self._url_path = ""
        self._body: Any = None
        self._headers: dict[str, str] = {}
        self._queries: dict[str, list[str]] = {}

    def body(self, value: Any) -> "Ibex":
        """Set the value sent as the JSON request body."""
        self._body = value
        return self

    def path(self, url_path: str) -> "Ibex":
        self._url_path = url_path
        return self

    def method(self, name: str) -> "Ibex":
        self._method = name.upper()
        return self

    def header(self, key: str, value: str) -> "Ibex":
        self._headers[key] = value
        return self

    def query_string(self, key: str, value: str) -> "Ibex":
        """Add a query parameter; repeated keys keep every value."""
        self._queries.setdefault(key, []).append(value)
        return self

    def _full_path(self) -> str:
        queries = "&".join(
            f"{quote_plus(key)}={quote_plus(value)}"
            for key, values in self._queries.items()
            for value in values
        )
        if not queries:
            return self._url_path
        separator = "&" if "?" in self._url_path else "?"
        return self._url_path + separator + queries

    def _do(self) -> Any:
        url_path = self._full_path()
        data = None
        if self._body is not None:
            data = json.dumps(self._body, separators=(",", ":")).encode("utf-8")

        headers = dict(self._headers)
        if self._method != "GET":
            headers["Content-Type"] = "application/json"
        auth = (self.auth_user, self.auth_pass) if self.auth_user else None

        response = requests.request(
            self._method,
            self.address + url_path,
            data=data,
            headers=headers,
            auth=auth,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise requests.HTTPError(
                f"url({url_path}) response code: {response.status_code}", response=response
            )
        return response.json()

    def get(self) -> Any:
        return self.method("GET")._do()

    def post(self) -> Any:
        return self.method("POST")._do()

    def put(self) -> Any:
        return self.method("PUT")._do()

    def delete(self) -> Any:
        return self.method("DELETE")._do()

    def patch(self) -> Any:
        return self.method("PATCH")._do()