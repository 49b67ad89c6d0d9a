"""Database engine creation and helpers for raw JSON columns."""

import json
import re
from dataclasses import dataclass
from typing import Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

RawJSON = Union[str, bytes, bytearray, None]

_MYSQL_DSN = re.compile(
    r"^(?P<userinfo>[^@]*)@(?:(?P<net>\w+)\((?P<addr>[^)]*)\))?/(?P<db>[^?]*)(?:\?(?P<params>.*))?$"
)


@dataclass
class Config:
    """Connection settings for the relational store."""

    debug: bool = False
    db_type: str = "mysql"
    dsn: str = ""
    max_lifetime: int = 0
    max_open_conns: int = 0
    max_idle_conns: int = 0


def _mysql_url(dsn: str) -> str:
    if "://" in dsn:
        return dsn
    match = _MYSQL_DSN.match(dsn)
    if match is None:
        raise ValueError(f"invalid mysql dsn: {dsn!r}")
    address = match.group("addr") or "127.0.0.1:3306"
    url = f"mysql+pymysql://{match.group('userinfo')}@{address}/{match.group('db')}"
    params = match.group("params") or ""
    charset = [p for p in params.split("&") if p.startswith("charset=")]
    if charset:
        url += "?" + charset[0]
    return url


def _postgres_url(dsn: str) -> str:
    if "://" in dsn:
        scheme, rest = dsn.split("://", 1)
        return ("postgresql" if scheme == "postgres" else scheme) + "://" + rest
    options = dict(part.split("=", 1) for part in dsn.split() if "=" in part)
    user = options.pop("user", "")
    secret = options.pop("password", "")
    host = options.pop("host", "localhost")
    port = options.pop("port", "5432")
    dbname = options.pop("dbname", "")
    credentials = f"{user}:{secret}@" if secret else (f"{user}@" if user else "")
    url = f"postgresql://{credentials}{host}:{port}/{dbname}"
    if options:
        url += "?" + "&".join(f"{k}={v}" for k, v in options.items())
    return url


def new_engine(config: Config) -> Engine:
    """Create an engine for a mysql or postgres database."""
    kind = config.db_type.lower()
    if kind == "mysql":
        url = _mysql_url(config.dsn)
    elif kind == "postgres":
        url = _postgres_url(config.dsn)
    else:
        raise ValueError(f"dialector({config.db_type}) not supported")

    pool_size = config.max_idle_conns if config.max_idle_conns > 0 else 5
    if config.max_open_conns > 0:
        max_overflow = max(config.max_open_conns - pool_size, 0)
    else:
        max_overflow = -1
    return create_engine(
        url,
        echo=config.debug,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=config.max_lifetime if config.max_lifetime > 0 else -1,
    )


def _as_text(raw: RawJSON) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8")
    return raw


def dump_json_obj(raw: RawJSON) -> str:
    """Render a stored JSON object, falling back to an empty object."""
    text = _as_text(raw)
    if not text or text.startswith('"'):
        return "{}"
    return text


def dump_json_arr(raw: RawJSON) -> str:
    """Render a stored JSON array, falling back to an empty array."""
    text = _as_text(raw)
    if not text or text.startswith('"'):
        return "[]"
    return text


def scan_json(value: object) -> str:
    """Read a JSON column value, checking that it holds valid JSON."""
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8")
    elif isinstance(value, str):
        text = value
    else:
        raise TypeError(f"Failed to unmarshal JSONB value:{value!r}")
    json.loads(text)
    return text