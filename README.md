# nightingale

The storage layer of an alerting and monitoring platform built around
Prometheus-style metrics, plus a small HTTP client for a task execution
service. Business groups, users and teams, monitored targets, alert rules,
mutes and subscriptions, current and historical alert events, dashboards
and charts, metric views and descriptions, task templates, task records and
collect rules are kept in a relational database through SQLAlchemy.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

The package depends on SQLAlchemy and requests only. To reach MySQL or
PostgreSQL through `nightingale.ormx.new_engine`, install a database driver
as well: the MySQL URL it builds uses the `pymysql` driver, and the
PostgreSQL URL uses SQLAlchemy's default PostgreSQL driver.

## Connecting to a database

Build an engine, either with SQLAlchemy directly or from a
`nightingale.ormx.Config` with `nightingale.ormx.new_engine`, which accepts
`db_type` values `mysql` and `postgres` and raises `ValueError` for any
other. Tables are declared when their model module is imported, so import
the models before calling `create_tables`, then register the engine with
`init_db`:

```python
from sqlalchemy import create_engine

from nightingale.models import (
    alert_aggr_view, alert_cur_event, alert_his_event, alert_mute,
    alert_rule, alert_subscribe, busi_group, collect_rule, dashboard,
    metric_description, metric_view, role, target, task_record, task_tpl, user,
)
from nightingale.models.common import create_tables, init_db

engine = create_engine("sqlite:///n9e.db")
create_tables(engine)
init_db(engine)
```

Every model function runs on the engine given to `init_db`; calling one
before that raises `RuntimeError`.

## Stored settings and passwords

Key/value settings live in the `configs` table. Passwords are hashed with
MD5 and a salt that is stored there as well:

```python
from nightingale.models.common import configs_get, configs_gets, configs_set, crypto_pass, init_salt

init_salt()                       # creates the salt once
configs_set("site_title", "ops")
print(configs_get("site_title"))  # "ops"
print(configs_gets(["site_title", "missing"]))  # {"site_title": "ops", "missing": ""}
hashed = crypto_pass("password")
```

`nightingale.models.user.init_root()` hashes a plain-text password left on
the `root` account, and `pass_login(username, password)` returns the user
when the password matches and raises `ValueError` otherwise.

## Modules

- `nightingale.models.common`: engine registration, table creation,
  `count`, `exists`, `insert`, `statistics`, the `configs` store and input
  checks (`dangerous`, `is_phone`, `is_mail`). Conditions are written as
  SQL with `?` placeholders, and a list argument expands for `in ?`.
- `nightingale.models.user`: `User`, `UserGroup`, `UserGroupMember` and
  permission checks such as `User.check_perm`, `User.can_do_busi_group`
  and `User.can_modify_user_group`.
- `nightingale.models.role`: roles and the operations they grant.
- `nightingale.models.busi_group` and `nightingale.models.busi_group_member`:
  business groups and the teams that manage them with `ro` or `rw` flags.
- `nightingale.models.target`: monitored hosts with their tags.
- `nightingale.models.alert_rule`, `alert_mute`, `alert_subscribe`,
  `alert_cur_event`, `alert_his_event`, `alert_aggr_view`: alerting data.
  `AlertRule.verify` and `AlertRule.add` take the set of allowed notify
  channels and drop any others.
- `nightingale.models.dashboard`, `metric_view`, `metric_description`:
  dashboards, chart groups, charts, shared charts and metric metadata.
- `nightingale.models.task_tpl`, `task_record`, `collect_rule`: task
  templates with their hosts, task history and collection rules.
- `nightingale.ormx`: engine construction and JSON column helpers
  (`dump_json_obj`, `dump_json_arr`, `scan_json`).
- `nightingale.ibex`: `Ibex`, a chained HTTP JSON client built with
  `path`, `method`, `header`, `query_string` and `body`, finished by `get`,
  `post`, `put`, `delete` or `patch`, which return the decoded JSON answer
  and raise `requests.HTTPError` for any status other than 200. Its timeout
  is given in milliseconds.

Validation failures are reported by raising `ValueError`. Lookups that
find nothing return `None`.

## What this package does not do

It has no command line, no web API or HTTP server, and no alert evaluation,
notification sending, LDAP or single sign-on login. It provides the data
models and the task-executor client that such parts would be built on.