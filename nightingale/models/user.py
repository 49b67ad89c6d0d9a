"""Users, user groups and their memberships."""

import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from sqlalchemy import BigInteger, Column, String, Table, Text, bindparam, text

from nightingale.models.busi_group_member import busi_group_ids, user_group_ids_of_busi_group
from nightingale.models.common import (
    ADMIN_ROLE,
    Statistics,
    _connect,
    _delete_rows,
    _id_column,
    _pluck,
    _Record,
    _select,
    _transaction,
    _update_rows,
    _where,
    count,
    crypto_pass,
    dangerous,
    is_mail,
    is_phone,
    metadata,
    statistics,
)
from nightingale.models.role import role_has_operation

users_table = Table(
    "users",
    metadata,
    _id_column(),
    Column("username", String(64), nullable=False),
    Column("nickname", String(64), nullable=False, default=""),
    Column("password", String(128), nullable=False, default=""),
    Column("phone", String(16), nullable=False, default=""),
    Column("email", String(64), nullable=False, default=""),
    Column("portrait", String(255), nullable=False, default=""),
    Column("roles", String(255), nullable=False, default=""),
    Column("contacts", Text),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

user_group_table = Table(
    "user_group",
    metadata,
    _id_column(),
    Column("name", String(128), nullable=False, default=""),
    Column("note", String(255), nullable=False, default=""),
    Column("create_at", BigInteger, nullable=False, default=0),
    Column("create_by", String(64), nullable=False, default=""),
    Column("update_at", BigInteger, nullable=False, default=0),
    Column("update_by", String(64), nullable=False, default=""),
)

user_group_member_table = Table(
    "user_group_member",
    metadata,
    Column("group_id", BigInteger, nullable=False),
    Column("user_id", BigInteger, nullable=False),
)


def _now() -> int:
    return int(time.time())


@dataclass
class UserGroupMember(_Record):
    """Membership of a user in a user group."""

    table: ClassVar[Table] = user_group_member_table

    group_id: int = 0
    user_id: int = 0


def my_group_ids(user_id: int) -> list[int]:
    """Return the ids of the user groups a user belongs to."""
    return _pluck(user_group_member_table, "group_id", _where("user_id=?", user_id))


def member_ids(group_id: int) -> list[int]:
    """Return the ids of the users in a user group."""
    return _pluck(user_group_member_table, "user_id", _where("group_id=?", group_id))


def user_group_member_count(where: str, *args) -> int:
    return count(user_group_member_table, where, *args)


def user_group_member_add(group_id: int, user_id: int) -> None:
    """Add a user to a group unless already a member."""
    if user_group_member_count("user_id=? and group_id=?", user_id, group_id) > 0:
        return
    UserGroupMember(group_id=group_id, user_id=user_id)._insert()


def user_group_member_del(group_id: int, user_ids: list[int]) -> None:
    if not user_ids:
        return
    _delete_rows(
        user_group_member_table,
        _where("group_id = ? and user_id in ?", group_id, list(user_ids)),
    )


def user_group_member_get_all() -> list[UserGroupMember]:
    return [UserGroupMember._from_row(row) for row in _select(user_group_member_table)]


@dataclass
class UserGroup(_Record):
    """A team of users."""

    table: ClassVar[Table] = user_group_table

    id: int = 0
    name: str = ""
    note: str = ""
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    user_ids: list[int] = field(default_factory=list)

    def verify(self) -> None:
        if dangerous(self.name):
            raise ValueError("Name has invalid characters")
        if dangerous(self.note):
            raise ValueError("Note has invalid characters")

    def update(self, *args: str) -> None:
        """Write the named columns of this group."""
        self.verify()
        self._update_columns(*args)

    def add(self) -> None:
        self.verify()
        if user_group_count("name=?", self.name) > 0:
            raise ValueError("UserGroup already exists")
        now = _now()
        self.create_at = now
        self.update_at = now
        self._insert()

    def delete(self) -> None:
        """Delete the group and its memberships."""
        with _transaction() as conn:
            _delete_rows(user_group_member_table, _where("group_id=?", self.id), conn=conn)
            _delete_rows(user_group_table, _where("id=?", self.id), conn=conn)

    def add_members(self, user_ids: list[int]) -> None:
        """Add users to the group, skipping ids of users that do not exist."""
        for user_id in user_ids:
            user = user_get_by_id(user_id)
            if user is None:
                continue
            user_group_member_add(self.id, user.id)

    def del_members(self, user_ids: list[int]) -> None:
        user_group_member_del(self.id, user_ids)


def user_group_count(where: str, *args) -> int:
    return count(user_group_table, where, *args)


def user_group_get(where: str, *args) -> Optional[UserGroup]:
    rows = _select(user_group_table, _where(where, *args))
    return UserGroup._from_row(rows[0]) if rows else None


def user_group_get_by_id(group_id: int) -> Optional[UserGroup]:
    return user_group_get("id = ?", group_id)


def user_group_get_by_ids(ids: list[int]) -> list[UserGroup]:
    if not ids:
        return []
    rows = _select(user_group_table, _where("id in ?", list(ids)), order_by="name")
    return [UserGroup._from_row(row) for row in rows]


def user_group_get_all() -> list[UserGroup]:
    return [UserGroup._from_row(row) for row in _select(user_group_table)]


def user_group_statistics() -> Statistics:
    return statistics(user_group_table, "update_at", "")


@dataclass
class User(_Record):
    """A user account; roles are stored space separated."""

    table: ClassVar[Table] = users_table

    id: int = 0
    username: str = ""
    nickname: str = ""
    password: str = ""
    phone: str = ""
    email: str = ""
    portrait: str = ""
    roles: str = ""
    contacts: Optional[str] = None
    create_at: int = 0
    create_by: str = ""
    update_at: int = 0
    update_by: str = ""
    roles_lst: list[str] = field(default_factory=list)
    admin: bool = False

    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles_lst

    def verify(self) -> None:
        self.username = self.username.strip()
        if not self.username:
            raise ValueError("Username is blank")
        if dangerous(self.username):
            raise ValueError("Username has invalid characters")
        if dangerous(self.nickname):
            raise ValueError("Nickname has invalid characters")
        if self.phone and not is_phone(self.phone):
            raise ValueError("Phone invalid")
        if self.email and not is_mail(self.email):
            raise ValueError("Email invalid")

    def add(self) -> None:
        if user_get_by_username(self.username) is not None:
            raise ValueError("Username already exists")
        now = _now()
        self.create_at = now
        self.update_at = now
        self._insert()

    def update(self, *args: str) -> None:
        """Write the named columns of this user."""
        self.verify()
        self._update_columns(*args)

    def update_all_fields(self) -> None:
        self.verify()
        self.update_at = _now()
        self._update_columns(*(column.name for column in users_table.columns if column.name != "id"))

    def update_password(self, password: str, update_by: str) -> None:
        """Store an already hashed password."""
        self.password = password
        self.update_at = _now()
        self.update_by = update_by
        self._update_columns("password", "update_at", "update_by")

    def delete(self) -> None:
        """Delete the user and its group memberships."""
        with _transaction() as conn:
            _delete_rows(user_group_member_table, _where("user_id=?", self.id), conn=conn)
            _delete_rows(users_table, _where("id=?", self.id), conn=conn)

    def change_password(self, oldpass: str, newpass: str) -> None:
        hashed_old = crypto_pass(oldpass)
        hashed_new = crypto_pass(newpass)
        if self.password != hashed_old:
            raise ValueError("Incorrect old password")
        self.update_password(hashed_new, self.username)

    def can_modify_user_group(self, user_group: UserGroup) -> bool:
        """Admins, the creator and the members may modify a user group."""
        if self.is_admin():
            return True
        if user_group.create_by == self.username:
            return True
        return user_group_member_count("user_id=? and group_id=?", self.id, user_group.id) > 0

    def can_do_busi_group(self, busi_group: Any, *args: str) -> bool:
        """Tell whether the user is in any user group of the business group.

        An optional extra argument restricts the check to one permission flag.
        """
        if self.is_admin():
            return True
        ugids = user_group_ids_of_busi_group(busi_group.id, *args)
        if not ugids:
            return False
        return user_group_member_count("user_id = ? and group_id in ?", self.id, ugids) > 0

    def check_perm(self, operation: str) -> bool:
        if self.is_admin():
            return True
        return role_has_operation(self.roles_lst, operation)

    def nopri_idents(self, idents: list[str]) -> list[str]:
        """Return the idents the user may not manage, keeping their order."""
        if self.is_admin():
            return []
        ugids = my_group_ids(self.id)
        if not ugids:
            return list(idents)
        bgids = busi_group_ids(ugids, "rw")
        if not bgids:
            return list(idents)
        allowed = set(_target_idents_in_groups(bgids))
        return [ident for ident in idents if ident not in allowed]

    def busi_groups(self, limit: int, query: str, all_groups: bool = False) -> list:
        """Business groups whose name contains query; all of them for admins."""
        pattern = f"%{query}%"
        if self.is_admin() or all_groups:
            return _busi_groups_where(limit, pattern, None)
        bgids = busi_group_ids(my_group_ids(self.id))
        if not bgids:
            return []
        return _busi_groups_where(limit, pattern, bgids)

    def user_groups(self, limit: int, query: str) -> list[UserGroup]:
        """User groups the user created or belongs to, whose name contains query."""
        pattern = f"%{query}%"
        if self.is_admin():
            condition = _where("name like ?", pattern)
        else:
            ids = my_group_ids(self.id)
            if ids:
                condition = _where(
                    "(create_by = ? and name like ?) or id in ?", self.username, pattern, ids
                )
            else:
                condition = _where("create_by = ? and name like ?", self.username, pattern)
        rows = _select(user_group_table, condition, order_by="name", limit=limit)
        return [UserGroup._from_row(row) for row in rows]


def _target_idents_in_groups(bgids: list[int]) -> list[str]:
    stmt = text("select ident from target where group_id in :ids").bindparams(
        bindparam("ids", value=list(bgids), expanding=True)
    )
    with _connect() as conn:
        return [row[0] for row in conn.execute(stmt)]


def _busi_groups_where(limit: int, pattern: str, ids: Optional[list[int]]) -> list:
    # the business group model depends on this module, so it is imported here
    from nightingale.models.busi_group import BusiGroup

    clauses = ["name like :pattern"]
    params = [bindparam("pattern", value=pattern)]
    if ids is not None:
        clauses.append("id in :ids")
        params.append(bindparam("ids", value=list(ids), expanding=True))
    sql = f"select * from busi_group where {' and '.join(clauses)} order by name"
    if limit > 0:
        sql += f" limit {int(limit)}"
    with _connect() as conn:
        rows = [dict(row._mapping) for row in conn.execute(text(sql).bindparams(*params))]
    return [BusiGroup._from_row(row) for row in rows]


def _user_from_row(row: dict) -> User:
    user = User._from_row(row)
    user.roles_lst = (user.roles or "").split()
    user.admin = user.is_admin()
    return user


def user_get(where: str, *args) -> Optional[User]:
    rows = _select(users_table, _where(where, *args))
    return _user_from_row(rows[0]) if rows else None


def user_get_by_username(username: str) -> Optional[User]:
    return user_get("username=?", username)


def user_get_by_id(user_id: int) -> Optional[User]:
    return user_get("id=?", user_id)


def init_root() -> None:
    """Hash the root user's password if it is still stored in plain text."""
    user = user_get_by_username("root")
    if user is None:
        return
    if len(user.password) > 31:
        return
    new_pass = crypto_pass(user.password)
    _update_rows(users_table, {"password": new_pass}, users_table.c.id == user.id)
    print("root password init done")


def pass_login(username: str, password: str) -> User:
    """Return the user when the password matches, else raise ValueError."""
    user = user_get_by_username(username)
    if user is None:
        raise ValueError("Username or password invalid")
    if crypto_pass(password) != user.password:
        raise ValueError("Username or password invalid")
    return user


def _query_condition(query: str):
    pattern = f"%{query}%"
    return _where(
        "username like ? or nickname like ? or phone like ? or email like ?",
        pattern, pattern, pattern, pattern,
    )


def user_total(query: str) -> int:
    if query:
        pattern = f"%{query}%"
        return count(
            users_table,
            "username like ? or nickname like ? or phone like ? or email like ?",
            pattern, pattern, pattern, pattern,
        )
    return count(users_table, "")


def user_gets(query: str, limit: int, offset: int) -> list[User]:
    conditions = [_query_condition(query)] if query else []
    rows = _select(users_table, *conditions, order_by="username", limit=limit, offset=offset)
    return [_user_from_row(row) for row in rows]


def user_get_all() -> list[User]:
    return [_user_from_row(row) for row in _select(users_table)]


def user_gets_by_ids(ids: list[int]) -> list[User]:
    if not ids:
        return []
    rows = _select(users_table, _where("id in ?", list(ids)), order_by="username")
    return [_user_from_row(row) for row in rows]


def user_statistics() -> Statistics:
    return statistics(users_table, "update_at", "")