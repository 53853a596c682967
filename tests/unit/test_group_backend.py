"""Unit tests for the SQL group backend (saml_groups.core.groups.backend)."""
import pytest
from sqlalchemy import insert
from sqlalchemy.dialects import mysql

from saml_groups.core.groups import (
    BackendRegistry,
    Database,
    GroupAction,
    GroupBackend,
    GroupExistenceCache,
    RegistryError,
    StorageError,
)
from saml_groups.core.groups.backend import uid_contains


def _insert_membership(db, uid, gid):
    with db.engine.begin() as conn:
        conn.execute(insert(db.memberships).values(uid=uid, gid=gid))


# ─────────────────────────────────────────────────────────────────────────────
# Groups
# ─────────────────────────────────────────────────────────────────────────────
def test_create_group_reports_new_row_only_once(backend, row_count):
    assert backend.create_group("staff") is True
    assert backend.create_group("staff") is False
    assert row_count(backend.db.groups, gid="staff") == 1


def test_create_group_populates_cache(backend):
    backend.create_group("staff")
    assert backend.cache.has("staff")


def test_create_group_row_written_by_other_instance(db, row_count):
    first = GroupBackend(db, cache=GroupExistenceCache())
    second = GroupBackend(db, cache=GroupExistenceCache())

    assert first.create_group("staff") is True
    assert second.create_group("staff") is False
    assert second.cache.has("staff")
    assert row_count(db.groups, gid="staff") == 1


def test_insert_ignore_skips_existing_primary_key(db):
    stmt = db.insert_ignore(db.groups).values(gid="staff")
    assert "ON CONFLICT DO NOTHING" in str(stmt.compile(dialect=db.engine.dialect))

    with db.engine.begin() as conn:
        assert conn.execute(stmt).rowcount == 1
        assert conn.execute(stmt).rowcount == 0


@pytest.mark.critical
def test_delete_group_removes_group_and_memberships(backend, row_count):
    backend.create_group("staff")
    backend.add_to_group("alice", "staff")
    backend.add_to_group("bob", "staff")

    assert backend.delete_group("staff") is True

    assert backend.group_exists("staff") is False
    assert row_count(backend.db.groups, gid="staff") == 0
    assert row_count(backend.db.memberships, gid="staff") == 0
    assert not backend.cache.has("staff")


def test_delete_missing_group_returns_false(backend):
    assert backend.delete_group("ghost") is False


def test_delete_group_clears_orphaned_memberships(backend, row_count):
    _insert_membership(backend.db, "alice", "orphan")

    assert backend.delete_group("orphan") is False
    assert row_count(backend.db.memberships, gid="orphan") == 0


def test_group_exists_queries_storage_on_cache_miss(db):
    GroupBackend(db).create_group("staff")
    fresh = GroupBackend(db)

    assert not fresh.cache.has("staff")
    assert fresh.group_exists("staff") is True
    assert fresh.cache.has("staff")


def test_group_exists_false_does_not_populate_cache(backend):
    assert backend.group_exists("ghost") is False
    assert not backend.cache.has("ghost")


def test_cached_existence_survives_deletion_by_another_instance(db, row_count):
    """Staleness across store instances is a known limitation of the cache."""
    first = GroupBackend(db)
    second = GroupBackend(db)
    first.create_group("staff")
    assert first.group_exists("staff") is True

    assert second.delete_group("staff") is True

    assert row_count(db.groups, gid="staff") == 0
    assert first.group_exists("staff") is True
    assert second.group_exists("staff") is False


def test_cache_hit_skips_storage(backend, monkeypatch):
    backend.create_group("staff")

    def fail(operation):
        raise AssertionError(f"storage queried for {operation}")

    monkeypatch.setattr(backend.db, "connect", fail)
    assert backend.group_exists_in_database("staff") is True


def test_get_groups_paginates_in_ascending_order(backend):
    for gid in ("gamma", "alpha", "beta"):
        backend.create_group(gid)

    assert backend.get_groups() == ["alpha", "beta", "gamma"]
    assert backend.get_groups(search="", limit=2, offset=1) == ["beta", "gamma"]
    assert backend.get_groups(limit=1) == ["alpha"]
    assert backend.get_groups(offset=2) == ["gamma"]


def test_get_groups_search_is_case_insensitive(backend):
    for gid in ("Finance", "finance-emea", "staff"):
        backend.create_group(gid)

    assert backend.get_groups(search="FIN") == ["Finance", "finance-emea"]


def test_get_groups_search_matches_wildcards_literally(backend):
    for gid in ("a_b", "axb", "100%", "1000"):
        backend.create_group(gid)

    assert backend.get_groups(search="_") == ["a_b"]
    assert backend.get_groups(search="%") == ["100%"]


def test_get_groups_search_finds_non_ascii_gids(backend):
    for gid in ("Équipe", "Ärzte", "staff"):
        backend.create_group(gid)

    assert backend.get_groups(search="Équipe") == ["Équipe"]
    assert backend.get_groups(search="Ärz") == ["Ärzte"]
    assert backend.get_groups(search="ÉQUIPE") == ["Équipe"]


# ─────────────────────────────────────────────────────────────────────────────
# Memberships
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.critical
def test_add_to_group_then_in_group(backend):
    backend.create_group("staff")
    assert backend.add_to_group("alice", "staff") is True
    assert backend.in_group("alice", "staff") is True
    assert backend.in_group("bob", "staff") is False


@pytest.mark.critical
def test_add_to_group_is_idempotent(backend, row_count):
    backend.create_group("staff")
    assert backend.add_to_group("alice", "staff") is True
    assert backend.add_to_group("alice", "staff") is False
    assert row_count(backend.db.memberships, uid="alice", gid="staff") == 1


def test_remove_from_group_non_member_returns_true(backend, row_count):
    backend.create_group("staff")
    backend.add_to_group("bob", "staff")

    assert backend.remove_from_group("alice", "staff") is True
    assert row_count(backend.db.memberships, gid="staff") == 1


def test_remove_from_group_keeps_group_row(backend):
    backend.create_group("staff")
    backend.add_to_group("alice", "staff")

    backend.remove_from_group("alice", "staff")

    assert backend.in_group("alice", "staff") is False
    assert backend.group_exists("staff") is True


def test_get_user_groups_lists_memberships(backend):
    for gid in ("sales", "admins"):
        backend.create_group(gid)
        backend.add_to_group("alice", gid)
    backend.create_group("other")
    backend.add_to_group("bob", "other")

    assert backend.get_user_groups("alice") == ["admins", "sales"]


def test_get_user_groups_populates_cache(db):
    writer = GroupBackend(db)
    writer.create_group("staff")
    writer.add_to_group("alice", "staff")
    reader = GroupBackend(db)

    reader.get_user_groups("alice")

    assert reader.cache.has("staff")


def test_get_user_groups_tolerates_orphaned_rows(backend):
    _insert_membership(backend.db, "alice", "orphan")
    assert backend.get_user_groups("alice") == ["orphan"]


@pytest.mark.parametrize("uid", ["", None])
def test_get_user_groups_guest_skips_storage(backend, monkeypatch, uid):
    def fail(operation):
        raise AssertionError(f"storage queried for {operation}")

    monkeypatch.setattr(backend.db, "connect", fail)
    assert backend.get_user_groups(uid) == []


def test_users_in_group_search_is_case_sensitive(backend):
    backend.create_group("staff")
    for uid in ("bob", "alice", "Alice", "malice"):
        backend.add_to_group(uid, "staff")

    assert backend.users_in_group("staff") == ["Alice", "alice", "bob", "malice"]
    assert backend.users_in_group("staff", search="lic") == ["Alice", "alice", "malice"]
    assert backend.users_in_group("staff", search="Ali") == ["Alice"]


def test_uid_filter_uses_binary_collation_on_mysql(db):
    clause = uid_contains(db.memberships.c.uid, "Ali", "mysql")
    sql = str(clause.compile(dialect=mysql.dialect()))

    assert "COLLATE utf8mb4_bin" in sql
    assert "LIKE" in sql


def test_users_in_group_paginates(backend):
    backend.create_group("staff")
    for uid in ("dave", "carol", "bob", "alice"):
        backend.add_to_group(uid, "staff")

    assert backend.users_in_group("staff", limit=2) == ["alice", "bob"]
    assert backend.users_in_group("staff", limit=2, offset=2) == ["carol", "dave"]
    assert backend.users_in_group("staff", search="a", limit=1, offset=1) == ["carol"]


def test_count_users_in_group_applies_search(backend):
    backend.create_group("staff")
    for uid in ("alice", "Alice", "bob"):
        backend.add_to_group(uid, "staff")

    assert backend.count_users_in_group("staff") == 3
    assert backend.count_users_in_group("staff", search="lice") == 2
    assert backend.count_users_in_group("staff", search="A") == 1
    assert backend.count_users_in_group("empty") == 0


# ─────────────────────────────────────────────────────────────────────────────
# Backend metadata and delegation
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.parametrize(
    "actions,expected",
    [
        (GroupAction.CREATE_GROUP, True),
        (GroupAction.COUNT_USERS | GroupAction.REMOVE_FROM_GROUP, True),
        (0x00000010, False),
    ],
)
def test_implements_actions(backend, actions, expected):
    assert backend.implements_actions(actions) is expected


def test_autoprovision_allowed_follows_policy(db):
    assert GroupBackend(db).autoprovision_allowed() is True
    assert GroupBackend(db, require_provisioned_account=True).autoprovision_allowed() is False


def test_group_exists_defers_to_claiming_delegate(backend, make_static_backend):
    ldap = make_static_backend("ldap", {"engineering"})
    backend.register_backends(BackendRegistry([ldap, backend]))

    assert backend.group_exists("engineering") is True
    assert backend.get_actual_group_backend("engineering") is ldap
    assert not backend.cache.has("engineering")


def test_group_exists_falls_back_to_storage(backend, make_static_backend):
    ldap = make_static_backend("ldap", {"engineering"})
    backend.register_backends(BackendRegistry([ldap, backend]))
    backend.create_group("staff")

    assert backend.group_exists("staff") is True
    assert backend.group_exists("ghost") is False
    assert ldap.lookups == ["staff", "ghost"]


def test_self_registration_does_not_recurse(backend):
    backend.register_backends(BackendRegistry([backend]))
    backend.create_group("staff")

    assert backend.group_exists("staff") is True
    assert backend.get_actual_group_backend("staff") is None


def test_register_backends_is_write_once(backend):
    backend.register_backends(BackendRegistry())
    with pytest.raises(RegistryError):
        backend.register_backends(BackendRegistry())


# ─────────────────────────────────────────────────────────────────────────────
# Storage failures
# ─────────────────────────────────────────────────────────────────────────────
def test_storage_failure_propagates_as_storage_error(tmp_path):
    db = Database.from_url(f"sqlite:///{tmp_path / 'empty.db'}")  # no schema
    backend = GroupBackend(db, cache=GroupExistenceCache())

    with pytest.raises(StorageError) as excinfo:
        backend.add_to_group("alice", "staff")
    assert excinfo.value.operation == "in_group"

    with pytest.raises(StorageError) as excinfo:
        backend.create_group("staff")
    assert excinfo.value.operation == "create_group"
    assert not backend.cache.has("staff")
