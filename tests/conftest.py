"""Pytest shared fixtures for the group sync tests."""
import os
import pathlib
import sys
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any saml_groups imports
os.environ.setdefault("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")
for var in ("KEYCLOAK_URL", "KEYCLOAK_SERVICE_CLIENT_SECRET", "SAML_GROUP_CACHE_MAX_ENTRIES"):
    os.environ.pop(var, None)

import pytest
import requests

from saml_groups.core.groups import Database, GroupBackend, GroupExistenceCache
from scripts import audit


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch):
    """Unit tests must never reach a real Keycloak."""

    def _unexpected(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected network access in tests: {url}")

    monkeypatch.setattr(requests, "get", _unexpected)
    monkeypatch.setattr(requests, "post", _unexpected)


@pytest.fixture(autouse=True)
def temp_audit_dir(monkeypatch, tmp_path):
    """Keep audit events out of the working tree."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "group-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    return audit_dir, audit_file


# ─────────────────────────────────────────────────────────────────────────────
# Storage
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def db(tmp_path):
    """File-backed SQLite store with the schema created."""
    database = Database.from_url(f"sqlite:///{tmp_path / 'groups.db'}")
    database.create_schema()
    yield database
    database.dispose()


@pytest.fixture()
def backend(db):
    return GroupBackend(db, cache=GroupExistenceCache())


def count_rows(db: Database, table, **filters) -> int:
    """Count rows directly in storage, bypassing any cache."""
    from sqlalchemy import func, select

    stmt = select(func.count()).select_from(table)
    for column, value in filters.items():
        stmt = stmt.where(table.c[column] == value)
    with db.engine.connect() as conn:
        return conn.execute(stmt).scalar_one()


# ─────────────────────────────────────────────────────────────────────────────
# Host delegates
# ─────────────────────────────────────────────────────────────────────────────
class FakeSubAdminManager:
    """In-memory sub-admin manager recording every call."""

    def __init__(self, grants: Optional[set] = None):
        self.grants = set(grants or ())
        self.calls = []

    def is_sub_admin(self, uid, gid):
        self.calls.append(("is_sub_admin", uid, gid))
        return (uid, gid) in self.grants

    def add_sub_admin(self, uid, gid):
        self.calls.append(("add_sub_admin", uid, gid))
        self.grants.add((uid, gid))

    def remove_sub_admin(self, uid, gid):
        self.calls.append(("remove_sub_admin", uid, gid))
        self.grants.discard((uid, gid))


class FakeHostGroup:
    def __init__(self):
        self.members = set()

    def add_user(self, uid):
        self.members.add(uid)

    def remove_user(self, uid):
        self.members.discard(uid)


class FakeGroupManager:
    def __init__(self, groups: Optional[dict] = None):
        self.groups = groups if groups is not None else {"admin": FakeHostGroup()}

    def get(self, gid):
        return self.groups.get(gid)


class StaticBackend:
    """Delegate backend claiming a fixed set of gids."""

    def __init__(self, name, gids=()):
        self.name = name
        self.gids = set(gids)
        self.lookups = []

    def group_exists(self, gid):
        self.lookups.append(gid)
        return gid in self.gids

    def __repr__(self):
        return f"StaticBackend({self.name!r})"


@pytest.fixture()
def sub_admins():
    return FakeSubAdminManager()


@pytest.fixture()
def group_manager():
    return FakeGroupManager()


@pytest.fixture()
def make_static_backend():
    return StaticBackend


@pytest.fixture()
def row_count(db):
    """Count rows in a table straight from storage."""

    def _count(table, **filters):
        return count_rows(db, table, **filters)

    return _count


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "critical: marks tests covering membership invariants"
    )
