"""Group backend library for SAML-provisioned group membership.

Architecture:
- database.py: SQLAlchemy store with the groups and membership relations
- cache.py: Process-local group existence cache
- registry.py: Ordered backend registry and authoritative-backend resolution
- backend.py: Group CRUD primitives (GroupBackend)
- keycloak.py: Keycloak realm as a read-only delegate backend
- exceptions.py: Typed exceptions for error handling

Usage:
    from saml_groups.core.groups import Database, GroupBackend, BackendRegistry

    db = Database.from_url("sqlite:///groups.db")
    backend = GroupBackend(db)
    backend.register_backends(BackendRegistry([backend]))
    backend.create_group("staff")
    backend.add_to_group("alice", "staff")
"""
from .exceptions import (
    GroupSyncError,
    StorageError,
    DelegateError,
    GroupNotFoundError,
    RegistryError,
)
from .database import (
    Database,
    DEFAULT_GROUPS_TABLE,
    DEFAULT_MEMBERSHIP_TABLE,
)
from .cache import ExistenceCache, GroupExistenceCache
from .registry import BackendRegistry, GroupExistenceProbe
from .backend import GroupAction, GroupBackend, SUPPORTED_ACTIONS
from .keycloak import KeycloakGroupBackend

__all__ = [
    # Exceptions
    "GroupSyncError",
    "StorageError",
    "DelegateError",
    "GroupNotFoundError",
    "RegistryError",

    # Storage
    "Database",
    "DEFAULT_GROUPS_TABLE",
    "DEFAULT_MEMBERSHIP_TABLE",

    # Cache
    "ExistenceCache",
    "GroupExistenceCache",

    # Backends
    "BackendRegistry",
    "GroupExistenceProbe",
    "GroupAction",
    "GroupBackend",
    "SUPPORTED_ACTIONS",
    "KeycloakGroupBackend",
]
