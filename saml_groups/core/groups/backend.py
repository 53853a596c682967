"""Group backend persisting SAML group membership in a relational store."""
from __future__ import annotations
import enum
import logging
from typing import Optional

from sqlalchemy import delete, func, insert, literal, select

from .cache import ExistenceCache, GroupExistenceCache
from .database import Database, escape_like, paginate
from .exceptions import RegistryError
from .registry import BackendRegistry

logger = logging.getLogger(__name__)


class GroupAction(enum.IntFlag):
    """Actions a group backend may support (host framework capability bits)."""
    CREATE_GROUP = 0x00000001
    DELETE_GROUP = 0x00000002
    ADD_TO_GROUP = 0x00000004
    REMOVE_FROM_GROUP = 0x00000008
    COUNT_USERS = 0x00100000


SUPPORTED_ACTIONS = (
    GroupAction.COUNT_USERS
    | GroupAction.ADD_TO_GROUP
    | GroupAction.CREATE_GROUP
    | GroupAction.DELETE_GROUP
    | GroupAction.REMOVE_FROM_GROUP
)


class GroupBackend:
    """Group CRUD over the groups and membership relations.

    Existence answers are memoized in an injected cache. Membership answers
    are never cached.
    """

    def __init__(
        self,
        db: Database,
        cache: Optional[ExistenceCache] = None,
        registry: Optional[BackendRegistry] = None,
        require_provisioned_account: bool = False,
    ):
        """Initialize the backend.

        Args:
            db: Relational store
            cache: Existence cache (defaults to an unbounded GroupExistenceCache)
            registry: Other backends consulted by group_exists()
            require_provisioned_account: Disables user auto-provisioning
        """
        self.db = db
        self.cache = cache if cache is not None else GroupExistenceCache()
        self._registry = registry
        self.require_provisioned_account = require_provisioned_account

    # ─────────────────────────────────────────────────────────────────────
    # Backend metadata
    # ─────────────────────────────────────────────────────────────────────

    def autoprovision_allowed(self) -> bool:
        """Whether users may be provisioned on first login."""
        return not self.require_provisioned_account

    def implements_actions(self, actions: int) -> bool:
        """Check whether any of the bitwise-or'ed actions is supported."""
        return bool(SUPPORTED_ACTIONS & actions)

    def register_backends(self, registry: BackendRegistry) -> None:
        """Attach the registry used to find the actual backend of a group.

        Raises:
            RegistryError: If a registry is already attached
        """
        if self._registry is not None:
            raise RegistryError("Backend registry already attached")
        self._registry = registry

    @property
    def registry(self) -> Optional[BackendRegistry]:
        return self._registry

    def get_actual_group_backend(self, gid: str):
        """Return the registered backend that claims gid, or None."""
        if self._registry is None:
            return None
        return self._registry.resolve_authoritative_backend(gid, skip=self)

    def ensure_schema(self) -> None:
        self.db.create_schema()

    # ─────────────────────────────────────────────────────────────────────
    # Groups
    # ─────────────────────────────────────────────────────────────────────

    def create_group(self, gid: str) -> bool:
        """Create gid if absent.

        Returns:
            True if a new row was inserted, False if the group already existed
        """
        stmt = self.db.insert_ignore(self.db.groups).values(gid=gid)
        with self.db.transaction("create_group") as conn:
            inserted = conn.execute(stmt).rowcount
        self.cache.remember(gid)
        if inserted:
            logger.info(f"Group '{gid}' created")
            return True
        return False

    def delete_group(self, gid: str) -> bool:
        """Delete gid together with all of its memberships.

        Returns:
            True if the group row existed, False otherwise
        """
        groups, memberships = self.db.groups, self.db.memberships
        with self.db.transaction("delete_group") as conn:
            deleted = conn.execute(delete(groups).where(groups.c.gid == gid)).rowcount
            dropped = conn.execute(delete(memberships).where(memberships.c.gid == gid)).rowcount
        self.cache.forget(gid)
        if deleted:
            logger.info(f"Group '{gid}' deleted ({dropped} memberships dropped)")
            return True
        if dropped:
            logger.warning(f"Dropped {dropped} orphaned memberships of missing group '{gid}'")
        return False

    def group_exists(self, gid: str) -> bool:
        """Check if a group exists here or in another registered backend."""
        if self.get_actual_group_backend(gid) is not None:
            return True
        return self.group_exists_in_database(gid)

    def group_exists_in_database(self, gid: str) -> bool:
        if self.cache.has(gid):
            return True

        groups = self.db.groups
        with self.db.connect("group_exists") as conn:
            row = conn.execute(select(groups.c.gid).where(groups.c.gid == gid)).first()

        if row is not None:
            self.cache.remember(gid)
            return True
        return False

    def get_groups(
        self, search: str = "", limit: Optional[int] = None, offset: Optional[int] = None
    ) -> list[str]:
        """List gids, optionally filtered by a case-insensitive substring.

        Args:
            search: Substring to look for in the gid
            limit: Maximum number of gids (None = all)
            offset: Number of gids to skip (None = none)

        Returns:
            Ascending list of group identifiers
        """
        groups = self.db.groups
        stmt = select(groups.c.gid)
        if search:
            # SQLite's lower() folds ASCII only; fold both sides in SQL
            pattern = func.lower(literal(f"%{escape_like(search)}%"))
            stmt = stmt.where(func.lower(groups.c.gid).like(pattern, escape="\\"))
        stmt = paginate(stmt.order_by(groups.c.gid.asc()), limit, offset)

        with self.db.connect("get_groups") as conn:
            return [row.gid for row in conn.execute(stmt)]

    # ─────────────────────────────────────────────────────────────────────
    # Memberships
    # ─────────────────────────────────────────────────────────────────────

    def in_group(self, uid: str, gid: str) -> bool:
        """Check whether uid is a member of gid."""
        memberships = self.db.memberships
        stmt = select(memberships.c.uid).where(
            memberships.c.gid == gid, memberships.c.uid == uid
        )
        with self.db.connect("in_group") as conn:
            return conn.execute(stmt).first() is not None

    def add_to_group(self, uid: str, gid: str) -> bool:
        """Add uid to gid.

        Returns:
            True if a membership row was inserted, False if already a member
        """
        if self.in_group(uid, gid):
            return False
        with self.db.transaction("add_to_group") as conn:
            conn.execute(insert(self.db.memberships).values(uid=uid, gid=gid))
        logger.info(f"User '{uid}' added to group '{gid}'")
        return True

    def remove_from_group(self, uid: str, gid: str) -> bool:
        """Remove uid from gid. Always True, even if uid was not a member."""
        memberships = self.db.memberships
        with self.db.transaction("remove_from_group") as conn:
            removed = conn.execute(
                delete(memberships).where(memberships.c.uid == uid, memberships.c.gid == gid)
            ).rowcount
        if removed:
            logger.info(f"User '{uid}' removed from group '{gid}'")
        return True

    def get_user_groups(self, uid: Optional[str]) -> list[str]:
        """Get all groups uid belongs to. Does not check that the user exists.

        Guests have an empty or None uid and belong to no group.
        """
        if uid is None or uid == "":
            return []

        memberships = self.db.memberships
        stmt = (
            select(memberships.c.gid)
            .where(memberships.c.uid == uid)
            .distinct()
            .order_by(memberships.c.gid.asc())
        )
        with self.db.connect("get_user_groups") as conn:
            gids = [row.gid for row in conn.execute(stmt)]

        for gid in gids:
            self.cache.remember(gid)
        return gids

    def users_in_group(
        self,
        gid: str,
        search: str = "",
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[str]:
        """List uids in gid, optionally filtered by a case-sensitive substring."""
        memberships = self.db.memberships
        stmt = select(memberships.c.uid).where(memberships.c.gid == gid)
        if search:
            stmt = stmt.where(self._uid_contains(search))
        stmt = paginate(stmt.order_by(memberships.c.uid.asc()), limit, offset)

        with self.db.connect("users_in_group") as conn:
            return [row.uid for row in conn.execute(stmt)]

    def count_users_in_group(self, gid: str, search: str = "") -> int:
        """Count uids in gid with the same filter as users_in_group()."""
        memberships = self.db.memberships
        stmt = select(func.count(memberships.c.uid)).where(memberships.c.gid == gid)
        if search:
            stmt = stmt.where(self._uid_contains(search))

        with self.db.connect("count_users_in_group") as conn:
            return int(conn.execute(stmt).scalar_one())

    def _uid_contains(self, search: str):
        return uid_contains(self.db.memberships.c.uid, search, self.db.engine.dialect.name)


def uid_contains(column, search: str, dialect: str):
    """Case-sensitive substring filter on a uid column.

    SQLite's LIKE ignores ASCII case, so instr() is used there. MySQL and
    MariaDB compare through a binary collation, since their default
    collations are case-insensitive. Other dialects use a plain LIKE and
    follow the column's collation.
    """
    if dialect == "sqlite":
        return func.instr(column, search) > 0
    pattern = f"%{escape_like(search)}%"
    if dialect in ("mysql", "mariadb"):
        return column.collate("utf8mb4_bin").like(pattern, escape="\\")
    return column.like(pattern, escape="\\")
