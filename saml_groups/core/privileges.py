"""Host-framework delegates and the administrative group adapter."""
from __future__ import annotations
import logging
from typing import Optional, Protocol

from saml_groups.core.groups.exceptions import DelegateError, GroupNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_GROUP = "admin"


class HostGroup(Protocol):
    def add_user(self, uid: str) -> None: ...

    def remove_user(self, uid: str) -> None: ...


class HostGroupManager(Protocol):
    """Resolves a gid to a host group object (None if unknown)."""

    def get(self, gid: str) -> Optional[HostGroup]: ...


class SubAdminManager(Protocol):
    """Grants administrative rights scoped to a single group."""

    def is_sub_admin(self, uid: str, gid: str) -> bool: ...

    def add_sub_admin(self, uid: str, gid: str) -> None: ...

    def remove_sub_admin(self, uid: str, gid: str) -> None: ...


class PrivilegeAdapter:
    """Adds or removes users from the host's administrative group."""

    def __init__(self, group_manager: HostGroupManager, admin_group: str = DEFAULT_ADMIN_GROUP):
        self.group_manager = group_manager
        self.admin_group = admin_group

    def set_admin(self, uid: str, is_admin: bool = False) -> None:
        """Grant or revoke full administrator rights.

        Raises:
            GroupNotFoundError: If the host has no administrative group
        """
        group = self.group_manager.get(self.admin_group)
        if group is None:
            raise GroupNotFoundError(f"Administrative group '{self.admin_group}' not found")
        if is_admin:
            group.add_user(uid)
            logger.info(f"User '{uid}' granted admin via '{self.admin_group}'")
        else:
            group.remove_user(uid)
            logger.info(f"User '{uid}' revoked admin via '{self.admin_group}'")


class NullSubAdminManager:
    """Sub-admin delegate for contexts without a host framework (CLI, batch jobs).

    Nobody is a sub-admin; granting is refused.
    """

    def is_sub_admin(self, uid: str, gid: str) -> bool:
        return False

    def add_sub_admin(self, uid: str, gid: str) -> None:
        raise DelegateError("sub-admin", "Sub-admin grants require the host framework's sub-admin manager")

    def remove_sub_admin(self, uid: str, gid: str) -> None:
        pass
