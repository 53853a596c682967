"""
Membership Reconciliation Service

Converges a user's persisted group memberships to the group set asserted by
the identity provider at login, used by the SAML login hook and the CLI.

Architecture:
    SAML login ──┐
                 ├──> membership_service.py ──> core.groups.GroupBackend ──> database
    CLI ─────────┘                          └─> SubAdminManager / PrivilegeAdapter

Contract:
    - Each create/add/remove/delete step is applied on its own; there is no
      rollback across the diff.
    - Any storage or delegate failure propagates to the caller, leaving the
      user partially converged.
    - Every step is idempotent, so calling reconcile() again with the same
      target set is the recovery path.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from saml_groups.core.groups.backend import GroupBackend
from saml_groups.core.privileges import PrivilegeAdapter, SubAdminManager
from saml_groups.core.validators import normalize_group_ids, validate_uid
from scripts import audit

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """What reconcile() changed for one user."""
    uid: str
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    sub_admin_granted: list[str] = field(default_factory=list)
    sub_admin_revoked: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.added or self.removed or self.created or self.deleted
            or self.sub_admin_granted or self.sub_admin_revoked
        )

    def to_dict(self) -> dict:
        return {
            "added": self.added,
            "removed": self.removed,
            "created": self.created,
            "deleted": self.deleted,
            "sub_admin_granted": self.sub_admin_granted,
            "sub_admin_revoked": self.sub_admin_revoked,
        }


class MembershipReconciler:
    """Applies the minimal set of group changes for a user's asserted groups."""

    def __init__(
        self,
        backend: GroupBackend,
        sub_admin_manager: SubAdminManager,
        privilege_adapter: Optional[PrivilegeAdapter] = None,
        operator: str = "saml-login",
    ):
        """Initialize the reconciler.

        Args:
            backend: Group store to converge
            sub_admin_manager: Host delegate for group-scoped admin rights
            privilege_adapter: Adapter for the administrative group (needed by set_admin)
            operator: Name recorded in audit events
        """
        self.backend = backend
        self.sub_admin_manager = sub_admin_manager
        self.privilege_adapter = privilege_adapter
        self.operator = operator

    def reconcile(
        self, uid: str, target_groups: Iterable[str], grant_sub_admin: bool = False
    ) -> ReconcileResult:
        """Converge uid's memberships to target_groups.

        New groups are created on demand; groups left without members after
        a removal are deleted.

        Args:
            uid: User identifier
            target_groups: Group identifiers asserted for the user
            grant_sub_admin: Also make uid a sub-admin of each newly joined group

        Returns:
            ReconcileResult describing the applied changes

        Raises:
            ValueError: If uid is empty or a group identifier is invalid
            StorageError: On database failure (state is partially converged)
            DelegateError: On delegate failure (state is partially converged)
        """
        validate_uid(uid)
        target = normalize_group_ids(target_groups)
        current = set(self.backend.get_user_groups(uid))

        # Claims are stripped; gids stored by other callers may not be
        held = {gid.strip() for gid in current}
        to_add = sorted(target - held)
        to_remove = sorted(gid for gid in current if gid.strip() not in target)
        result = ReconcileResult(uid=uid)

        if not to_add and not to_remove:
            logger.debug(f"Memberships of '{uid}' already converged ({len(current)} groups)")
            return result

        logger.info(f"Reconciling '{uid}': +{len(to_add)} -{len(to_remove)} groups")
        try:
            for gid in to_add:
                self._join(uid, gid, grant_sub_admin, result)
            for gid in to_remove:
                self._leave(uid, gid, result)
        except Exception as exc:
            logger.error(f"Reconciliation of '{uid}' aborted: {exc}")
            audit.safe_log_membership_event(
                "reconcile",
                uid,
                operator=self.operator,
                details={**result.to_dict(), "error": str(exc)},
                success=False,
            )
            raise

        audit.safe_log_membership_event(
            "reconcile", uid, operator=self.operator, details=result.to_dict()
        )
        return result

    def set_admin(self, uid: str, is_admin: bool = False) -> None:
        """Add or remove uid from the host's administrative group.

        Raises:
            RuntimeError: If the reconciler was built without a PrivilegeAdapter
            GroupNotFoundError: If the administrative group does not exist
        """
        if self.privilege_adapter is None:
            raise RuntimeError("set_admin requires a PrivilegeAdapter")
        self.privilege_adapter.set_admin(uid, is_admin)
        audit.safe_log_membership_event(
            "admin_grant" if is_admin else "admin_revoke",
            uid,
            self.privilege_adapter.admin_group,
            operator=self.operator,
        )

    def _join(self, uid: str, gid: str, grant_sub_admin: bool, result: ReconcileResult) -> None:
        if self.backend.create_group(gid):
            result.created.append(gid)
            audit.safe_log_membership_event("group_create", uid, gid, operator=self.operator)

        if self.backend.add_to_group(uid, gid):
            result.added.append(gid)
            audit.safe_log_membership_event("membership_add", uid, gid, operator=self.operator)

        if grant_sub_admin:
            self.sub_admin_manager.add_sub_admin(uid, gid)
            result.sub_admin_granted.append(gid)
            audit.safe_log_membership_event("subadmin_grant", uid, gid, operator=self.operator)

    def _leave(self, uid: str, gid: str, result: ReconcileResult) -> None:
        if self.sub_admin_manager.is_sub_admin(uid, gid):
            self.sub_admin_manager.remove_sub_admin(uid, gid)
            result.sub_admin_revoked.append(gid)
            audit.safe_log_membership_event("subadmin_revoke", uid, gid, operator=self.operator)

        self.backend.remove_from_group(uid, gid)
        result.removed.append(gid)
        audit.safe_log_membership_event("membership_remove", uid, gid, operator=self.operator)

        if self.backend.count_users_in_group(gid) == 0:
            # Group no longer in use
            if self.backend.delete_group(gid):
                result.deleted.append(gid)
                audit.safe_log_membership_event("group_delete", uid, gid, operator=self.operator)
