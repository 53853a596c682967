"""Wiring of the group backend from application settings."""
from __future__ import annotations
import logging
from typing import Optional

from saml_groups.config.settings import AppConfig
from saml_groups.core.groups import (
    BackendRegistry,
    Database,
    GroupBackend,
    GroupExistenceCache,
    KeycloakGroupBackend,
)
from saml_groups.core.membership_service import MembershipReconciler
from saml_groups.core.privileges import (
    HostGroupManager,
    NullSubAdminManager,
    PrivilegeAdapter,
    SubAdminManager,
)

logger = logging.getLogger(__name__)


def create_backend(config: AppConfig, extra_backends: Optional[list] = None) -> GroupBackend:
    """Build a GroupBackend and attach its backend registry.

    Registration order: extra_backends, then the Keycloak delegate (when
    configured), then the SAML backend itself.

    Args:
        config: Application settings
        extra_backends: Host backends that take priority over SAML groups

    Returns:
        GroupBackend ready for use
    """
    db = Database.from_url(config.database_url, config.groups_table, config.membership_table)
    backend = GroupBackend(
        db,
        cache=GroupExistenceCache(config.cache_bound),
        require_provisioned_account=config.require_provisioned_account,
    )

    delegates = list(extra_backends or [])
    if config.keycloak_url and not config.keycloak_service_client_secret:
        logger.warning("KEYCLOAK_URL set without a service client secret; Keycloak delegate skipped")
    elif config.keycloak_url:
        keycloak = KeycloakGroupBackend(config.keycloak_url, config.keycloak_realm)
        keycloak.authenticate_service_account(
            config.keycloak_realm,
            config.keycloak_service_client_id,
            config.keycloak_service_client_secret,
        )
        delegates.append(keycloak)

    delegates.append(backend)
    backend.register_backends(BackendRegistry(delegates))
    logger.info(f"Group backend ready with {len(delegates)} registered backends")
    return backend


def create_reconciler(
    config: AppConfig,
    backend: GroupBackend,
    sub_admin_manager: Optional[SubAdminManager] = None,
    group_manager: Optional[HostGroupManager] = None,
    operator: str = "saml-login",
) -> MembershipReconciler:
    """Build a MembershipReconciler around backend.

    Without a host sub-admin manager, sub-admin grants are refused. Without a
    host group manager, set_admin() is unavailable.
    """
    adapter = None
    if group_manager is not None:
        adapter = PrivilegeAdapter(group_manager, admin_group=config.admin_group)
    return MembershipReconciler(
        backend,
        sub_admin_manager if sub_admin_manager is not None else NullSubAdminManager(),
        adapter,
        operator=operator,
    )
