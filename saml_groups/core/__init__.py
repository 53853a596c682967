"""Core Group Sync Logic

This module provides the group membership logic for SAML-authenticated users,
independent of the host framework that calls it.

Module Structure:
    - groups/               : Group store, existence cache, backend registry
    - membership_service.py : Reconciliation of asserted groups (MembershipReconciler)
    - privileges.py         : Host delegates and the administrative group adapter
    - validators.py         : Normalization of group claims

Usage Pattern:
    from saml_groups.core.groups import Database, GroupBackend
    from saml_groups.core.membership_service import MembershipReconciler

    backend = GroupBackend(Database.from_url("sqlite:///groups.db"))
    reconciler = MembershipReconciler(backend, sub_admin_manager)
    reconciler.reconcile("alice", ["staff", "finance"])
"""
