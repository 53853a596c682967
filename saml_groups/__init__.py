"""SAML Group Sync Package.

To build a backend from the environment:
    from saml_groups.bootstrap import create_backend
    from saml_groups.config.settings import settings

    backend = create_backend(settings)

To reconcile a user's asserted groups:
    from saml_groups.core.membership_service import MembershipReconciler
"""
