"""Keycloak realm exposed as a read-only group backend.

Registered ahead of the SAML backend, it makes realm-managed groups
authoritative over SAML-provisioned groups with the same name.
"""
from __future__ import annotations
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

import requests

from .exceptions import DelegateError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5
TOKEN_LIFETIME_SECONDS = 60


class KeycloakGroupBackend:
    """Answers group_exists() from a Keycloak realm's top-level groups.

    Usage:
        backend = KeycloakGroupBackend("http://keycloak:8080", "demo")
        backend.authenticate_service_account("demo", "automation-cli", secret)
        backend.group_exists("admins")
    """

    def __init__(self, base_url: Optional[str] = None, realm: str = "demo"):
        """Initialize the backend.

        Args:
            base_url: Keycloak base URL (defaults to KEYCLOAK_URL env var)
            realm: Realm whose groups are probed
        """
        self.base_url = (base_url or os.environ.get("KEYCLOAK_URL", "http://keycloak:8080")).rstrip("/")
        self.realm = realm
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._auth_params: dict[str, str] = {}

    def authenticate_service_account(self, auth_realm: str, client_id: str, client_secret: str) -> str:
        """Fetch a token via client credentials and keep the credentials for refresh."""
        self._auth_params = {
            "auth_realm": auth_realm,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        return self._refresh_token()

    def use_token(self, token: str, expires_in: int = 3600) -> None:
        """Use a pre-obtained access token."""
        self._token = token
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in)

    def group_exists(self, gid: str) -> bool:
        """Check whether the realm has a top-level group named gid.

        Raises:
            DelegateError: On authentication or HTTP failure
        """
        url = f"{self.base_url}/admin/realms/{self.realm}/groups"
        try:
            resp = requests.get(
                url,
                params={"search": gid, "exact": "true"},
                headers={"Authorization": f"Bearer {self._ensure_token()}"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise DelegateError("keycloak", f"GET {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise DelegateError("keycloak", f"[{resp.status_code}] {url}: {resp.text}")

        # search also matches subgroups and substrings on older releases
        groups = resp.json() or []
        return any(group.get("path") == f"/{gid}" for group in groups)

    def _ensure_token(self) -> str:
        if self._token and self._token_expires_at:
            if datetime.now() < self._token_expires_at - timedelta(seconds=10):
                return self._token
        if not self._auth_params:
            raise DelegateError("keycloak", "Not authenticated - call authenticate_service_account or use_token first")
        return self._refresh_token()

    def _refresh_token(self) -> str:
        params = self._auth_params
        url = f"{self.base_url}/realms/{params['auth_realm']}/protocol/openid-connect/token"
        data = {
            "grant_type": "client_credentials",
            "client_id": params["client_id"],
            "client_secret": params["client_secret"],
        }
        try:
            resp = requests.post(url, data=data, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            raise DelegateError("keycloak", f"Token request failed: {exc}") from exc
        if resp.status_code != 200:
            raise DelegateError("keycloak", f"[{resp.status_code}] {url}: {resp.text}")

        self._token = resp.json()["access_token"]
        self._token_expires_at = datetime.now() + timedelta(seconds=TOKEN_LIFETIME_SECONDS)
        logger.debug(f"Keycloak token refreshed for realm '{self.realm}'")
        return self._token
