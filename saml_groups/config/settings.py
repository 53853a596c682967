"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from saml_groups.core.groups.database import DEFAULT_GROUPS_TABLE, DEFAULT_MEMBERSHIP_TABLE

DEFAULT_DATABASE_URL = "sqlite:///.runtime/saml_groups.db"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_flag(var_name: str, default: bool = False) -> bool:
    return os.environ.get(var_name, str(default)).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(var_name: str, default: int) -> int:
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {var_name} must be an integer, got {raw!r}") from None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Storage
    database_url: str = DEFAULT_DATABASE_URL
    groups_table: str = DEFAULT_GROUPS_TABLE
    membership_table: str = DEFAULT_MEMBERSHIP_TABLE

    # Provisioning policy
    admin_group: str = "admin"
    require_provisioned_account: bool = False
    grant_sub_admin: bool = False

    # Existence cache (0 = unbounded)
    cache_max_entries: int = 0

    # Keycloak delegate backend (disabled when keycloak_url is empty)
    keycloak_url: str = ""
    keycloak_realm: str = "demo"
    keycloak_service_client_id: str = "automation-cli"
    keycloak_service_client_secret: str = ""

    # Logging
    log_level: str = "INFO"

    @property
    def autoprovision_allowed(self) -> bool:
        return not self.require_provisioned_account

    @property
    def cache_bound(self) -> Optional[int]:
        """Cache size bound for GroupExistenceCache, None when unbounded."""
        return self.cache_max_entries if self.cache_max_entries > 0 else None


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    database_url = _load_secret_from_file("database_url", "DATABASE_URL") or DEFAULT_DATABASE_URL

    cache_max_entries = _env_int("SAML_GROUP_CACHE_MAX_ENTRIES", 0)
    if cache_max_entries < 0:
        raise ValueError("SAML_GROUP_CACHE_MAX_ENTRIES must not be negative")

    keycloak_service_client_secret = _load_secret_from_file(
        "keycloak_service_client_secret",
        "KEYCLOAK_SERVICE_CLIENT_SECRET",
    ) or ""

    config = AppConfig(
        database_url=database_url,
        groups_table=os.environ.get("SAML_GROUPS_TABLE", DEFAULT_GROUPS_TABLE),
        membership_table=os.environ.get("SAML_GROUP_MEMBERSHIP_TABLE", DEFAULT_MEMBERSHIP_TABLE),
        admin_group=os.environ.get("SAML_ADMIN_GROUP", "admin").strip() or "admin",
        require_provisioned_account=_env_flag("SAML_REQUIRE_PROVISIONED_ACCOUNT"),
        grant_sub_admin=_env_flag("SAML_GRANT_SUB_ADMIN"),
        cache_max_entries=cache_max_entries,
        keycloak_url=os.environ.get("KEYCLOAK_URL", "").rstrip("/"),
        keycloak_realm=os.environ.get("KEYCLOAK_REALM", "demo"),
        keycloak_service_client_id=os.environ.get("KEYCLOAK_SERVICE_CLIENT_ID", "automation-cli"),
        keycloak_service_client_secret=keycloak_service_client_secret,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )

    db_label = config.database_url.split("@")[-1]
    print(f"[settings] database={db_label}; tables={config.groups_table},{config.membership_table}")
    if config.keycloak_url:
        print(f"[settings] Keycloak delegate enabled: {config.keycloak_url} realm={config.keycloak_realm}")

    return config


# Global settings instance (loaded on first import)
settings: AppConfig = load_settings()
