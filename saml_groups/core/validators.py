"""Input normalization for group claims."""
from __future__ import annotations
from typing import Iterable, Optional

from saml_groups.core.groups.database import GID_MAX_LENGTH


def normalize_group_ids(raw: Optional[Iterable[str]]) -> set[str]:
    """Normalize a list of group claims into a set of gids.

    Surrounding whitespace is stripped and empty entries are dropped. Case is
    preserved: gids are case-sensitive.

    Args:
        raw: Group identifiers as received from the identity provider

    Returns:
        Set of gids

    Raises:
        ValueError: If an entry is not a string or exceeds the gid column size
    """
    if raw is None:
        return set()
    if isinstance(raw, str):
        raise ValueError("Group claims must be a collection of strings, not a single string")

    gids = set()
    for value in raw:
        if not isinstance(value, str):
            raise ValueError(f"Invalid group identifier {value!r}: must be a string")
        gid = value.strip()
        if not gid:
            continue
        if len(gid) > GID_MAX_LENGTH:
            raise ValueError(f"Group identifier '{gid[:20]}...' exceeds {GID_MAX_LENGTH} characters")
        gids.add(gid)
    return gids


def validate_uid(uid: Optional[str]) -> str:
    """Validate a user identifier before reconciling its memberships.

    Raises:
        ValueError: If uid is empty (guest users have no memberships to sync)
    """
    if uid is None or not uid.strip():
        raise ValueError("uid is required")
    return uid
