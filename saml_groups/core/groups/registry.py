"""Registry of group backends used to find the one authoritative for a gid."""
from __future__ import annotations
import logging
from typing import Iterable, Iterator, Optional, Protocol, runtime_checkable

from .exceptions import RegistryError

logger = logging.getLogger(__name__)


@runtime_checkable
class GroupExistenceProbe(Protocol):
    """Any backend that can answer whether it knows a group."""

    def group_exists(self, gid: str) -> bool: ...


class BackendRegistry:
    """Ordered, immutable list of group backends.

    Registration order is priority: when several backends claim the same
    gid, the earliest one wins.

    Usage:
        registry = BackendRegistry([ldap_backend, saml_backend])
        backend = registry.resolve_authoritative_backend("staff")
    """

    def __init__(self, backends: Iterable[GroupExistenceProbe] = ()):
        backends = tuple(backends)
        for backend in backends:
            if not isinstance(backend, GroupExistenceProbe):
                raise RegistryError(f"{backend!r} does not implement group_exists()")
        self._backends = backends

    @property
    def backends(self) -> tuple[GroupExistenceProbe, ...]:
        return self._backends

    def __iter__(self) -> Iterator[GroupExistenceProbe]:
        return iter(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    def resolve_authoritative_backend(
        self, gid: str, skip: Optional[object] = None
    ) -> Optional[GroupExistenceProbe]:
        """Return the first registered backend that claims gid.

        Args:
            gid: Group identifier
            skip: Backend to leave out (by identity), typically the caller

        Returns:
            Backend instance or None if no backend claims the group
        """
        for backend in self._backends:
            if backend is skip:
                continue
            if backend.group_exists(gid):
                logger.debug(f"Group '{gid}' resolved to {type(backend).__name__}")
                return backend
        return None
