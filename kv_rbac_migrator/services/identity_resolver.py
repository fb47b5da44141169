"""Service for resolving free-form identity strings to directory object ids."""

import re
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import structlog

from ..exceptions import DirectoryLookupError, ResolutionError
from ..models.principal import PrincipalKind, PrincipalRef
from .protocols import DirectoryClient

logger = structlog.get_logger(__name__)

# Canonical object id: 8-4-4-4-12 hex digits
GUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_object_id(identifier: str) -> bool:
    """True if ``identifier`` already is a canonical directory object id."""
    return bool(GUID_PATTERN.match(identifier or ""))


class IdentityResolver:
    """
    Resolves identity strings with a fixed precedence and memoizes the result.

    Precedence (first match wins, results are never merged):
    1. A canonical object id is returned unchanged
    2. User by principal name, then by display name
    3. Service principal by application id, then by display name
    4. Group by display name

    One resolver lives for one run; its cache is keyed by the exact input
    string and is never invalidated. Failed resolutions are not cached.
    """

    def __init__(self, directory: DirectoryClient):
        """
        Initialize the identity resolver.

        Args:
            directory: DirectoryClient used for lookups
        """
        self.directory = directory
        self._cache: Dict[str, PrincipalRef] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cached(self, identifier: str) -> Optional[PrincipalRef]:
        """Return the cached resolution for ``identifier``, if any."""
        return self._cache.get(identifier)

    async def resolve(self, identifier: str) -> str:
        """
        Resolve an identity string to a directory object id.

        Raises:
            ResolutionError: If nothing matches or a directory query fails
        """
        principal = await self.resolve_principal(identifier)
        return principal.resolved_id

    async def resolve_principal(self, identifier: str) -> PrincipalRef:
        """
        Resolve an identity string to a PrincipalRef.

        Args:
            identifier: Object id, user principal name, display name or app id

        Returns:
            PrincipalRef with the resolved id and the kind of object matched

        Raises:
            ResolutionError: If the identity cannot be resolved
        """
        hit = self._cache.get(identifier)
        if hit is not None:
            return hit

        if identifier is None or not identifier.strip():
            raise ResolutionError("identity is blank", identifier=identifier)

        if is_object_id(identifier):
            principal = PrincipalRef(identifier, identifier, PrincipalKind.UNKNOWN)
        else:
            principal = await self._lookup(identifier)

        self._cache[identifier] = principal
        logger.debug(
            "identity resolved",
            identifier=identifier,
            object_id=principal.resolved_id,
            kind=principal.kind.value,
        )
        return principal

    def _lookup_chain(
        self,
    ) -> List[Tuple[str, PrincipalKind, Callable[[str], Awaitable[List[str]]]]]:
        return [
            (
                "user principal name",
                PrincipalKind.USER,
                self.directory.find_users_by_principal_name,
            ),
            (
                "user display name",
                PrincipalKind.USER,
                self.directory.find_users_by_display_name,
            ),
            (
                "service principal app id",
                PrincipalKind.SERVICE_PRINCIPAL,
                self.directory.find_service_principals_by_app_id,
            ),
            (
                "service principal display name",
                PrincipalKind.SERVICE_PRINCIPAL,
                self.directory.find_service_principals_by_display_name,
            ),
            (
                "group display name",
                PrincipalKind.GROUP,
                self.directory.find_groups_by_display_name,
            ),
        ]

    async def _lookup(self, identifier: str) -> PrincipalRef:
        for label, kind, lookup in self._lookup_chain():
            try:
                matches = await lookup(identifier)
            except DirectoryLookupError as e:
                raise ResolutionError(
                    f"directory lookup by {label} failed",
                    identifier=identifier,
                    cause=e,
                ) from e

            unique = list(dict.fromkeys(matches or []))
            if not unique:
                continue
            if len(unique) > 1:
                logger.warning(
                    "identity matched several objects, using the first",
                    identifier=identifier,
                    lookup=label,
                    matches=len(unique),
                    object_id=unique[0],
                )
            return PrincipalRef(identifier, unique[0], kind)

        raise ResolutionError("identity not found", identifier=identifier)
