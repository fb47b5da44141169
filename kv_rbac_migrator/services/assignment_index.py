"""Service for indexing the role assignments visible at a vault scope."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from ..models.azure_resources import RoleAssignment
from .protocols import ControlPlaneClient

logger = logging.getLogger(__name__)


@dataclass
class AssignmentSet:
    """Role assignments seen at one vault scope.

    Attributes:
        scope: The vault scope that was queried
        all_assignments: Everything returned, before the inherited-scope filter
        eligible: Assignments kept by the inherited-scope filter
    """

    scope: str
    all_assignments: List[RoleAssignment] = field(default_factory=list)
    eligible: List[RoleAssignment] = field(default_factory=list)

    def by_principal(self) -> Dict[str, List[RoleAssignment]]:
        """Partition the unfiltered assignments by lower-cased principal id."""
        partitions: Dict[str, List[RoleAssignment]] = {}
        for assignment in self.all_assignments:
            key = (assignment.principal_id or "").lower()
            partitions.setdefault(key, []).append(assignment)
        return partitions

    def for_principal(self, principal_id: str) -> List[RoleAssignment]:
        """Unfiltered assignments held by ``principal_id``."""
        return self.by_principal().get((principal_id or "").lower(), [])

    def eligible_for_principal(self, principal_id: str) -> List[RoleAssignment]:
        """Filtered assignments held by ``principal_id``."""
        return [a for a in self.eligible if a.belongs_to(principal_id)]

    def holds(self, principal_id: str, role_definition_id: str, scope: str) -> bool:
        """True if ``principal_id`` already has the role at exactly ``scope``."""
        return any(
            a.grants(principal_id, role_definition_id, scope)
            for a in self.all_assignments
        )


class AssignmentIndex:
    """Retrieves role assignments at a vault scope, without caching."""

    def __init__(self, control_plane: ControlPlaneClient):
        self.control_plane = control_plane

    async def assignments_at(self, scope: str, include_inherited: bool) -> AssignmentSet:
        """
        Query assignments at ``scope`` and apply the inherited-scope filter.

        The query always runs at the vault's own scope. With
        ``include_inherited`` false only assignments made exactly at ``scope``
        are eligible; with it true nothing is dropped. A retrieval failure is
        logged and yields an empty set.
        """
        try:
            assignments = await self.control_plane.list_role_assignments(scope)
        except Exception as e:
            logger.warning(f"Could not list role assignments at {scope}, skipping: {e}")
            return AssignmentSet(scope=scope)

        if include_inherited:
            eligible = list(assignments)
        else:
            eligible = [a for a in assignments if a.is_at_scope(scope)]

        logger.debug(
            f"{len(assignments)} assignments at {scope}, {len(eligible)} eligible "
            f"(include_inherited={include_inherited})"
        )
        return AssignmentSet(
            scope=scope, all_assignments=list(assignments), eligible=eligible
        )
