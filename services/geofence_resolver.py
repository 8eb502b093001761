from dataclasses import dataclass
from typing import Optional

from core.exceptions import NoGeofenceConfigured
from models.coordinate import GeofenceDefinition, GeofenceSource


@dataclass(frozen=True)
class GeofenceContext:
    """Candidate definitions for one employee/device/branch at one moment."""

    custom: Optional[GeofenceDefinition] = None
    branch: Optional[GeofenceDefinition] = None


def resolve(context: GeofenceContext) -> GeofenceDefinition:
    # Custom premise strictly overrides the branch geofence
    if context.custom is not None:
        return context.custom
    if context.branch is not None:
        return context.branch
    raise NoGeofenceConfigured("No custom premise or branch geofence is configured.")


class GeofenceResolver:
    """
    Loads both candidate definitions from the store on every call and picks
    one with `resolve`. Nothing is cached between calls since either
    definition may be edited at any time.
    """

    def __init__(self, store):
        self.store = store

    async def load_context(
        self, device_id: Optional[str], branch_id: Optional[str]
    ) -> GeofenceContext:
        custom = None
        branch = None
        if device_id:
            custom = await self.store.load_geofence_definition(
                GeofenceSource.CUSTOM, device_id
            )
        if branch_id:
            branch = await self.store.load_geofence_definition(
                GeofenceSource.BRANCH, branch_id
            )
        return GeofenceContext(custom=custom, branch=branch)

    async def resolve_for(
        self, device_id: Optional[str], branch_id: Optional[str]
    ) -> GeofenceDefinition:
        return resolve(await self.load_context(device_id, branch_id))

    async def resolve_for_any_branch(
        self, device_id: Optional[str], branch_ids: list[str]
    ) -> tuple[GeofenceDefinition, Optional[str]]:
        """
        Resolve for a user assigned to several branches: the custom premise
        wins outright, otherwise the first assigned branch with a geofence.
        Returns the definition and the branch id it came from (None for a
        custom premise).
        """
        context = await self.load_context(device_id, None)
        if context.custom is not None:
            return context.custom, None
        for branch_id in branch_ids:
            context = await self.load_context(None, branch_id)
            if context.branch is not None:
                return resolve(context), branch_id
        return resolve(GeofenceContext()), None
