"""
Milestone repository.

Milestones are positioned per roadmap.
"""

import logging
from datetime import date
from typing import Optional

from ..models import MilestoneDB, RoadmapDB
from ..exceptions import EntityNotFoundError
from .ordering import OrderedRepository
from ...cache import invalidate_tree

logger = logging.getLogger(__name__)


class MilestoneRepository(OrderedRepository):
    """Repository for roadmap milestones."""

    model = MilestoneDB
    scope_field = "roadmap_id"
    entity_name = "milestone"
    updatable_fields = (
        "title",
        "description",
        "target_date",
        "completed_date",
        "status",
        "color",
    )

    async def create(
        self,
        roadmap_id: str,
        title: str,
        position: Optional[int] = None,
        description: Optional[str] = None,
        target_date: Optional[date] = None,
        status: Optional[str] = None,
        color: Optional[str] = None,
    ) -> MilestoneDB:
        """Create a milestone, appended unless a position is given."""
        fields = {"title": title, "description": description, "target_date": target_date, "color": color}
        if status:
            fields["status"] = status

        async with self.db.session() as session:
            roadmap = await session.get(RoadmapDB, roadmap_id)
            if roadmap is None:
                raise EntityNotFoundError(f"Roadmap {roadmap_id} not found")
            milestone = await self._insert(session, roadmap_id, position, fields)

        await invalidate_tree(roadmap_id)
        return milestone

    async def get_by_roadmap(self, roadmap_id: str):
        return await self.list_by_scope(roadmap_id)


# Singleton
_milestone_repository: Optional[MilestoneRepository] = None


def get_milestone_repository() -> MilestoneRepository:
    """Get the milestone repository singleton."""
    global _milestone_repository
    if _milestone_repository is None:
        _milestone_repository = MilestoneRepository()
    return _milestone_repository
