"""
Epic repository.

Epics are positioned per roadmap. Deleting an epic cascades to its features,
tasks and their milestone links at the database level; the links' milestone
scopes are compacted here since the cascade cannot do that.
"""

import logging
from datetime import date
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import EpicDB, FeatureDB, RoadmapDB
from ..exceptions import EntityNotFoundError
from .ordering import OrderedRepository
from .features import MilestoneLinkRepository
from ...cache import invalidate_tree

logger = logging.getLogger(__name__)


class EpicRepository(OrderedRepository):
    """Repository for roadmap epics."""

    model = EpicDB
    scope_field = "roadmap_id"
    entity_name = "epic"
    updatable_fields = (
        "title",
        "description",
        "priority",
        "status",
        "color",
        "estimated_hours",
        "actual_hours",
        "start_date",
        "due_date",
        "completed_date",
        "tags",
    )

    async def create(
        self,
        roadmap_id: str,
        title: str,
        position: Optional[int] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        status: Optional[str] = None,
        color: Optional[str] = None,
        estimated_hours: Optional[float] = None,
        start_date: Optional[date] = None,
        due_date: Optional[date] = None,
        tags: Optional[List[str]] = None,
    ) -> EpicDB:
        """Create an epic, appended unless a position is given."""
        fields = {
            "title": title,
            "description": description,
            "color": color,
            "estimated_hours": estimated_hours,
            "start_date": start_date,
            "due_date": due_date,
            "tags": tags,
        }
        if priority:
            fields["priority"] = priority
        if status:
            fields["status"] = status

        async with self.db.session() as session:
            roadmap = await session.get(RoadmapDB, roadmap_id)
            if roadmap is None:
                raise EntityNotFoundError(f"Roadmap {roadmap_id} not found")
            epic = await self._insert(session, roadmap_id, position, fields)

        await invalidate_tree(roadmap_id)
        return epic

    async def get_by_roadmap(self, roadmap_id: str):
        return await self.list_by_scope(roadmap_id)

    async def _delete_in_session(self, session: AsyncSession, item) -> None:
        result = await session.execute(select(FeatureDB.id).where(FeatureDB.epic_id == item.id))
        links = MilestoneLinkRepository(self.db)
        for feature_id in result.scalars().all():
            await links.remove_feature_links(session, feature_id)
        await super()._delete_in_session(session, item)


# Singleton
_epic_repository: Optional[EpicRepository] = None


def get_epic_repository() -> EpicRepository:
    """Get the epic repository singleton."""
    global _epic_repository
    if _epic_repository is None:
        _epic_repository = EpicRepository()
    return _epic_repository
