"""
Feature and milestone link repositories.

Features are positioned per epic and carry their epic's roadmap id, read
from the parent epic inside the insert transaction. A feature can also be
linked to any number of milestones of the same roadmap; links are positioned
per milestone.
"""

import logging
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import EpicDB, FeatureDB, MilestoneDB, MilestoneFeatureDB
from ..exceptions import DatabaseConstraintError, EntityNotFoundError, ValidationError
from .ordering import OrderedRepository
from ...cache import invalidate_tree

logger = logging.getLogger(__name__)


class MilestoneLinkRepository(OrderedRepository):
    """Repository for feature <-> milestone links."""

    model = MilestoneFeatureDB
    scope_field = "milestone_id"
    entity_name = "milestone link"

    async def _roadmap_id_for_scope(self, session: AsyncSession, scope_id: str) -> Optional[str]:
        result = await session.execute(
            select(MilestoneDB.roadmap_id).where(MilestoneDB.id == scope_id)
        )
        return result.scalar_one_or_none()

    async def link(
        self,
        feature_id: str,
        milestone_id: str,
        position: Optional[int] = None,
    ) -> MilestoneFeatureDB:
        """
        Link a feature to a milestone.

        Raises:
            EntityNotFoundError: feature or milestone missing
            ValidationError: they belong to different roadmaps
            DatabaseConstraintError: already linked
        """
        async with self.db.session() as session:
            feature = await session.get(FeatureDB, feature_id)
            if feature is None:
                raise EntityNotFoundError(f"Feature {feature_id} not found")

            milestone = await session.get(MilestoneDB, milestone_id)
            if milestone is None:
                raise EntityNotFoundError(f"Milestone {milestone_id} not found")

            if feature.roadmap_id != milestone.roadmap_id:
                raise ValidationError("Feature and milestone belong to different roadmaps")

            existing = await session.execute(
                select(MilestoneFeatureDB.id).where(
                    MilestoneFeatureDB.milestone_id == milestone_id,
                    MilestoneFeatureDB.feature_id == feature_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DatabaseConstraintError("Feature is already linked to this milestone")

            link = await self._insert(session, milestone_id, position, {"feature_id": feature_id})
            roadmap_id = milestone.roadmap_id

        await invalidate_tree(roadmap_id)
        return link

    async def unlink(self, feature_id: str, milestone_id: str) -> bool:
        """Remove a link and close the gap in the milestone."""
        async with self.db.session() as session:
            result = await session.execute(
                select(MilestoneFeatureDB)
                .where(
                    MilestoneFeatureDB.milestone_id == milestone_id,
                    MilestoneFeatureDB.feature_id == feature_id,
                )
                .with_for_update()
            )
            link = result.scalar_one_or_none()
            if link is None:
                raise EntityNotFoundError(
                    f"Feature {feature_id} is not linked to milestone {milestone_id}"
                )
            await self._delete_in_session(session, link)
            roadmap_id = await self._roadmap_id_for_scope(session, milestone_id)

        await invalidate_tree(roadmap_id)
        logger.info(f"Unlinked feature {feature_id} from milestone {milestone_id}")
        return True

    async def linked_features(self, milestone_id: str) -> List[FeatureDB]:
        """Features linked to a milestone, in link order."""
        async with self.db.session() as session:
            milestone = await session.get(MilestoneDB, milestone_id)
            if milestone is None:
                raise EntityNotFoundError(f"Milestone {milestone_id} not found")

            result = await session.execute(
                select(FeatureDB)
                .join(MilestoneFeatureDB, MilestoneFeatureDB.feature_id == FeatureDB.id)
                .where(MilestoneFeatureDB.milestone_id == milestone_id)
                .order_by(MilestoneFeatureDB.position.asc())
            )
            return list(result.scalars().all())

    async def remove_feature_links(self, session: AsyncSession, feature_id: str) -> int:
        """Drop every link of a feature, compacting each milestone it was in."""
        result = await session.execute(
            select(MilestoneFeatureDB).where(MilestoneFeatureDB.feature_id == feature_id)
        )
        links = list(result.scalars().all())
        for link in links:
            await self._delete_in_session(session, link)
        return len(links)


class FeatureRepository(OrderedRepository):
    """Repository for epic features."""

    model = FeatureDB
    scope_field = "epic_id"
    entity_name = "feature"
    updatable_fields = (
        "title",
        "description",
        "status",
        "is_deliverable",
        "estimated_hours",
        "actual_hours",
    )

    async def _roadmap_id_for_scope(self, session: AsyncSession, scope_id: str) -> Optional[str]:
        result = await session.execute(
            select(EpicDB.roadmap_id).where(EpicDB.id == scope_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        epic_id: str,
        title: str,
        position: Optional[int] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
        is_deliverable: bool = True,
        estimated_hours: Optional[float] = None,
    ) -> FeatureDB:
        """Create a feature under an epic, inheriting the epic's roadmap."""
        async with self.db.session() as session:
            epic = await session.get(EpicDB, epic_id)
            if epic is None:
                raise EntityNotFoundError(f"Epic {epic_id} not found")

            fields = {
                "roadmap_id": epic.roadmap_id,
                "title": title,
                "description": description,
                "is_deliverable": is_deliverable,
                "estimated_hours": estimated_hours,
            }
            if status:
                fields["status"] = status

            feature = await self._insert(session, epic_id, position, fields)
            roadmap_id = epic.roadmap_id

        await invalidate_tree(roadmap_id)
        return feature

    async def get_by_epic(self, epic_id: str):
        return await self.list_by_scope(epic_id)

    async def _delete_in_session(self, session: AsyncSession, item) -> None:
        await MilestoneLinkRepository(self.db).remove_feature_links(session, item.id)
        await super()._delete_in_session(session, item)


# Singletons
_feature_repository: Optional[FeatureRepository] = None
_milestone_link_repository: Optional[MilestoneLinkRepository] = None


def get_feature_repository() -> FeatureRepository:
    """Get the feature repository singleton."""
    global _feature_repository
    if _feature_repository is None:
        _feature_repository = FeatureRepository()
    return _feature_repository


def get_milestone_link_repository() -> MilestoneLinkRepository:
    """Get the milestone link repository singleton."""
    global _milestone_link_repository
    if _milestone_link_repository is None:
        _milestone_link_repository = MilestoneLinkRepository()
    return _milestone_link_repository
