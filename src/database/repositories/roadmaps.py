"""
Roadmap repository.

Roadmaps are the unit of ownership: milestones, epics, features and tasks
follow their roadmap through the roadmap_id foreign keys, so moving a
roadmap to another owner moves its whole subtree.
"""

import logging
from datetime import date
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from ..connection import get_database, Database
from ..models import RoadmapDB, ProfileDB
from ..exceptions import (
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
)
from ...cache import invalidate_tree

logger = logging.getLogger(__name__)


class RoadmapRepository:
    """Repository for roadmap operations."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    async def create(
        self,
        owner_id: str,
        name: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        project_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        settings: Optional[Dict[str, Any]] = None,
        project_metadata: Optional[Dict[str, Any]] = None,
    ) -> RoadmapDB:
        """Create a new roadmap owned by `owner_id`."""
        async with self.db.session() as session:
            owner = await session.get(ProfileDB, owner_id)
            if owner is None:
                raise EntityNotFoundError(f"Profile {owner_id} not found")

            try:
                roadmap = RoadmapDB(
                    owner_id=owner_id,
                    name=name,
                    description=description,
                    project_id=project_id,
                    start_date=start_date,
                    end_date=end_date,
                    settings=settings or {},
                    project_metadata=project_metadata or {},
                )
                if status:
                    roadmap.status = status
                session.add(roadmap)
                await session.flush()

                logger.info(f"Created roadmap {roadmap.id} for owner {owner_id}")
                return roadmap

            except IntegrityError as e:
                logger.error(f"Constraint violation creating roadmap {name}: {e}")
                raise DatabaseConstraintError(f"Cannot create roadmap {name}: constraint violation")

            except Exception as e:
                logger.error(f"CRITICAL: Roadmap creation failed for {name}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create roadmap {name}: {e}")

    async def get_by_id(self, roadmap_id: str) -> Optional[RoadmapDB]:
        """Get roadmap by ID."""
        async with self.db.session() as session:
            result = await session.execute(
                select(RoadmapDB).where(RoadmapDB.id == roadmap_id)
            )
            return result.scalar_one_or_none()

    async def get_by_owner(self, owner_id: str) -> List[RoadmapDB]:
        """All roadmaps of an owner, most recently updated first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(RoadmapDB)
                .where(RoadmapDB.owner_id == owner_id)
                .order_by(RoadmapDB.updated_at.desc())
            )
            return list(result.scalars().all())

    async def count_by_owner(self, owner_id: str) -> int:
        async with self.db.session() as session:
            result = await session.execute(
                select(func.count(RoadmapDB.id)).where(RoadmapDB.owner_id == owner_id)
            )
            return result.scalar() or 0

    async def transfer_ownership(
        self,
        roadmap_id: str,
        from_owner_id: str,
        to_owner_id: str,
        project_id: Optional[str] = None,
    ) -> None:
        """
        Move a roadmap from one owner to another in a single statement.

        Raises EntityNotFoundError when the roadmap is no longer owned by
        `from_owner_id` (deleted or already moved).
        """
        values: Dict[str, Any] = {"owner_id": to_owner_id}
        if project_id is not None:
            values["project_id"] = project_id

        async with self.db.session() as session:
            result = await session.execute(
                update(RoadmapDB)
                .where(RoadmapDB.id == roadmap_id, RoadmapDB.owner_id == from_owner_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise EntityNotFoundError(
                    f"Roadmap {roadmap_id} is not owned by {from_owner_id}"
                )

        await invalidate_tree(roadmap_id)
        logger.info(f"Transferred roadmap {roadmap_id} from {from_owner_id} to {to_owner_id}")


# Singleton
_roadmap_repository: Optional[RoadmapRepository] = None


def get_roadmap_repository() -> RoadmapRepository:
    """Get the roadmap repository singleton."""
    global _roadmap_repository
    if _roadmap_repository is None:
        _roadmap_repository = RoadmapRepository()
    return _roadmap_repository
