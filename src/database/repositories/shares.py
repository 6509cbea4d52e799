"""
Roadmap share repository.

A roadmap has at most one active share grant (partial unique index on
roadmap_id where is_active). Revoking flips is_active so history stays.
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..connection import get_database, Database
from ..models import RoadmapShareDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError, EntityNotFoundError

logger = logging.getLogger(__name__)


class ShareRepository:
    """Repository for roadmap share grants."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    async def create(
        self,
        roadmap_id: str,
        created_by: str,
        share_token: str,
        invited_emails: List[Dict[str, str]],
        default_role: str,
        expires_at: Optional[datetime] = None,
    ) -> RoadmapShareDB:
        """Create an active share grant."""
        async with self.db.session() as session:
            try:
                share = RoadmapShareDB(
                    roadmap_id=roadmap_id,
                    created_by=created_by,
                    share_token=share_token,
                    invited_emails=invited_emails,
                    default_role=default_role,
                    expires_at=expires_at,
                    is_active=True,
                )
                session.add(share)
                await session.flush()

                logger.info(f"Created share {share.id} for roadmap {roadmap_id}")
                return share

            except IntegrityError as e:
                logger.error(f"Constraint violation creating share for roadmap {roadmap_id}: {e}")
                raise DatabaseConstraintError(
                    f"Roadmap {roadmap_id} already has an active share"
                )

            except Exception as e:
                logger.error(f"CRITICAL: Share creation failed for roadmap {roadmap_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create share for roadmap {roadmap_id}: {e}")

    async def update(self, share_id: str, updates: Dict[str, Any]) -> RoadmapShareDB:
        """Update an existing grant in place; the token is never touched here."""
        async with self.db.session() as session:
            share = await session.get(RoadmapShareDB, share_id)
            if share is None:
                raise EntityNotFoundError(f"Share {share_id} not found")
            for key, value in updates.items():
                setattr(share, key, value)
            await session.flush()
            return share

    async def get_active(self, roadmap_id: str) -> Optional[RoadmapShareDB]:
        """The active grant of a roadmap, if any."""
        async with self.db.session() as session:
            result = await session.execute(
                select(RoadmapShareDB).where(
                    RoadmapShareDB.roadmap_id == roadmap_id,
                    RoadmapShareDB.is_active.is_(True),
                )
            )
            return result.scalar_one_or_none()

    async def get_active_by_token(self, share_token: str) -> Optional[RoadmapShareDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(RoadmapShareDB).where(
                    RoadmapShareDB.share_token == share_token,
                    RoadmapShareDB.is_active.is_(True),
                )
            )
            return result.scalar_one_or_none()

    async def list_active(self) -> List[RoadmapShareDB]:
        """All active grants, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(RoadmapShareDB)
                .where(RoadmapShareDB.is_active.is_(True))
                .order_by(RoadmapShareDB.created_at.desc())
            )
            return list(result.scalars().all())

    async def deactivate(self, roadmap_id: str) -> bool:
        """Mark the active grant of a roadmap inactive. False when none was active."""
        async with self.db.session() as session:
            result = await session.execute(
                update(RoadmapShareDB)
                .where(
                    RoadmapShareDB.roadmap_id == roadmap_id,
                    RoadmapShareDB.is_active.is_(True),
                )
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            deactivated = result.rowcount > 0

        if deactivated:
            logger.info(f"Deactivated share for roadmap {roadmap_id}")
        return deactivated


# Singleton
_share_repository: Optional[ShareRepository] = None


def get_share_repository() -> ShareRepository:
    """Get the share repository singleton."""
    global _share_repository
    if _share_repository is None:
        _share_repository = ShareRepository()
    return _share_repository
