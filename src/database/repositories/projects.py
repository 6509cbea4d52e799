"""
Project repository for roadmap grouping.

Projects group an owner's roadmaps. Guest migration uses
get_or_create_default() to give every moved roadmap a parent project in the
target account.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ..connection import get_database, Database
from ..models import ProjectDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "My Project"


class ProjectRepository:
    """Repository for project operations."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    async def create(
        self,
        owner_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> ProjectDB:
        """Create a new project."""
        async with self.db.session() as session:
            try:
                project = ProjectDB(
                    owner_id=owner_id,
                    name=name,
                    description=description,
                    status="active",
                )
                session.add(project)
                await session.flush()

                logger.info(f"Created project: {name}")
                return project

            except IntegrityError as e:
                logger.error(f"Constraint violation creating project {name}: {e}")
                raise DatabaseConstraintError(f"Cannot create project {name}: duplicate or constraint violation")

            except Exception as e:
                logger.error(f"CRITICAL: Project creation failed for {name}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create project {name}: {e}")

    async def get_by_id(self, project_id: str) -> Optional[ProjectDB]:
        """Get project by ID with roadmaps."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ProjectDB)
                .options(selectinload(ProjectDB.roadmaps))
                .where(ProjectDB.id == project_id)
            )
            return result.scalar_one_or_none()

    async def get_by_name(self, owner_id: str, name: str) -> Optional[ProjectDB]:
        """Get an owner's project by exact name (oldest wins on duplicates)."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ProjectDB)
                .where(ProjectDB.owner_id == owner_id, ProjectDB.name == name)
                .order_by(ProjectDB.created_at.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_or_create_default(
        self,
        owner_id: str,
        name: Optional[str] = None,
    ) -> Tuple[ProjectDB, bool]:
        """
        Find the owner's project with this name or create it.

        Blank names fall back to "My Project". Returns (project, created).
        """
        name = (name or "").strip() or DEFAULT_PROJECT_NAME

        project = await self.get_by_name(owner_id, name)
        if project:
            return project, False

        return await self.create(owner_id=owner_id, name=name), True


# Singleton
_project_repository: Optional[ProjectRepository] = None


def get_project_repository() -> ProjectRepository:
    """Get the project repository singleton."""
    global _project_repository
    if _project_repository is None:
        _project_repository = ProjectRepository()
    return _project_repository
