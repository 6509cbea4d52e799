"""
Task repository.

Tasks are positioned per feature.
"""

import logging
from datetime import date
from typing import Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import FeatureDB, TaskDB, TaskStatusEnum
from ..exceptions import EntityNotFoundError
from .ordering import OrderedRepository
from ...cache import invalidate_tree
from ...utils.datetime_utils import get_local_now

logger = logging.getLogger(__name__)


class TaskRepository(OrderedRepository):
    """Repository for feature tasks."""

    model = TaskDB
    scope_field = "feature_id"
    entity_name = "task"
    updatable_fields = (
        "title",
        "priority",
        "status",
        "assigned_to",
        "due_date",
        "completed_at",
    )

    async def _roadmap_id_for_scope(self, session: AsyncSession, scope_id: str) -> Optional[str]:
        result = await session.execute(
            select(FeatureDB.roadmap_id).where(FeatureDB.id == scope_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        feature_id: str,
        title: str,
        position: Optional[int] = None,
        priority: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        due_date: Optional[date] = None,
    ) -> TaskDB:
        """Create a task under a feature, appended unless a position is given."""
        fields = {"title": title, "assigned_to": assigned_to, "due_date": due_date}
        if priority:
            fields["priority"] = priority
        if status:
            fields["status"] = status

        async with self.db.session() as session:
            feature = await session.get(FeatureDB, feature_id)
            if feature is None:
                raise EntityNotFoundError(f"Feature {feature_id} not found")
            task = await self._insert(session, feature_id, position, fields)
            roadmap_id = feature.roadmap_id

        await invalidate_tree(roadmap_id)
        return task

    async def update(self, item_id: str, updates: Dict[str, Any]) -> TaskDB:
        """Update a task; moving to done stamps completed_at unless one is given."""
        if updates.get("status") == TaskStatusEnum.DONE.value and "completed_at" not in updates:
            updates = {**updates, "completed_at": get_local_now()}
        return await super().update(item_id, updates)

    async def get_by_feature(self, feature_id: str):
        return await self.list_by_scope(feature_id)


# Singleton
_task_repository: Optional[TaskRepository] = None


def get_task_repository() -> TaskRepository:
    """Get the task repository singleton."""
    global _task_repository
    if _task_repository is None:
        _task_repository = TaskRepository()
    return _task_repository
