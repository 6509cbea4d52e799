"""
Tree assembly for roadmaps.

Each level (roadmap, milestones, epics, features, tasks, milestone links) is
fetched with its own query already ordered by position, then grouped under
its parent in memory. Missing children produce empty lists; only a missing
root is an error.

Three read shapes:
- preview(owner_id): an owner's roadmaps with a minimal epic/feature/task
  outline, for dashboard cards
- full(roadmap_id): one roadmap with every field, cached in Redis
- shared_full(roadmap_id, role): full() plus the viewer's resolved role
"""

import logging
from collections import defaultdict
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select

from ..cache import cached
from ..cache.decorators import TREE_KEY_PREFIX
from ..database.connection import get_database, Database
from ..database.exceptions import EntityNotFoundError
from ..database.models import (
    RoadmapDB,
    MilestoneDB,
    EpicDB,
    FeatureDB,
    TaskDB,
    MilestoneFeatureDB,
)
from .serializers import row_to_dict, rows_to_dicts

logger = logging.getLogger(__name__)

PREVIEW_ROADMAP_FIELDS = ("id", "name", "description", "status", "project_id", "created_at", "updated_at")
PREVIEW_EPIC_FIELDS = ("id", "roadmap_id", "title", "position", "status")
PREVIEW_FEATURE_FIELDS = ("id", "epic_id", "title", "position", "status")
PREVIEW_TASK_FIELDS = ("id", "feature_id", "position", "status")


def _group_by(rows: Iterable[Dict[str, Any]], key: str) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[row[key]].append(row)
    return grouped


class TreeAssembler:
    """Builds nested roadmap read models."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    async def preview(self, owner_id: str) -> List[Dict[str, Any]]:
        """All roadmaps of an owner, most recently updated first, with a minimal outline."""
        async with self.db.session() as session:
            result = await session.execute(
                select(RoadmapDB)
                .where(RoadmapDB.owner_id == owner_id)
                .order_by(RoadmapDB.updated_at.desc())
            )
            roadmaps = rows_to_dicts(result.scalars().all(), PREVIEW_ROADMAP_FIELDS)
            if not roadmaps:
                return []

            result = await session.execute(
                select(EpicDB)
                .where(EpicDB.roadmap_id.in_([r["id"] for r in roadmaps]))
                .order_by(EpicDB.position.asc())
            )
            epics = rows_to_dicts(result.scalars().all(), PREVIEW_EPIC_FIELDS)

            features: List[Dict[str, Any]] = []
            if epics:
                result = await session.execute(
                    select(FeatureDB)
                    .where(FeatureDB.epic_id.in_([e["id"] for e in epics]))
                    .order_by(FeatureDB.position.asc())
                )
                features = rows_to_dicts(result.scalars().all(), PREVIEW_FEATURE_FIELDS)

            tasks: List[Dict[str, Any]] = []
            if features:
                result = await session.execute(
                    select(TaskDB)
                    .where(TaskDB.feature_id.in_([f["id"] for f in features]))
                    .order_by(TaskDB.position.asc())
                )
                tasks = rows_to_dicts(result.scalars().all(), PREVIEW_TASK_FIELDS)

        tasks_by_feature = _group_by(tasks, "feature_id")
        for feature in features:
            feature["tasks"] = tasks_by_feature.get(feature["id"], [])

        features_by_epic = _group_by(features, "epic_id")
        for epic in epics:
            epic["features"] = features_by_epic.get(epic["id"], [])

        epics_by_roadmap = _group_by(epics, "roadmap_id")
        for roadmap in roadmaps:
            roadmap["epics"] = epics_by_roadmap.get(roadmap["id"], [])

        return roadmaps

    @cached(key_prefix=TREE_KEY_PREFIX)
    async def full(self, roadmap_id: str) -> Dict[str, Any]:
        """
        One roadmap with milestones and epics -> features -> tasks.

        Pass roadmap_id positionally: the cache key is "tree:<roadmap_id>"
        and writes invalidate exactly that key.

        Raises:
            EntityNotFoundError: roadmap does not exist
        """
        async with self.db.session() as session:
            roadmap_row = await session.get(RoadmapDB, roadmap_id)
            if roadmap_row is None:
                raise EntityNotFoundError(f"Roadmap {roadmap_id} not found")
            roadmap = row_to_dict(roadmap_row)

            result = await session.execute(
                select(MilestoneDB)
                .where(MilestoneDB.roadmap_id == roadmap_id)
                .order_by(MilestoneDB.position.asc())
            )
            milestones = rows_to_dicts(result.scalars().all())

            links: List[Dict[str, Any]] = []
            if milestones:
                result = await session.execute(
                    select(MilestoneFeatureDB)
                    .where(MilestoneFeatureDB.milestone_id.in_([m["id"] for m in milestones]))
                    .order_by(MilestoneFeatureDB.position.asc())
                )
                links = rows_to_dicts(result.scalars().all())

            result = await session.execute(
                select(EpicDB)
                .where(EpicDB.roadmap_id == roadmap_id)
                .order_by(EpicDB.position.asc())
            )
            epics = rows_to_dicts(result.scalars().all())

            features: List[Dict[str, Any]] = []
            if epics:
                result = await session.execute(
                    select(FeatureDB)
                    .where(FeatureDB.epic_id.in_([e["id"] for e in epics]))
                    .order_by(FeatureDB.position.asc())
                )
                features = rows_to_dicts(result.scalars().all())

            tasks: List[Dict[str, Any]] = []
            if features:
                result = await session.execute(
                    select(TaskDB)
                    .where(TaskDB.feature_id.in_([f["id"] for f in features]))
                    .order_by(TaskDB.position.asc())
                )
                tasks = rows_to_dicts(result.scalars().all())

        links_by_milestone = _group_by(links, "milestone_id")
        for milestone in milestones:
            milestone["linked_feature_ids"] = [
                link["feature_id"] for link in links_by_milestone.get(milestone["id"], [])
            ]

        tasks_by_feature = _group_by(tasks, "feature_id")
        for feature in features:
            feature["tasks"] = tasks_by_feature.get(feature["id"], [])

        features_by_epic = _group_by(features, "epic_id")
        for epic in epics:
            epic["features"] = features_by_epic.get(epic["id"], [])

        roadmap["milestones"] = milestones
        roadmap["epics"] = epics
        return roadmap

    async def shared_full(self, roadmap_id: str, role: str) -> Dict[str, Any]:
        """full() annotated with the viewer's role."""
        tree = dict(await self.full(roadmap_id))
        tree["currentUserRole"] = role
        return tree


# Singleton
_tree_assembler: Optional[TreeAssembler] = None


def get_tree_assembler() -> TreeAssembler:
    """Get the tree assembler singleton."""
    global _tree_assembler
    if _tree_assembler is None:
        _tree_assembler = TreeAssembler()
    return _tree_assembler
