"""
Repository classes for database operations.

Each repository handles CRUD and ordering queries for its entity type.
Positioned entities share the OrderedRepository base.
"""

from .ordering import OrderedRepository, RepositionResult, validate_position
from .profiles import ProfileRepository, get_profile_repository
from .projects import ProjectRepository, get_project_repository
from .roadmaps import RoadmapRepository, get_roadmap_repository
from .milestones import MilestoneRepository, get_milestone_repository
from .features import (
    FeatureRepository,
    MilestoneLinkRepository,
    get_feature_repository,
    get_milestone_link_repository,
)
from .epics import EpicRepository, get_epic_repository
from .tasks import TaskRepository, get_task_repository
from .shares import ShareRepository, get_share_repository

__all__ = [
    "OrderedRepository",
    "RepositionResult",
    "validate_position",
    "ProfileRepository",
    "get_profile_repository",
    "ProjectRepository",
    "get_project_repository",
    "RoadmapRepository",
    "get_roadmap_repository",
    "MilestoneRepository",
    "get_milestone_repository",
    "EpicRepository",
    "get_epic_repository",
    "FeatureRepository",
    "get_feature_repository",
    "MilestoneLinkRepository",
    "get_milestone_link_repository",
    "TaskRepository",
    "get_task_repository",
    "ShareRepository",
    "get_share_repository",
]
