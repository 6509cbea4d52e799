"""
Database module for Roadmap Canvas.

Handles:
- Profiles (authenticated and guest identities) and projects
- Roadmaps with position-ordered milestones, epics, features and tasks
- Milestone <-> feature links
- Roadmap share grants
"""

from .connection import (
    get_database,
    set_database,
    Database,
    init_database,
    close_database,
)
from .models import (
    Base,
    ProfileDB,
    ProjectDB,
    RoadmapDB,
    MilestoneDB,
    EpicDB,
    FeatureDB,
    TaskDB,
    MilestoneFeatureDB,
    RoadmapShareDB,
)

__all__ = [
    "get_database",
    "set_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "ProfileDB",
    "ProjectDB",
    "RoadmapDB",
    "MilestoneDB",
    "EpicDB",
    "FeatureDB",
    "TaskDB",
    "MilestoneFeatureDB",
    "RoadmapShareDB",
]
