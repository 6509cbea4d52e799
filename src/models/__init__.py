from .api_validation import (
    ReorderRequest,
    ReorderItem,
    BulkReorderRequest,
    RoadmapCreate,
    MilestoneCreate,
    EpicCreate,
    FeatureCreate,
    TaskCreate,
    MilestoneLinkRequest,
    GuestSessionRequest,
    MigrateGuestRequest,
    ShareInvite,
    ShareUpsertRequest,
)

__all__ = [
    "ReorderRequest",
    "ReorderItem",
    "BulkReorderRequest",
    "RoadmapCreate",
    "MilestoneCreate",
    "EpicCreate",
    "FeatureCreate",
    "TaskCreate",
    "MilestoneLinkRequest",
    "GuestSessionRequest",
    "MigrateGuestRequest",
    "ShareInvite",
    "ShareUpsertRequest",
]
