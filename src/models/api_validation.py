"""
Pydantic models for API endpoint input validation.

Positions are strict integers (no floats, numeric strings or booleans) so
the ordering layer only ever sees clean values. Status and priority fields
are checked against the enums the database models use.
"""

from datetime import date, datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, field_validator

from ..database.models import (
    RoadmapStatusEnum,
    MilestoneStatusEnum,
    EpicStatusEnum,
    EpicPriorityEnum,
    FeatureStatusEnum,
    TaskStatusEnum,
    TaskPriorityEnum,
    ShareRoleEnum,
)


# ============================================
# ORDERING
# ============================================

class ReorderRequest(BaseModel):
    """Move one item to a new position within its scope."""
    new_position: StrictInt = Field(..., ge=0)


class ReorderItem(BaseModel):
    id: str = Field(..., min_length=1, max_length=36)
    position: StrictInt = Field(..., ge=0)


class BulkReorderRequest(BaseModel):
    """Client-computed absolute positions for one scope."""
    scope_id: str = Field(..., min_length=1, max_length=36)
    reorders: List[ReorderItem] = Field(..., min_length=1, max_length=500)


# ============================================
# ROADMAP ENTITIES
# ============================================

class EntityPayload(BaseModel):
    """Create payloads pass enum values through as plain strings."""
    model_config = ConfigDict(use_enum_values=True)


class RoadmapCreate(EntityPayload):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[RoadmapStatusEnum] = None
    project_id: Optional[str] = Field(None, max_length=36)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    settings: Optional[dict] = None
    project_metadata: Optional[dict] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Roadmap name cannot be blank")
        return v.strip()


class MilestoneCreate(EntityPayload):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    target_date: Optional[date] = None
    status: Optional[MilestoneStatusEnum] = None
    color: Optional[str] = Field(None, max_length=20)
    position: Optional[StrictInt] = Field(None, ge=0)


class EpicCreate(EntityPayload):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    priority: Optional[EpicPriorityEnum] = None
    status: Optional[EpicStatusEnum] = None
    color: Optional[str] = Field(None, max_length=20)
    estimated_hours: Optional[float] = Field(None, ge=0)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    tags: Optional[List[str]] = Field(None, max_length=50)
    position: Optional[StrictInt] = Field(None, ge=0)


class FeatureCreate(EntityPayload):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[FeatureStatusEnum] = None
    is_deliverable: bool = True
    estimated_hours: Optional[float] = Field(None, ge=0)
    position: Optional[StrictInt] = Field(None, ge=0)


class TaskCreate(EntityPayload):
    title: str = Field(..., min_length=1, max_length=500)
    priority: Optional[TaskPriorityEnum] = None
    status: Optional[TaskStatusEnum] = None
    assigned_to: Optional[str] = Field(None, max_length=36)
    due_date: Optional[date] = None
    position: Optional[StrictInt] = Field(None, ge=0)


class MilestoneLinkRequest(BaseModel):
    milestone_id: str = Field(..., min_length=1, max_length=36)
    position: Optional[StrictInt] = Field(None, ge=0)


# ============================================
# GUESTS
# ============================================

class GuestSessionRequest(BaseModel):
    """Guest session id as generated by the client."""
    session_id: str = Field(..., min_length=1, max_length=100)


class MigrateGuestRequest(BaseModel):
    guest_session_id: Optional[str] = Field(None, max_length=100)
    guest_user_id: Optional[str] = Field(None, max_length=36)


# ============================================
# SHARING
# ============================================

class ShareInvite(BaseModel):
    email: EmailStr
    role: ShareRoleEnum = ShareRoleEnum.VIEWER


class ShareUpsertRequest(BaseModel):
    invited_emails: List[ShareInvite] = Field(default_factory=list, max_length=100)
    default_role: ShareRoleEnum = ShareRoleEnum.VIEWER
    expires_at: Optional[datetime] = None
