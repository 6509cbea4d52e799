"""
SQLAlchemy models for the roadmap store.

Schema includes:
- Profiles (authenticated and guest identities)
- Projects grouping roadmaps
- Roadmaps with milestones, epics, features and tasks
- Milestone <-> feature links
- Roadmap share grants

Every positioned table keeps a zero-based contiguous `position` per scope:
milestones and epics per roadmap, features per epic, tasks per feature,
milestone links per milestone.
"""

import enum
import uuid
from datetime import datetime, date
from typing import Optional, List

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Date,
    Float,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column

from ..utils.datetime_utils import get_local_now


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ==================== ENUMS ====================

class RoadmapStatusEnum(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MilestoneStatusEnum(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    AT_RISK = "at_risk"
    COMPLETED = "completed"
    MISSED = "missed"


class EpicStatusEnum(str, enum.Enum):
    BACKLOG = "backlog"
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class EpicPriorityEnum(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NICE_TO_HAVE = "nice_to_have"


class FeatureStatusEnum(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TaskStatusEnum(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    DONE = "done"
    BLOCKED = "blocked"


class TaskPriorityEnum(str, enum.Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ShareRoleEnum(str, enum.Enum):
    VIEWER = "viewer"
    COMMENTER = "commenter"
    EDITOR = "editor"


# ==================== IDENTITIES ====================

class ProfileDB(Base):
    """User profile. Guest profiles carry a client-generated session id."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_guest: Mapped[bool] = mapped_column(Boolean, default=False)
    guest_session_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)
    migrated_from_guest_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    roadmaps: Mapped[List["RoadmapDB"]] = relationship(
        "RoadmapDB", back_populates="owner", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_profiles_guest", "is_guest", "created_at"),
        Index("idx_profiles_email", "email"),
    )


# ==================== PROJECTS ====================

class ProjectDB(Base):
    """Projects grouping an owner's roadmaps."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="active")  # active, completed, archived
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    roadmaps: Mapped[List["RoadmapDB"]] = relationship("RoadmapDB", back_populates="project")

    __table_args__ = (
        Index("idx_projects_owner", "owner_id"),
        Index("idx_projects_owner_name", "owner_id", "name"),
    )


# ==================== ROADMAPS ====================

class RoadmapDB(Base):
    """Roadmap root. Ownership moves only through guest migration."""
    __tablename__ = "roadmaps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default=RoadmapStatusEnum.DRAFT.value)

    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )

    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    project_metadata: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    owner: Mapped["ProfileDB"] = relationship("ProfileDB", back_populates="roadmaps")
    project: Mapped[Optional["ProjectDB"]] = relationship("ProjectDB", back_populates="roadmaps")

    __table_args__ = (
        Index("idx_roadmaps_owner", "owner_id"),
        Index("idx_roadmaps_project", "project_id"),
    )


class MilestoneDB(Base):
    """Roadmap milestone, positioned per roadmap."""
    __tablename__ = "roadmap_milestones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    roadmap_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    completed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default=MilestoneStatusEnum.NOT_STARTED.value)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    __table_args__ = (
        Index("idx_milestones_scope_position", "roadmap_id", "position"),
    )


class EpicDB(Base):
    """Roadmap epic, positioned per roadmap."""
    __tablename__ = "roadmap_epics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    roadmap_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(20), default=EpicPriorityEnum.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(30), default=EpicStatusEnum.BACKLOG.value)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    estimated_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    completed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    __table_args__ = (
        Index("idx_epics_scope_position", "roadmap_id", "position"),
    )


class FeatureDB(Base):
    """Epic feature, positioned per epic. roadmap_id mirrors the parent epic."""
    __tablename__ = "roadmap_features"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    roadmap_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False
    )
    epic_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmap_epics.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default=FeatureStatusEnum.NOT_STARTED.value)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_deliverable: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    __table_args__ = (
        Index("idx_features_scope_position", "epic_id", "position"),
        Index("idx_features_roadmap", "roadmap_id"),
    )


class TaskDB(Base):
    """Feature task, positioned per feature."""
    __tablename__ = "roadmap_tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    feature_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmap_features.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=TaskPriorityEnum.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(30), default=TaskStatusEnum.TODO.value)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    __table_args__ = (
        Index("idx_tasks_scope_position", "feature_id", "position"),
    )


class MilestoneFeatureDB(Base):
    """Feature linked to a milestone, positioned per milestone."""
    __tablename__ = "milestone_features"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    milestone_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmap_milestones.id", ondelete="CASCADE"), nullable=False
    )
    feature_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmap_features.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)

    __table_args__ = (
        UniqueConstraint("milestone_id", "feature_id", name="uq_milestone_feature"),
        Index("idx_milestone_features_scope_position", "milestone_id", "position"),
    )


# ==================== SHARING ====================

class RoadmapShareDB(Base):
    """Share grant for a roadmap. Revoking flips is_active, rows are kept."""
    __tablename__ = "roadmap_shares"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    roadmap_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    share_token: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    invited_emails: Mapped[list] = mapped_column(JSON, default=list)  # [{"email": ..., "role": ...}]
    default_role: Mapped[str] = mapped_column(String(20), default=ShareRoleEnum.VIEWER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=get_local_now, onupdate=get_local_now)

    __table_args__ = (
        # At most one active grant per roadmap
        Index(
            "uq_roadmap_shares_active",
            "roadmap_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("idx_roadmap_shares_active", "is_active"),
    )
