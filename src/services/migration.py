"""
Guest to account migration.

Moves every roadmap of a guest identity to an authenticated profile. Each
roadmap is handled on its own: the target project is resolved first, then
owner and project are rewritten in one statement. A failing roadmap is
recorded and the loop moves on, so the result is a per-roadmap report
rather than all-or-nothing.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from ..database.exceptions import EntityNotFoundError, ValidationError
from ..database.models import ProfileDB, RoadmapDB
from ..database.repositories import (
    ProfileRepository,
    ProjectRepository,
    RoadmapRepository,
    get_profile_repository,
    get_project_repository,
    get_roadmap_repository,
)
from .guest_identity import validate_session_id

logger = logging.getLogger(__name__)

NOTHING_TO_MIGRATE = "No guest data to migrate"


@dataclass
class RoadmapMigrationOutcome:
    """What happened to one roadmap."""
    roadmap_id: str
    migrated: bool
    project_created: bool = False
    error: Optional[str] = None


@dataclass
class MigrationResult:
    """Summary of a migration run."""
    guest_user_id: Optional[str] = None
    outcomes: List[RoadmapMigrationOutcome] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return all(outcome.error is None for outcome in self.outcomes)

    @property
    def migrated_roadmaps(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.migrated)

    @property
    def created_projects(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.project_created)

    @property
    def errors(self) -> List[str]:
        return [
            f"Failed to migrate roadmap {outcome.roadmap_id}: {outcome.error}"
            for outcome in self.outcomes
            if outcome.error is not None
        ]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "migrated_roadmaps": self.migrated_roadmaps,
            "created_projects": self.created_projects,
            "guest_user_id": self.guest_user_id,
        }
        if self.errors:
            data["errors"] = self.errors
        if self.message:
            data["message"] = self.message
        return data


class MigrationCoordinator:
    """Transfers a guest's roadmaps to an authenticated profile."""

    def __init__(
        self,
        profiles: Optional[ProfileRepository] = None,
        roadmaps: Optional[RoadmapRepository] = None,
        projects: Optional[ProjectRepository] = None,
    ):
        self.profiles = profiles or get_profile_repository()
        self.roadmaps = roadmaps or get_roadmap_repository()
        self.projects = projects or get_project_repository()

    async def _resolve_guest(
        self,
        guest_session_id: Optional[str],
        guest_user_id: Optional[str],
    ) -> Optional[ProfileDB]:
        if guest_user_id:
            guest = await self.profiles.get_by_id(guest_user_id)
            if guest is not None and not guest.is_guest:
                raise ValidationError(f"Profile {guest_user_id} is not a guest")
            return guest

        validate_session_id(guest_session_id)
        return await self.profiles.get_by_session(guest_session_id)

    async def migrate(
        self,
        target_user_id: str,
        guest_session_id: Optional[str] = None,
        guest_user_id: Optional[str] = None,
    ) -> MigrationResult:
        """
        Migrate a guest (by session id or profile id) into `target_user_id`.

        A guest that cannot be found, or that owns nothing any more, is a
        successful migration of zero roadmaps, so retries are safe.

        Raises:
            ValidationError: no guest reference given, or guest == target
            EntityNotFoundError: target profile missing
        """
        if not guest_session_id and not guest_user_id:
            raise ValidationError("Guest session ID or guest user ID is required")

        target = await self.profiles.get_by_id(target_user_id)
        if target is None:
            raise EntityNotFoundError(f"Profile {target_user_id} not found")

        guest = await self._resolve_guest(guest_session_id, guest_user_id)
        if guest is None:
            return MigrationResult(message=NOTHING_TO_MIGRATE)

        if guest.id == target.id:
            raise ValidationError("Cannot migrate a guest into itself")

        roadmaps = await self.roadmaps.get_by_owner(guest.id)

        result = MigrationResult(guest_user_id=guest.id)
        for roadmap in roadmaps:
            result.outcomes.append(await self._migrate_roadmap(roadmap, guest.id, target.id))

        if guest.guest_session_id:
            await self.profiles.clear_guest_session(guest.id)

        if result.migrated_roadmaps:
            await self.profiles.mark_migrated(target.id, guest.id)
        elif not roadmaps:
            result.message = NOTHING_TO_MIGRATE

        logger.info(
            f"Guest migration {guest.id} -> {target.id}: "
            f"{result.migrated_roadmaps}/{len(roadmaps)} roadmaps, "
            f"{result.created_projects} new projects, {len(result.errors)} errors"
        )
        return result

    async def _migrate_roadmap(
        self,
        roadmap: RoadmapDB,
        guest_id: str,
        target_id: str,
    ) -> RoadmapMigrationOutcome:
        """
        Resolve the target project, then move one roadmap.

        Only a project the target already owns is kept. A roadmap filed
        under a guest-owned project is also given a target project, named
        after the guest's one and counted in created_projects when new:
        the guest's project is deleted with the guest by cleanup, which
        would leave the moved roadmap with no project.
        """
        project_created = False
        try:
            project_id = None
            project_name = roadmap.name

            if roadmap.project_id:
                current = await self.projects.get_by_id(roadmap.project_id)
                if current is not None and current.owner_id == target_id:
                    project_id = current.id
                elif current is not None:
                    # Guest's own grouping carries over by name
                    project_name = current.name

            if project_id is None:
                project, project_created = await self.projects.get_or_create_default(
                    target_id, project_name
                )
                project_id = project.id

            await self.roadmaps.transfer_ownership(roadmap.id, guest_id, target_id, project_id)
            return RoadmapMigrationOutcome(
                roadmap_id=roadmap.id,
                migrated=True,
                project_created=project_created,
            )

        except Exception as e:
            logger.warning(f"Failed to migrate roadmap {roadmap.id}: {e}")
            return RoadmapMigrationOutcome(
                roadmap_id=roadmap.id,
                migrated=False,
                project_created=project_created,
                error=str(e),
            )


# Singleton
_migration_coordinator: Optional[MigrationCoordinator] = None


def get_migration_coordinator() -> MigrationCoordinator:
    """Get the migration coordinator singleton."""
    global _migration_coordinator
    if _migration_coordinator is None:
        _migration_coordinator = MigrationCoordinator()
    return _migration_coordinator
