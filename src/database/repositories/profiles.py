"""
Profile repository.

Covers both authenticated profiles and guest profiles. A guest profile is a
row with is_guest=True and a client-generated guest_session_id; migration
clears the session id but keeps the row for the audit trail.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError

from ..connection import get_database, Database
from ..models import ProfileDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError

logger = logging.getLogger(__name__)


class ProfileRepository:
    """Repository for profile operations."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    async def create(
        self,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        profile_id: Optional[str] = None,
    ) -> ProfileDB:
        """Create an authenticated profile."""
        async with self.db.session() as session:
            try:
                profile = ProfileDB(
                    email=email.lower() if email else None,
                    display_name=display_name,
                    first_name=first_name,
                    last_name=last_name,
                    avatar_url=avatar_url,
                    is_guest=False,
                )
                if profile_id:
                    profile.id = profile_id
                session.add(profile)
                await session.flush()

                logger.info(f"Created profile {profile.id}")
                return profile

            except IntegrityError as e:
                logger.error(f"Constraint violation creating profile: {e}")
                raise DatabaseConstraintError("Cannot create profile: duplicate or constraint violation")

            except Exception as e:
                logger.error(f"CRITICAL: Profile creation failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create profile: {e}")

    async def create_guest(self, session_id: str) -> ProfileDB:
        """
        Create a guest profile for a session id.

        IntegrityError is left to the caller: a duplicate session id means
        another request created the guest first.
        """
        async with self.db.session() as session:
            profile = ProfileDB(
                is_guest=True,
                guest_session_id=session_id,
                display_name="Guest",
            )
            session.add(profile)
            await session.flush()

            logger.info(f"Created guest profile {profile.id}")
            return profile

    async def get_by_id(self, profile_id: str) -> Optional[ProfileDB]:
        """Get profile by ID."""
        async with self.db.session() as session:
            return await session.get(ProfileDB, profile_id)

    async def get_by_session(self, session_id: str) -> Optional[ProfileDB]:
        """Get the guest profile holding a session id."""
        async with self.db.session() as session:
            result = await session.execute(
                select(ProfileDB).where(
                    ProfileDB.guest_session_id == session_id,
                    ProfileDB.is_guest.is_(True),
                )
            )
            return result.scalar_one_or_none()

    async def clear_guest_session(self, profile_id: str) -> None:
        """Detach a guest profile from its session id (soft disable)."""
        async with self.db.session() as session:
            await session.execute(
                update(ProfileDB)
                .where(ProfileDB.id == profile_id)
                .values(guest_session_id=None)
                .execution_options(synchronize_session=False)
            )

    async def mark_migrated(self, profile_id: str, guest_id: str) -> None:
        """Record which guest was last migrated into a profile."""
        async with self.db.session() as session:
            await session.execute(
                update(ProfileDB)
                .where(ProfileDB.id == profile_id)
                .values(migrated_from_guest_id=guest_id)
                .execution_options(synchronize_session=False)
            )

    async def delete_guests_created_before(self, cutoff: datetime) -> int:
        """Delete guest profiles older than `cutoff`. Their roadmaps cascade."""
        async with self.db.session() as session:
            result = await session.execute(
                delete(ProfileDB).where(
                    ProfileDB.is_guest.is_(True),
                    ProfileDB.created_at < cutoff,
                )
            )
            return result.rowcount or 0


# Singleton
_profile_repository: Optional[ProfileRepository] = None


def get_profile_repository() -> ProfileRepository:
    """Get the profile repository singleton."""
    global _profile_repository
    if _profile_repository is None:
        _profile_repository = ProfileRepository()
    return _profile_repository
