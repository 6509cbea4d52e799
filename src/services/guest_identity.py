"""
Guest identity lifecycle.

A visitor without an account gets a client-generated session id
("guest_<uuid>"). The first write realizes it as a guest profile; later
requests look the profile up by session id. Guest profiles are valid for
`guest_session_ttl_days` from creation and are never trusted past that,
even when the client still presents the session.

Concurrent get_or_create() calls for the same session share one pending
creation, so two widgets mounting at once produce a single profile.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from sqlalchemy.exc import IntegrityError

from config import settings
from ..database.exceptions import (
    DatabaseConstraintError,
    EntityNotFoundError,
    GuestSessionExpiredError,
    ValidationError,
)
from ..database.models import ProfileDB
from ..database.repositories import (
    ProfileRepository,
    RoadmapRepository,
    get_profile_repository,
    get_roadmap_repository,
)
from ..utils.datetime_utils import days_ago, to_naive_local

logger = logging.getLogger(__name__)

MAX_SESSION_ID_LENGTH = 100


def create_session(prefix: Optional[str] = None) -> str:
    """New opaque guest session id."""
    return f"{prefix if prefix is not None else settings.guest_session_prefix}{uuid.uuid4()}"


def validate_session_id(session_id: Any, prefix: Optional[str] = None) -> str:
    """
    Check a session id's shape.

    Raises:
        ValidationError: not a string, wrong prefix, bad characters or too long
    """
    prefix = prefix if prefix is not None else settings.guest_session_prefix
    pattern = rf"{re.escape(prefix)}[A-Za-z0-9_-]+"

    if not isinstance(session_id, str) or not session_id:
        raise ValidationError("Valid session ID is required")
    if len(session_id) > MAX_SESSION_ID_LENGTH:
        raise ValidationError(f"Session ID must be at most {MAX_SESSION_ID_LENGTH} characters")
    if not re.fullmatch(pattern, session_id):
        raise ValidationError(f"Invalid session ID format (must start with '{prefix}')")
    return session_id


@dataclass
class GuestIdentity:
    """Result of get_or_create()."""
    user_id: str
    is_new: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GuestIdentityManager:
    """Creates, looks up, validates and sweeps guest identities."""

    def __init__(
        self,
        profiles: Optional[ProfileRepository] = None,
        roadmaps: Optional[RoadmapRepository] = None,
        ttl_days: Optional[int] = None,
        prefix: Optional[str] = None,
    ):
        self.profiles = profiles or get_profile_repository()
        self.roadmaps = roadmaps or get_roadmap_repository()
        self.ttl_days = ttl_days if ttl_days is not None else settings.guest_session_ttl_days
        self.prefix = prefix if prefix is not None else settings.guest_session_prefix
        self._pending: Dict[str, asyncio.Future] = {}

    def create_session(self) -> str:
        return create_session(self.prefix)

    def validate_session_id(self, session_id: Any) -> str:
        return validate_session_id(session_id, self.prefix)

    def validate(self, profile: Optional[ProfileDB]) -> bool:
        """A profile is a usable guest only if flagged guest and inside the validity window."""
        if profile is None or not profile.is_guest or profile.created_at is None:
            return False
        return to_naive_local(profile.created_at) > days_ago(self.ttl_days)

    # ==================== CREATION ====================

    async def get_or_create(self, session_id: str) -> GuestIdentity:
        """
        Return the guest identity for a session, creating it on first use.

        Callers for the same session that arrive while a creation is in
        flight await that creation instead of starting their own.

        Raises:
            ValidationError: malformed session id
            GuestSessionExpiredError: the session's guest is past its window
        """
        session_id = self.validate_session_id(session_id)

        pending = self._pending.get(session_id)
        if pending is None:
            pending = asyncio.ensure_future(self._get_or_create(session_id))
            self._pending[session_id] = pending
            pending.add_done_callback(
                lambda future, sid=session_id: self._clear_pending(sid, future)
            )

        # shield: one caller being cancelled must not cancel the shared creation
        return await asyncio.shield(pending)

    def _clear_pending(self, session_id: str, future: asyncio.Future) -> None:
        if self._pending.get(session_id) is future:
            del self._pending[session_id]

    async def _get_or_create(self, session_id: str) -> GuestIdentity:
        existing = await self.profiles.get_by_session(session_id)
        if existing is not None:
            if not self.validate(existing):
                raise GuestSessionExpiredError("Guest session has expired")
            return GuestIdentity(user_id=existing.id, is_new=False)

        try:
            profile = await self.profiles.create_guest(session_id)
        except IntegrityError:
            # Another process created it between our read and insert
            winner = await self.profiles.get_by_session(session_id)
            if winner is None:
                raise DatabaseConstraintError(f"Could not create guest for session {session_id}")
            logger.info(f"Guest creation race for {session_id}, using existing profile {winner.id}")
            return GuestIdentity(user_id=winner.id, is_new=False)

        return GuestIdentity(user_id=profile.id, is_new=True)

    # ==================== LOOKUP ====================

    async def lookup_by_session(self, session_id: str) -> ProfileDB:
        """
        The valid guest profile for a session.

        Raises:
            ValidationError: malformed session id
            EntityNotFoundError: no guest holds this session
            GuestSessionExpiredError: the guest exists but is past its window
        """
        session_id = self.validate_session_id(session_id)

        profile = await self.profiles.get_by_session(session_id)
        if profile is None:
            raise EntityNotFoundError("Guest user not found")
        if not self.validate(profile):
            raise GuestSessionExpiredError("Guest session has expired")
        return profile

    async def resolve_request_identity(self, session_id: str) -> ProfileDB:
        """Turn a header-supplied guest session into a trusted guest profile."""
        profile = await self.lookup_by_session(session_id)
        logger.debug(f"Request identity resolved to guest {profile.id}")
        return profile

    async def pending(self, session_id: str) -> Dict[str, Any]:
        """Whether a session has roadmaps waiting to be migrated."""
        session_id = self.validate_session_id(session_id)

        profile = await self.profiles.get_by_session(session_id)
        if profile is None:
            return {"has_pending": False, "roadmap_count": 0}

        count = await self.roadmaps.count_by_owner(profile.id)
        return {"has_pending": count > 0, "roadmap_count": count}

    # ==================== MAINTENANCE ====================

    async def cleanup(self) -> int:
        """Delete guests past their validity window. Safe to run repeatedly."""
        deleted = await self.profiles.delete_guests_created_before(days_ago(self.ttl_days))
        logger.info(f"Guest cleanup removed {deleted} expired guest(s)")
        return deleted


# Singleton
_guest_identity_manager: Optional[GuestIdentityManager] = None


def get_guest_identity_manager() -> GuestIdentityManager:
    """Get the guest identity manager singleton."""
    global _guest_identity_manager
    if _guest_identity_manager is None:
        _guest_identity_manager = GuestIdentityManager()
    return _guest_identity_manager
