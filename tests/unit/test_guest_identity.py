"""
Unit tests for guest identity management.

Tests cover:
- Session id format and validation
- Create-or-reuse semantics and in-flight deduplication
- Validity window checks on create and lookup
- Pending-migration checks and expired guest cleanup
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, Mock, patch

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from src.database.exceptions import (
    EntityNotFoundError,
    GuestSessionExpiredError,
    ValidationError,
)
from src.database.models import ProfileDB
from src.services.guest_identity import (
    GuestIdentityManager,
    create_session,
    validate_session_id,
)
from src.utils.datetime_utils import days_ago


@pytest.fixture
def manager(repos):
    return GuestIdentityManager(profiles=repos.profiles, roadmaps=repos.roadmaps, ttl_days=30, prefix="guest_")


async def age_profile(db, profile_id, days):
    async with db.session() as session:
        await session.execute(
            update(ProfileDB).where(ProfileDB.id == profile_id).values(created_at=days_ago(days))
        )


# ============================================================
# SESSION IDS
# ============================================================

class TestSessionIds:

    def test_create_session_has_prefix(self):
        session_id = create_session("guest_")
        assert session_id.startswith("guest_")
        assert validate_session_id(session_id, "guest_") == session_id

    def test_sessions_are_unique(self):
        assert create_session("guest_") != create_session("guest_")

    @pytest.mark.parametrize("session_id", [
        None,
        "",
        123,
        "user_abc",
        "guest_",
        "guest_has spaces",
        "guest_" + "a" * 100,
    ])
    def test_invalid_session_ids(self, session_id):
        with pytest.raises(ValidationError):
            validate_session_id(session_id, "guest_")


# ============================================================
# GET OR CREATE
# ============================================================

@pytest.mark.asyncio
async def test_first_call_creates_guest(manager, repos):
    identity = await manager.get_or_create("guest_abc123")

    assert identity.is_new is True
    profile = await repos.profiles.get_by_id(identity.user_id)
    assert profile.is_guest is True
    assert profile.guest_session_id == "guest_abc123"


@pytest.mark.asyncio
async def test_second_call_reuses_guest(manager):
    first = await manager.get_or_create("guest_abc123")
    second = await manager.get_or_create("guest_abc123")

    assert second.user_id == first.user_id
    assert second.is_new is False
    assert second.to_dict() == {"user_id": first.user_id, "is_new": False}


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_creation(manager, repos):
    with patch.object(repos.profiles, "create_guest", wraps=repos.profiles.create_guest) as create_guest:
        results = await asyncio.gather(*[
            manager.get_or_create("guest_concurrent") for _ in range(5)
        ])

    assert create_guest.call_count == 1
    assert len({r.user_id for r in results}) == 1
    await asyncio.sleep(0)
    assert manager._pending == {}


@pytest.mark.asyncio
async def test_failed_creation_clears_pending(manager, repos):
    with patch.object(repos.profiles, "get_by_session", AsyncMock(side_effect=RuntimeError("db down"))):
        with pytest.raises(RuntimeError):
            await manager.get_or_create("guest_flaky")

    await asyncio.sleep(0)
    assert "guest_flaky" not in manager._pending

    identity = await manager.get_or_create("guest_flaky")
    assert identity.is_new is True


@pytest.mark.asyncio
async def test_get_or_create_rejects_malformed_session(manager):
    with pytest.raises(ValidationError):
        await manager.get_or_create("not-a-guest")


@pytest.mark.asyncio
async def test_get_or_create_expired_session(db, manager):
    identity = await manager.get_or_create("guest_old")
    await age_profile(db, identity.user_id, 31)

    with pytest.raises(GuestSessionExpiredError):
        await manager.get_or_create("guest_old")


@pytest.mark.asyncio
async def test_insert_race_resolves_to_existing_profile():
    """A unique violation on insert means another process won; use its row."""
    winner = ProfileDB(id="winner-id", is_guest=True, guest_session_id="guest_race")
    profiles = Mock()
    profiles.get_by_session = AsyncMock(side_effect=[None, winner])
    profiles.create_guest = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate")))

    manager = GuestIdentityManager(profiles=profiles, roadmaps=Mock(), ttl_days=30, prefix="guest_")
    identity = await manager.get_or_create("guest_race")

    assert identity.user_id == "winner-id"
    assert identity.is_new is False


# ============================================================
# VALIDITY WINDOW
# ============================================================

class TestValidate:

    def setup_method(self):
        self.manager = GuestIdentityManager(profiles=Mock(), roadmaps=Mock(), ttl_days=30, prefix="guest_")

    def test_recent_guest_is_valid(self):
        assert self.manager.validate(ProfileDB(is_guest=True, created_at=days_ago(29)))

    def test_old_guest_is_invalid(self):
        assert not self.manager.validate(ProfileDB(is_guest=True, created_at=days_ago(31)))

    def test_non_guest_is_invalid(self):
        assert not self.manager.validate(ProfileDB(is_guest=False, created_at=days_ago(1)))

    def test_missing_profile_is_invalid(self):
        assert not self.manager.validate(None)


# ============================================================
# LOOKUP
# ============================================================

@pytest.mark.asyncio
async def test_lookup_returns_valid_guest(manager):
    identity = await manager.get_or_create("guest_lookup")

    profile = await manager.lookup_by_session("guest_lookup")

    assert profile.id == identity.user_id


@pytest.mark.asyncio
async def test_lookup_unknown_session(manager):
    with pytest.raises(EntityNotFoundError):
        await manager.lookup_by_session("guest_nobody")


@pytest.mark.asyncio
async def test_lookup_expired_guest(db, manager):
    identity = await manager.get_or_create("guest_stale")
    await age_profile(db, identity.user_id, 45)

    with pytest.raises(GuestSessionExpiredError):
        await manager.lookup_by_session("guest_stale")


# ============================================================
# PENDING / CLEANUP
# ============================================================

@pytest.mark.asyncio
async def test_pending_counts_guest_roadmaps(manager, repos):
    identity = await manager.get_or_create("guest_builder")
    await repos.roadmaps.create(owner_id=identity.user_id, name="Draft one")
    await repos.roadmaps.create(owner_id=identity.user_id, name="Draft two")

    assert await manager.pending("guest_builder") == {"has_pending": True, "roadmap_count": 2}


@pytest.mark.asyncio
async def test_pending_unknown_session(manager):
    assert await manager.pending("guest_unknown") == {"has_pending": False, "roadmap_count": 0}


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired_guests(db, manager, repos, owner):
    stale = await manager.get_or_create("guest_stale")
    fresh = await manager.get_or_create("guest_fresh")
    await repos.roadmaps.create(owner_id=stale.user_id, name="Abandoned")
    await age_profile(db, stale.user_id, 40)

    assert await manager.cleanup() == 1
    assert await manager.cleanup() == 0

    assert await repos.profiles.get_by_id(stale.user_id) is None
    assert await repos.profiles.get_by_id(fresh.user_id) is not None
    assert await repos.profiles.get_by_id(owner.id) is not None
    assert await repos.roadmaps.count_by_owner(stale.user_id) == 0
