"""
Unit tests for roadmap sharing.

Tests cover:
- Creating and updating the single active grant
- Revocation and re-issuing tokens
- Role resolution for owner, invited and anonymous viewers
- Token resolution errors and the shared-with-me listing
"""

import pytest
from datetime import datetime, timedelta

from src.database.exceptions import (
    AccessDeniedError,
    DatabaseConstraintError,
    EntityNotFoundError,
    ShareExpiredError,
    ValidationError,
)
from src.database.models import RoadmapShareDB
from src.services.sharing import (
    OWNER_ROLE,
    ShareTokenManager,
    normalize_invites,
    resolve_role,
)
from src.services.tree_assembler import TreeAssembler
from src.utils.datetime_utils import get_local_now


@pytest.fixture
def sharing(db, repos):
    return ShareTokenManager(
        shares=repos.shares,
        roadmaps=repos.roadmaps,
        profiles=repos.profiles,
        assembler=TreeAssembler(db),
        base_url="https://canvas.example.com/",
    )


# ============================================================
# HELPERS
# ============================================================

class TestNormalizeInvites:

    def test_lowercases_and_defaults_role(self):
        assert normalize_invites([{"email": " Ana@Example.COM "}]) == [
            {"email": "ana@example.com", "role": "viewer"}
        ]

    def test_last_entry_wins_per_email(self):
        invites = normalize_invites([
            {"email": "ana@example.com", "role": "viewer"},
            {"email": "ANA@example.com", "role": "editor"},
        ])
        assert invites == [{"email": "ana@example.com", "role": "editor"}]

    def test_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            normalize_invites([{"email": "ana@example.com", "role": "admin"}])

    def test_rejects_missing_email(self):
        with pytest.raises(ValidationError):
            normalize_invites([{"role": "viewer"}])


class TestResolveRole:

    def setup_method(self):
        self.share = RoadmapShareDB(
            default_role="viewer",
            invited_emails=[{"email": "ana@example.com", "role": "editor"}],
        )

    def test_invited_email_gets_its_role(self):
        assert resolve_role(self.share, "Ana@Example.com") == "editor"

    def test_uninvited_email_gets_default(self):
        assert resolve_role(self.share, "bob@example.com") == "viewer"

    def test_anonymous_gets_default(self):
        assert resolve_role(self.share) == "viewer"


# ============================================================
# UPSERT / GET / REVOKE
# ============================================================

@pytest.mark.asyncio
async def test_upsert_creates_share(sharing, owner, roadmap):
    payload = await sharing.upsert_share(
        roadmap.id, owner.id, invited_emails=[{"email": "Ana@Example.com", "role": "editor"}]
    )

    share = payload["share"]
    assert share["roadmap_id"] == roadmap.id
    assert share["is_active"] is True
    assert share["default_role"] == "viewer"
    assert share["invited_emails"] == [{"email": "ana@example.com", "role": "editor"}]
    assert len(share["share_token"]) >= 40
    assert payload["share_url"] == f"https://canvas.example.com/roadmap/shared/{share['share_token']}"


@pytest.mark.asyncio
async def test_upsert_updates_in_place_keeping_token(sharing, owner, roadmap):
    first = await sharing.upsert_share(roadmap.id, owner.id)

    second = await sharing.upsert_share(
        roadmap.id, owner.id, invited_emails=[{"email": "bob@example.com"}], default_role="commenter"
    )

    assert second["share"]["id"] == first["share"]["id"]
    assert second["share"]["share_token"] == first["share"]["share_token"]
    assert second["share"]["default_role"] == "commenter"
    assert second["share"]["invited_emails"] == [{"email": "bob@example.com", "role": "viewer"}]


@pytest.mark.asyncio
async def test_only_owner_can_share(sharing, repos, roadmap):
    stranger = await repos.profiles.create(email="stranger@example.com")

    with pytest.raises(AccessDeniedError):
        await sharing.upsert_share(roadmap.id, stranger.id)
    with pytest.raises(AccessDeniedError):
        await sharing.get_share(roadmap.id, stranger.id)
    with pytest.raises(AccessDeniedError):
        await sharing.revoke_share(roadmap.id, stranger.id)


@pytest.mark.asyncio
async def test_share_missing_roadmap(sharing, owner):
    with pytest.raises(EntityNotFoundError):
        await sharing.upsert_share("missing", owner.id)


@pytest.mark.asyncio
async def test_upsert_rejects_invalid_default_role(sharing, owner, roadmap):
    with pytest.raises(ValidationError):
        await sharing.upsert_share(roadmap.id, owner.id, default_role="owner")


@pytest.mark.asyncio
async def test_get_share_when_none(sharing, owner, roadmap):
    assert await sharing.get_share(roadmap.id, owner.id) is None


@pytest.mark.asyncio
async def test_revoke_then_reshare_issues_new_token(sharing, owner, roadmap):
    original = await sharing.upsert_share(roadmap.id, owner.id)
    token = original["share"]["share_token"]

    assert await sharing.revoke_share(roadmap.id, owner.id) is True
    assert await sharing.revoke_share(roadmap.id, owner.id) is False
    assert await sharing.get_share(roadmap.id, owner.id) is None

    with pytest.raises(EntityNotFoundError):
        await sharing.resolve_by_token(token)

    reissued = await sharing.upsert_share(roadmap.id, owner.id)
    assert reissued["share"]["share_token"] != token


@pytest.mark.asyncio
async def test_second_active_share_rejected(repos, owner, roadmap):
    await repos.shares.create(roadmap.id, owner.id, "token-one", [], "viewer")

    with pytest.raises(DatabaseConstraintError):
        await repos.shares.create(roadmap.id, owner.id, "token-two", [], "viewer")


# ============================================================
# RESOLVE BY TOKEN
# ============================================================

@pytest.mark.asyncio
async def test_resolve_roles(sharing, repos, owner, roadmap):
    await repos.epics.create(roadmap.id, "Checkout")
    payload = await sharing.upsert_share(
        roadmap.id, owner.id, invited_emails=[{"email": "ana@example.com", "role": "editor"}]
    )
    token = payload["share"]["share_token"]

    as_owner = await sharing.resolve_by_token(token, viewer_id=owner.id, viewer_email=owner.email)
    as_invited = await sharing.resolve_by_token(token, viewer_id="someone", viewer_email="ANA@example.com")
    as_anonymous = await sharing.resolve_by_token(token)

    assert as_owner["currentUserRole"] == OWNER_ROLE
    assert as_invited["currentUserRole"] == "editor"
    assert as_anonymous["currentUserRole"] == "viewer"
    assert [e["title"] for e in as_anonymous["epics"]] == ["Checkout"]


@pytest.mark.asyncio
async def test_resolve_unknown_token(sharing):
    with pytest.raises(EntityNotFoundError):
        await sharing.resolve_by_token("no-such-token")


@pytest.mark.asyncio
async def test_resolve_expired_share(sharing, owner, roadmap):
    payload = await sharing.upsert_share(
        roadmap.id, owner.id, expires_at=get_local_now() - timedelta(days=1)
    )

    with pytest.raises(ShareExpiredError):
        await sharing.resolve_by_token(payload["share"]["share_token"])


# ============================================================
# SHARED WITH ME
# ============================================================

@pytest.mark.asyncio
async def test_shared_with_me_lists_invites(sharing, repos, owner, roadmap):
    expired_roadmap = await repos.roadmaps.create(owner_id=owner.id, name="Expired")
    await sharing.upsert_share(
        roadmap.id, owner.id, invited_emails=[{"email": "ana@example.com", "role": "commenter"}]
    )
    await sharing.upsert_share(
        expired_roadmap.id,
        owner.id,
        invited_emails=[{"email": "ana@example.com"}],
        expires_at=datetime(2020, 1, 1),
    )

    (entry,) = await sharing.list_shared_with_me("Ana@Example.com")

    assert entry["roadmap"]["id"] == roadmap.id
    assert entry["access_level"] == "commenter"
    assert entry["owner"]["email"] == "owner@example.com"
    assert entry["owner"]["display_name"] == "Olivia Owner"
    assert "guest_session_id" not in entry["owner"]
    assert isinstance(entry["shared_at"], str)


@pytest.mark.asyncio
async def test_shared_with_me_skips_revoked(sharing, owner, roadmap):
    await sharing.upsert_share(roadmap.id, owner.id, invited_emails=[{"email": "ana@example.com"}])
    await sharing.revoke_share(roadmap.id, owner.id)

    assert await sharing.list_shared_with_me("ana@example.com") == []


@pytest.mark.asyncio
async def test_shared_with_me_without_email(sharing):
    assert await sharing.list_shared_with_me(None) == []
