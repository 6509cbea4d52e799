"""
Unit tests for TreeAssembler.

Builds small roadmaps in sqlite and checks that every level of the assembled
tree comes back in position order regardless of insertion order.
"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, Mock, patch

from sqlalchemy import update

from src.database.exceptions import EntityNotFoundError
from src.database.models import RoadmapDB
from src.services.tree_assembler import TreeAssembler


@pytest.fixture
def assembler(db):
    return TreeAssembler(db)


@pytest.fixture
def no_cache():
    """Cache misses everywhere and writes are dropped."""
    fake = Mock()
    fake.get = AsyncMock(return_value=None)
    fake.set = AsyncMock(return_value=True)
    fake.delete = AsyncMock(return_value=True)
    with patch("src.cache.decorators.cache", fake):
        yield fake


# ============================================================
# FULL TREE
# ============================================================

@pytest.mark.asyncio
async def test_full_orders_by_position_not_insertion(repos, roadmap, assembler, no_cache):
    await repos.epics.create(roadmap.id, "A", position=0)
    await repos.epics.create(roadmap.id, "C", position=1)
    await repos.epics.create(roadmap.id, "B", position=1)

    tree = await assembler.full(roadmap.id)

    assert [e["title"] for e in tree["epics"]] == ["A", "B", "C"]
    assert [e["position"] for e in tree["epics"]] == [0, 1, 2]


@pytest.mark.asyncio
async def test_full_nests_every_level(repos, roadmap, assembler, no_cache):
    milestone = await repos.milestones.create(roadmap.id, "Beta")
    epic = await repos.epics.create(roadmap.id, "Checkout")
    first = await repos.features.create(epic.id, "Cards")
    second = await repos.features.create(epic.id, "Wallets", position=0)
    await repos.tasks.create(first.id, "Tokenize")
    await repos.tasks.create(first.id, "Validate", position=0)
    await repos.links.link(first.id, milestone.id)
    await repos.links.link(second.id, milestone.id, position=0)

    tree = await assembler.full(roadmap.id)

    assert tree["id"] == roadmap.id
    assert tree["name"] == "Launch Plan"

    (milestone_node,) = tree["milestones"]
    assert milestone_node["linked_feature_ids"] == [second.id, first.id]

    (epic_node,) = tree["epics"]
    assert [f["title"] for f in epic_node["features"]] == ["Wallets", "Cards"]
    cards = epic_node["features"][1]
    assert [t["title"] for t in cards["tasks"]] == ["Validate", "Tokenize"]
    assert epic_node["features"][0]["tasks"] == []


@pytest.mark.asyncio
async def test_full_serializes_timestamps(repos, roadmap, assembler, no_cache):
    tree = await assembler.full(roadmap.id)

    assert isinstance(tree["created_at"], str)
    datetime.fromisoformat(tree["created_at"])


@pytest.mark.asyncio
async def test_full_empty_roadmap(roadmap, assembler, no_cache):
    tree = await assembler.full(roadmap.id)

    assert tree["milestones"] == []
    assert tree["epics"] == []


@pytest.mark.asyncio
async def test_full_missing_roadmap(assembler, no_cache):
    with pytest.raises(EntityNotFoundError):
        await assembler.full("missing")

    no_cache.set.assert_not_called()


@pytest.mark.asyncio
async def test_full_served_from_cache(assembler):
    """A cached tree is returned without touching the database."""
    fake = Mock()
    fake.get = AsyncMock(return_value={"id": "cached-roadmap", "epics": []})
    fake.set = AsyncMock()

    with patch("src.cache.decorators.cache", fake):
        tree = await assembler.full("cached-roadmap")

    assert tree == {"id": "cached-roadmap", "epics": []}
    fake.get.assert_awaited_once_with("tree:cached-roadmap")
    fake.set.assert_not_called()


@pytest.mark.asyncio
async def test_full_stores_under_tree_key(roadmap, assembler, no_cache):
    await assembler.full(roadmap.id)

    key, value, ttl = no_cache.set.call_args[0]
    assert key == f"tree:{roadmap.id}"
    assert value["id"] == roadmap.id


@pytest.mark.asyncio
async def test_shared_full_adds_role(roadmap, assembler, no_cache):
    tree = await assembler.shared_full(roadmap.id, "editor")

    assert tree["currentUserRole"] == "editor"
    assert tree["id"] == roadmap.id


# ============================================================
# PREVIEW
# ============================================================

@pytest.mark.asyncio
async def test_preview_most_recent_first(db, repos, owner, assembler):
    older = await repos.roadmaps.create(owner_id=owner.id, name="Older")
    newer = await repos.roadmaps.create(owner_id=owner.id, name="Newer")

    async with db.session() as session:
        await session.execute(
            update(RoadmapDB).where(RoadmapDB.id == older.id).values(updated_at=datetime(2026, 1, 1))
        )
        await session.execute(
            update(RoadmapDB).where(RoadmapDB.id == newer.id).values(updated_at=datetime(2026, 3, 1))
        )

    previews = await assembler.preview(owner.id)

    assert [p["name"] for p in previews] == ["Newer", "Older"]


@pytest.mark.asyncio
async def test_preview_minimal_outline(repos, owner, roadmap, assembler):
    epic = await repos.epics.create(roadmap.id, "Checkout")
    feature = await repos.features.create(epic.id, "Cards")
    await repos.tasks.create(feature.id, "Tokenize")

    (preview,) = await assembler.preview(owner.id)

    assert "settings" not in preview
    (epic_node,) = preview["epics"]
    assert set(epic_node) == {"id", "roadmap_id", "title", "position", "status", "features"}
    (feature_node,) = epic_node["features"]
    (task_node,) = feature_node["tasks"]
    assert "title" not in task_node
    assert task_node["status"] == "todo"


@pytest.mark.asyncio
async def test_preview_owner_without_roadmaps(repos, assembler):
    nobody = await repos.profiles.create(email="empty@example.com")

    assert await assembler.preview(nobody.id) == []
