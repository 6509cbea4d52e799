"""
API routes for roadmaps, guest identities and sharing.

Domain exceptions are not caught here; src/main.py maps them to status
codes. Services and repositories come in through Depends() so tests can
override them.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from slowapi.util import get_remote_address

from ..database.exceptions import AccessDeniedError
from ..database.repositories import (
    EpicRepository,
    FeatureRepository,
    MilestoneLinkRepository,
    MilestoneRepository,
    OrderedRepository,
    RoadmapRepository,
    TaskRepository,
    get_epic_repository,
    get_feature_repository,
    get_milestone_link_repository,
    get_milestone_repository,
    get_roadmap_repository,
    get_task_repository,
)
from ..middleware.slowapi_limiter import limiter, GUEST_CREATE_LIMIT, GUEST_MIGRATE_LIMIT
from ..models.api_validation import (
    BulkReorderRequest,
    EpicCreate,
    FeatureCreate,
    GuestSessionRequest,
    MigrateGuestRequest,
    MilestoneCreate,
    MilestoneLinkRequest,
    ReorderRequest,
    RoadmapCreate,
    ShareUpsertRequest,
    TaskCreate,
)
from ..services.guest_identity import GuestIdentityManager, get_guest_identity_manager
from ..services.migration import MigrationCoordinator, get_migration_coordinator
from ..services.serializers import row_to_dict, rows_to_dicts, serialize_value
from ..services.sharing import ShareTokenManager, get_share_token_manager
from ..services.tree_assembler import TreeAssembler, get_tree_assembler
from .auth import RequestIdentity, get_current_identity, get_viewer_identity, require_account

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

ORDERED_REPOSITORIES = {
    "milestones": get_milestone_repository,
    "epics": get_epic_repository,
    "features": get_feature_repository,
    "tasks": get_task_repository,
}


def get_ordered_repository(kind: str) -> OrderedRepository:
    """Repository for a positioned collection named in the path."""
    getter = ORDERED_REPOSITORIES.get(kind)
    if getter is None:
        raise HTTPException(status_code=404, detail=f"Unknown collection: {kind}")
    return getter()


def _payload(model, **extra):
    data = model.model_dump(exclude_none=True, mode="python")
    data.update(extra)
    return data


# ============================================================================
# Guests
# ============================================================================

@router.post("/guests/create", status_code=201)
@limiter.limit(GUEST_CREATE_LIMIT, key_func=get_remote_address)
async def create_guest(
    request: Request,
    response: Response,
    body: GuestSessionRequest,
    guests: GuestIdentityManager = Depends(get_guest_identity_manager),
):
    """Create (or return) the guest identity for a client session."""
    identity = await guests.get_or_create(body.session_id)
    if not identity.is_new:
        response.status_code = 200
    return {"success": True, "session_id": body.session_id, **identity.to_dict()}


@router.get("/guests/by-session/{session_id}")
async def get_guest_by_session(
    session_id: str,
    guests: GuestIdentityManager = Depends(get_guest_identity_manager),
):
    """Guest id for a session; 404 unknown, 410 expired."""
    profile = await guests.lookup_by_session(session_id)
    return {
        "user_id": profile.id,
        "is_guest": True,
        "created_at": serialize_value(profile.created_at),
    }


@router.get("/guests/pending")
async def get_pending_migration(
    session_id: str = Query(..., max_length=100),
    guests: GuestIdentityManager = Depends(get_guest_identity_manager),
):
    """Whether a guest session has roadmaps waiting to be migrated."""
    return await guests.pending(session_id)


@router.post("/guests/migrate")
@limiter.limit(GUEST_MIGRATE_LIMIT)
async def migrate_guest(
    request: Request,
    response: Response,
    body: MigrateGuestRequest,
    identity: RequestIdentity = Depends(require_account),
    coordinator: MigrationCoordinator = Depends(get_migration_coordinator),
):
    """Move a guest's roadmaps into the signed-in account."""
    result = await coordinator.migrate(
        identity.user_id,
        guest_session_id=body.guest_session_id,
        guest_user_id=body.guest_user_id,
    )
    return result.to_dict()


@router.post("/guests/cleanup")
async def cleanup_guests(
    identity: RequestIdentity = Depends(require_account),
    guests: GuestIdentityManager = Depends(get_guest_identity_manager),
):
    """Delete guests past their validity window."""
    deleted = await guests.cleanup()
    return {"success": True, "deleted_count": deleted}


# ============================================================================
# Roadmaps and trees
# ============================================================================

@router.get("/roadmaps/preview")
async def get_roadmaps_preview(
    identity: RequestIdentity = Depends(get_current_identity),
    assembler: TreeAssembler = Depends(get_tree_assembler),
):
    """Dashboard outline of the caller's roadmaps."""
    return {"roadmaps": await assembler.preview(identity.user_id)}


@router.post("/roadmaps", status_code=201)
async def create_roadmap(
    body: RoadmapCreate,
    identity: RequestIdentity = Depends(get_current_identity),
    roadmaps: RoadmapRepository = Depends(get_roadmap_repository),
):
    roadmap = await roadmaps.create(owner_id=identity.user_id, **_payload(body))
    return row_to_dict(roadmap)


@router.get("/roadmaps/{roadmap_id}/full")
async def get_roadmap_full(
    roadmap_id: str,
    identity: RequestIdentity = Depends(get_current_identity),
    assembler: TreeAssembler = Depends(get_tree_assembler),
):
    """Full tree for the owner. Other readers go through a share token."""
    tree = await assembler.full(roadmap_id)
    if tree["owner_id"] != identity.user_id:
        raise AccessDeniedError("Only the roadmap owner can open this roadmap directly")
    return tree


@router.post("/roadmaps/{roadmap_id}/milestones", status_code=201)
async def create_milestone(
    roadmap_id: str,
    body: MilestoneCreate,
    identity: RequestIdentity = Depends(get_current_identity),
    milestones: MilestoneRepository = Depends(get_milestone_repository),
):
    milestone = await milestones.create(roadmap_id, **_payload(body))
    return row_to_dict(milestone)


@router.post("/roadmaps/{roadmap_id}/epics", status_code=201)
async def create_epic(
    roadmap_id: str,
    body: EpicCreate,
    identity: RequestIdentity = Depends(get_current_identity),
    epics: EpicRepository = Depends(get_epic_repository),
):
    epic = await epics.create(roadmap_id, **_payload(body))
    return row_to_dict(epic)


@router.post("/epics/{epic_id}/features", status_code=201)
async def create_feature(
    epic_id: str,
    body: FeatureCreate,
    identity: RequestIdentity = Depends(get_current_identity),
    features: FeatureRepository = Depends(get_feature_repository),
):
    feature = await features.create(epic_id, **_payload(body))
    return row_to_dict(feature)


@router.post("/features/{feature_id}/tasks", status_code=201)
async def create_task(
    feature_id: str,
    body: TaskCreate,
    identity: RequestIdentity = Depends(get_current_identity),
    tasks: TaskRepository = Depends(get_task_repository),
):
    task = await tasks.create(feature_id, **_payload(body))
    return row_to_dict(task)


# ============================================================================
# Milestone links
# ============================================================================

@router.post("/features/{feature_id}/link-milestone", status_code=201)
async def link_feature_to_milestone(
    feature_id: str,
    body: MilestoneLinkRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    links: MilestoneLinkRepository = Depends(get_milestone_link_repository),
):
    link = await links.link(feature_id, body.milestone_id, body.position)
    return row_to_dict(link)


@router.delete("/features/{feature_id}/unlink-milestone/{milestone_id}")
async def unlink_feature_from_milestone(
    feature_id: str,
    milestone_id: str,
    identity: RequestIdentity = Depends(get_current_identity),
    links: MilestoneLinkRepository = Depends(get_milestone_link_repository),
):
    await links.unlink(feature_id, milestone_id)
    return {"success": True}


@router.get("/milestones/{milestone_id}/features")
async def get_milestone_features(
    milestone_id: str,
    identity: RequestIdentity = Depends(get_current_identity),
    links: MilestoneLinkRepository = Depends(get_milestone_link_repository),
):
    return {"features": rows_to_dicts(await links.linked_features(milestone_id))}


# ============================================================================
# Sharing (declared before the generic collection routes)
# ============================================================================

@router.get("/roadmap-shares/shared-with-me")
async def get_shared_with_me(
    identity: RequestIdentity = Depends(require_account),
    sharing: ShareTokenManager = Depends(get_share_token_manager),
):
    """Roadmaps shared with the caller's email."""
    return {"roadmaps": await sharing.list_shared_with_me(identity.email)}


@router.get("/roadmap-shares/token/{token}")
async def resolve_share_token(
    token: str,
    identity: Optional[RequestIdentity] = Depends(get_viewer_identity),
    sharing: ShareTokenManager = Depends(get_share_token_manager),
):
    """Shared roadmap tree with the viewer's role; 404 unknown, 410 expired."""
    return await sharing.resolve_by_token(
        token,
        viewer_id=identity.user_id if identity else None,
        viewer_email=identity.email if identity else None,
    )


@router.post("/roadmap-shares/{roadmap_id}")
async def upsert_roadmap_share(
    roadmap_id: str,
    body: ShareUpsertRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    sharing: ShareTokenManager = Depends(get_share_token_manager),
):
    return await sharing.upsert_share(
        roadmap_id,
        identity.user_id,
        invited_emails=[invite.model_dump(mode="json") for invite in body.invited_emails],
        default_role=body.default_role.value,
        expires_at=body.expires_at,
    )


@router.get("/roadmap-shares/{roadmap_id}")
async def get_roadmap_share(
    roadmap_id: str,
    identity: RequestIdentity = Depends(get_current_identity),
    sharing: ShareTokenManager = Depends(get_share_token_manager),
):
    share = await sharing.get_share(roadmap_id, identity.user_id)
    if share is None:
        return {"share": None, "share_url": None}
    return share


@router.delete("/roadmap-shares/{roadmap_id}")
async def revoke_roadmap_share(
    roadmap_id: str,
    identity: RequestIdentity = Depends(get_current_identity),
    sharing: ShareTokenManager = Depends(get_share_token_manager),
):
    revoked = await sharing.revoke_share(roadmap_id, identity.user_id)
    return {"success": True, "revoked": revoked}


# ============================================================================
# Positioned collections: milestones, epics, features, tasks
# ============================================================================

@router.patch("/{kind}/reorder")
async def bulk_reorder(
    kind: str,
    body: BulkReorderRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    repository: OrderedRepository = Depends(get_ordered_repository),
):
    """Apply client-computed positions to one scope."""
    items = await repository.bulk_reposition(
        body.scope_id,
        [item.model_dump() for item in body.reorders],
    )
    return {"success": True, "items": rows_to_dicts(items)}


@router.patch("/{kind}/{item_id}/reorder")
async def reorder_item(
    kind: str,
    item_id: str,
    body: ReorderRequest,
    identity: RequestIdentity = Depends(get_current_identity),
    repository: OrderedRepository = Depends(get_ordered_repository),
):
    """Move one item within its scope."""
    result = await repository.reposition(item_id, body.new_position)
    return {
        "success": True,
        "unchanged": result.unchanged,
        "old_position": result.old_position,
        "new_position": result.new_position,
        "item": row_to_dict(result.item),
    }


@router.delete("/{kind}/{item_id}")
async def delete_item(
    kind: str,
    item_id: str,
    identity: RequestIdentity = Depends(get_current_identity),
    repository: OrderedRepository = Depends(get_ordered_repository),
):
    """Delete an item and close the gap it leaves."""
    await repository.delete(item_id)
    return {"success": True}
