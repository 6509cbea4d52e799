"""
Roadmap sharing.

The owner of a roadmap manages one active share grant: an opaque token,
a default role and a list of invited emails with their own roles. Anyone
holding the token gets the default role; an invited viewer gets the role
recorded for their email; the owner always gets "owner".
"""

import logging
import secrets
from datetime import datetime
from typing import Optional, List, Dict, Any

from config import settings
from ..database.exceptions import (
    AccessDeniedError,
    EntityNotFoundError,
    ShareExpiredError,
    ValidationError,
)
from ..database.models import RoadmapDB, RoadmapShareDB, ShareRoleEnum
from ..database.repositories import (
    ProfileRepository,
    RoadmapRepository,
    ShareRepository,
    get_profile_repository,
    get_roadmap_repository,
    get_share_repository,
)
from ..utils.datetime_utils import is_past, to_naive_local
from .serializers import row_to_dict, public_profile, serialize_value
from .tree_assembler import TreeAssembler, get_tree_assembler

logger = logging.getLogger(__name__)

OWNER_ROLE = "owner"
SHARE_ROLES = tuple(role.value for role in ShareRoleEnum)


def generate_share_token() -> str:
    return secrets.token_urlsafe(32)


def normalize_invites(invited_emails: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    """Lower-case emails, check roles, keep the last entry per email."""
    normalized: Dict[str, Dict[str, str]] = {}
    for invite in invited_emails or []:
        email = (invite.get("email") or "").strip().lower()
        if not email:
            raise ValidationError("Each invite needs an email")
        role = invite.get("role") or ShareRoleEnum.VIEWER.value
        if role not in SHARE_ROLES:
            raise ValidationError(f"Invalid role {role!r} for {email}")
        normalized[email] = {"email": email, "role": role}
    return list(normalized.values())


def resolve_role(share: RoadmapShareDB, viewer_email: Optional[str] = None) -> str:
    """Invited email role if the viewer is invited, else the grant's default."""
    if viewer_email:
        email = viewer_email.strip().lower()
        for invite in share.invited_emails or []:
            if invite.get("email", "").lower() == email:
                return invite.get("role") or share.default_role
    return share.default_role


class ShareTokenManager:
    """Issues, resolves and revokes roadmap share grants."""

    def __init__(
        self,
        shares: Optional[ShareRepository] = None,
        roadmaps: Optional[RoadmapRepository] = None,
        profiles: Optional[ProfileRepository] = None,
        assembler: Optional[TreeAssembler] = None,
        base_url: Optional[str] = None,
    ):
        self.shares = shares or get_share_repository()
        self.roadmaps = roadmaps or get_roadmap_repository()
        self.profiles = profiles or get_profile_repository()
        self.assembler = assembler or get_tree_assembler()
        self.base_url = (base_url or settings.share_base_url).rstrip("/")

    def share_url(self, token: str) -> str:
        return f"{self.base_url}/roadmap/shared/{token}"

    def _share_payload(self, share: RoadmapShareDB) -> Dict[str, Any]:
        return {"share": row_to_dict(share), "share_url": self.share_url(share.share_token)}

    async def _require_owner(self, roadmap_id: str, requester_id: str) -> RoadmapDB:
        roadmap = await self.roadmaps.get_by_id(roadmap_id)
        if roadmap is None:
            raise EntityNotFoundError(f"Roadmap {roadmap_id} not found")
        if roadmap.owner_id != requester_id:
            raise AccessDeniedError("Only the roadmap owner can manage sharing")
        return roadmap

    async def upsert_share(
        self,
        roadmap_id: str,
        requester_id: str,
        invited_emails: Optional[List[Dict[str, Any]]] = None,
        default_role: str = ShareRoleEnum.VIEWER.value,
        expires_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Create the roadmap's share grant or update the active one in place.

        The token of an active grant never changes on update.

        Raises:
            EntityNotFoundError: roadmap missing
            AccessDeniedError: requester is not the owner
            ValidationError: unknown role or empty invite email
        """
        await self._require_owner(roadmap_id, requester_id)

        if default_role not in SHARE_ROLES:
            raise ValidationError(f"Invalid default role {default_role!r}")
        invites = normalize_invites(invited_emails)
        expires_at = to_naive_local(expires_at)

        existing = await self.shares.get_active(roadmap_id)
        if existing is not None:
            share = await self.shares.update(existing.id, {
                "invited_emails": invites,
                "default_role": default_role,
                "expires_at": expires_at,
            })
            logger.info(f"Updated share for roadmap {roadmap_id}")
        else:
            share = await self.shares.create(
                roadmap_id=roadmap_id,
                created_by=requester_id,
                share_token=generate_share_token(),
                invited_emails=invites,
                default_role=default_role,
                expires_at=expires_at,
            )

        return self._share_payload(share)

    async def get_share(self, roadmap_id: str, requester_id: str) -> Optional[Dict[str, Any]]:
        """The active grant for the owner, or None."""
        await self._require_owner(roadmap_id, requester_id)

        share = await self.shares.get_active(roadmap_id)
        if share is None:
            return None
        return self._share_payload(share)

    async def revoke_share(self, roadmap_id: str, requester_id: str) -> bool:
        """Deactivate the active grant. No active grant is not an error."""
        await self._require_owner(roadmap_id, requester_id)
        return await self.shares.deactivate(roadmap_id)

    async def resolve_by_token(
        self,
        token: str,
        viewer_id: Optional[str] = None,
        viewer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Shared tree for a token, annotated with the viewer's role.

        Raises:
            EntityNotFoundError: unknown or revoked token
            ShareExpiredError: grant past its expiry
        """
        share = await self.shares.get_active_by_token(token)
        if share is None:
            raise EntityNotFoundError("Share link not found or has been revoked")
        if is_past(share.expires_at):
            raise ShareExpiredError("Share link has expired")

        roadmap = await self.roadmaps.get_by_id(share.roadmap_id)
        if roadmap is None:
            raise EntityNotFoundError(f"Roadmap {share.roadmap_id} not found")

        if viewer_id and viewer_id == roadmap.owner_id:
            role = OWNER_ROLE
        else:
            role = resolve_role(share, viewer_email)

        return await self.assembler.shared_full(share.roadmap_id, role)

    async def list_shared_with_me(self, viewer_email: Optional[str]) -> List[Dict[str, Any]]:
        """Roadmaps whose active, unexpired grant invites this email."""
        if not viewer_email:
            return []
        email = viewer_email.strip().lower()

        matches = []
        for share in await self.shares.list_active():
            if is_past(share.expires_at):
                continue
            invite = next(
                (i for i in share.invited_emails or [] if i.get("email", "").lower() == email),
                None,
            )
            if invite is not None:
                matches.append((share, invite.get("role") or share.default_role))

        results = []
        for share, role in matches:
            roadmap = await self.roadmaps.get_by_id(share.roadmap_id)
            if roadmap is None:
                continue
            owner = await self.profiles.get_by_id(roadmap.owner_id)
            results.append({
                "roadmap": row_to_dict(roadmap),
                "owner": public_profile(owner),
                "access_level": role,
                "shared_at": serialize_value(share.created_at),
            })
        return results


# Singleton
_share_token_manager: Optional[ShareTokenManager] = None


def get_share_token_manager() -> ShareTokenManager:
    """Get the share token manager singleton."""
    global _share_token_manager
    if _share_token_manager is None:
        _share_token_manager = ShareTokenManager()
    return _share_token_manager
