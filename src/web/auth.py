"""
Request identity.

The upstream auth gateway verifies tokens and forwards the account id in
X-User-Id. Visitors without an account send their guest session id in
X-Guest-User-Id, which is only trusted after the guest identity manager
has checked it is a live guest.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from ..database.exceptions import EntityNotFoundError, ExpiredError, ValidationError
from ..database.repositories import ProfileRepository, get_profile_repository
from ..services.guest_identity import GuestIdentityManager, get_guest_identity_manager

logger = logging.getLogger(__name__)


@dataclass
class RequestIdentity:
    """Who is calling."""
    user_id: str
    is_guest: bool
    email: Optional[str] = None


async def _account_identity(profiles: ProfileRepository, user_id: str) -> RequestIdentity:
    profile = await profiles.get_by_id(user_id)
    if profile is None or profile.is_guest:
        raise HTTPException(status_code=401, detail="Invalid or expired authentication")
    return RequestIdentity(user_id=profile.id, is_guest=False, email=profile.email)


async def get_optional_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_guest_user_id: Optional[str] = Header(None, alias="X-Guest-User-Id"),
    profiles: ProfileRepository = Depends(get_profile_repository),
    guests: GuestIdentityManager = Depends(get_guest_identity_manager),
) -> Optional[RequestIdentity]:
    """Identity from headers, None when the request is anonymous."""
    if x_user_id:
        return await _account_identity(profiles, x_user_id)

    if x_guest_user_id:
        try:
            profile = await guests.resolve_request_identity(x_guest_user_id)
        except (ValidationError, EntityNotFoundError, ExpiredError) as e:
            logger.info(f"Rejected guest session: {e}")
            raise HTTPException(status_code=401, detail="Invalid or expired guest session")
        return RequestIdentity(user_id=profile.id, is_guest=True)

    return None


async def get_current_identity(
    identity: Optional[RequestIdentity] = Depends(get_optional_identity),
) -> RequestIdentity:
    """Authenticated or guest identity; 401 otherwise."""
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity


async def require_account(
    identity: RequestIdentity = Depends(get_current_identity),
) -> RequestIdentity:
    """Authenticated (non-guest) identity only."""
    if identity.is_guest:
        raise HTTPException(status_code=403, detail="A signed-in account is required")
    return identity


async def get_viewer_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_guest_user_id: Optional[str] = Header(None, alias="X-Guest-User-Id"),
    profiles: ProfileRepository = Depends(get_profile_repository),
    guests: GuestIdentityManager = Depends(get_guest_identity_manager),
) -> Optional[RequestIdentity]:
    """
    Identity for public share links.

    A stale or unknown guest session reads the link anonymously instead
    of failing with 401.
    """
    if x_user_id:
        return await _account_identity(profiles, x_user_id)

    if x_guest_user_id:
        try:
            profile = await guests.resolve_request_identity(x_guest_user_id)
        except (ValidationError, EntityNotFoundError, ExpiredError) as e:
            logger.info(f"Ignoring guest session on share link: {e}")
            return None
        return RequestIdentity(user_id=profile.id, is_guest=True)

    return None
