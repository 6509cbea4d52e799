"""
Services for business logic.
"""

from .tree_assembler import TreeAssembler, get_tree_assembler
from .guest_identity import (
    GuestIdentity,
    GuestIdentityManager,
    create_session,
    validate_session_id,
    get_guest_identity_manager,
)
from .migration import (
    MigrationCoordinator,
    MigrationResult,
    RoadmapMigrationOutcome,
    get_migration_coordinator,
)
from .sharing import ShareTokenManager, get_share_token_manager

__all__ = [
    "TreeAssembler",
    "get_tree_assembler",
    "GuestIdentity",
    "GuestIdentityManager",
    "create_session",
    "validate_session_id",
    "get_guest_identity_manager",
    "MigrationCoordinator",
    "MigrationResult",
    "RoadmapMigrationOutcome",
    "get_migration_coordinator",
    "ShareTokenManager",
    "get_share_token_manager",
]
