"""
Position-ordered repository base.

Milestones, epics, features, tasks and milestone links all keep a zero-based,
gap-free `position` per scope (the parent id). This base implements the
ordering rules once:

- append at max(position) + 1 (0 for an empty scope)
- explicit insert opens a slot by shifting the tail up by one
- reposition shifts the range between old and new position by one and then
  writes the target, both inside one session transaction
- bulk reposition writes absolute positions as given by the client
- delete closes the gap it leaves

Subclasses set `model`, `scope_field` and `entity_name`, and say how a scope
maps back to its roadmap so cached trees can be invalidated after writes.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Sequence, Type

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..connection import get_database, Database
from ..exceptions import (
    DatabaseError,
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
    ValidationError,
)
from ...cache import invalidate_tree

logger = logging.getLogger(__name__)


def validate_position(value: Any, field_name: str = "position") -> int:
    """Positions are non-negative integers; booleans do not count."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Valid {field_name} is required, got {value!r}")
    if value < 0:
        raise ValidationError(f"{field_name} must be zero or greater, got {value}")
    return value


@dataclass
class RepositionResult:
    """Outcome of a single-item reposition."""
    item: Any
    old_position: int
    new_position: int
    unchanged: bool = False


class OrderedRepository:
    """Base repository for entities positioned within a scope."""

    model: Type = None
    scope_field: str = ""
    entity_name: str = "item"
    updatable_fields: Sequence[str] = ()

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    @property
    def scope_column(self):
        return getattr(self.model, self.scope_field)

    def _not_found(self, item_id: str) -> EntityNotFoundError:
        return EntityNotFoundError(f"{self.entity_name.capitalize()} {item_id} not found")

    # ==================== SCOPE HELPERS ====================

    async def _roadmap_id_for_scope(self, session: AsyncSession, scope_id: str) -> Optional[str]:
        """Roadmap that owns the scope. Milestones and epics are scoped by roadmap directly."""
        return scope_id

    async def _count(self, session: AsyncSession, scope_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(self.model).where(self.scope_column == scope_id)
        )
        return result.scalar() or 0

    async def _next_position(self, session: AsyncSession, scope_id: str) -> int:
        # Two concurrent appends can read the same max; normalize() repairs such a scope
        result = await session.execute(
            select(func.max(self.model.position)).where(self.scope_column == scope_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    async def _shift(
        self,
        session: AsyncSession,
        scope_id: str,
        delta: int,
        lower: Optional[int] = None,
        upper: Optional[int] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        """Add `delta` to every position in [lower, upper] of the scope."""
        conditions = [self.scope_column == scope_id]
        if lower is not None:
            conditions.append(self.model.position >= lower)
        if upper is not None:
            conditions.append(self.model.position <= upper)
        if exclude_id is not None:
            conditions.append(self.model.id != exclude_id)

        await session.execute(
            update(self.model)
            .where(*conditions)
            .values(position=self.model.position + delta)
            .execution_options(synchronize_session=False)
        )

    async def _claim_position(
        self,
        session: AsyncSession,
        scope_id: str,
        position: Optional[int],
    ) -> int:
        """Pick the position for a new row, opening a slot for explicit positions."""
        if position is None:
            return await self._next_position(session, scope_id)

        position = min(validate_position(position), await self._count(session, scope_id))
        await self._shift(session, scope_id, +1, lower=position)
        return position

    async def _insert(
        self,
        session: AsyncSession,
        scope_id: str,
        position: Optional[int],
        fields: Dict[str, Any],
    ):
        """Insert a row into the scope inside an open session."""
        try:
            item = self.model(
                **{self.scope_field: scope_id},
                position=await self._claim_position(session, scope_id, position),
                **fields,
            )
            session.add(item)
            await session.flush()

            logger.info(
                f"Created {self.entity_name} {item.id} at position {item.position} "
                f"in {self.scope_field}={scope_id}"
            )
            return item

        except IntegrityError as e:
            logger.error(f"Constraint violation creating {self.entity_name}: {e}")
            raise DatabaseConstraintError(
                f"Cannot create {self.entity_name}: duplicate or constraint violation"
            )

        except DatabaseError:
            raise

        except Exception as e:
            logger.error(f"CRITICAL: {self.entity_name} creation failed: {e}", exc_info=True)
            raise DatabaseOperationError(f"Failed to create {self.entity_name}: {e}")

    async def _lock_item(self, session: AsyncSession, item_id: str):
        result = await session.execute(
            select(self.model).where(self.model.id == item_id).with_for_update()
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise self._not_found(item_id)
        return item

    # ==================== READS ====================

    async def get_by_id(self, item_id: str):
        """Get a single row by id."""
        async with self.db.session() as session:
            result = await session.execute(
                select(self.model).where(self.model.id == item_id)
            )
            return result.scalar_one_or_none()

    async def list_by_scope(self, scope_id: str) -> List[Any]:
        """All rows of a scope in position order."""
        async with self.db.session() as session:
            result = await session.execute(
                select(self.model)
                .where(self.scope_column == scope_id)
                .order_by(self.model.position.asc())
            )
            return list(result.scalars().all())

    # ==================== WRITES ====================

    async def update(self, item_id: str, updates: Dict[str, Any]):
        """Update non-ordering fields. Position changes go through reposition()."""
        if not updates:
            raise ValidationError("No fields to update")

        rejected = set(updates) - set(self.updatable_fields)
        if rejected:
            raise ValidationError(
                f"Cannot update {', '.join(sorted(rejected))} on {self.entity_name}"
            )

        async with self.db.session() as session:
            item = await self._lock_item(session, item_id)
            for key, value in updates.items():
                setattr(item, key, value)
            await session.flush()
            roadmap_id = await self._roadmap_id_for_scope(session, getattr(item, self.scope_field))

        await invalidate_tree(roadmap_id)
        return item

    async def reposition(self, item_id: str, new_position: Any) -> RepositionResult:
        """
        Move one item to `new_position` within its scope.

        Moving later shifts (old, new] down by one; moving earlier shifts
        [new, old) up by one; then the item takes the target position. A
        position past the end is clamped to the last slot.

        Raises:
            ValidationError: position is not a non-negative integer
            EntityNotFoundError: no such item
        """
        new_position = validate_position(new_position)

        async with self.db.session() as session:
            item = await self._lock_item(session, item_id)
            scope_id = getattr(item, self.scope_field)
            old_position = item.position

            last_position = max(await self._count(session, scope_id) - 1, 0)
            new_position = min(new_position, last_position)

            if new_position == old_position:
                return RepositionResult(item, old_position, new_position, unchanged=True)

            if new_position > old_position:
                await self._shift(
                    session, scope_id, -1,
                    lower=old_position + 1, upper=new_position, exclude_id=item_id,
                )
            else:
                await self._shift(
                    session, scope_id, +1,
                    lower=new_position, upper=old_position - 1, exclude_id=item_id,
                )

            await session.execute(
                update(self.model)
                .where(self.model.id == item_id)
                .values(position=new_position)
                .execution_options(synchronize_session=False)
            )
            await session.refresh(item)
            roadmap_id = await self._roadmap_id_for_scope(session, scope_id)

        await invalidate_tree(roadmap_id)
        logger.info(f"Moved {self.entity_name} {item_id} from {old_position} to {new_position}")
        return RepositionResult(item, old_position, new_position)

    async def bulk_reposition(self, scope_id: str, reorders: Sequence[Dict[str, Any]]) -> List[Any]:
        """
        Apply client-computed absolute positions.

        Each entry is {"id": ..., "position": ...}. Positions are written as
        given (last writer wins per item); the caller supplies a valid
        permutation. Ids outside the scope are ignored.
        """
        if not reorders:
            raise ValidationError("reorders must be a non-empty list")

        for entry in reorders:
            if not entry.get("id"):
                raise ValidationError("Each reorder must have an id and position")
            validate_position(entry.get("position"))

        async with self.db.session() as session:
            for entry in reorders:
                await session.execute(
                    update(self.model)
                    .where(self.model.id == entry["id"], self.scope_column == scope_id)
                    .values(position=entry["position"])
                    .execution_options(synchronize_session=False)
                )

            result = await session.execute(
                select(self.model)
                .where(self.scope_column == scope_id)
                .order_by(self.model.position.asc())
                .execution_options(populate_existing=True)
            )
            items = list(result.scalars().all())
            roadmap_id = await self._roadmap_id_for_scope(session, scope_id)

        await invalidate_tree(roadmap_id)
        logger.info(f"Reordered {len(reorders)} {self.entity_name}(s) in {self.scope_field}={scope_id}")
        return items

    async def _delete_in_session(self, session: AsyncSession, item) -> None:
        scope_id = getattr(item, self.scope_field)
        await session.execute(delete(self.model).where(self.model.id == item.id))
        await self._shift(session, scope_id, -1, lower=item.position + 1)

    async def delete(self, item_id: str) -> bool:
        """Delete an item and close the gap behind it."""
        async with self.db.session() as session:
            item = await self._lock_item(session, item_id)
            scope_id = getattr(item, self.scope_field)
            roadmap_id = await self._roadmap_id_for_scope(session, scope_id)
            await self._delete_in_session(session, item)

        await invalidate_tree(roadmap_id)
        logger.info(f"Deleted {self.entity_name} {item_id}")
        return True

    async def normalize(self, scope_id: str) -> int:
        """
        Rewrite a scope's positions to 0..n-1.

        Order is kept by (position, created_at, id), so duplicates left by
        racing appends are resolved oldest first. Returns rows changed.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(self.model)
                .where(self.scope_column == scope_id)
                .order_by(self.model.position.asc(), self.model.created_at.asc(), self.model.id.asc())
            )
            changed = 0
            for index, item in enumerate(result.scalars().all()):
                if item.position != index:
                    item.position = index
                    changed += 1
            await session.flush()
            roadmap_id = await self._roadmap_id_for_scope(session, scope_id)

        if changed:
            await invalidate_tree(roadmap_id)
            logger.warning(f"Normalized {changed} {self.entity_name} position(s) in {self.scope_field}={scope_id}")
        return changed
