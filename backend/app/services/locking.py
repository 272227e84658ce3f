"""
Row locking and optimistic concurrency helpers.

Every lifecycle mutation loads its entity with SELECT ... FOR UPDATE and
writes through the mapper's version counter. A concurrent writer surfaces as
ConflictError and the transaction is rolled back.
"""

import logging
from typing import Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.exceptions import ConflictError, NotFoundError

logger = logging.getLogger("lifecycle.locking")

M = TypeVar("M")


async def load_for_update(db: AsyncSession, model: Type[M], entity_id: int, resource: str = None) -> M:
    """
    Load an entity under a row lock, refreshing any stale identity-map copy.

    Args:
        db: Database session
        model: Mapped class
        entity_id: Primary key
        resource: Name used in error messages (defaults to the class name)

    Raises:
        NotFoundError: no row with that id
    """
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundError(resource or model.__name__, entity_id)
    return entity


async def get_or_404(db: AsyncSession, model: Type[M], entity_id: int, resource: str = None) -> M:
    """Plain load without a lock, for read paths."""
    entity = await db.get(model, entity_id)
    if entity is None:
        raise NotFoundError(resource or model.__name__, entity_id)
    return entity


async def flush_or_conflict(db: AsyncSession, resource: str, resource_id=None) -> None:
    """
    Flush pending changes, mapping a version mismatch to ConflictError.

    The session is rolled back before the error propagates.
    """
    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        logger.warning("Concurrent modification of %s %s detected", resource, resource_id)
        raise ConflictError(resource, resource_id)


async def commit_or_conflict(db: AsyncSession, resource: str, resource_id=None) -> None:
    """Flush with the version check, then commit."""
    await flush_or_conflict(db, resource, resource_id)
    await db.commit()
