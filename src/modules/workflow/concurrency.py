"""Optimistic-concurrency helpers around the ``version`` column of workflow rows."""

from __future__ import annotations

import logging
import uuid
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.exceptions import ConcurrentModificationException, NotFoundException

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


async def load_for_update(
    db: AsyncSession,
    model: type[ModelT],
    entity_id: uuid.UUID,
    label: str,
) -> ModelT:
    """Load a row with ``SELECT ... FOR UPDATE``, refreshing any cached copy."""
    result = await db.execute(
        select(model)
        .where(model.id == entity_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundException(f"{label} {entity_id} not found")
    return entity


def ensure_version(entity, expected_version: int | None, label: str) -> None:
    """Reject the write when the caller's view of the row is out of date."""
    if expected_version is None:
        return
    if entity.version != expected_version:
        raise ConcurrentModificationException(
            f"{label} {entity.id} was modified by another request "
            f"(expected version {expected_version}, found {entity.version})",
            details=[
                {"field": "expected_version", "message": str(expected_version)},
                {"field": "current_version", "message": str(entity.version)},
            ],
        )


async def flush_changes(db: AsyncSession, label: str) -> None:
    """Flush pending changes, translating stale-version errors."""
    try:
        await db.flush()
    except StaleDataError as exc:
        logger.warning("Stale %s detected at flush: %s", label, exc)
        raise ConcurrentModificationException(
            f"{label} was modified by another request; reload and retry"
        ) from exc
