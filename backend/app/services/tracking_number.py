"""
Tracking number generation.

Format: prefix + two-digit year + ten random digits, e.g. NT260123456789.
"""

import logging
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import resolve_now
from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError
from backend.app.models.delivery import Delivery

logger = logging.getLogger("lifecycle.tracking_number")

MAX_GENERATION_TRIES = 5


def generate_tracking_number(now: Optional[datetime] = None, prefix: str = None) -> str:
    now = resolve_now(now)
    prefix = prefix or settings.tracking_number_prefix
    return f"{prefix}{now:%y}{secrets.randbelow(10 ** 10):010d}"


async def tracking_number_exists(db: AsyncSession, tracking_number: str) -> bool:
    result = await db.execute(
        select(Delivery.id).where(Delivery.tracking_number == tracking_number)
    )
    return result.scalar_one_or_none() is not None


async def allocate_tracking_number(db: AsyncSession, now: Optional[datetime] = None) -> str:
    """
    Generate a tracking number not yet used by any delivery.

    The unique index remains the final guard against a concurrent insert.
    """
    for _ in range(MAX_GENERATION_TRIES):
        candidate = generate_tracking_number(now)
        if not await tracking_number_exists(db, candidate):
            return candidate
        logger.warning("Tracking number collision on %s, regenerating", candidate)
    raise ConflictError("Delivery tracking number")
