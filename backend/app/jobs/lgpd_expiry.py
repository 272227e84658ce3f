"""
Periodic LGPD compliance sweep.

Expires data requests past their legal deadline and revokes expired
consents. A Redis lock keeps overlapping runs (cron on several hosts, or an
admin trigger during a scheduled run) from sweeping at the same time.

Run with:
    python -m backend.app.jobs.lgpd_expiry
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from redis.exceptions import LockError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import resolve_now
from backend.app.core.config import settings
from backend.app.services.lgpd_service import ConsentService, DataRequestService

logger = logging.getLogger("lifecycle.jobs.lgpd_expiry")

SWEEP_LOCK_NAME = "lock:lgpd:expiry-sweep"


async def run_compliance_sweep(db: AsyncSession, redis, now: Optional[datetime] = None) -> Dict:
    """
    Run both sweeps under the distributed lock.

    Returns:
        {"executed": bool, "expired_requests": int, "expired_consents": int}
        executed is False when another run holds the lock
    """
    now = resolve_now(now)
    lock = redis.lock(
        SWEEP_LOCK_NAME,
        timeout=settings.lgpd_sweep_lock_timeout_seconds,
        blocking=False,
    )
    if not await lock.acquire():
        logger.info("Compliance sweep already running elsewhere, skipping")
        return {"executed": False, "expired_requests": 0, "expired_consents": 0}

    try:
        expired_requests = await DataRequestService.expire_overdue_requests(db, now=now)
        expired_consents = await ConsentService.expire_consents(db, now=now)
    finally:
        try:
            await lock.release()
        except LockError:
            logger.warning("Sweep lock expired before release; consider raising the lock timeout")

    logger.info(
        "Compliance sweep at %s expired %s requests and %s consents",
        now.isoformat(), expired_requests, expired_consents
    )
    return {"executed": True, "expired_requests": expired_requests, "expired_consents": expired_consents}


async def main() -> Dict:
    from backend.app.core.observability import configure_logging
    from backend.app.core.redis_client import close_redis, redis_client
    from backend.app.db.session import AsyncSessionLocal

    configure_logging()
    async with AsyncSessionLocal() as db:
        try:
            return await run_compliance_sweep(db, redis_client)
        finally:
            await close_redis()


if __name__ == "__main__":
    asyncio.run(main())
