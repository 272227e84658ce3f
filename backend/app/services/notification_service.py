"""
Notification Service.

Notifications are dispatched after the lifecycle transaction commits. A
failure here is logged and discarded; it never touches committed state.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from typing import Optional, Dict, Any, Iterable, List

from backend.app.core.clock import utcnow
from backend.app.domain.audit.policy import json_safe
from backend.app.models.notification import Notification, NotificationType

logger = logging.getLogger("lifecycle.notifications")


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=json_safe(metadata) if metadata else None
        )
        db.add(notif)
        await db.flush()
        return notif

    @staticmethod
    async def notify(
        db: AsyncSession,
        user_id: Optional[int],
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None,
        reload: Iterable[Any] = ()
    ) -> Optional[Notification]:
        """
        Best-effort post-commit notification.

        Runs in its own short transaction on the caller's session. Returns
        None when there is no recipient or dispatch failed.

        Args:
            reload: Already-committed entities to refresh if the dispatch
                transaction has to be rolled back (rollback expires them)
        """
        if user_id is None:
            return None
        try:
            notif = await NotificationService.create_notification(
                db, user_id, title, message, type=type, metadata=metadata
            )
            await db.commit()
            return notif
        except Exception:
            logger.exception("Failed to dispatch notification '%s' to user %s", title, user_id)
            await db.rollback()
            for entity in reload:
                await db.refresh(entity)
            return None

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(Notification.id.desc()).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount > 0
