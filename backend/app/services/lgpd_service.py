"""
LGPD compliance services.

DataRequestService drives data-subject requests through their lifecycle and
runs the legal-deadline expiry sweep. ConsentService manages consent records.
All state changes are written to the generic audit log.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import Actor, RequestContext, SYSTEM_ACTOR, SYSTEM_CONTEXT
from backend.app.core.clock import resolve_now
from backend.app.core.exceptions import AppException, ConflictError, NotFoundError, ValidationError
from backend.app.domain.audit.policy import CONSENT_POLICY, DATA_REQUEST_POLICY
from backend.app.domain.lgpd.deadlines import calculate_due_date
from backend.app.models.data_request import DataRequest, OPEN_REQUEST_STATUSES
from backend.app.models.lgpd_enums import ConsentType, DataRequestStatus, DataRequestType
from backend.app.models.notification import NotificationType
from backend.app.models.user_consent import UserConsent
from backend.app.services.history import AuditAction, HistoryRecorder
from backend.app.services.locking import commit_or_conflict, get_or_404, load_for_update
from backend.app.services.notification_service import NotificationService

logger = logging.getLogger("lifecycle.lgpd")

REQUEST_TYPE_LABELS = {
    DataRequestType.DATA_PORTABILITY: "data portability",
    DataRequestType.DATA_ERASURE: "data erasure",
    DataRequestType.DATA_ACCESS: "data access",
    DataRequestType.DATA_CORRECTION: "data correction",
    DataRequestType.CONSENT_REVOCATION: "consent revocation",
}


def _processor_name(actor: Actor) -> str:
    return actor.name or str(actor.id)


class DataRequestService:

    @staticmethod
    async def _notify_requester(db: AsyncSession, request: DataRequest, title: str, message: str) -> None:
        await NotificationService.notify(
            db,
            request.user_id,
            title=title,
            message=message,
            type=NotificationType.LGPD_UPDATE,
            metadata={"request_id": request.id, "status": request.status, "request_type": request.request_type},
            reload=[request],
        )

    @staticmethod
    async def create_request(
        db: AsyncSession,
        user_id: int,
        request_type: DataRequestType,
        reason: Optional[str] = None,
        context: RequestContext = SYSTEM_CONTEXT,
        now: Optional[datetime] = None,
    ) -> DataRequest:
        """
        File a data-subject request.

        The due date is the legal deadline counted from creation.

        Raises:
            ValidationError: the user already has a pending request of this type
        """
        now = resolve_now(now)
        request_type = DataRequestType(request_type)

        existing = await db.execute(
            select(DataRequest.id).where(
                DataRequest.user_id == user_id,
                DataRequest.request_type == request_type,
                DataRequest.status == DataRequestStatus.PENDING,
            )
        )
        existing_id = existing.scalars().first()
        if existing_id is not None:
            logger.warning("User %s already has pending %s request %s", user_id, request_type.value, existing_id)
            raise ValidationError(
                "A pending request of this type already exists",
                details={"request_id": existing_id, "request_type": request_type.value}
            )

        request = DataRequest(
            user_id=user_id,
            request_type=request_type,
            status=DataRequestStatus.PENDING,
            reason=reason,
            request_ip=context.ip_address,
            user_agent=context.user_agent,
            due_date=calculate_due_date(now),
            created_at=now,
        )
        db.add(request)
        await db.flush()

        requester = Actor(id=user_id, name=None)
        HistoryRecorder(db, requester, context).audit(
            request,
            AuditAction.DATA_REQUEST_CREATED,
            DATA_REQUEST_POLICY,
            description=f"{REQUEST_TYPE_LABELS[request_type].capitalize()} request filed",
            metadata={"request_type": request_type, "due_date": request.due_date},
        )
        await commit_or_conflict(db, "DataRequest", request.id)

        logger.info("Data request %s (%s) created for user %s, due %s",
                    request.id, request_type.value, user_id, request.due_date.isoformat())
        await DataRequestService._notify_requester(
            db, request,
            "Data request received",
            f"Your {REQUEST_TYPE_LABELS[request_type]} request was received and is due by "
            f"{request.due_date:%Y-%m-%d}",
        )
        return request

    @staticmethod
    async def get_request(db: AsyncSession, request_id: int, user_id: Optional[int] = None) -> DataRequest:
        """Load a request; when `user_id` is given, other users' requests are hidden."""
        request = await get_or_404(db, DataRequest, request_id, "DataRequest")
        if user_id is not None and request.user_id != user_id:
            raise NotFoundError("DataRequest", request_id)
        return request

    @staticmethod
    async def list_user_requests(db: AsyncSession, user_id: int) -> List[DataRequest]:
        result = await db.execute(
            select(DataRequest)
            .where(DataRequest.user_id == user_id)
            .order_by(DataRequest.created_at.desc(), DataRequest.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        status: Optional[DataRequestStatus] = None,
        request_type: Optional[DataRequestType] = None,
        user_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[DataRequest], int]:
        """Admin listing with filters. Returns (requests, total)."""
        query = select(DataRequest)
        if status is not None:
            query = query.where(DataRequest.status == status)
        if request_type is not None:
            query = query.where(DataRequest.request_type == request_type)
        if user_id is not None:
            query = query.where(DataRequest.user_id == user_id)

        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
        result = await db.execute(query.order_by(DataRequest.due_date, DataRequest.id).offset(skip).limit(limit))
        return list(result.scalars().all()), total

    @staticmethod
    async def list_near_due_date(db: AsyncSession, days: int = 3, now: Optional[datetime] = None) -> List[DataRequest]:
        """Open requests whose deadline falls within the next `days` days."""
        now = resolve_now(now)
        result = await db.execute(
            select(DataRequest)
            .where(
                DataRequest.status.in_(OPEN_REQUEST_STATUSES),
                DataRequest.due_date >= now,
                DataRequest.due_date <= now + timedelta(days=days),
            )
            .order_by(DataRequest.due_date)
        )
        return list(result.scalars().all())

    @staticmethod
    async def statistics(db: AsyncSession, now: Optional[datetime] = None, near_due_days: int = 3) -> Dict:
        now = resolve_now(now)
        by_status = {
            status.value: count
            for status, count in (await db.execute(
                select(DataRequest.status, func.count(DataRequest.id)).group_by(DataRequest.status)
            )).all()
        }
        by_type = {
            request_type.value: count
            for request_type, count in (await db.execute(
                select(DataRequest.request_type, func.count(DataRequest.id)).group_by(DataRequest.request_type)
            )).all()
        }
        overdue = (await db.execute(
            select(func.count(DataRequest.id)).where(
                DataRequest.status.in_(OPEN_REQUEST_STATUSES),
                DataRequest.due_date < now,
            )
        )).scalar()
        near_due = (await db.execute(
            select(func.count(DataRequest.id)).where(
                DataRequest.status.in_(OPEN_REQUEST_STATUSES),
                and_(DataRequest.due_date >= now, DataRequest.due_date <= now + timedelta(days=near_due_days)),
            )
        )).scalar()
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_type": by_type,
            "overdue": overdue,
            "near_due": near_due,
        }

    @staticmethod
    async def _apply(
        db: AsyncSession,
        request_id: int,
        action: str,
        operation,
        actor: Actor,
        context: RequestContext,
        description: str,
        owner_id: Optional[int] = None,
    ) -> DataRequest:
        """Load under lock, run a lifecycle method, audit and commit."""
        request = await load_for_update(db, DataRequest, request_id, "DataRequest")
        if owner_id is not None and request.user_id != owner_id:
            raise NotFoundError("DataRequest", request_id)

        before = DATA_REQUEST_POLICY.snapshot(request)
        previous = request.status
        try:
            operation(request)
        except AppException as exc:
            logger.warning("Rejected %s on data request %s in status %s: %s",
                           action, request_id, previous.value, exc.message)
            raise

        HistoryRecorder(db, actor, context).audit(
            request, action, DATA_REQUEST_POLICY, description=description, before=before,
        )
        await commit_or_conflict(db, "DataRequest", request_id)
        logger.info("Data request %s %s -> %s by %s", request_id, previous.value, request.status.value, actor.name)
        return request

    @staticmethod
    async def start_processing(
        db: AsyncSession,
        request_id: int,
        actor: Actor,
        context: RequestContext = SYSTEM_CONTEXT,
        now: Optional[datetime] = None,
    ) -> DataRequest:
        request = await DataRequestService._apply(
            db, request_id, AuditAction.DATA_REQUEST_STARTED,
            lambda r: r.start_processing(_processor_name(actor), now=now),
            actor, context, "Processing started",
        )
        await DataRequestService._notify_requester(
            db, request, "Data request in progress", "Your data request is being processed",
        )
        return request

    @staticmethod
    async def complete(
        db: AsyncSession,
        request_id: int,
        actor: Actor,
        file_path: Optional[str] = None,
        file_hash: Optional[str] = None,
        file_size: Optional[int] = None,
        context: RequestContext = SYSTEM_CONTEXT,
        now: Optional[datetime] = None,
    ) -> DataRequest:
        request = await DataRequestService._apply(
            db, request_id, AuditAction.DATA_REQUEST_COMPLETED,
            lambda r: r.complete(file_path=file_path, file_hash=file_hash, file_size=file_size, now=now),
            actor, context, "Request completed",
        )
        await DataRequestService._notify_requester(
            db, request, "Data request completed", "Your data request was completed",
        )
        return request

    @staticmethod
    async def fail(
        db: AsyncSession,
        request_id: int,
        actor: Actor,
        error_message: str,
        context: RequestContext = SYSTEM_CONTEXT,
        now: Optional[datetime] = None,
    ) -> DataRequest:
        request = await DataRequestService._apply(
            db, request_id, AuditAction.DATA_REQUEST_FAILED,
            lambda r: r.fail(error_message, now=now),
            actor, context, f"Request failed: {error_message}",
        )
        await DataRequestService._notify_requester(
            db, request, "Data request could not be completed",
            "We could not complete your data request. Our team will contact you.",
        )
        return request

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: int,
        actor: Actor,
        context: RequestContext = SYSTEM_CONTEXT,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> DataRequest:
        """Cancel a request. With `owner_id`, only that user's request can be cancelled."""
        return await DataRequestService._apply(
            db, request_id, AuditAction.DATA_REQUEST_CANCELLED,
            lambda r: r.cancel(now=now),
            actor, context, "Request cancelled", owner_id=owner_id,
        )

    @staticmethod
    async def update_admin_notes(
        db: AsyncSession,
        request_id: int,
        admin_notes: str,
        actor: Actor,
        context: RequestContext = SYSTEM_CONTEXT,
    ) -> DataRequest:
        request = await load_for_update(db, DataRequest, request_id, "DataRequest")
        before = DATA_REQUEST_POLICY.snapshot(request)
        request.admin_notes = admin_notes
        HistoryRecorder(db, actor, context).audit(
            request, AuditAction.DATA_REQUEST_NOTES_UPDATED, DATA_REQUEST_POLICY,
            description="Admin notes updated", before=before,
        )
        await commit_or_conflict(db, "DataRequest", request_id)
        return request

    @staticmethod
    async def expire_overdue_requests(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """
        Expire PENDING requests past their legal deadline.

        Candidates are re-loaded under row lock and re-checked, so a request
        picked up concurrently is left alone. Each expiry commits on its own.
        Running the sweep twice expires nothing new.

        Returns:
            Number of requests expired
        """
        now = resolve_now(now)
        result = await db.execute(
            select(DataRequest.id).where(
                DataRequest.status == DataRequestStatus.PENDING,
                DataRequest.due_date < now,
            ).order_by(DataRequest.id)
        )
        candidate_ids = list(result.scalars().all())

        expired = []
        for request_id in candidate_ids:
            request = await load_for_update(db, DataRequest, request_id, "DataRequest")
            if not request.is_expired(now):
                continue

            before = DATA_REQUEST_POLICY.snapshot(request)
            request.expire(now=now)
            HistoryRecorder(db, SYSTEM_ACTOR, SYSTEM_CONTEXT).audit(
                request, AuditAction.DATA_REQUEST_EXPIRED, DATA_REQUEST_POLICY,
                description="Legal deadline passed without processing",
                before=before,
                metadata={"due_date": request.due_date, "swept_at": now},
            )
            try:
                await commit_or_conflict(db, "DataRequest", request_id)
            except ConflictError:
                logger.warning("Skipping data request %s modified during expiry sweep", request_id)
                continue
            expired.append(request_id)
        # Release locks held on rows that were re-checked and skipped
        await db.commit()

        for request_id in expired:
            request = await db.get(DataRequest, request_id)
            await DataRequestService._notify_requester(
                db, request, "Data request expired",
                "Your data request expired before it could be processed. You may file a new request.",
            )

        if expired:
            logger.info("Expiry sweep expired %s of %s overdue data requests", len(expired), len(candidate_ids))
        return len(expired)


class ConsentService:

    @staticmethod
    async def grant_consent(
        db: AsyncSession,
        user_id: int,
        consent_type: ConsentType,
        terms_version: str,
        purpose_description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        context: RequestContext = SYSTEM_CONTEXT,
        now: Optional[datetime] = None,
    ) -> UserConsent:
        """
        Record a new consent.

        Raises:
            ValidationError: an active consent of this type already exists
        """
        now = resolve_now(now)
        consent_type = ConsentType(consent_type)
        if expires_at is not None:
            expires_at = resolve_now(expires_at)
            if expires_at <= now:
                raise ValidationError("Consent expiry must be in the future")

        active = await ConsentService._active_consent(db, user_id, consent_type, now)
        if active is not None:
            raise ValidationError(
                "An active consent of this type already exists",
                details={"consent_id": active.id, "consent_type": consent_type.value}
            )

        consent = UserConsent(
            user_id=user_id,
            consent_type=consent_type,
            is_active=True,
            terms_version=terms_version,
            purpose_description=purpose_description,
            expires_at=expires_at,
            request_ip=context.ip_address,
            user_agent=context.user_agent,
        )
        db.add(consent)
        await db.flush()

        HistoryRecorder(db, Actor(id=user_id, name=None), context).audit(
            consent, AuditAction.CONSENT_GRANTED, CONSENT_POLICY,
            description=f"Consent granted for {consent_type.value} (terms {terms_version})",
        )
        await db.commit()
        logger.info("User %s granted %s consent %s", user_id, consent_type.value, consent.id)
        return consent

    @staticmethod
    async def _active_consent(
        db: AsyncSession, user_id: int, consent_type: ConsentType, now: datetime
    ) -> Optional[UserConsent]:
        result = await db.execute(
            select(UserConsent).where(
                UserConsent.user_id == user_id,
                UserConsent.consent_type == consent_type,
                UserConsent.is_active == True,  # noqa: E712
                UserConsent.revoked_at.is_(None),
            ).order_by(UserConsent.id.desc())
        )
        for consent in result.scalars().all():
            if consent.is_valid(now):
                return consent
        return None

    @staticmethod
    async def revoke_consent(
        db: AsyncSession,
        consent_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        context: RequestContext = SYSTEM_CONTEXT,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> UserConsent:
        """
        Revoke an active consent. The record stays revoked for good.

        Raises:
            ValidationError: consent already revoked or inactive
            NotFoundError: no such consent for this owner
        """
        consent = await load_for_update(db, UserConsent, consent_id, "UserConsent")
        if owner_id is not None and consent.user_id != owner_id:
            raise NotFoundError("UserConsent", consent_id)
        if not consent.is_active:
            raise ValidationError(
                "Only an active consent can be revoked",
                details={"consent_id": consent_id}
            )

        before = CONSENT_POLICY.snapshot(consent)
        consent.revoke(reason, now=now)
        HistoryRecorder(db, actor, context).audit(
            consent, AuditAction.CONSENT_REVOKED, CONSENT_POLICY,
            description=f"Consent for {consent.consent_type.value} revoked", before=before,
        )
        await db.commit()
        logger.info("Consent %s (%s) of user %s revoked", consent_id, consent.consent_type.value, consent.user_id)
        return consent

    @staticmethod
    async def list_user_consents(db: AsyncSession, user_id: int, active_only: bool = False) -> List[UserConsent]:
        query = select(UserConsent).where(UserConsent.user_id == user_id)
        if active_only:
            query = query.where(UserConsent.is_active == True)  # noqa: E712
        result = await db.execute(query.order_by(UserConsent.id))
        return list(result.scalars().all())

    @staticmethod
    async def has_valid_consent(
        db: AsyncSession, user_id: int, consent_type: ConsentType, now: Optional[datetime] = None
    ) -> bool:
        return await ConsentService._active_consent(db, user_id, ConsentType(consent_type), resolve_now(now)) is not None

    @staticmethod
    async def expire_consents(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Revoke active consents whose expiry date has passed. Returns the count."""
        now = resolve_now(now)
        result = await db.execute(
            select(UserConsent).where(
                UserConsent.is_active == True,  # noqa: E712
                UserConsent.expires_at.is_not(None),
                UserConsent.expires_at < now,
            ).with_for_update()
        )
        consents = list(result.scalars().all())
        recorder = HistoryRecorder(db, SYSTEM_ACTOR, SYSTEM_CONTEXT)
        for consent in consents:
            before = CONSENT_POLICY.snapshot(consent)
            consent.revoke("Consent expired", now=now)
            recorder.audit(
                consent, AuditAction.CONSENT_EXPIRED, CONSENT_POLICY,
                description=f"Consent for {consent.consent_type.value} expired", before=before,
            )
        await db.commit()
        if consents:
            logger.info("Expired %s consents", len(consents))
        return len(consents)

    @staticmethod
    async def revoke_all_for_user(
        db: AsyncSession,
        user_id: int,
        actor: Actor,
        reason: str = "Account closed",
        context: RequestContext = SYSTEM_CONTEXT,
        now: Optional[datetime] = None,
    ) -> int:
        """Revoke every active consent of a user, e.g. on account closure."""
        now = resolve_now(now)
        result = await db.execute(
            select(UserConsent).where(
                UserConsent.user_id == user_id,
                UserConsent.is_active == True,  # noqa: E712
            ).with_for_update()
        )
        consents = list(result.scalars().all())
        recorder = HistoryRecorder(db, actor, context)
        for consent in consents:
            before = CONSENT_POLICY.snapshot(consent)
            consent.revoke(reason, now=now)
            recorder.audit(
                consent, AuditAction.CONSENT_REVOKED, CONSENT_POLICY,
                description=f"Consent for {consent.consent_type.value} revoked: {reason}", before=before,
            )
        await db.commit()
        logger.info("Revoked %s consents of user %s", len(consents), user_id)
        return len(consents)
