"""
Consent lifecycle tests.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from backend.app.core.actor import Actor
from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.models.audit_log import AuditLog
from backend.app.models.lgpd_enums import ConsentType
from backend.app.models.user_consent import UserConsent
from backend.app.services.lgpd_service import ConsentService
from backend.tests.factories import NOW

USER = Actor(id=42, name="ana")


def test_revoked_consent_cannot_be_reactivated():
    consent = UserConsent(
        user_id=42,
        consent_type=ConsentType.LOCATION_TRACKING,
        is_active=True,
        terms_version="v1",
    )
    consent.revoke("No longer needed", now=NOW)

    assert consent.is_active is False
    assert consent.revoked_at == NOW
    assert consent.is_valid(NOW) is False

    with pytest.raises(ValidationError):
        consent.is_active = True
    with pytest.raises(ValidationError):
        consent.revoke(now=NOW)


def test_expired_consent_is_not_valid():
    consent = UserConsent(
        user_id=42,
        consent_type=ConsentType.MARKETING_COMMUNICATIONS,
        is_active=True,
        terms_version="v1",
        expires_at=NOW + timedelta(days=30),
    )
    assert consent.is_valid(NOW) is True
    assert consent.is_valid(NOW + timedelta(days=31)) is False


@pytest.mark.asyncio
async def test_grant_and_revoke(db_session):
    consent = await ConsentService.grant_consent(
        db_session, 42, ConsentType.LOCATION_TRACKING, "v2", purpose_description="Live delivery tracking", now=NOW
    )
    assert await ConsentService.has_valid_consent(db_session, 42, ConsentType.LOCATION_TRACKING, now=NOW)

    revoked = await ConsentService.revoke_consent(db_session, consent.id, USER, reason="Privacy", owner_id=42, now=NOW)
    assert revoked.revoked_at == NOW
    assert revoked.revocation_reason == "Privacy"
    assert not await ConsentService.has_valid_consent(db_session, 42, ConsentType.LOCATION_TRACKING, now=NOW)

    result = await db_session.execute(
        select(AuditLog).where(AuditLog.entity_type == "user_consent").order_by(AuditLog.id)
    )
    actions = [row.action for row in result.scalars().all()]
    assert actions == ["CONSENT_GRANTED", "CONSENT_REVOKED"]


@pytest.mark.asyncio
async def test_duplicate_active_consent_rejected(db_session):
    await ConsentService.grant_consent(db_session, 42, ConsentType.PUSH_NOTIFICATIONS, "v1", now=NOW)
    with pytest.raises(ValidationError):
        await ConsentService.grant_consent(db_session, 42, ConsentType.PUSH_NOTIFICATIONS, "v2", now=NOW)


@pytest.mark.asyncio
async def test_regrant_after_revoke_creates_new_record(db_session):
    first = await ConsentService.grant_consent(db_session, 42, ConsentType.PUSH_NOTIFICATIONS, "v1", now=NOW)
    await ConsentService.revoke_consent(db_session, first.id, USER, now=NOW)

    second = await ConsentService.grant_consent(db_session, 42, ConsentType.PUSH_NOTIFICATIONS, "v2", now=NOW)
    assert second.id != first.id
    consents = await ConsentService.list_user_consents(db_session, 42)
    assert [c.is_active for c in consents] == [False, True]


@pytest.mark.asyncio
async def test_revoke_twice_rejected(db_session):
    consent = await ConsentService.grant_consent(db_session, 42, ConsentType.THIRD_PARTY_SHARING, "v1", now=NOW)
    await ConsentService.revoke_consent(db_session, consent.id, USER, now=NOW)
    with pytest.raises(ValidationError):
        await ConsentService.revoke_consent(db_session, consent.id, USER, now=NOW)


@pytest.mark.asyncio
async def test_cannot_revoke_someone_elses_consent(db_session):
    consent = await ConsentService.grant_consent(db_session, 42, ConsentType.THIRD_PARTY_SHARING, "v1", now=NOW)
    with pytest.raises(NotFoundError):
        await ConsentService.revoke_consent(db_session, consent.id, Actor(id=7, name="other"), owner_id=7, now=NOW)


@pytest.mark.asyncio
async def test_grant_with_past_expiry_rejected(db_session):
    with pytest.raises(ValidationError):
        await ConsentService.grant_consent(
            db_session, 42, ConsentType.ANALYTICS_AND_IMPROVEMENTS, "v1", expires_at=NOW - timedelta(days=1), now=NOW
        )


@pytest.mark.asyncio
async def test_expire_consents(db_session):
    await ConsentService.grant_consent(
        db_session, 42, ConsentType.ANALYTICS_AND_IMPROVEMENTS, "v1", expires_at=NOW + timedelta(days=10), now=NOW
    )
    await ConsentService.grant_consent(db_session, 42, ConsentType.BASIC_DATA_PROCESSING, "v1", now=NOW)

    assert await ConsentService.expire_consents(db_session, now=NOW + timedelta(days=5)) == 0
    assert await ConsentService.expire_consents(db_session, now=NOW + timedelta(days=11)) == 1
    assert await ConsentService.expire_consents(db_session, now=NOW + timedelta(days=12)) == 0

    active = await ConsentService.list_user_consents(db_session, 42, active_only=True)
    assert [c.consent_type for c in active] == [ConsentType.BASIC_DATA_PROCESSING]


@pytest.mark.asyncio
async def test_revoke_all_for_user(db_session):
    await ConsentService.grant_consent(db_session, 42, ConsentType.BASIC_DATA_PROCESSING, "v1", now=NOW)
    await ConsentService.grant_consent(db_session, 42, ConsentType.LOCATION_TRACKING, "v1", now=NOW)
    await ConsentService.grant_consent(db_session, 43, ConsentType.LOCATION_TRACKING, "v1", now=NOW)

    assert await ConsentService.revoke_all_for_user(db_session, 42, USER, now=NOW) == 2
    assert await ConsentService.list_user_consents(db_session, 42, active_only=True) == []
    assert len(await ConsentService.list_user_consents(db_session, 43, active_only=True)) == 1
