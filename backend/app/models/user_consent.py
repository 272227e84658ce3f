"""
User Consent database model.

A revoked consent is final. Granting again means creating a new record.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Text
from sqlalchemy.orm import validates
from backend.app.core.clock import resolve_now, utcnow
from backend.app.core.exceptions import ValidationError
from backend.app.db.session import Base
from backend.app.models.lgpd_enums import ConsentType


class UserConsent(Base):
    """User consent model."""
    __tablename__ = "user_consents"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)

    consent_type = Column(Enum(ConsentType), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    terms_version = Column(String(50), nullable=False)
    purpose_description = Column(Text, nullable=True)

    expires_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    revocation_reason = Column(Text, nullable=True)

    request_ip = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("is_active")
    def _guard_reactivation(self, key, value):
        if value and self.revoked_at is not None:
            raise ValidationError(
                "A revoked consent cannot be reactivated; grant a new consent instead",
                details={"consent_id": self.id, "consent_type": self.consent_type.value}
            )
        return value

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        if not self.is_active or self.revoked_at is not None:
            return False
        if self.expires_at is not None and resolve_now(now) > self.expires_at:
            return False
        return True

    def revoke(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if self.revoked_at is not None:
            raise ValidationError(
                "Consent is already revoked",
                details={"consent_id": self.id}
            )
        self.is_active = False
        self.revoked_at = resolve_now(now)
        self.revocation_reason = reason

    def __repr__(self):
        return f"<UserConsent(id={self.id}, user={self.user_id}, type='{self.consent_type.value}', active={self.is_active})>"
