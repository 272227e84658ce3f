"""
Audit Log Database Model.

Generic append-only audit trail for entities without a dedicated history
table (LGPD data requests and consents).
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, event
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for compliance-relevant mutations.

    Events logged:
    - DATA_REQUEST_CREATED / _STARTED / _COMPLETED / _FAILED / _CANCELLED / _EXPIRED
    - DATA_REQUEST_NOTES_UPDATED
    - CONSENT_GRANTED / CONSENT_REVOKED / CONSENT_EXPIRED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # What was touched
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    category = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    changed_fields = Column(JSON, nullable=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_name = Column(String(200), nullable=True)
    actor_type = Column(String(50), nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, entity={self.entity_type}:{self.entity_id}, action='{self.action}')>"


@event.listens_for(AuditLog, "before_update")
def _reject_audit_log_update(mapper, connection, target):
    raise RuntimeError("audit_logs rows are append-only")
