"""
LGPD Data Request database model.

Data-subject requests (portability, erasure, access, correction, consent
revocation) must be answered before `due_date`. The status column is driven
exclusively by the lifecycle methods on this class.

There is deliberately no foreign key to a users table: requests are retained
for compliance after account-level operations.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Enum, JSON, Text
from sqlalchemy.orm import validates
from backend.app.core.clock import resolve_now, utcnow
from backend.app.core.exceptions import DeadlineError, ValidationError
from backend.app.db.session import Base
from backend.app.models.lgpd_enums import DataRequestType, DataRequestStatus

TERMINAL_REQUEST_STATUSES = frozenset({
    DataRequestStatus.COMPLETED,
    DataRequestStatus.FAILED,
    DataRequestStatus.CANCELLED,
    DataRequestStatus.EXPIRED,
})
OPEN_REQUEST_STATUSES = frozenset({DataRequestStatus.PENDING, DataRequestStatus.PROCESSING})


class DataRequest(Base):
    """
    LGPD data-subject request.

    Status flow:
        pending → processing → completed | failed
        pending | processing → cancelled
        pending (past due) → expired

    Every lifecycle method accepts an optional ``now`` (naive UTC).
    """
    __tablename__ = "data_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)

    request_type = Column(Enum(DataRequestType), nullable=False, index=True)
    status = Column(Enum(DataRequestStatus), default=DataRequestStatus.PENDING, nullable=False, index=True)

    reason = Column(Text, nullable=True)
    request_ip = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    due_date = Column(DateTime, nullable=False, index=True)
    processing_started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Generated file (portability / access)
    file_path = Column(String(500), nullable=True)
    file_hash = Column(String(128), nullable=True)
    file_size = Column(BigInteger, nullable=True)

    error_message = Column(Text, nullable=True)
    processed_by = Column(String(200), nullable=True)
    admin_notes = Column(Text, nullable=True)
    meta_data = Column(JSON, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Set only while a lifecycle method is assigning status
    _lifecycle_change = False

    @validates("status")
    def _guard_status(self, key, value):
        if self._lifecycle_change:
            return value
        if self.__dict__.get("status") is None and value == DataRequestStatus.PENDING:
            return value
        raise ValidationError(
            "Data request status can only be changed through lifecycle operations",
            details={"request_id": self.id, "requested_status": getattr(value, "value", value)}
        )

    @contextmanager
    def _transition(self):
        self._lifecycle_change = True
        try:
            yield
        finally:
            self._lifecycle_change = False

    # Queries

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    def is_within_legal_deadline(self, now: Optional[datetime] = None) -> bool:
        return resolve_now(now) <= self.due_date

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.status == DataRequestStatus.PENDING and resolve_now(now) > self.due_date

    # Lifecycle

    def _ensure_open(self, operation: str) -> None:
        if self.is_terminal:
            raise DeadlineError(
                f"Cannot {operation} a data request that is already {self.status.value}",
                details={"request_id": self.id, "status": self.status.value, "operation": operation}
            )

    def _ensure_status(self, operation: str, *allowed: DataRequestStatus) -> None:
        self._ensure_open(operation)
        if self.status not in allowed:
            raise ValidationError(
                f"Cannot {operation} a data request in status {self.status.value}",
                details={
                    "request_id": self.id,
                    "status": self.status.value,
                    "allowed_statuses": sorted(s.value for s in allowed),
                }
            )

    def start_processing(self, processor_id: str, now: Optional[datetime] = None) -> None:
        self._ensure_status("start processing", DataRequestStatus.PENDING)
        with self._transition():
            self.status = DataRequestStatus.PROCESSING
        self.processing_started_at = resolve_now(now)
        self.processed_by = processor_id

    def complete(
        self,
        file_path: Optional[str] = None,
        file_hash: Optional[str] = None,
        file_size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._ensure_status("complete", DataRequestStatus.PROCESSING)
        with self._transition():
            self.status = DataRequestStatus.COMPLETED
        self.completed_at = resolve_now(now)
        if file_path:
            self.file_path = file_path
        if file_hash:
            self.file_hash = file_hash
        if file_size:
            self.file_size = file_size

    def fail(self, error_message: str, now: Optional[datetime] = None) -> None:
        self._ensure_status("fail", DataRequestStatus.PENDING, DataRequestStatus.PROCESSING)
        if not error_message or not error_message.strip():
            raise ValidationError("An error message is required to fail a data request")
        with self._transition():
            self.status = DataRequestStatus.FAILED
        self.error_message = error_message
        self.completed_at = resolve_now(now)

    def cancel(self, now: Optional[datetime] = None) -> None:
        self._ensure_status("cancel", DataRequestStatus.PENDING, DataRequestStatus.PROCESSING)
        with self._transition():
            self.status = DataRequestStatus.CANCELLED
        self.completed_at = resolve_now(now)

    def expire(self, now: Optional[datetime] = None) -> None:
        now = resolve_now(now)
        self._ensure_status("expire", DataRequestStatus.PENDING)
        if now <= self.due_date:
            raise ValidationError(
                "Data request is still within its legal deadline",
                details={"request_id": self.id, "due_date": self.due_date.isoformat()}
            )
        with self._transition():
            self.status = DataRequestStatus.EXPIRED
        self.completed_at = now

    def __repr__(self):
        return f"<DataRequest(id={self.id}, user={self.user_id}, type='{self.request_type.value}', status='{self.status.value}')>"
