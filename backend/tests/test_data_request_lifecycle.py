"""
Data request entity lifecycle tests.

Exercises the lifecycle methods and status guard on DataRequest directly,
plus one round trip through the database and response schema.
"""

from datetime import timedelta

import pytest

from backend.app.core.exceptions import DeadlineError, ValidationError
from backend.app.models.data_request import DataRequest
from backend.app.models.lgpd_enums import DataRequestStatus, DataRequestType
from backend.app.schemas.lgpd import DataRequestResponse
from backend.tests.factories import NOW

DUE = NOW + timedelta(days=15)


def make_request(status=DataRequestStatus.PENDING):
    request = DataRequest(
        id=1,
        user_id=42,
        request_type=DataRequestType.DATA_PORTABILITY,
        status=DataRequestStatus.PENDING,
        due_date=DUE,
        created_at=NOW,
    )
    if status == DataRequestStatus.PROCESSING:
        request.start_processing("admin", now=NOW)
    return request


def test_pending_to_processing_to_completed():
    request = make_request()

    request.start_processing("admin", now=NOW + timedelta(hours=1))
    assert request.status == DataRequestStatus.PROCESSING
    assert request.processing_started_at == NOW + timedelta(hours=1)
    assert request.processed_by == "admin"

    request.complete("/exports/42.zip", "abc123", 2048, now=NOW + timedelta(days=2))
    assert request.status == DataRequestStatus.COMPLETED
    assert request.completed_at == NOW + timedelta(days=2)
    assert request.file_path == "/exports/42.zip"
    assert request.file_size == 2048
    assert request.is_terminal


def test_complete_requires_processing():
    request = make_request()
    with pytest.raises(ValidationError) as exc_info:
        request.complete(now=NOW)
    assert exc_info.value.details["allowed_statuses"] == ["processing"]
    assert request.status == DataRequestStatus.PENDING


def test_start_processing_only_from_pending():
    request = make_request(DataRequestStatus.PROCESSING)
    with pytest.raises(ValidationError):
        request.start_processing("admin", now=NOW)


def test_fail_requires_message():
    request = make_request(DataRequestStatus.PROCESSING)
    with pytest.raises(ValidationError):
        request.fail("   ", now=NOW)
    assert request.status == DataRequestStatus.PROCESSING

    request.fail("Storage unavailable", now=NOW)
    assert request.status == DataRequestStatus.FAILED
    assert request.error_message == "Storage unavailable"
    assert request.completed_at == NOW


def test_fail_from_pending():
    request = make_request()
    request.fail("Identity could not be verified", now=NOW)
    assert request.status == DataRequestStatus.FAILED


@pytest.mark.parametrize("status", [DataRequestStatus.PENDING, DataRequestStatus.PROCESSING])
def test_cancel_open_request(status):
    request = make_request(status)
    request.cancel(now=NOW)
    assert request.status == DataRequestStatus.CANCELLED
    assert request.completed_at == NOW


def test_terminal_request_rejects_every_operation():
    request = make_request()
    request.cancel(now=NOW)

    for operation in (
        lambda: request.start_processing("admin", now=NOW),
        lambda: request.complete(now=NOW),
        lambda: request.fail("late", now=NOW),
        lambda: request.cancel(now=NOW),
        lambda: request.expire(now=DUE + timedelta(days=1)),
    ):
        with pytest.raises(DeadlineError):
            operation()
    assert request.status == DataRequestStatus.CANCELLED


def test_expire_only_after_due_date():
    request = make_request()

    with pytest.raises(ValidationError):
        request.expire(now=DUE)
    assert request.status == DataRequestStatus.PENDING

    request.expire(now=DUE + timedelta(seconds=1))
    assert request.status == DataRequestStatus.EXPIRED
    assert request.completed_at == DUE + timedelta(seconds=1)


def test_processing_request_cannot_expire():
    request = make_request(DataRequestStatus.PROCESSING)
    with pytest.raises(ValidationError):
        request.expire(now=DUE + timedelta(days=1))
    assert request.status == DataRequestStatus.PROCESSING
    assert request.is_expired(DUE + timedelta(days=1)) is False


def test_deadline_queries():
    request = make_request()
    assert request.is_within_legal_deadline(DUE) is True
    assert request.is_within_legal_deadline(DUE + timedelta(seconds=1)) is False
    assert request.is_expired(DUE) is False
    assert request.is_expired(DUE + timedelta(seconds=1)) is True


def test_status_cannot_be_assigned_directly():
    request = make_request()
    with pytest.raises(ValidationError):
        request.status = DataRequestStatus.COMPLETED
    assert request.status == DataRequestStatus.PENDING


@pytest.mark.asyncio
async def test_round_trip_through_database(db_session):
    """Persisted lifecycle fields survive a reload and serialize cleanly."""
    request = DataRequest(
        user_id=42,
        request_type=DataRequestType.DATA_ACCESS,
        status=DataRequestStatus.PENDING,
        due_date=DUE,
        created_at=NOW,
    )
    db_session.add(request)
    await db_session.commit()

    request.start_processing("admin", now=NOW)
    request.complete("/exports/42.json", "f00d", 5_000_000_000, now=NOW + timedelta(days=1))
    await db_session.commit()
    request_id = request.id
    db_session.expunge_all()

    loaded = await db_session.get(DataRequest, request_id)
    assert loaded.status == DataRequestStatus.COMPLETED
    assert loaded.file_size == 5_000_000_000
    assert loaded.version == 2

    body = DataRequestResponse.model_validate(loaded)
    assert body.status == DataRequestStatus.COMPLETED
    assert body.due_date == DUE
    assert body.completed_at == NOW + timedelta(days=1)

    with pytest.raises(ValidationError):
        loaded.status = DataRequestStatus.PENDING
