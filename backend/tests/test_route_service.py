"""
Route lifecycle service tests.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from backend.app.core.exceptions import InvalidTransitionError, NotFoundError, OutOfRangeError, ValidationError
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteEventType, RouteStatus, RouteType
from backend.app.models.route_history import RouteHistory
from backend.app.services import delivery_service, route_service
from backend.app.services.history import get_route_history
from backend.tests.factories import NOW, delivery_data, route_data


@pytest.mark.asyncio
async def test_create_route_computes_metrics_and_history(db_session, dispatcher, request_context):
    route = await route_service.create_route(db_session, route_data(), dispatcher, request_context)

    assert route.status == RouteStatus.PLANNED
    assert route.estimated_duration_minutes == pytest.approx(108.0)
    assert route.estimated_cost == pytest.approx(100.0)
    assert route.estimated_fuel_liters == pytest.approx(5.0)
    assert route.version == 1

    history = await get_route_history(db_session, route.id)
    assert len(history) == 1
    assert history[0].event_type == RouteEventType.CREATED.value
    assert history[0].new_status == RouteStatus.PLANNED
    assert history[0].user_id == dispatcher.id
    assert history[0].ip_address == "10.0.0.7"
    assert history[0].meta_data["source"] == "api"


@pytest.mark.asyncio
async def test_duplicate_code_rejected(db_session, dispatcher):
    await route_service.create_route(db_session, route_data(), dispatcher)
    with pytest.raises(ValidationError):
        await route_service.create_route(db_session, route_data(), dispatcher)


@pytest.mark.asyncio
async def test_create_rejects_implausible_distance(db_session, dispatcher):
    with pytest.raises(OutOfRangeError):
        await route_service.create_route(db_session, route_data(distance_km=5000), dispatcher)
    routes, total = await route_service.list_routes(db_session)
    assert total == 0


@pytest.mark.asyncio
async def test_full_lifecycle_stamps_timestamps(db_session, dispatcher, driver):
    route = await route_service.create_route(db_session, route_data(driver_id=driver.id), dispatcher)

    route = await route_service.change_route_status(db_session, route.id, RouteStatus.IN_PROGRESS, driver, now=NOW)
    assert route.started_at == NOW
    route = await route_service.change_route_status(db_session, route.id, RouteStatus.PAUSED, driver, now=NOW)
    route = await route_service.change_route_status(
        db_session, route.id, "IN_PROGRESS", driver, now=NOW + timedelta(hours=1)
    )
    assert route.started_at == NOW
    route = await route_service.change_route_status(
        db_session, route.id, RouteStatus.COMPLETED, driver, now=NOW + timedelta(hours=3)
    )
    assert route.status == RouteStatus.COMPLETED
    assert route.completed_at == NOW + timedelta(hours=3)

    history = await get_route_history(db_session, route.id)
    assert [(h.previous_status, h.new_status) for h in history if h.event_type == "STATUS_CHANGED"] == [
        (RouteStatus.PLANNED, RouteStatus.IN_PROGRESS),
        (RouteStatus.IN_PROGRESS, RouteStatus.PAUSED),
        (RouteStatus.PAUSED, RouteStatus.IN_PROGRESS),
        (RouteStatus.IN_PROGRESS, RouteStatus.COMPLETED),
    ]
    changed = {c["field_name"] for c in history[-1].changed_fields}
    assert changed == {"status", "completed_at"}


@pytest.mark.asyncio
async def test_invalid_transition_has_no_side_effects(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await route_service.change_route_status(db_session, route.id, RouteStatus.COMPLETED, dispatcher, now=NOW)
    assert exc_info.value.details["allowed_transitions"] == ["CANCELLED", "IN_PROGRESS"]
    await db_session.rollback()

    route = await route_service.get_route(db_session, route.id)
    assert route.status == RouteStatus.PLANNED
    assert route.completed_at is None
    assert route.version == 1
    assert len(await get_route_history(db_session, route.id)) == 1


@pytest.mark.asyncio
async def test_self_transition_rejected(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    with pytest.raises(InvalidTransitionError):
        await route_service.change_route_status(db_session, route.id, RouteStatus.PLANNED, dispatcher)


@pytest.mark.asyncio
async def test_cancel_records_reason(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    route = await route_service.change_route_status(
        db_session, route.id, RouteStatus.CANCELLED, dispatcher, reason="Vehicle unavailable", now=NOW
    )
    assert route.cancelled_at == NOW
    assert route.cancellation_reason == "Vehicle unavailable"

    with pytest.raises(InvalidTransitionError):
        await route_service.change_route_status(db_session, route.id, RouteStatus.IN_PROGRESS, dispatcher)


@pytest.mark.asyncio
async def test_unknown_status_string(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    with pytest.raises(ValidationError):
        await route_service.change_route_status(db_session, route.id, "FLYING", dispatcher)


@pytest.mark.asyncio
async def test_update_recomputes_metrics_and_records_diff(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)

    route = await route_service.update_route(db_session, route.id, {"distance_km": 80.0, "name": "Centro - ABC"}, dispatcher)
    assert route.estimated_cost == pytest.approx(200.0)
    assert route.version == 2

    history = await get_route_history(db_session, route.id)
    assert history[-1].event_type == RouteEventType.UPDATED.value
    changes = {c["field_name"]: (c["old_value"], c["new_value"]) for c in history[-1].changed_fields}
    assert changes["distance_km"] == (40.0, 80.0)
    assert changes["name"] == ("Centro - Zona Sul", "Centro - ABC")
    assert "estimated_duration_minutes" in changes


@pytest.mark.asyncio
async def test_out_of_range_update_leaves_route_untouched(db_session, session_factory, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)

    with pytest.raises(OutOfRangeError):
        await route_service.update_route(db_session, route.id, {"distance_km": 5000.0, "name": "Longo"}, dispatcher)

    # An unrelated commit on the same session must not carry the rejected values
    await delivery_service.create_delivery(db_session, delivery_data(), dispatcher)

    async with session_factory() as other:
        stored = (await other.execute(
            select(Route.distance_km, Route.name, Route.estimated_cost, Route.version).where(Route.id == route.id)
        )).one()
    assert stored.distance_km == 40.0
    assert stored.name == "Centro - Zona Sul"
    assert stored.estimated_cost == pytest.approx(100.0)
    assert stored.version == 1
    assert len(await get_route_history(db_session, route.id)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["distance_km", "num_stops", "origin_address", "destination_address"])
async def test_required_fields_cannot_be_nulled(db_session, dispatcher, field):
    route = await route_service.create_route(db_session, route_data(), dispatcher)

    with pytest.raises(ValidationError) as exc_info:
        await route_service.update_route(db_session, route.id, {field: None}, dispatcher)
    assert exc_info.value.details["fields"] == [field]

    route = await route_service.get_route(db_session, route.id)
    assert route.version == 1


@pytest.mark.asyncio
async def test_update_without_changes_writes_nothing(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    route = await route_service.update_route(db_session, route.id, {"name": "Centro - Zona Sul"}, dispatcher)
    await db_session.commit()
    assert route.version == 1
    assert len(await get_route_history(db_session, route.id)) == 1


@pytest.mark.asyncio
async def test_type_is_immutable(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)

    with pytest.raises(ValidationError):
        await route_service.update_route(db_session, route.id, {"type": RouteType.EXPRESS}, dispatcher)

    with pytest.raises(ValidationError):
        route.type = RouteType.RURAL


@pytest.mark.asyncio
async def test_in_progress_route_not_editable(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    await route_service.change_route_status(db_session, route.id, RouteStatus.IN_PROGRESS, dispatcher)
    with pytest.raises(ValidationError):
        await route_service.update_route(db_session, route.id, {"name": "Other"}, dispatcher)


@pytest.mark.asyncio
async def test_unknown_field_rejected(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    with pytest.raises(ValidationError) as exc_info:
        await route_service.update_route(db_session, route.id, {"status": "COMPLETED"}, dispatcher)
    assert exc_info.value.details["fields"] == ["status"]


@pytest.mark.asyncio
async def test_delete_cascades_history(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    route_id = route.id

    await route_service.delete_route(db_session, route_id, dispatcher)

    with pytest.raises(NotFoundError):
        await route_service.get_route(db_session, route_id)
    count = (await db_session.execute(
        select(func.count(RouteHistory.id)).where(RouteHistory.route_id == route_id)
    )).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_started_route_cannot_be_deleted(db_session, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    await route_service.change_route_status(db_session, route.id, RouteStatus.IN_PROGRESS, dispatcher)
    await route_service.change_route_status(db_session, route.id, RouteStatus.CANCELLED, dispatcher)
    with pytest.raises(ValidationError):
        await route_service.delete_route(db_session, route.id, dispatcher)


@pytest.mark.asyncio
async def test_list_routes_filters(db_session, dispatcher):
    await route_service.create_route(db_session, route_data(code="RT-001"), dispatcher)
    await route_service.create_route(db_session, route_data(code="RT-002", type=RouteType.RURAL), dispatcher)

    routes, total = await route_service.list_routes(db_session, route_type=RouteType.RURAL)
    assert total == 1
    assert routes[0].code == "RT-002"

    routes, total = await route_service.list_routes(db_session, skip=1, limit=1)
    assert total == 2
    assert [r.code for r in routes] == ["RT-002"]


@pytest.mark.asyncio
async def test_missing_route(db_session, dispatcher):
    with pytest.raises(NotFoundError):
        await route_service.change_route_status(db_session, 999, RouteStatus.IN_PROGRESS, dispatcher)
