"""
Concurrency Tests.

Validates that a concurrent writer between load and commit surfaces as a
409 conflict and leaves no partial state behind.
"""

import pytest
from sqlalchemy import update

from backend.app.core.exceptions import ConflictError
from backend.app.models.delivery import Delivery
from backend.app.models.delivery_enums import AttemptResult, DeliveryStatus
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteStatus
from backend.app.services import delivery_service, route_service
from backend.app.services.history import get_delivery_history, get_route_history
from backend.app.services.locking import flush_or_conflict, load_for_update
from backend.tests.factories import NOW, delivery_data, route_data


def racing_loader(session_factory, model):
    """load_for_update that lets another session bump the version right after the load."""
    async def load(db, entity_model, entity_id, resource=None):
        entity = await load_for_update(db, entity_model, entity_id, resource)
        async with session_factory() as other:
            await other.execute(
                update(model).where(model.id == entity_id).values(version=model.version + 1)
            )
            await other.commit()
        return entity
    return load


@pytest.mark.asyncio
async def test_stale_flush_raises_conflict(db_session, session_factory, dispatcher):
    route = await route_service.create_route(db_session, route_data(), dispatcher)

    async with session_factory() as other:
        await other.execute(update(Route).where(Route.id == route.id).values(name="Renamed elsewhere", version=2))
        await other.commit()

    route.name = "Renamed here"
    with pytest.raises(ConflictError) as exc_info:
        await flush_or_conflict(db_session, "Route", route.id)
    assert exc_info.value.status_code == 409

    reloaded = await load_for_update(db_session, Route, route.id)
    assert reloaded.name == "Renamed elsewhere"
    assert reloaded.version == 2


@pytest.mark.asyncio
async def test_route_transition_conflict_rolls_back(db_session, session_factory, dispatcher, mocker):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    mocker.patch(
        "backend.app.services.route_service.load_for_update",
        side_effect=racing_loader(session_factory, Route),
    )

    with pytest.raises(ConflictError):
        await route_service.change_route_status(db_session, route.id, RouteStatus.IN_PROGRESS, dispatcher, now=NOW)

    reloaded = await load_for_update(db_session, Route, route.id)
    assert reloaded.status == RouteStatus.PLANNED
    assert reloaded.started_at is None
    assert [h.event_type for h in await get_route_history(db_session, route.id)] == ["CREATED"]


@pytest.mark.asyncio
async def test_attempt_conflict_does_not_count(db_session, session_factory, dispatcher, driver, mocker):
    delivery = await delivery_service.create_delivery(db_session, delivery_data(), dispatcher)
    await delivery_service.change_delivery_status(db_session, delivery.id, DeliveryStatus.PICKED_UP, dispatcher)
    mocker.patch(
        "backend.app.services.delivery_service.load_for_update",
        side_effect=racing_loader(session_factory, Delivery),
    )

    with pytest.raises(ConflictError):
        await delivery_service.record_attempt(
            db_session, delivery.id, {"result": AttemptResult.FAILED}, driver, now=NOW
        )

    mocker.stopall()
    reloaded = await load_for_update(db_session, Delivery, delivery.id)
    assert reloaded.delivery_attempts == 0
    assert await delivery_service.list_attempts(db_session, delivery.id) == []
    assert len(await get_delivery_history(db_session, delivery.id)) == 2
