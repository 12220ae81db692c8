"""Tests for pickup scheduling."""

from datetime import date, datetime, time

import pytest

from cake_orders.domain.errors import (
    ConflictError,
    LeadTimeViolationError,
    ValidationError,
)
from cake_orders.domain.requests import RequestStatus
from cake_orders.services.orders import (
    CompletePickup,
    MarkReadyForPickup,
    StartProduction,
)
from tests.conftest import ADMIN, MANILA, quoted_request, verified_request


def test_schedule_after_lead_time(container) -> None:
    request = verified_request(container)

    result = container.pickup_scheduler.schedule(
        request.request_id, date(2026, 3, 6), time(14, 0), ADMIN, baker_id="b-1"
    )

    scheduled = result.transition.request
    assert scheduled.status is RequestStatus.SCHEDULED
    assert scheduled.scheduled_pickup_datetime == datetime(
        2026, 3, 6, 14, 0, tzinfo=MANILA
    )
    assert scheduled.assigned_baker_id == "b-1"
    assert result.capacity_warning is None


def test_earliest_pickup_is_submission_plus_preparation(container) -> None:
    request = verified_request(container)

    earliest = container.pickup_scheduler.earliest_pickup(request.request_id)

    assert earliest.astimezone(MANILA) == datetime(2026, 3, 5, 10, 0, tzinfo=MANILA)


def test_pickup_inside_preparation_window_is_rejected(container) -> None:
    request = verified_request(container)

    with pytest.raises(LeadTimeViolationError) as excinfo:
        container.pickup_scheduler.schedule(
            request.request_id, date(2026, 3, 4), time(14, 0), ADMIN
        )

    assert excinfo.value.earliest_pickup == datetime(
        2026, 3, 5, 10, 0, tzinfo=MANILA
    )
    current = container.order_machine.get(request.request_id)
    assert current.status is RequestStatus.PAYMENT_VERIFIED
    assert current.scheduled_pickup_datetime is None


def test_pickup_in_the_past_is_rejected(container, clock) -> None:
    request = verified_request(container)
    clock.advance(days=10)

    with pytest.raises(ValidationError):
        container.pickup_scheduler.schedule(
            request.request_id, date(2026, 3, 6), time(14, 0), ADMIN
        )


def test_schedule_requires_verified_payment(container) -> None:
    request = quoted_request(container)

    with pytest.raises(ConflictError) as excinfo:
        container.pickup_scheduler.schedule(
            request.request_id, date(2026, 3, 6), time(14, 0), ADMIN
        )

    assert excinfo.value.current_status == "quoted"


def test_full_day_returns_capacity_warning(container) -> None:
    scheduler = container.pickup_scheduler
    for hour in (9, 11):
        request = verified_request(container)
        scheduler.schedule(request.request_id, date(2026, 3, 6), time(hour), ADMIN)
    request = verified_request(container)

    result = scheduler.schedule(
        request.request_id, date(2026, 3, 6), time(15), ADMIN
    )

    assert result.transition.request.status is RequestStatus.SCHEDULED
    warning = result.capacity_warning
    assert warning is not None
    assert warning.scheduled == 2
    assert warning.limit == 2
    assert "2026-03-06" in warning.message


def test_other_days_do_not_count_toward_capacity(container) -> None:
    scheduler = container.pickup_scheduler
    for day in (6, 7):
        request = verified_request(container)
        scheduler.schedule(request.request_id, date(2026, 3, day), time(9), ADMIN)
    request = verified_request(container)

    result = scheduler.schedule(request.request_id, date(2026, 3, 8), time(9), ADMIN)

    assert result.capacity_warning is None


def test_production_steps_run_in_order(container) -> None:
    request = verified_request(container)
    container.pickup_scheduler.schedule(
        request.request_id, date(2026, 3, 6), time(14, 0), ADMIN
    )
    machine = container.order_machine

    with pytest.raises(ConflictError):
        machine.apply(request.request_id, CompletePickup(), ADMIN)
    for step in (StartProduction(), MarkReadyForPickup(), CompletePickup("Picked up")):
        machine.apply(request.request_id, step, ADMIN)

    history = machine.history(request.request_id)
    assert [entry.to_status.value for entry in history] == [
        "draft",
        "pending_review",
        "quoted",
        "payment_pending_verification",
        "payment_verified",
        "scheduled",
        "in_production",
        "ready_for_pickup",
        "completed",
    ]
    assert history[-1].notes == "Picked up"
