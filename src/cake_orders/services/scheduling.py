"""Pickup scheduling with lead time and daily capacity checks."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from cake_orders.domain.errors import (
    ConflictError,
    LeadTimeViolationError,
    ValidationError,
)
from cake_orders.domain.requests import Actor, RequestStatus
from cake_orders.services.orders import (
    OrderStateMachine,
    RequestRepository,
    SchedulePickup,
    TransitionResult,
)
from cake_orders.services.sessions import utcnow

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityWarning:
    """Advisory returned when a day is at or over its limit."""

    day: date
    scheduled: int
    limit: int

    @property
    def message(self) -> str:
        return (
            f"{self.scheduled} orders already scheduled on {self.day.isoformat()} "
            f"(limit {self.limit})"
        )


class CapacityPolicy(Protocol):
    """Decides whether a pickup day is over capacity."""

    def check(self, day: date) -> CapacityWarning | None:
        """Return a warning when ``day`` has no room left."""


@dataclass
class MaxOrdersPerDayPolicy(CapacityPolicy):
    """Counts scheduled pickups per bakery-local day."""

    repository: RequestRepository
    max_orders_per_day: int
    timezone: ZoneInfo

    def check(self, day: date) -> CapacityWarning | None:
        """Warn when the day already holds ``max_orders_per_day`` pickups."""
        start = datetime.combine(day, time.min, tzinfo=self.timezone)
        scheduled = self.repository.count_scheduled_between(
            start, start + timedelta(days=1)
        )
        if scheduled < self.max_orders_per_day:
            return None
        return CapacityWarning(
            day=day, scheduled=scheduled, limit=self.max_orders_per_day
        )


@dataclass(frozen=True)
class ScheduleResult:
    """Committed schedule plus any capacity advisory."""

    transition: TransitionResult
    capacity_warning: CapacityWarning | None = None


@dataclass
class PickupScheduler:
    """Turns a verified payment into a scheduled pickup."""

    machine: OrderStateMachine
    capacity: CapacityPolicy
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("Asia/Manila"))
    clock: Callable[[], datetime] = utcnow

    def local_datetime(self, pickup_date: date, pickup_time: time) -> datetime:
        """Interpret a date and time in the bakery's timezone."""
        return datetime.combine(pickup_date, pickup_time, tzinfo=self.timezone)

    def earliest_pickup(self, request_id: UUID) -> datetime:
        """Return submission time plus the quoted preparation window."""
        request = self.machine.get(request_id)
        if request.submitted_at is None or request.preparation_days is None:
            raise ConflictError(
                "Request has no submission time or preparation window",
                current_status=request.status.value,
            )
        return request.submitted_at + timedelta(days=request.preparation_days)

    def schedule(  # noqa: PLR0913
        self,
        request_id: UUID,
        pickup_date: date,
        pickup_time: time,
        actor: Actor,
        baker_id: str | None = None,
        baker_notes: str | None = None,
    ) -> ScheduleResult:
        """Schedule pickup; capacity is advisory, lead time is enforced."""
        request = self.machine.get(request_id)
        if request.status is not RequestStatus.PAYMENT_VERIFIED:
            raise ConflictError(
                f"Cannot move request from {request.status.value} to scheduled",
                current_status=request.status.value,
                target_status=RequestStatus.SCHEDULED.value,
            )
        pickup_at = self.local_datetime(pickup_date, pickup_time)
        if pickup_at <= self.clock():
            raise ValidationError.single(
                "pickup_date", "Pickup must be in the future"
            )
        earliest = self.earliest_pickup(request_id)
        if pickup_at < earliest:
            local_earliest = earliest.astimezone(self.timezone)
            raise LeadTimeViolationError(
                "Pickup is earlier than the preparation window allows; earliest is "
                f"{local_earliest.isoformat()}",
                earliest_pickup=local_earliest,
            )
        warning = self.capacity.check(pickup_date)
        if warning is not None:
            _logger.warning(
                "Pickup day over capacity: tracking_code=%s %s",
                request.tracking_code,
                warning.message,
            )
        transition = self.machine.apply(
            request_id,
            SchedulePickup(
                pickup_at=pickup_at, baker_id=baker_id, baker_notes=baker_notes
            ),
            actor,
        )
        return ScheduleResult(transition=transition, capacity_warning=warning)
