"""Customer tracking, feedback and admin dashboard queries."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from cake_orders.domain.errors import ConflictError, ValidationError
from cake_orders.domain.receipts import PaymentReceipt
from cake_orders.domain.requests import (
    CustomCakeRequest,
    RequestStatus,
    StatusHistoryEntry,
)
from cake_orders.services.orders import (
    RECEIPT_UPLOAD_STATUSES,
    OrderStateMachine,
    allowed_targets,
)

_logger = logging.getLogger(__name__)

MAX_FEEDBACK_LENGTH = 1000
MAX_PAGE_SIZE = 100

S = RequestStatus

_TIMELINE_EVENTS = (
    (S.DRAFT, "Design Created"),
    (S.PENDING_REVIEW, "Submitted for Review"),
    (S.QUOTED, "Quote Sent"),
    (S.PAYMENT_PENDING_VERIFICATION, "Payment Uploaded"),
    (S.PAYMENT_VERIFIED, "Payment Verified"),
    (S.SCHEDULED, "Pickup Scheduled"),
    (S.IN_PRODUCTION, "In Production"),
    (S.READY_FOR_PICKUP, "Ready for Pickup"),
    (S.COMPLETED, "Completed"),
)
_AWAITING_PAYMENT = frozenset({S.QUOTED, S.PAYMENT_PENDING_VERIFICATION})
_PAID = frozenset(
    {S.PAYMENT_VERIFIED, S.SCHEDULED, S.IN_PRODUCTION, S.READY_FOR_PICKUP, S.COMPLETED}
)


@dataclass(frozen=True)
class TimelineEvent:
    """One milestone on the customer-facing progress bar."""

    status: RequestStatus
    name: str
    timestamp: datetime | None
    is_completed: bool
    is_current: bool


@dataclass(frozen=True)
class TrackingInfo:
    """Everything the tracking page shows for one request."""

    request: CustomCakeRequest
    status_history: list[StatusHistoryEntry]
    receipts: list[PaymentReceipt]
    timeline: list[TimelineEvent]
    can_upload_receipt: bool
    can_cancel: bool

    @property
    def current_status(self) -> RequestStatus:
        return self.request.status


@dataclass(frozen=True)
class DashboardStats:
    """Counts per status and quoted revenue."""

    counts: dict[RequestStatus, int]
    pending_revenue: Decimal
    verified_revenue: Decimal

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class RequestPage:
    """A page of requests in one status."""

    requests: list[CustomCakeRequest]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass
class TrackingService:
    """Read side for customers and staff, plus post-pickup feedback."""

    machine: OrderStateMachine

    def track(self, tracking_code: str) -> TrackingInfo:
        """Return status, history, receipts and allowed actions for a code."""
        request = self.machine.get_by_tracking_code(tracking_code)
        history = self.machine.history(request.request_id)
        receipts = self.machine.repository.list_receipts(request.request_id)
        return TrackingInfo(
            request=request,
            status_history=history,
            receipts=receipts,
            timeline=build_timeline(request, history),
            can_upload_receipt=request.status in RECEIPT_UPLOAD_STATUSES,
            can_cancel=S.CANCELLED in allowed_targets(request.status),
        )

    def submit_feedback(
        self, tracking_code: str, rating: int, feedback: str | None
    ) -> CustomCakeRequest:
        """Record a rating for a completed order, once."""
        if not 1 <= rating <= 5:
            raise ValidationError.single("rating", "Rating must be between 1 and 5")
        cleaned = feedback.strip() if feedback and feedback.strip() else None
        if cleaned and len(cleaned) > MAX_FEEDBACK_LENGTH:
            raise ValidationError.single(
                "feedback",
                f"Feedback must be less than {MAX_FEEDBACK_LENGTH} characters",
            )
        request = self.machine.get_by_tracking_code(tracking_code)
        if request.status is not S.COMPLETED:
            raise ConflictError(
                "Feedback can only be submitted for completed orders",
                current_status=request.status.value,
            )
        if request.customer_rating is not None or not (
            self.machine.repository.save_feedback(request.request_id, rating, cleaned)
        ):
            raise ConflictError("Feedback has already been submitted")
        _logger.info(
            "Feedback received: tracking_code=%s rating=%s",
            request.tracking_code,
            rating,
        )
        return self.machine.get(request.request_id)

    def dashboard_stats(self) -> DashboardStats:
        """Summarize the pipeline for the admin dashboard."""
        repository = self.machine.repository
        counts = {status: 0 for status in S}
        counts.update(repository.count_by_status())
        return DashboardStats(
            counts=counts,
            pending_revenue=repository.sum_quoted_price(_AWAITING_PAYMENT),
            verified_revenue=repository.sum_quoted_price(_PAID),
        )

    def list_by_status(
        self, status: RequestStatus, page: int = 1, limit: int = 20
    ) -> RequestPage:
        """Return one page of requests in ``status``, newest first."""
        if page < 1:
            raise ValidationError.single("page", "Page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError.single(
                "limit", f"Limit must be between 1 and {MAX_PAGE_SIZE}"
            )
        repository = self.machine.repository
        requests = repository.list_by_status(status, limit, (page - 1) * limit)
        total = repository.count_by_status().get(status, 0)
        return RequestPage(requests=requests, page=page, limit=limit, total=total)


def build_timeline(
    request: CustomCakeRequest, history: list[StatusHistoryEntry]
) -> list[TimelineEvent]:
    """Map the happy-path milestones onto the request's history."""
    reached: dict[RequestStatus, datetime] = {}
    for entry in history:
        reached.setdefault(entry.to_status, entry.timestamp)
    return [
        TimelineEvent(
            status=status,
            name=name,
            timestamp=reached.get(status),
            is_completed=status in reached,
            is_current=request.status is status,
        )
        for status, name in _TIMELINE_EVENTS
    ]
