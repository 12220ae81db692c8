"""JSON views of domain objects."""

from datetime import datetime
from decimal import Decimal

from cake_orders.domain.receipts import PaymentReceipt
from cake_orders.domain.requests import CustomCakeRequest, StatusHistoryEntry
from cake_orders.domain.sessions import PollResult, SessionTicket
from cake_orders.services.scheduling import CapacityWarning
from cake_orders.services.tracking import (
    DashboardStats,
    RequestPage,
    TimelineEvent,
    TrackingInfo,
)


def ticket_dict(ticket: SessionTicket) -> dict[str, object]:
    return {
        "session_token": ticket.token,
        "editor_url": ticket.editor_url,
        "qr_code_url": ticket.qr_code_data_url,
        "expires_in": ticket.expires_in,
        "expires_at": ticket.expires_at.isoformat(),
    }


def poll_dict(result: PollResult) -> dict[str, object]:
    body: dict[str, object] = {"status": result.status}
    if result.payload is not None:
        body["payload"] = result.payload
    return body


def request_dict(request: CustomCakeRequest) -> dict[str, object]:
    """Full request view for staff and the request's owner."""
    return {
        "request_id": str(request.request_id),
        "tracking_code": request.tracking_code,
        "status": request.status.value,
        "customer_name": request.contact.name,
        "customer_email": request.contact.email,
        "customer_phone": request.contact.phone,
        "design": request.design.as_dict(),
        "created_at": request.created_at.isoformat(),
        "updated_at": request.updated_at.isoformat(),
        "submitted_at": _iso(request.submitted_at),
        "estimated_price": _money(request.estimated_price),
        "price_breakdown": (
            request.price_breakdown.as_dict() if request.price_breakdown else None
        ),
        "quoted_price": _money(request.quoted_price),
        "quote_notes": request.quote_notes,
        "preparation_days": request.preparation_days,
        "scheduled_pickup_datetime": _iso(request.scheduled_pickup_datetime),
        "assigned_baker_id": request.assigned_baker_id,
        "baker_notes": request.baker_notes,
        "rejection_reason": request.rejection_reason,
        "revision_notes": request.revision_notes,
        "revision_count": request.revision_count,
        "cancellation_reason": request.cancellation_reason,
        "customer_rating": request.customer_rating,
        "customer_feedback": request.customer_feedback,
    }


def entry_dict(entry: StatusHistoryEntry) -> dict[str, object]:
    return {
        "from_status": entry.from_status.value if entry.from_status else None,
        "to_status": entry.to_status.value,
        "changed_by": entry.actor.label(),
        "notes": entry.notes,
        "changed_at": entry.timestamp.isoformat(),
    }


def receipt_dict(receipt: PaymentReceipt) -> dict[str, object]:
    return {
        "receipt_id": str(receipt.receipt_id),
        "payment_amount": _money(receipt.amount),
        "payment_method": receipt.method.value,
        "payment_reference": receipt.reference,
        "image_ref": receipt.image_ref,
        "verification_status": receipt.verification_status.value,
        "is_primary": receipt.is_primary,
        "uploaded_at": receipt.uploaded_at.isoformat(),
        "verified_at": _iso(receipt.verified_at),
        "verification_notes": receipt.verification_notes,
    }


def timeline_dict(event: TimelineEvent) -> dict[str, object]:
    return {
        "event_type": event.status.value,
        "event_name": event.name,
        "timestamp": _iso(event.timestamp),
        "is_completed": event.is_completed,
        "is_current": event.is_current,
    }


def tracking_dict(info: TrackingInfo) -> dict[str, object]:
    """Customer tracking page payload."""
    return {
        "tracking_code": info.request.tracking_code,
        "current_status": info.current_status.value,
        "request": request_dict(info.request),
        "status_history": [entry_dict(entry) for entry in info.status_history],
        "receipts": [receipt_dict(receipt) for receipt in info.receipts],
        "timeline": [timeline_dict(event) for event in info.timeline],
        "can_upload_receipt": info.can_upload_receipt,
        "can_cancel": info.can_cancel,
    }


def capacity_dict(warning: CapacityWarning | None) -> dict[str, object] | None:
    if warning is None:
        return None
    return {
        "date": warning.day.isoformat(),
        "scheduled": warning.scheduled,
        "limit": warning.limit,
        "message": warning.message,
    }


def dashboard_dict(stats: DashboardStats) -> dict[str, object]:
    return {
        "counts": {status.value: total for status, total in stats.counts.items()},
        "total_requests": stats.total,
        "pending_revenue": _money(stats.pending_revenue),
        "verified_revenue": _money(stats.verified_revenue),
    }


def page_dict(page: RequestPage) -> dict[str, object]:
    return {
        "requests": [request_dict(request) for request in page.requests],
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": page.total,
            "total_pages": page.total_pages,
        },
    }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None
