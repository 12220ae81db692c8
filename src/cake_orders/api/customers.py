"""Customer endpoints for custom cake requests, keyed by tracking code."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, status

from cake_orders.api.models import (
    ContactBody,
    CreateRequestBody,
    FeedbackBody,
    ReasonBody,
    ReceiptBody,
    ResubmitBody,
    UpdateDraftBody,
)
from cake_orders.api.serializers import receipt_dict, request_dict, tracking_dict
from cake_orders.domain.errors import ValidationError
from cake_orders.domain.receipts import PaymentMethod
from cake_orders.domain.requests import CUSTOMER
from cake_orders.services.orders import CancelRequest
from cake_orders.services.receipts import ReceiptUpload
from cake_orders.services.validation import parse_amount

if TYPE_CHECKING:
    from cake_orders.containers import AppContainer

router = APIRouter(prefix="/custom-cakes", tags=["custom-cakes"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_request(
    body: CreateRequestBody, request: Request
) -> dict[str, object]:
    """Create a draft from a completed design session."""
    container: AppContainer = request.app.state.container
    cake_request = container.custom_cake_service.create_from_session(
        body.session_token, body.to_contact()
    )
    return request_dict(cake_request)


@router.put("/{tracking_code}")
async def update_draft(
    tracking_code: str, body: UpdateDraftBody, request: Request
) -> dict[str, object]:
    """Save edits to a draft before it is submitted."""
    container: AppContainer = request.app.state.container
    cake_request = container.custom_cake_service.update_draft(
        tracking_code, body.design, body.to_contact()
    )
    return request_dict(cake_request)


@router.post("/{tracking_code}/submit")
async def submit_request(
    tracking_code: str, request: Request, body: ContactBody | None = None
) -> dict[str, object]:
    """Send a draft to the bakery for review."""
    container: AppContainer = request.app.state.container
    result = container.custom_cake_service.submit(
        tracking_code, body.to_contact() if body else None
    )
    await container.notification_service.notify_transition(
        result.request, result.entry
    )
    return request_dict(result.request)


@router.post("/{tracking_code}/resubmit")
async def resubmit_request(
    tracking_code: str, body: ResubmitBody, request: Request
) -> dict[str, object]:
    """Send a revised design back for review."""
    container: AppContainer = request.app.state.container
    result = container.custom_cake_service.resubmit(tracking_code, body.design)
    await container.notification_service.notify_transition(
        result.request, result.entry
    )
    return request_dict(result.request)


@router.get("/track/{tracking_code}")
async def track_request(tracking_code: str, request: Request) -> dict[str, object]:
    """Tracking page data."""
    container: AppContainer = request.app.state.container
    return tracking_dict(container.tracking_service.track(tracking_code))


@router.post("/{tracking_code}/receipts", status_code=status.HTTP_201_CREATED)
async def upload_receipt(
    tracking_code: str, body: ReceiptBody, request: Request
) -> dict[str, object]:
    """Attach a payment receipt to a quoted request."""
    container: AppContainer = request.app.state.container
    try:
        method = PaymentMethod(body.payment_method)
    except ValueError:
        raise ValidationError.single(
            "payment_method", "Invalid payment method"
        ) from None
    outcome = container.receipt_ledger.upload(
        tracking_code,
        ReceiptUpload(
            amount=parse_amount(body.payment_amount, "payment_amount"),
            method=method,
            image_data_url=body.receipt_image,
            reference=body.payment_reference,
        ),
        CUSTOMER,
    )
    service = container.notification_service
    if outcome.transition is not None:
        await service.notify_transition(
            outcome.transition.request, outcome.transition.entry
        )
    else:
        await service.notify([service.receipt_uploaded(outcome.request)])
    return {
        "status": outcome.request.status.value,
        "receipt": receipt_dict(outcome.receipt),
    }


@router.post("/{tracking_code}/cancel")
async def cancel_request(
    tracking_code: str, body: ReasonBody, request: Request
) -> dict[str, object]:
    """Customer withdraws a request that has not been paid for."""
    container: AppContainer = request.app.state.container
    machine = container.order_machine
    cake_request = machine.get_by_tracking_code(tracking_code)
    result = machine.apply(
        cake_request.request_id, CancelRequest(reason=body.reason), CUSTOMER
    )
    await container.notification_service.notify_transition(
        result.request, result.entry
    )
    return request_dict(result.request)


@router.post("/{tracking_code}/feedback")
async def submit_feedback(
    tracking_code: str, body: FeedbackBody, request: Request
) -> dict[str, object]:
    """Rate a completed order."""
    container: AppContainer = request.app.state.container
    cake_request = container.tracking_service.submit_feedback(
        tracking_code, body.rating, body.feedback
    )
    return request_dict(cake_request)
