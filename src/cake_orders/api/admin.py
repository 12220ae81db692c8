"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from cake_orders.api.models import (
    ProductionBody,
    QuoteBody,
    ReasonBody,
    RevisionBody,
    ScheduleBody,
    VerifyReceiptBody,
)
from cake_orders.api.serializers import (
    capacity_dict,
    dashboard_dict,
    entry_dict,
    page_dict,
    receipt_dict,
    request_dict,
)
from cake_orders.config import Settings  # noqa: TC001
from cake_orders.domain.errors import ValidationError
from cake_orders.domain.requests import Actor, ActorType, RequestStatus
from cake_orders.services.orders import (
    PRODUCTION_STEPS,
    CancelRequest,
    IssueQuote,
    RejectRequest,
    RequestRevision,
    TransitionResult,
)

if TYPE_CHECKING:
    from cake_orders.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_settings(request: Request) -> Settings:
    container: AppContainer = request.app.state.container
    return container.settings


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    settings: Settings = Depends(_get_settings),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != settings.admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


async def require_staff(
    x_admin_token: str | None = Header(default=None),
    x_cashier_token: str | None = Header(default=None),
    settings: Settings = Depends(_get_settings),
) -> None:
    """Allow admins and cashiers; used by read-only endpoints."""
    if x_admin_token and x_admin_token == settings.admin_token:
        return
    if (
        x_cashier_token
        and settings.cashier_token
        and x_cashier_token == settings.cashier_token
    ):
        return
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


async def admin_actor(x_staff_id: str | None = Header(default=None)) -> Actor:
    """Admin recorded on history entries and receipt verdicts."""
    return Actor(ActorType.ADMIN, x_staff_id)


@router.get("/custom-cakes/dashboard", dependencies=[Depends(require_staff)])
async def dashboard(request: Request) -> dict[str, object]:
    """Counts per status and quoted revenue."""
    container: AppContainer = request.app.state.container
    return dashboard_dict(container.tracking_service.dashboard_stats())


@router.get("/custom-cakes", dependencies=[Depends(require_staff)])
async def list_requests(
    request: Request,
    status_filter: str = Query(default="pending_review", alias="status"),
    page: int = 1,
    limit: int = 20,
) -> dict[str, object]:
    """Return one page of requests in a status."""
    container: AppContainer = request.app.state.container
    try:
        request_status = RequestStatus(status_filter)
    except ValueError:
        raise ValidationError.single("status", "Unknown status") from None
    return page_dict(
        container.tracking_service.list_by_status(request_status, page, limit)
    )


@router.get("/custom-cakes/{request_id}", dependencies=[Depends(require_staff)])
async def request_detail(request_id: UUID, request: Request) -> dict[str, object]:
    """Return a request with its history and receipts."""
    container: AppContainer = request.app.state.container
    cake_request = container.order_machine.get(request_id)
    return {
        **request_dict(cake_request),
        "status_history": [
            entry_dict(entry)
            for entry in container.order_machine.history(request_id)
        ],
        "receipts": [
            receipt_dict(receipt)
            for receipt in container.receipt_ledger.list_receipts(request_id)
        ],
    }


@router.get(
    "/custom-cakes/{request_id}/quote-suggestion",
    dependencies=[Depends(require_staff)],
)
async def quote_suggestion(request_id: UUID, request: Request) -> dict[str, object]:
    """Suggested price and preparation days for a request's design."""
    container: AppContainer = request.app.state.container
    design = container.order_machine.get(request_id).design
    calculator = container.quote_calculator
    return {
        "breakdown": calculator.suggest(design).as_dict(),
        "preparation_days": calculator.suggest_preparation_days(design),
    }


@router.post(
    "/custom-cakes/{request_id}/quote", dependencies=[Depends(require_admin)]
)
async def issue_quote(
    request_id: UUID,
    body: QuoteBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Quote a pending request."""
    container: AppContainer = request.app.state.container
    result = container.order_machine.apply(
        request_id,
        IssueQuote(
            quoted_price=body.quoted_price,
            preparation_days=body.preparation_days,
            quote_notes=body.quote_notes,
        ),
        actor,
    )
    return await _notify(container, result)


@router.post(
    "/custom-cakes/{request_id}/reject", dependencies=[Depends(require_admin)]
)
async def reject_request(
    request_id: UUID,
    body: ReasonBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Decline a pending request."""
    container: AppContainer = request.app.state.container
    result = container.order_machine.apply(
        request_id, RejectRequest(reason=body.reason), actor
    )
    return await _notify(container, result)


@router.post(
    "/custom-cakes/{request_id}/request-revision",
    dependencies=[Depends(require_admin)],
)
async def request_revision(
    request_id: UUID,
    body: RevisionBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Ask the customer to change the design."""
    container: AppContainer = request.app.state.container
    result = container.order_machine.apply(
        request_id, RequestRevision(revision_notes=body.revision_notes), actor
    )
    return await _notify(container, result)


@router.get(
    "/custom-cakes/{request_id}/receipts", dependencies=[Depends(require_staff)]
)
async def list_receipts(request_id: UUID, request: Request) -> dict[str, object]:
    """Every receipt uploaded for a request, newest first."""
    container: AppContainer = request.app.state.container
    receipts = container.receipt_ledger.list_receipts(request_id)
    return {"receipts": [receipt_dict(receipt) for receipt in receipts]}


@router.post(
    "/receipts/{receipt_id}/verify", dependencies=[Depends(require_admin)]
)
async def verify_receipt(
    receipt_id: UUID,
    body: VerifyReceiptBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Approve or reject a pending receipt."""
    container: AppContainer = request.app.state.container
    outcome = container.receipt_ledger.verify(
        receipt_id, body.action == "approve", body.notes, actor
    )
    if outcome.transition is not None:
        await container.notification_service.notify_transition(
            outcome.transition.request, outcome.transition.entry
        )
    return {
        **request_dict(outcome.request),
        "receipt": receipt_dict(outcome.receipt),
    }


@router.post(
    "/custom-cakes/{request_id}/schedule", dependencies=[Depends(require_admin)]
)
async def schedule_pickup(
    request_id: UUID,
    body: ScheduleBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Fix the pickup slot for a paid request."""
    container: AppContainer = request.app.state.container
    result = container.pickup_scheduler.schedule(
        request_id,
        body.pickup_date,
        body.pickup_time,
        actor,
        baker_id=body.baker_id,
        baker_notes=body.baker_notes,
    )
    response = await _notify(container, result.transition)
    response["capacity_warning"] = capacity_dict(result.capacity_warning)
    return response


@router.post(
    "/custom-cakes/{request_id}/production", dependencies=[Depends(require_admin)]
)
async def advance_production(
    request_id: UUID,
    body: ProductionBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Move a scheduled request through production and pickup."""
    container: AppContainer = request.app.state.container
    command = PRODUCTION_STEPS[body.step](step_notes=body.notes)
    result = container.order_machine.apply(request_id, command, actor)
    return await _notify(container, result)


@router.post(
    "/custom-cakes/{request_id}/cancel", dependencies=[Depends(require_admin)]
)
async def cancel_request(
    request_id: UUID,
    body: ReasonBody,
    request: Request,
    actor: Actor = Depends(admin_actor),
) -> dict[str, object]:
    """Cancel a request on the customer's behalf."""
    container: AppContainer = request.app.state.container
    result = container.order_machine.apply(
        request_id, CancelRequest(reason=body.reason), actor
    )
    return await _notify(container, result)


async def _notify(
    container: AppContainer, result: TransitionResult
) -> dict[str, object]:
    await container.notification_service.notify_transition(
        result.request, result.entry
    )
    return request_dict(result.request)
