"""Design session endpoints used by the kiosk and the phone editor."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, status

from cake_orders.api.models import CreateSessionBody, SessionPayloadBody
from cake_orders.api.serializers import poll_dict, ticket_dict

if TYPE_CHECKING:
    from cake_orders.containers import AppContainer

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionBody, request: Request
) -> dict[str, object]:
    """Open a session and return the QR code for the phone editor."""
    container: AppContainer = request.app.state.container
    ticket = container.session_broker.create(body.kiosk_id, body.menu_item_id)
    return ticket_dict(ticket)


@router.get("/{token}")
async def validate_session(token: str, request: Request) -> dict[str, object]:
    """Called by the editor when it opens the link."""
    container: AppContainer = request.app.state.container
    session = container.session_broker.validate(token)
    return {
        "valid": True,
        "status": session.status.value,
        "kiosk_id": session.kiosk_id,
        "menu_item_id": session.menu_item_id,
        "expires_at": session.expires_at.isoformat(),
        "progress": session.progress_payload,
    }


@router.put("/{token}")
async def save_session_progress(
    token: str, body: SessionPayloadBody, request: Request
) -> dict[str, object]:
    """Autosave the editor's unfinished design."""
    container: AppContainer = request.app.state.container
    session = container.session_broker.save_progress(token, body.payload)
    return {"status": session.status.value, "saved": True}


@router.get("/{token}/poll")
async def poll_session(token: str, request: Request) -> dict[str, object]:
    """Kiosk polling endpoint."""
    container: AppContainer = request.app.state.container
    return poll_dict(container.session_broker.poll(token))


@router.post("/{token}/complete")
async def complete_session(
    token: str, body: SessionPayloadBody, request: Request
) -> dict[str, object]:
    """Record the finished design from the phone."""
    container: AppContainer = request.app.state.container
    session = container.session_broker.complete(token, body.payload)
    return {"status": session.status.value}


@router.delete("/{token}")
async def cancel_session(token: str, request: Request) -> dict[str, object]:
    """Kiosk abandons the session."""
    container: AppContainer = request.app.state.container
    session = container.session_broker.cancel(token)
    return {"status": session.status.value}
