"""Kiosk to phone design session broker."""

import asyncio
import contextlib
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol

from cake_orders.domain.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from cake_orders.domain.sessions import (
    DesignSession,
    PollResult,
    SessionStatus,
    SessionTicket,
)
from cake_orders.services.locks import KeyedLock

_logger = logging.getLogger(__name__)

_POLL_STATUS = {
    SessionStatus.ACTIVE: "pending",
    SessionStatus.COMPLETED: "completed",
    SessionStatus.EXPIRED: "expired",
    SessionStatus.CANCELLED: "cancelled",
}


class SessionRepository(Protocol):
    """Persistence interface for design sessions, indexed by token."""

    def create_session(self, session: DesignSession) -> None:
        """Persist a new session."""

    def get_session(self, token: str) -> DesignSession | None:
        """Return a session by token, if present."""

    def complete_session(
        self, token: str, payload: dict[str, object], completed_at: datetime
    ) -> bool:
        """Mark an active, unexpired session completed; false if another writer won."""

    def cancel_session(self, token: str) -> bool:
        """Mark an active session cancelled; false if it was no longer active."""

    def save_progress(
        self, token: str, payload: dict[str, object], saved_at: datetime
    ) -> bool:
        """Store in-progress design data; false unless active and unexpired."""

    def delete_expired(self, now: datetime, completed_before: datetime) -> int:
        """Delete stale sessions and return the count.

        Unfinished sessions go once their TTL elapses; completed sessions are
        kept until ``completed_before`` so the kiosk can still collect them.
        """


class QrCodeRenderer(Protocol):
    """Renders a URL as a scannable image."""

    def render(self, url: str) -> str:
        """Return the QR code as a data URL."""


def utcnow() -> datetime:
    """Current UTC time."""
    return datetime.now(tz=UTC)


@dataclass
class SessionBroker:
    """Issues, validates, polls, completes and cancels design sessions."""

    repository: SessionRepository
    qr_renderer: QrCodeRenderer
    editor_base_url: str
    ttl_seconds: int = 900
    completed_retention_seconds: int = 86400
    clock: Callable[[], datetime] = utcnow
    locks: KeyedLock = field(default_factory=KeyedLock)

    def create(self, kiosk_id: str, menu_item_id: int | None = None) -> SessionTicket:
        """Open a session for a kiosk and return the token and editor link."""
        if not kiosk_id or not kiosk_id.strip():
            raise ValidationError.single("kiosk_id", "Kiosk id is required")
        now = self.clock()
        token = secrets.token_urlsafe(32)
        session = DesignSession(
            token=token,
            kiosk_id=kiosk_id.strip(),
            status=SessionStatus.ACTIVE,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            menu_item_id=menu_item_id,
        )
        self.repository.create_session(session)
        editor_url = f"{self.editor_base_url.rstrip('/')}/?session={token}"
        _logger.info("Design session created: kiosk=%s", session.kiosk_id)
        return SessionTicket(
            token=token,
            editor_url=editor_url,
            qr_code_data_url=self.qr_renderer.render(editor_url),
            expires_in=self.ttl_seconds,
            expires_at=session.expires_at,
        )

    def validate(self, token: str) -> DesignSession:
        """Return the session, or raise when it is unknown or expired."""
        session = self._get(token)
        now = self.clock()
        if session.is_expired(now):
            raise ExpiredError("Session has expired")
        return replace(session, status=session.effective_status(now))

    def poll(self, token: str) -> PollResult:
        """Report session progress; repeated polls after completion are identical."""
        session = self._get(token)
        status = session.effective_status(self.clock())
        if status is SessionStatus.COMPLETED:
            return PollResult(status="completed", payload=session.completion_payload)
        return PollResult(status=_POLL_STATUS[status])

    def complete(self, token: str, payload: dict[str, object]) -> DesignSession:
        """Record the design payload; the first caller on an active session wins."""
        if not payload:
            raise ValidationError.single("payload", "Design payload is required")
        with self.locks.hold(token):
            session = self._get(token)
            now = self.clock()
            self._ensure_active(session, now, SessionStatus.COMPLETED)
            if not self.repository.complete_session(token, payload, now):
                self._ensure_active(self._get(token), now, SessionStatus.COMPLETED)
                raise ConflictError(
                    "Session is no longer active",
                    current_status=session.status.value,
                    target_status=SessionStatus.COMPLETED.value,
                )
        _logger.info("Design session completed: kiosk=%s", session.kiosk_id)
        return replace(
            session,
            status=SessionStatus.COMPLETED,
            completion_payload=payload,
            completed_at=now,
        )

    def save_progress(self, token: str, payload: dict[str, object]) -> DesignSession:
        """Keep the editor's unfinished design so the phone can resume it."""
        if not payload:
            raise ValidationError.single("payload", "Design payload is required")
        with self.locks.hold(token):
            session = self._get(token)
            now = self.clock()
            self._ensure_active(session, now)
            if not self.repository.save_progress(token, payload, now):
                self._ensure_active(self._get(token), now)
                raise ConflictError(
                    "Session is no longer active", current_status=session.status.value
                )
        return replace(session, progress_payload=payload)

    def cancel(self, token: str) -> DesignSession:
        """Cancel a session; cancelling a finished session is a no-op."""
        with self.locks.hold(token):
            session = self._get(token)
            if session.status in {SessionStatus.COMPLETED, SessionStatus.CANCELLED}:
                return session
            self.repository.cancel_session(token)
            return self._get(token)

    def consume_completed(self, token: str) -> dict[str, object]:
        """Return the payload of a completed session."""
        session = self._get(token)
        if session.status is not SessionStatus.COMPLETED or not (
            session.completion_payload
        ):
            raise ConflictError(
                "Session has not been completed",
                current_status=session.effective_status(self.clock()).value,
                target_status=SessionStatus.COMPLETED.value,
            )
        return session.completion_payload

    def sweep(self) -> int:
        """Delete stale sessions; expiry is also enforced lazily on every read."""
        now = self.clock()
        removed = self.repository.delete_expired(
            now, now - timedelta(seconds=self.completed_retention_seconds)
        )
        if removed:
            _logger.info("Swept expired design sessions: count=%s", removed)
        return removed

    def _get(self, token: str) -> DesignSession:
        session = self.repository.get_session(token)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    @staticmethod
    def _ensure_active(
        session: DesignSession,
        now: datetime,
        target: SessionStatus | None = None,
    ) -> None:
        if session.is_expired(now):
            raise ExpiredError("Session has expired")
        if session.status is not SessionStatus.ACTIVE:
            raise ConflictError(
                f"Session is already {session.status.value}",
                current_status=session.status.value,
                target_status=target.value if target else None,
            )


@dataclass
class SessionSweeper:
    """Periodic cleanup task tied to the application lifespan."""

    broker: SessionBroker
    interval_seconds: float
    _task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Start sweeping in the running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.broker.sweep()
            except Exception:
                _logger.exception("Design session sweep failed")
