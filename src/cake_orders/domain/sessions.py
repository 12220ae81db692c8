"""Domain models for kiosk to phone design sessions."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SessionStatus(Enum):
    """Lifecycle of a design session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DesignSession:
    """A short-lived handoff between a kiosk and a phone editor."""

    token: str
    kiosk_id: str
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    menu_item_id: int | None = None
    completion_payload: dict[str, object] | None = None
    completed_at: datetime | None = None
    progress_payload: dict[str, object] | None = None

    def is_expired(self, now: datetime) -> bool:
        """Return true when the TTL has elapsed and nothing finished the session."""
        return self.status is SessionStatus.ACTIVE and now >= self.expires_at

    def effective_status(self, now: datetime) -> SessionStatus:
        """Status as observed at ``now``, with lazy expiry applied."""
        if self.is_expired(now):
            return SessionStatus.EXPIRED
        return self.status


@dataclass(frozen=True)
class SessionTicket:
    """What the kiosk receives when it opens a session."""

    token: str
    editor_url: str
    qr_code_data_url: str
    expires_in: int
    expires_at: datetime


@dataclass(frozen=True)
class PollResult:
    """Kiosk view of a session."""

    status: str
    payload: dict[str, object] | None = None
