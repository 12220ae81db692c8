"""Supabase-backed design session repository."""

from dataclasses import dataclass
from datetime import datetime

from supabase import Client

from cake_orders.domain.sessions import DesignSession, SessionStatus
from cake_orders.services.sessions import SessionRepository

_COLUMNS = (
    "token, kiosk_id, status, menu_item_id, completion_payload, created_at, "
    "expires_at, completed_at, progress_payload"
)


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for design sessions."""

    client: Client

    def create_session(self, session: DesignSession) -> None:
        """Insert a new session row."""
        response = (
            self.client.table("design_sessions")
            .insert(
                {
                    "token": session.token,
                    "kiosk_id": session.kiosk_id,
                    "status": session.status.value,
                    "menu_item_id": session.menu_item_id,
                    "created_at": session.created_at.isoformat(),
                    "expires_at": session.expires_at.isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create design session")

    def get_session(self, token: str) -> DesignSession | None:
        """Return a session by token, if present."""
        response = (
            self.client.table("design_sessions")
            .select(_COLUMNS)
            .eq("token", token)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_session(response.data[0])

    def complete_session(
        self, token: str, payload: dict[str, object], completed_at: datetime
    ) -> bool:
        """Complete the session only while it is active and unexpired."""
        response = (
            self.client.table("design_sessions")
            .update(
                {
                    "status": SessionStatus.COMPLETED.value,
                    "completion_payload": payload,
                    "completed_at": completed_at.isoformat(),
                }
            )
            .eq("token", token)
            .eq("status", SessionStatus.ACTIVE.value)
            .gt("expires_at", completed_at.isoformat())
            .execute()
        )
        return bool(response.data)

    def cancel_session(self, token: str) -> bool:
        """Cancel the session if it is still active."""
        response = (
            self.client.table("design_sessions")
            .update({"status": SessionStatus.CANCELLED.value})
            .eq("token", token)
            .eq("status", SessionStatus.ACTIVE.value)
            .execute()
        )
        return bool(response.data)

    def save_progress(
        self, token: str, payload: dict[str, object], saved_at: datetime
    ) -> bool:
        """Store in-progress design data while the session is still open."""
        response = (
            self.client.table("design_sessions")
            .update({"progress_payload": payload, "updated_at": saved_at.isoformat()})
            .eq("token", token)
            .eq("status", SessionStatus.ACTIVE.value)
            .gt("expires_at", saved_at.isoformat())
            .execute()
        )
        return bool(response.data)

    def delete_expired(self, now: datetime, completed_before: datetime) -> int:
        """Delete stale sessions and return how many were removed."""
        unfinished = (
            self.client.table("design_sessions")
            .delete()
            .neq("status", SessionStatus.COMPLETED.value)
            .lte("expires_at", now.isoformat())
            .execute()
        )
        completed = (
            self.client.table("design_sessions")
            .delete()
            .eq("status", SessionStatus.COMPLETED.value)
            .lte("completed_at", completed_before.isoformat())
            .execute()
        )
        return len(unfinished.data or []) + len(completed.data or [])


def _parse_session(row: dict[str, object]) -> DesignSession:
    completed_at = row.get("completed_at")
    return DesignSession(
        token=str(row["token"]),
        kiosk_id=str(row["kiosk_id"]),
        status=SessionStatus(row["status"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        expires_at=datetime.fromisoformat(str(row["expires_at"])),
        menu_item_id=row.get("menu_item_id"),
        completion_payload=row.get("completion_payload"),
        completed_at=(
            datetime.fromisoformat(str(completed_at)) if completed_at else None
        ),
        progress_payload=row.get("progress_payload"),
    )
