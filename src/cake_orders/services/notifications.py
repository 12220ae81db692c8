"""Post-commit notifications for request transitions."""

import logging
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from cake_orders.adapters.notification_client import NotificationClient
from cake_orders.domain.notifications import Notification, NotificationType
from cake_orders.domain.requests import (
    CustomCakeRequest,
    RequestStatus,
    StatusHistoryEntry,
)

_logger = logging.getLogger(__name__)

S = RequestStatus
N = NotificationType

_CUSTOMER_TYPES: dict[RequestStatus, NotificationType] = {
    S.PENDING_REVIEW: N.SUBMISSION_RECEIVED,
    S.QUOTED: N.QUOTE_READY,
    S.PAYMENT_VERIFIED: N.PAYMENT_VERIFIED,
    S.SCHEDULED: N.SCHEDULED,
    S.IN_PRODUCTION: N.PRODUCTION_STARTED,
    S.READY_FOR_PICKUP: N.READY_FOR_PICKUP,
    S.COMPLETED: N.COMPLETED,
    S.CANCELLED: N.CANCELLED,
    S.REJECTED: N.REJECTED,
    S.REVISION_REQUESTED: N.REVISION_REQUESTED,
}

_SUBJECTS: dict[NotificationType, str] = {
    N.SUBMISSION_RECEIVED: "We received your custom cake request",
    N.QUOTE_READY: "Your custom cake quote is ready",
    N.PAYMENT_RECEIPT_UPLOADED: "Payment receipt awaiting verification",
    N.PAYMENT_VERIFIED: "Payment verified",
    N.PAYMENT_REJECTED: "We could not verify your payment",
    N.SCHEDULED: "Your cake pickup is scheduled",
    N.PRODUCTION_STARTED: "Your cake is being made",
    N.READY_FOR_PICKUP: "Your cake is ready for pickup",
    N.COMPLETED: "Thank you for your order",
    N.CANCELLED: "Your custom cake request was cancelled",
    N.REJECTED: "About your custom cake request",
    N.REVISION_REQUESTED: "Please revise your cake design",
}


@dataclass
class NotificationService:
    """Renders transition notifications and hands them to a client."""

    client: NotificationClient
    sender: str
    admin_email: str
    timezone: ZoneInfo

    def build(
        self, request: CustomCakeRequest, entry: StatusHistoryEntry
    ) -> list[Notification]:
        """Return the notifications a committed transition produces."""
        if entry.to_status is S.PAYMENT_PENDING_VERIFICATION:
            return [self.receipt_uploaded(request)]
        if entry.from_status is S.PAYMENT_PENDING_VERIFICATION and (
            entry.to_status is S.QUOTED
        ):
            kind = N.PAYMENT_REJECTED
        else:
            kind = _CUSTOMER_TYPES.get(entry.to_status)
        if kind is None:
            return []
        notifications = []
        if request.contact.email:
            notifications.append(
                self._render(kind, request, request.contact.email, entry.notes)
            )
        if kind is N.SUBMISSION_RECEIVED:
            notifications.append(
                self._render(kind, request, self.admin_email, entry.notes)
            )
        return notifications

    def receipt_uploaded(self, request: CustomCakeRequest) -> Notification:
        """Staff alert for a receipt that needs verification."""
        return self._render(N.PAYMENT_RECEIPT_UPLOADED, request, self.admin_email)

    async def notify(self, notifications: list[Notification]) -> None:
        """Deliver notifications; failures are logged and never raised."""
        for notification in notifications:
            try:
                await self.client.send(notification)
            except Exception:
                _logger.exception(
                    "Failed to send notification: type=%s tracking_code=%s",
                    notification.type.value,
                    notification.tracking_code,
                )

    async def notify_transition(
        self, request: CustomCakeRequest, entry: StatusHistoryEntry
    ) -> None:
        """Build and deliver the notifications for a committed transition."""
        await self.notify(self.build(request, entry))

    def _render(
        self,
        kind: NotificationType,
        request: CustomCakeRequest,
        recipient: str,
        notes: str | None = None,
    ) -> Notification:
        lines = [
            f"Hello {request.contact.name or 'there'},",
            "",
            f"Tracking code: {request.tracking_code}",
            f"Status: {request.status.value.replace('_', ' ')}",
        ]
        if kind is N.QUOTE_READY and request.quoted_price is not None:
            lines.append(f"Quoted price: PHP {request.quoted_price:,.2f}")
            if request.preparation_days:
                lines.append(f"Preparation time: {request.preparation_days} days")
        if kind is N.SCHEDULED and request.scheduled_pickup_datetime is not None:
            pickup = request.scheduled_pickup_datetime.astimezone(self.timezone)
            lines.append(f"Pickup: {pickup.strftime('%B %d, %Y %I:%M %p')}")
        if notes:
            lines.append(f"Notes: {notes}")
        return Notification(
            type=kind,
            tracking_code=request.tracking_code,
            sender=self.sender,
            recipient=recipient,
            subject=f"{_SUBJECTS[kind]} ({request.tracking_code})",
            body="\n".join(lines),
        )
