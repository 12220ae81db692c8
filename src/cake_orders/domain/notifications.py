"""Domain models for customer and staff notifications."""

from dataclasses import dataclass
from enum import Enum


class NotificationType(Enum):
    """Kinds of messages sent as a request moves through its lifecycle."""

    SUBMISSION_RECEIVED = "submission_received"
    QUOTE_READY = "quote_ready"
    PAYMENT_RECEIPT_UPLOADED = "payment_receipt_uploaded"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_REJECTED = "payment_rejected"
    SCHEDULED = "scheduled"
    PRODUCTION_STARTED = "production_started"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


@dataclass(frozen=True)
class Notification:
    """A rendered message ready for delivery."""

    type: NotificationType
    tracking_code: str
    sender: str
    recipient: str
    subject: str
    body: str
