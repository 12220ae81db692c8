"""Pydantic models for API request bodies."""

from datetime import date, time
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from cake_orders.domain.requests import ContactInfo


class CreateSessionBody(BaseModel):
    """Kiosk request to open a design session."""

    kiosk_id: str
    menu_item_id: int | None = None


class SessionPayloadBody(BaseModel):
    """Design data sent by the phone editor."""

    payload: dict[str, object]


class ContactBody(BaseModel):
    """Optional contact fields supplied alongside a customer action."""

    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None

    def to_contact(self) -> ContactInfo | None:
        """Return contact info, or None when nothing was supplied."""
        if not (self.customer_name or self.customer_email or self.customer_phone):
            return None
        return ContactInfo(
            name=self.customer_name,
            email=self.customer_email,
            phone=self.customer_phone,
        )


class CreateRequestBody(ContactBody):
    """Create a draft from a completed session."""

    session_token: str


class UpdateDraftBody(ContactBody):
    """Edits to a draft before it is submitted."""

    design: dict[str, object] | None = None


class ResubmitBody(BaseModel):
    """Revised design after a revision request."""

    design: dict[str, object]


class ReceiptBody(BaseModel):
    """Proof of payment uploaded by the customer."""

    payment_amount: Decimal
    payment_method: str
    payment_reference: str | None = None
    receipt_image: str = Field(description="Base64 image data URL")


class ReasonBody(BaseModel):
    """Free-text reason for a cancellation or rejection."""

    reason: str


class FeedbackBody(BaseModel):
    """Post-pickup rating."""

    rating: int
    feedback: str | None = None


class QuoteBody(BaseModel):
    """Admin quote for a pending request."""

    quoted_price: Decimal
    preparation_days: int
    quote_notes: str | None = None


class RevisionBody(BaseModel):
    """What the customer should change."""

    revision_notes: str


class VerifyReceiptBody(BaseModel):
    """Admin verdict on a receipt."""

    action: Literal["approve", "reject"]
    notes: str | None = None


class ScheduleBody(BaseModel):
    """Pickup slot in the bakery's local time."""

    pickup_date: date
    pickup_time: time
    baker_id: str | None = None
    baker_notes: str | None = None


class ProductionBody(BaseModel):
    """Next production step."""

    step: Literal["start", "ready", "complete"]
    notes: str | None = None
