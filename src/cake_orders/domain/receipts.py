"""Domain models for payment receipts."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

SUPERSEDED_NOTE = "Superseded by another approved receipt"


class PaymentMethod(Enum):
    """Accepted payment channels."""

    GCASH = "gcash"
    BANK_TRANSFER = "bank_transfer"
    PAYMAYA = "paymaya"
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


class VerificationStatus(Enum):
    """Admin verdict on a receipt."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PaymentReceipt:
    """An uploaded proof of payment; never deleted."""

    receipt_id: UUID
    request_id: UUID
    amount: Decimal
    method: PaymentMethod
    reference: str | None
    image_ref: str
    verification_status: VerificationStatus
    is_primary: bool
    uploaded_at: datetime
    verified_at: datetime | None = None
    verification_notes: str | None = None
    verified_by: str | None = None


@dataclass(frozen=True)
class ReceiptVerification:
    """Verdict applied to a receipt as part of a transition."""

    receipt_id: UUID
    status: VerificationStatus
    verified_at: datetime
    notes: str | None
    verified_by: str | None
