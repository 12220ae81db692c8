"""Domain models for custom cake requests and their status log."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from cake_orders.domain.pricing import PriceBreakdown


class RequestStatus(Enum):
    """Every status a custom cake request can be in."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    QUOTED = "quoted"
    PAYMENT_PENDING_VERIFICATION = "payment_pending_verification"
    PAYMENT_VERIFIED = "payment_verified"
    SCHEDULED = "scheduled"
    IN_PRODUCTION = "in_production"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"


class ActorType(Enum):
    """Who caused a status change."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    CASHIER = "cashier"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Actor recorded on a history entry."""

    type: ActorType
    id: str | None = None

    def label(self) -> str:
        """Compact form stored in the history log."""
        if self.id:
            return f"{self.type.value}:{self.id}"
        return self.type.value

    @classmethod
    def parse(cls, raw: str) -> "Actor":
        """Inverse of ``label``."""
        kind, _, actor_id = raw.partition(":")
        return cls(type=ActorType(kind), id=actor_id or None)


CUSTOMER = Actor(ActorType.CUSTOMER)
SYSTEM = Actor(ActorType.SYSTEM)


@dataclass(frozen=True)
class CakeLayer:
    """Flavor and size picked for one tier."""

    flavor: str | None
    size: str | None


@dataclass(frozen=True)
class DesignAttributes:
    """Cake design as produced by the mobile editor."""

    num_layers: int
    layers: list[CakeLayer]
    frosting_type: str = "buttercream"
    frosting_color: str | None = None
    theme: str | None = None
    decorations: list[dict[str, object]] = field(default_factory=list)
    cake_text: str | None = None
    special_instructions: str | None = None
    dietary_restrictions: str | None = None
    candles_count: int = 0
    event_type: str | None = None
    event_date: date | None = None

    def as_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        return {
            "num_layers": self.num_layers,
            "layers": [
                {"flavor": layer.flavor, "size": layer.size} for layer in self.layers
            ],
            "frosting_type": self.frosting_type,
            "frosting_color": self.frosting_color,
            "theme": self.theme,
            "decorations": self.decorations,
            "cake_text": self.cake_text,
            "special_instructions": self.special_instructions,
            "dietary_restrictions": self.dietary_restrictions,
            "candles_count": self.candles_count,
            "event_type": self.event_type,
            "event_date": self.event_date.isoformat() if self.event_date else None,
        }


@dataclass(frozen=True)
class ContactInfo:
    """Customer contact fields."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class CustomCakeRequest:
    """A custom cake request; ``status`` mirrors the latest history entry."""

    request_id: UUID
    tracking_code: str
    session_token: str | None
    contact: ContactInfo
    design: DesignAttributes
    status: RequestStatus
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    estimated_price: Decimal | None = None
    price_breakdown: PriceBreakdown | None = None
    quoted_price: Decimal | None = None
    quote_notes: str | None = None
    preparation_days: int | None = None
    scheduled_pickup_datetime: datetime | None = None
    assigned_baker_id: str | None = None
    baker_notes: str | None = None
    rejection_reason: str | None = None
    revision_notes: str | None = None
    revision_count: int = 0
    cancellation_reason: str | None = None
    customer_rating: int | None = None
    customer_feedback: str | None = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    """Append-only record of one status transition."""

    request_id: UUID
    from_status: RequestStatus | None
    to_status: RequestStatus
    actor: Actor
    timestamp: datetime
    notes: str | None = None
