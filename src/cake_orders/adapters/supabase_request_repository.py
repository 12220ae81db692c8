"""Supabase-backed repository for custom cake requests, history and receipts."""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from supabase import Client

from cake_orders.domain.pricing import PriceBreakdown
from cake_orders.domain.receipts import (
    PaymentMethod,
    PaymentReceipt,
    VerificationStatus,
)
from cake_orders.domain.requests import (
    Actor,
    ContactInfo,
    CustomCakeRequest,
    RequestStatus,
    StatusHistoryEntry,
)
from cake_orders.services.orders import RequestRepository, TransitionRecord
from cake_orders.services.validation import parse_design

_OCCUPYING_STATUSES = [
    RequestStatus.SCHEDULED.value,
    RequestStatus.IN_PRODUCTION.value,
    RequestStatus.READY_FOR_PICKUP.value,
    RequestStatus.COMPLETED.value,
]


@dataclass
class SupabaseRequestRepository(RequestRepository):
    """Supabase implementation for the order state machine's storage."""

    client: Client

    def insert_request(
        self, request: CustomCakeRequest, entry: StatusHistoryEntry
    ) -> None:
        """Insert the request and its creation entry in one function call."""
        self.client.rpc(
            "create_cake_request",
            {"p_request": request_row(request), "p_entry": entry_row(entry)},
        ).execute()

    def get_request(self, request_id: UUID) -> CustomCakeRequest | None:
        """Return a request by id, if present."""
        return self._get_one("id", str(request_id))

    def get_by_tracking_code(self, tracking_code: str) -> CustomCakeRequest | None:
        """Return a request by tracking code, if present."""
        return self._get_one("tracking_code", tracking_code)

    def get_by_session_token(self, session_token: str) -> CustomCakeRequest | None:
        """Return the request created from a session, if any."""
        return self._get_one("session_token", session_token)

    def list_history(self, request_id: UUID) -> list[StatusHistoryEntry]:
        """Return history entries in insertion order."""
        response = (
            self.client.table("custom_cake_status_history")
            .select("request_id, from_status, to_status, actor, notes, changed_at")
            .eq("request_id", str(request_id))
            .order("id", desc=False)
            .execute()
        )
        return [_parse_entry(row) for row in response.data or []]

    def get_receipt(self, receipt_id: UUID) -> PaymentReceipt | None:
        """Return a receipt by id, if present."""
        response = (
            self.client.table("custom_cake_payment_receipts")
            .select("*")
            .eq("id", str(receipt_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_receipt(response.data[0])

    def list_receipts(self, request_id: UUID) -> list[PaymentReceipt]:
        """Return receipts for a request, newest first."""
        response = (
            self.client.table("custom_cake_payment_receipts")
            .select("*")
            .eq("request_id", str(request_id))
            .order("uploaded_at", desc=True)
            .execute()
        )
        return [_parse_receipt(row) for row in response.data or []]

    def commit(self, record: TransitionRecord) -> bool:
        """Run the transition inside ``apply_cake_transition``."""
        verification = record.verification
        response = self.client.rpc(
            "apply_cake_transition",
            {
                "p_request": request_row(record.request),
                "p_expected_status": record.expected_status.value,
                "p_entry": entry_row(record.entry) if record.entry else None,
                "p_new_receipt": (
                    receipt_row(record.new_receipt) if record.new_receipt else None
                ),
                "p_verification": (
                    {
                        "id": str(verification.receipt_id),
                        "verification_status": verification.status.value,
                        "verified_at": verification.verified_at.isoformat(),
                        "verification_notes": verification.notes,
                        "verified_by": verification.verified_by,
                    }
                    if verification
                    else None
                ),
                "p_primary_receipt_id": (
                    str(record.primary_receipt_id)
                    if record.primary_receipt_id
                    else None
                ),
                "p_supersede_note": record.supersede_note,
            },
        ).execute()
        return response.data is True

    def save_feedback(
        self, request_id: UUID, rating: int, feedback: str | None
    ) -> bool:
        """Store feedback unless a rating already exists."""
        response = (
            self.client.table("custom_cake_requests")
            .update({"customer_rating": rating, "customer_feedback": feedback})
            .eq("id", str(request_id))
            .is_("customer_rating", "null")
            .execute()
        )
        return bool(response.data)

    def list_by_status(
        self, status: RequestStatus, limit: int, offset: int
    ) -> list[CustomCakeRequest]:
        """Return a page of requests in a status, newest first."""
        response = (
            self.client.table("custom_cake_requests")
            .select("*")
            .eq("status", status.value)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        return [parse_request(row) for row in response.data or []]

    def count_by_status(self) -> dict[RequestStatus, int]:
        """Return request counts grouped by status."""
        response = self.client.table("custom_cake_requests").select("status").execute()
        counts = Counter(row["status"] for row in response.data or [])
        return {RequestStatus(status): total for status, total in counts.items()}

    def sum_quoted_price(self, statuses: frozenset[RequestStatus]) -> Decimal:
        """Return the summed quoted price across ``statuses``."""
        response = (
            self.client.table("custom_cake_requests")
            .select("quoted_price")
            .in_("status", sorted(status.value for status in statuses))
            .execute()
        )
        return sum(
            (
                Decimal(str(row["quoted_price"]))
                for row in response.data or []
                if row.get("quoted_price") is not None
            ),
            Decimal("0"),
        )

    def count_scheduled_between(self, start: datetime, end: datetime) -> int:
        """Count pickups in [start, end) that still occupy the bakery."""
        response = (
            self.client.table("custom_cake_requests")
            .select("id", count="exact")
            .in_("status", _OCCUPYING_STATUSES)
            .gte("scheduled_pickup_datetime", start.isoformat())
            .lt("scheduled_pickup_datetime", end.isoformat())
            .execute()
        )
        if response.count is not None:
            return response.count
        return len(response.data or [])

    def _get_one(self, column: str, value: str) -> CustomCakeRequest | None:
        response = (
            self.client.table("custom_cake_requests")
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return parse_request(response.data[0])


def request_row(request: CustomCakeRequest) -> dict[str, object]:
    """Serialize a request to a table row."""
    return {
        "id": str(request.request_id),
        "tracking_code": request.tracking_code,
        "session_token": request.session_token,
        "customer_name": request.contact.name,
        "customer_email": request.contact.email,
        "customer_phone": request.contact.phone,
        "design": request.design.as_dict(),
        "status": request.status.value,
        "created_at": request.created_at.isoformat(),
        "updated_at": request.updated_at.isoformat(),
        "submitted_at": _iso(request.submitted_at),
        "estimated_price": _money(request.estimated_price),
        "price_breakdown": (
            request.price_breakdown.as_dict() if request.price_breakdown else None
        ),
        "quoted_price": _money(request.quoted_price),
        "quote_notes": request.quote_notes,
        "preparation_days": request.preparation_days,
        "scheduled_pickup_datetime": _iso(request.scheduled_pickup_datetime),
        "assigned_baker_id": request.assigned_baker_id,
        "baker_notes": request.baker_notes,
        "rejection_reason": request.rejection_reason,
        "revision_notes": request.revision_notes,
        "revision_count": request.revision_count,
        "cancellation_reason": request.cancellation_reason,
        "customer_rating": request.customer_rating,
        "customer_feedback": request.customer_feedback,
    }


def entry_row(entry: StatusHistoryEntry) -> dict[str, object]:
    """Serialize a history entry."""
    return {
        "request_id": str(entry.request_id),
        "from_status": entry.from_status.value if entry.from_status else None,
        "to_status": entry.to_status.value,
        "actor": entry.actor.label(),
        "notes": entry.notes,
        "changed_at": entry.timestamp.isoformat(),
    }


def receipt_row(receipt: PaymentReceipt) -> dict[str, object]:
    """Serialize a receipt."""
    return {
        "id": str(receipt.receipt_id),
        "request_id": str(receipt.request_id),
        "amount": str(receipt.amount),
        "method": receipt.method.value,
        "reference": receipt.reference,
        "image_ref": receipt.image_ref,
        "verification_status": receipt.verification_status.value,
        "is_primary": receipt.is_primary,
        "uploaded_at": receipt.uploaded_at.isoformat(),
        "verified_at": _iso(receipt.verified_at),
        "verification_notes": receipt.verification_notes,
        "verified_by": receipt.verified_by,
    }


def parse_request(row: dict[str, object]) -> CustomCakeRequest:
    """Build a request from a table row."""
    breakdown = row.get("price_breakdown")
    return CustomCakeRequest(
        request_id=UUID(str(row["id"])),
        tracking_code=str(row["tracking_code"]),
        session_token=row.get("session_token"),
        contact=ContactInfo(
            name=row.get("customer_name"),
            email=row.get("customer_email"),
            phone=row.get("customer_phone"),
        ),
        design=parse_design(row.get("design") or {}),
        status=RequestStatus(row["status"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        updated_at=datetime.fromisoformat(str(row["updated_at"])),
        submitted_at=_parse_datetime(row.get("submitted_at")),
        estimated_price=_parse_money(row.get("estimated_price")),
        price_breakdown=PriceBreakdown.from_dict(breakdown) if breakdown else None,
        quoted_price=_parse_money(row.get("quoted_price")),
        quote_notes=row.get("quote_notes"),
        preparation_days=row.get("preparation_days"),
        scheduled_pickup_datetime=_parse_datetime(
            row.get("scheduled_pickup_datetime")
        ),
        assigned_baker_id=row.get("assigned_baker_id"),
        baker_notes=row.get("baker_notes"),
        rejection_reason=row.get("rejection_reason"),
        revision_notes=row.get("revision_notes"),
        revision_count=int(row.get("revision_count") or 0),
        cancellation_reason=row.get("cancellation_reason"),
        customer_rating=row.get("customer_rating"),
        customer_feedback=row.get("customer_feedback"),
    )


def _parse_entry(row: dict[str, object]) -> StatusHistoryEntry:
    from_status = row.get("from_status")
    return StatusHistoryEntry(
        request_id=UUID(str(row["request_id"])),
        from_status=RequestStatus(from_status) if from_status else None,
        to_status=RequestStatus(row["to_status"]),
        actor=Actor.parse(str(row["actor"])),
        timestamp=datetime.fromisoformat(str(row["changed_at"])),
        notes=row.get("notes"),
    )


def _parse_receipt(row: dict[str, object]) -> PaymentReceipt:
    return PaymentReceipt(
        receipt_id=UUID(str(row["id"])),
        request_id=UUID(str(row["request_id"])),
        amount=Decimal(str(row["amount"])),
        method=PaymentMethod(row["method"]),
        reference=row.get("reference"),
        image_ref=str(row["image_ref"]),
        verification_status=VerificationStatus(row["verification_status"]),
        is_primary=bool(row.get("is_primary")),
        uploaded_at=datetime.fromisoformat(str(row["uploaded_at"])),
        verified_at=_parse_datetime(row.get("verified_at")),
        verification_notes=row.get("verification_notes"),
        verified_by=row.get("verified_by"),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _parse_datetime(value: object) -> datetime | None:
    return datetime.fromisoformat(str(value)) if value else None


def _parse_money(value: object) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None
