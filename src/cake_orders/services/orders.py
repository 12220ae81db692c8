"""Order state machine for custom cake requests.

Every status change goes through :meth:`OrderStateMachine.apply` with one
command per edge. The machine checks the edge against ``TRANSITIONS``, lets
the command validate its input, and commits the updated request, its history
entry and any receipt side effects as a single compare-and-swap on the
request's current status.
"""

import logging
import secrets
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import ClassVar, Protocol
from uuid import UUID, uuid4

from cake_orders.domain.errors import (
    ConflictError,
    FieldError,
    NotFoundError,
    ValidationError,
)
from cake_orders.domain.pricing import PriceBreakdown
from cake_orders.domain.receipts import (
    SUPERSEDED_NOTE,
    PaymentReceipt,
    ReceiptVerification,
    VerificationStatus,
)
from cake_orders.domain.requests import (
    Actor,
    ContactInfo,
    CustomCakeRequest,
    DesignAttributes,
    RequestStatus,
    StatusHistoryEntry,
)
from cake_orders.services.locks import KeyedLock
from cake_orders.services.sessions import utcnow
from cake_orders.services.validation import (
    contact_errors,
    design_errors,
    normalize_phone,
)

_logger = logging.getLogger(__name__)

S = RequestStatus

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    S.DRAFT: frozenset({S.PENDING_REVIEW, S.CANCELLED}),
    S.PENDING_REVIEW: frozenset(
        {S.QUOTED, S.REJECTED, S.REVISION_REQUESTED, S.CANCELLED}
    ),
    S.REVISION_REQUESTED: frozenset({S.PENDING_REVIEW}),
    S.QUOTED: frozenset({S.PAYMENT_PENDING_VERIFICATION, S.CANCELLED}),
    S.PAYMENT_PENDING_VERIFICATION: frozenset(
        {S.PAYMENT_VERIFIED, S.QUOTED, S.CANCELLED}
    ),
    S.PAYMENT_VERIFIED: frozenset({S.SCHEDULED}),
    S.SCHEDULED: frozenset({S.IN_PRODUCTION}),
    S.IN_PRODUCTION: frozenset({S.READY_FOR_PICKUP}),
    S.READY_FOR_PICKUP: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REJECTED: frozenset(),
}

# TODO: confirm with the bakery whether cancelling after payment verification
# should be allowed (refund flow).
CANCELLABLE_STATUSES = frozenset(
    status for status, targets in TRANSITIONS.items() if S.CANCELLED in targets
)
RECEIPT_UPLOAD_STATUSES = frozenset({S.QUOTED, S.PAYMENT_PENDING_VERIFICATION})

MIN_QUOTE = Decimal("100")
MAX_QUOTE = Decimal("50000")
MAX_PREPARATION_DAYS = 30


@dataclass(frozen=True)
class TransitionRecord:
    """Everything one transition writes, committed all or nothing."""

    request: CustomCakeRequest
    expected_status: RequestStatus
    entry: StatusHistoryEntry | None
    new_receipt: PaymentReceipt | None = None
    verification: ReceiptVerification | None = None
    primary_receipt_id: UUID | None = None
    supersede_note: str | None = None


class RequestRepository(Protocol):
    """Persistence interface for requests, their history and receipts."""

    def insert_request(
        self, request: CustomCakeRequest, entry: StatusHistoryEntry
    ) -> None:
        """Persist a new request together with its creation entry."""

    def get_request(self, request_id: UUID) -> CustomCakeRequest | None:
        """Return a request by id, if present."""

    def get_by_tracking_code(self, tracking_code: str) -> CustomCakeRequest | None:
        """Return a request by tracking code, if present."""

    def get_by_session_token(self, session_token: str) -> CustomCakeRequest | None:
        """Return the request created from a design session, if any."""

    def list_history(self, request_id: UUID) -> list[StatusHistoryEntry]:
        """Return the status log for a request, oldest first."""

    def get_receipt(self, receipt_id: UUID) -> PaymentReceipt | None:
        """Return a receipt by id, if present."""

    def list_receipts(self, request_id: UUID) -> list[PaymentReceipt]:
        """Return all receipts for a request, newest first."""

    def commit(self, record: TransitionRecord) -> bool:
        """Apply a transition all or nothing.

        Returns false without writing when the stored status differs from
        ``expected_status`` or the receipt under verification is no longer
        pending. With ``primary_receipt_id`` and ``supersede_note`` set, every
        other pending receipt of the request is rejected with that note.
        """

    def save_feedback(
        self, request_id: UUID, rating: int, feedback: str | None
    ) -> bool:
        """Store customer feedback once; false when feedback already exists."""

    def list_by_status(
        self, status: RequestStatus, limit: int, offset: int
    ) -> list[CustomCakeRequest]:
        """Return requests in a status, newest first."""

    def count_by_status(self) -> dict[RequestStatus, int]:
        """Return the number of requests per status."""

    def sum_quoted_price(self, statuses: frozenset[RequestStatus]) -> Decimal:
        """Return the total quoted price of requests in ``statuses``."""

    def count_scheduled_between(self, start: datetime, end: datetime) -> int:
        """Return how many live requests have a pickup within [start, end)."""


@dataclass(frozen=True)
class TransitionCommand:
    """Base for one edge of the state machine."""

    target: ClassVar[RequestStatus]
    sources: ClassVar[frozenset[RequestStatus]]

    @property
    def notes(self) -> str | None:
        return None

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        """Raise ValidationError when the command's input is unusable."""

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        """Return the request with this edge's field changes."""
        return request

    def record(
        self,
        request: CustomCakeRequest,
        expected: RequestStatus,
        entry: StatusHistoryEntry,
    ) -> TransitionRecord:
        """Build the commit for this edge."""
        return TransitionRecord(request=request, expected_status=expected, entry=entry)


@dataclass(frozen=True)
class SubmitForReview(TransitionCommand):
    """Customer sends a draft to the bakery."""

    target: ClassVar[RequestStatus] = S.PENDING_REVIEW
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.DRAFT})

    estimate: PriceBreakdown
    contact: ContactInfo | None = None

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        contact = self.contact or request.contact
        errors = design_errors(request.design, now.date()) + contact_errors(contact)
        if errors:
            raise ValidationError(errors)

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        contact = self.contact or request.contact
        return replace(
            request,
            contact=replace(contact, phone=normalize_phone(contact.phone or "")),
            submitted_at=now,
            estimated_price=self.estimate.total,
            price_breakdown=self.estimate,
        )


@dataclass(frozen=True)
class ResubmitDesign(TransitionCommand):
    """Customer sends a revised design after a revision request."""

    target: ClassVar[RequestStatus] = S.PENDING_REVIEW
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.REVISION_REQUESTED})

    design: DesignAttributes
    estimate: PriceBreakdown

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        errors = design_errors(self.design, now.date())
        if errors:
            raise ValidationError(errors)

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        return replace(
            request,
            design=self.design,
            submitted_at=now,
            estimated_price=self.estimate.total,
            price_breakdown=self.estimate,
        )


@dataclass(frozen=True)
class IssueQuote(TransitionCommand):
    """Admin sets the price of record and the preparation window."""

    target: ClassVar[RequestStatus] = S.QUOTED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.PENDING_REVIEW})

    quoted_price: Decimal
    preparation_days: int
    quote_notes: str | None = None

    @property
    def notes(self) -> str | None:
        return self.quote_notes

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        errors: list[FieldError] = []
        if not MIN_QUOTE <= self.quoted_price <= MAX_QUOTE:
            errors.append(
                FieldError(
                    "quoted_price",
                    f"Quote must be between {MIN_QUOTE} and {MAX_QUOTE}",
                )
            )
        if self.quoted_price.as_tuple().exponent < -2:
            errors.append(FieldError("quoted_price", "Use up to 2 decimal places"))
        if not 1 <= self.preparation_days <= MAX_PREPARATION_DAYS:
            errors.append(
                FieldError(
                    "preparation_days",
                    f"Preparation days must be between 1 and {MAX_PREPARATION_DAYS}",
                )
            )
        if errors:
            raise ValidationError(errors)

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        return replace(
            request,
            quoted_price=self.quoted_price,
            preparation_days=self.preparation_days,
            quote_notes=self.quote_notes,
        )


@dataclass(frozen=True)
class RejectRequest(TransitionCommand):
    """Admin declines to make the cake."""

    target: ClassVar[RequestStatus] = S.REJECTED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.PENDING_REVIEW})

    reason: str

    @property
    def notes(self) -> str | None:
        return self.reason

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        _require_text(self.reason, "reason", "A rejection reason is required")

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        return replace(request, rejection_reason=self.reason.strip())


@dataclass(frozen=True)
class RequestRevision(TransitionCommand):
    """Admin asks the customer to change the design."""

    target: ClassVar[RequestStatus] = S.REVISION_REQUESTED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.PENDING_REVIEW})

    revision_notes: str

    @property
    def notes(self) -> str | None:
        return self.revision_notes

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        _require_text(
            self.revision_notes, "revision_notes", "Revision notes are required"
        )

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        return replace(
            request,
            revision_notes=self.revision_notes.strip(),
            revision_count=request.revision_count + 1,
        )


@dataclass(frozen=True)
class RecordReceiptUpload(TransitionCommand):
    """First receipt uploaded against a quote."""

    target: ClassVar[RequestStatus] = S.PAYMENT_PENDING_VERIFICATION
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.QUOTED})

    receipt: PaymentReceipt

    def record(
        self,
        request: CustomCakeRequest,
        expected: RequestStatus,
        entry: StatusHistoryEntry,
    ) -> TransitionRecord:
        return TransitionRecord(
            request=request,
            expected_status=expected,
            entry=entry,
            new_receipt=self.receipt,
        )


@dataclass(frozen=True)
class ApprovePayment(TransitionCommand):
    """Admin accepts a receipt; it becomes the primary receipt."""

    target: ClassVar[RequestStatus] = S.PAYMENT_VERIFIED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset(
        {S.PAYMENT_PENDING_VERIFICATION}
    )

    verification: ReceiptVerification

    @property
    def notes(self) -> str | None:
        return self.verification.notes

    def record(
        self,
        request: CustomCakeRequest,
        expected: RequestStatus,
        entry: StatusHistoryEntry,
    ) -> TransitionRecord:
        return TransitionRecord(
            request=request,
            expected_status=expected,
            entry=entry,
            verification=self.verification,
            primary_receipt_id=self.verification.receipt_id,
            supersede_note=SUPERSEDED_NOTE,
        )


@dataclass(frozen=True)
class RejectPayment(TransitionCommand):
    """Admin refuses a receipt; the customer must upload again."""

    target: ClassVar[RequestStatus] = S.QUOTED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset(
        {S.PAYMENT_PENDING_VERIFICATION}
    )

    verification: ReceiptVerification

    @property
    def notes(self) -> str | None:
        return self.verification.notes

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        _require_text(
            self.verification.notes,
            "notes",
            "Tell the customer why the receipt was rejected",
        )

    def record(
        self,
        request: CustomCakeRequest,
        expected: RequestStatus,
        entry: StatusHistoryEntry,
    ) -> TransitionRecord:
        return TransitionRecord(
            request=request,
            expected_status=expected,
            entry=entry,
            verification=self.verification,
        )


@dataclass(frozen=True)
class SchedulePickup(TransitionCommand):
    """Admin fixes the pickup slot."""

    target: ClassVar[RequestStatus] = S.SCHEDULED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.PAYMENT_VERIFIED})

    pickup_at: datetime
    baker_id: str | None = None
    baker_notes: str | None = None

    @property
    def notes(self) -> str | None:
        return f"Pickup at {self.pickup_at.isoformat()}"

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        return replace(
            request,
            scheduled_pickup_datetime=self.pickup_at,
            assigned_baker_id=self.baker_id,
            baker_notes=self.baker_notes,
        )


@dataclass(frozen=True)
class _ProductionStep(TransitionCommand):
    step_notes: str | None = None

    @property
    def notes(self) -> str | None:
        return self.step_notes


@dataclass(frozen=True)
class StartProduction(_ProductionStep):
    target: ClassVar[RequestStatus] = S.IN_PRODUCTION
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.SCHEDULED})


@dataclass(frozen=True)
class MarkReadyForPickup(_ProductionStep):
    target: ClassVar[RequestStatus] = S.READY_FOR_PICKUP
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.IN_PRODUCTION})


@dataclass(frozen=True)
class CompletePickup(_ProductionStep):
    target: ClassVar[RequestStatus] = S.COMPLETED
    sources: ClassVar[frozenset[RequestStatus]] = frozenset({S.READY_FOR_PICKUP})


@dataclass(frozen=True)
class CancelRequest(TransitionCommand):
    """Customer or admin withdraws the request before payment is verified."""

    target: ClassVar[RequestStatus] = S.CANCELLED
    sources: ClassVar[frozenset[RequestStatus]] = CANCELLABLE_STATUSES

    reason: str

    @property
    def notes(self) -> str | None:
        return self.reason

    def validate(self, request: CustomCakeRequest, now: datetime) -> None:
        _require_text(self.reason, "reason", "A cancellation reason is required")

    def apply(self, request: CustomCakeRequest, now: datetime) -> CustomCakeRequest:
        return replace(request, cancellation_reason=self.reason.strip())


PRODUCTION_STEPS: dict[str, type[_ProductionStep]] = {
    "start": StartProduction,
    "ready": MarkReadyForPickup,
    "complete": CompletePickup,
}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a committed transition."""

    request: CustomCakeRequest
    entry: StatusHistoryEntry


@dataclass
class OrderStateMachine:
    """Authoritative owner of custom cake request status."""

    repository: RequestRepository
    clock: Callable[[], datetime] = utcnow
    locks: KeyedLock = field(default_factory=KeyedLock)

    def create_draft(
        self,
        session_token: str,
        design: DesignAttributes,
        contact: ContactInfo,
        actor: Actor,
    ) -> CustomCakeRequest:
        """Create a draft from a completed design session; one per session."""
        with self.locks.hold(f"session:{session_token}"):
            if self.repository.get_by_session_token(session_token) is not None:
                raise ConflictError("A request already exists for this design session")
            now = self.clock()
            request = CustomCakeRequest(
                request_id=uuid4(),
                tracking_code=self._new_tracking_code(now),
                session_token=session_token,
                contact=contact,
                design=design,
                status=S.DRAFT,
                created_at=now,
                updated_at=now,
            )
            entry = StatusHistoryEntry(
                request_id=request.request_id,
                from_status=None,
                to_status=S.DRAFT,
                actor=actor,
                timestamp=now,
            )
            self.repository.insert_request(request, entry)
        _logger.info("Draft created: tracking_code=%s", request.tracking_code)
        return request

    def get(self, request_id: UUID) -> CustomCakeRequest:
        """Return a request or raise NotFoundError."""
        request = self.repository.get_request(request_id)
        if request is None:
            raise NotFoundError("Request not found")
        return request

    def get_by_tracking_code(self, tracking_code: str) -> CustomCakeRequest:
        """Return a request by its public code or raise NotFoundError."""
        request = self.repository.get_by_tracking_code(tracking_code.strip().upper())
        if request is None:
            raise NotFoundError("Invalid tracking code")
        return request

    def history(self, request_id: UUID) -> list[StatusHistoryEntry]:
        """Return the status log, oldest first."""
        return self.repository.list_history(request_id)

    def apply(
        self, request_id: UUID, command: TransitionCommand, actor: Actor
    ) -> TransitionResult:
        """Validate and commit one edge, or raise without writing anything."""
        with self.locks.hold(str(request_id)):
            request = self.get(request_id)
            current = request.status
            _ensure_edge(current, command)
            now = self.clock()
            command.validate(request, now)
            updated = replace(
                command.apply(request, now), status=command.target, updated_at=now
            )
            entry = StatusHistoryEntry(
                request_id=request_id,
                from_status=current,
                to_status=command.target,
                actor=actor,
                timestamp=now,
                notes=command.notes,
            )
            record = command.record(updated, current, entry)
            self._ensure_receipt_pending(record)
            if not self.repository.commit(record):
                latest = self.get(request_id)
                if latest.status is current and record.verification is not None:
                    raise _receipt_conflict(record.verification.receipt_id)
                raise _edge_conflict(latest.status, command.target)
        _logger.info(
            "Request transition: tracking_code=%s %s -> %s by %s",
            request.tracking_code,
            current.value,
            command.target.value,
            actor.label(),
        )
        return TransitionResult(request=updated, entry=entry)

    def amend(
        self,
        request_id: UUID,
        allowed: frozenset[RequestStatus],
        new_receipt: PaymentReceipt | None = None,
        verification: ReceiptVerification | None = None,
    ) -> CustomCakeRequest:
        """Record receipt activity that does not move the request along an edge."""
        with self.locks.hold(str(request_id)):
            request = self.get(request_id)
            if request.status not in allowed:
                raise ConflictError(
                    f"Not allowed while request is {request.status.value}",
                    current_status=request.status.value,
                )
            updated = replace(request, updated_at=self.clock())
            record = TransitionRecord(
                request=updated,
                expected_status=request.status,
                entry=None,
                new_receipt=new_receipt,
                verification=verification,
            )
            self._ensure_receipt_pending(record)
            self._commit_in_place(record)
        return updated

    def update_draft(
        self,
        request_id: UUID,
        design: DesignAttributes | None = None,
        contact: ContactInfo | None = None,
    ) -> CustomCakeRequest:
        """Replace a draft's design or contact details before it is submitted."""
        with self.locks.hold(str(request_id)):
            request = self.get(request_id)
            if request.status is not S.DRAFT:
                raise ConflictError(
                    f"Only drafts can be edited; request is {request.status.value}",
                    current_status=request.status.value,
                )
            updated = replace(
                request,
                design=design or request.design,
                contact=contact or request.contact,
                updated_at=self.clock(),
            )
            self._commit_in_place(
                TransitionRecord(request=updated, expected_status=S.DRAFT, entry=None)
            )
        _logger.info("Draft updated: tracking_code=%s", request.tracking_code)
        return updated

    def guard(self, request_id: UUID) -> AbstractContextManager[None]:
        """Hold the request's writer lock across a read-decide-write sequence."""
        return self.locks.hold(str(request_id))

    def _ensure_receipt_pending(self, record: TransitionRecord) -> None:
        verification = record.verification
        if verification is None:
            return
        receipt = self.repository.get_receipt(verification.receipt_id)
        if receipt is None:
            raise NotFoundError("Receipt not found")
        if receipt.verification_status is not VerificationStatus.PENDING:
            raise _receipt_conflict(receipt.receipt_id, receipt.verification_status)

    def _commit_in_place(self, record: TransitionRecord) -> None:
        if self.repository.commit(record):
            return
        latest = self.get(record.request.request_id)
        if latest.status is record.expected_status and record.verification is not None:
            raise _receipt_conflict(record.verification.receipt_id)
        raise ConflictError(
            f"Request changed to {latest.status.value}; retry",
            current_status=latest.status.value,
        )

    def _new_tracking_code(self, now: datetime) -> str:
        while True:
            code = f"CAKE-{now.year}-{secrets.token_hex(3).upper()}"
            if self.repository.get_by_tracking_code(code) is None:
                return code


def allowed_targets(status: RequestStatus) -> frozenset[RequestStatus]:
    """Statuses reachable in one step from ``status``."""
    return TRANSITIONS[status]


def _ensure_edge(current: RequestStatus, command: TransitionCommand) -> None:
    if current not in command.sources or command.target not in TRANSITIONS[current]:
        raise _edge_conflict(current, command.target)


def _edge_conflict(current: RequestStatus, target: RequestStatus) -> ConflictError:
    return ConflictError(
        f"Cannot move request from {current.value} to {target.value}",
        current_status=current.value,
        target_status=target.value,
    )


def _receipt_conflict(
    receipt_id: UUID, status: VerificationStatus | None = None
) -> ConflictError:
    if status is None:
        return ConflictError(f"Receipt {receipt_id} is no longer pending")
    return ConflictError(
        f"Receipt is already {status.value}", current_status=status.value
    )


def _require_text(value: str | None, field_name: str, message: str) -> None:
    if not value or not value.strip():
        raise ValidationError.single(field_name, message)
