"""Shared test fixtures."""

import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import UUID
from zoneinfo import ZoneInfo

import pytest

from cake_orders.adapters.notification_client import NotificationClient
from cake_orders.config import Settings
from cake_orders.containers import AppContainer
from cake_orders.domain.notifications import Notification
from cake_orders.domain.receipts import (
    PaymentMethod,
    PaymentReceipt,
    VerificationStatus,
)
from cake_orders.domain.requests import (
    CUSTOMER,
    SYSTEM,
    Actor,
    ActorType,
    CustomCakeRequest,
    RequestStatus,
    StatusHistoryEntry,
)
from cake_orders.domain.sessions import DesignSession, SessionStatus
from cake_orders.services.custom_cakes import CustomCakeService
from cake_orders.services.notifications import NotificationService
from cake_orders.services.orders import (
    IssueQuote,
    OrderStateMachine,
    RequestRepository,
    TransitionRecord,
)
from cake_orders.services.quotes import QuoteCalculator
from cake_orders.services.receipts import (
    ImageStore,
    PaymentReceiptLedger,
    ReceiptUpload,
)
from cake_orders.services.scheduling import MaxOrdersPerDayPolicy, PickupScheduler
from cake_orders.services.sessions import (
    QrCodeRenderer,
    SessionBroker,
    SessionRepository,
    SessionSweeper,
)
from cake_orders.services.tracking import TrackingService

ADMIN = Actor(ActorType.ADMIN, "7")
MANILA = ZoneInfo("Asia/Manila")
PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="
_OCCUPYING = {
    RequestStatus.SCHEDULED,
    RequestStatus.IN_PRODUCTION,
    RequestStatus.READY_FOR_PICKUP,
    RequestStatus.COMPLETED,
}


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = field(
        default_factory=lambda: datetime(2026, 3, 2, 2, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory design session repository for tests."""

    sessions: dict[str, DesignSession] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def create_session(self, session: DesignSession) -> None:
        self.sessions[session.token] = session

    def get_session(self, token: str) -> DesignSession | None:
        return self.sessions.get(token)

    def complete_session(
        self, token: str, payload: dict[str, object], completed_at: datetime
    ) -> bool:
        with self._lock:
            session = self.sessions.get(token)
            if (
                session is None
                or session.status is not SessionStatus.ACTIVE
                or completed_at >= session.expires_at
            ):
                return False
            self.sessions[token] = replace(
                session,
                status=SessionStatus.COMPLETED,
                completion_payload=payload,
                completed_at=completed_at,
            )
            return True

    def cancel_session(self, token: str) -> bool:
        with self._lock:
            session = self.sessions.get(token)
            if session is None or session.status is not SessionStatus.ACTIVE:
                return False
            self.sessions[token] = replace(session, status=SessionStatus.CANCELLED)
            return True

    def save_progress(
        self, token: str, payload: dict[str, object], saved_at: datetime
    ) -> bool:
        with self._lock:
            session = self.sessions.get(token)
            if (
                session is None
                or session.status is not SessionStatus.ACTIVE
                or saved_at >= session.expires_at
            ):
                return False
            self.sessions[token] = replace(session, progress_payload=payload)
            return True

    def delete_expired(self, now: datetime, completed_before: datetime) -> int:
        expired = [
            token
            for token, session in self.sessions.items()
            if (
                session.completed_at <= completed_before
                if session.status is SessionStatus.COMPLETED
                else session.expires_at <= now
            )
        ]
        for token in expired:
            del self.sessions[token]
        return len(expired)


@dataclass
class InMemoryRequestRepository(RequestRepository):
    """In-memory request, history and receipt storage for tests."""

    requests: dict[UUID, CustomCakeRequest] = field(default_factory=dict)
    history: dict[UUID, list[StatusHistoryEntry]] = field(default_factory=dict)
    receipts: dict[UUID, PaymentReceipt] = field(default_factory=dict)
    commits: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def insert_request(
        self, request: CustomCakeRequest, entry: StatusHistoryEntry
    ) -> None:
        with self._lock:
            self.requests[request.request_id] = request
            self.history[request.request_id] = [entry]

    def get_request(self, request_id: UUID) -> CustomCakeRequest | None:
        return self.requests.get(request_id)

    def get_by_tracking_code(self, tracking_code: str) -> CustomCakeRequest | None:
        return next(
            (r for r in self.requests.values() if r.tracking_code == tracking_code),
            None,
        )

    def get_by_session_token(self, session_token: str) -> CustomCakeRequest | None:
        return next(
            (r for r in self.requests.values() if r.session_token == session_token),
            None,
        )

    def list_history(self, request_id: UUID) -> list[StatusHistoryEntry]:
        return list(self.history.get(request_id, []))

    def get_receipt(self, receipt_id: UUID) -> PaymentReceipt | None:
        return self.receipts.get(receipt_id)

    def list_receipts(self, request_id: UUID) -> list[PaymentReceipt]:
        receipts = [r for r in self.receipts.values() if r.request_id == request_id]
        return sorted(receipts, key=lambda r: r.uploaded_at, reverse=True)

    def commit(self, record: TransitionRecord) -> bool:
        with self._lock:
            request_id = record.request.request_id
            current = self.requests.get(request_id)
            if current is None or current.status is not record.expected_status:
                return False
            verification = record.verification
            if verification is not None:
                receipt = self.receipts[verification.receipt_id]
                if receipt.verification_status is not VerificationStatus.PENDING:
                    return False
                self.receipts[receipt.receipt_id] = replace(
                    receipt,
                    verification_status=verification.status,
                    verified_at=verification.verified_at,
                    verification_notes=verification.notes,
                    verified_by=verification.verified_by,
                )
            if record.new_receipt is not None:
                self.receipts[record.new_receipt.receipt_id] = record.new_receipt
            if record.primary_receipt_id is not None:
                for receipt in self.list_receipts(request_id):
                    updated = replace(
                        receipt,
                        is_primary=receipt.receipt_id == record.primary_receipt_id,
                    )
                    if (
                        record.supersede_note
                        and updated.verification_status is VerificationStatus.PENDING
                    ):
                        updated = replace(
                            updated,
                            verification_status=VerificationStatus.REJECTED,
                            verified_at=record.request.updated_at,
                            verification_notes=record.supersede_note,
                            verified_by=SYSTEM.label(),
                        )
                    self.receipts[receipt.receipt_id] = updated
            self.requests[request_id] = record.request
            if record.entry is not None:
                self.history[request_id].append(record.entry)
            self.commits += 1
            return True

    def save_feedback(
        self, request_id: UUID, rating: int, feedback: str | None
    ) -> bool:
        with self._lock:
            request = self.requests[request_id]
            if request.customer_rating is not None:
                return False
            self.requests[request_id] = replace(
                request, customer_rating=rating, customer_feedback=feedback
            )
            return True

    def list_by_status(
        self, status: RequestStatus, limit: int, offset: int
    ) -> list[CustomCakeRequest]:
        matching = sorted(
            (r for r in self.requests.values() if r.status is status),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return matching[offset : offset + limit]

    def count_by_status(self) -> dict[RequestStatus, int]:
        counts: dict[RequestStatus, int] = {}
        for request in self.requests.values():
            counts[request.status] = counts.get(request.status, 0) + 1
        return counts

    def sum_quoted_price(self, statuses: frozenset[RequestStatus]) -> Decimal:
        return sum(
            (
                r.quoted_price
                for r in self.requests.values()
                if r.status in statuses and r.quoted_price is not None
            ),
            Decimal("0"),
        )

    def count_scheduled_between(self, start: datetime, end: datetime) -> int:
        return sum(
            1
            for r in self.requests.values()
            if r.status in _OCCUPYING
            and r.scheduled_pickup_datetime is not None
            and start <= r.scheduled_pickup_datetime < end
        )


@dataclass
class FakeQrCodeRenderer(QrCodeRenderer):
    """Returns a recognizable data URL instead of an image."""

    rendered: list[str] = field(default_factory=list)

    def render(self, url: str) -> str:
        self.rendered.append(url)
        return "data:image/png;base64,QR"


@dataclass
class InMemoryImageStore(ImageStore):
    """Keeps uploaded receipt images in memory."""

    images: dict[str, tuple[bytes, str]] = field(default_factory=dict)

    def save(self, path: str, content: bytes, content_type: str) -> str:
        self.images[path] = (content, content_type)
        return f"test-receipts/{path}"

    def delete(self, path: str) -> None:
        self.images.pop(path, None)


@dataclass
class RecordingNotificationClient(NotificationClient):
    """Records notifications; can be told to fail."""

    sent: list[Notification] = field(default_factory=list)
    fail: bool = False

    async def send(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("mail relay unavailable")
        self.sent.append(notification)


def design_payload(**overrides: object) -> dict[str, object]:
    """A complete editor payload for a simple two-layer cake."""
    payload: dict[str, object] = {
        "num_layers": 2,
        "layer_1_flavor": "chocolate",
        "layer_1_size": "8 inch",
        "layer_2_flavor": "vanilla",
        "layer_2_size": "6 inch",
        "frosting_type": "buttercream",
        "frosting_color": "white",
        "theme": "unicorn",
        "cake_text": "Happy 7th Birthday",
        "decorations_3d": [{"type": "topper", "name": "unicorn horn"}],
        "event_date": "2026-04-15",
        "customer_name": "Maria Santos",
        "customer_email": "maria@example.com",
        "customer_phone": "0917 123 4567",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZSJ9.c2ln",
        admin_token="admin-token",
        cashier_token="cashier-token",
        editor_base_url="https://editor.example.com",
        max_orders_per_day=2,
    )


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def request_repository() -> InMemoryRequestRepository:
    return InMemoryRequestRepository()


@pytest.fixture
def notification_client() -> RecordingNotificationClient:
    return RecordingNotificationClient()


@pytest.fixture
def image_store() -> InMemoryImageStore:
    return InMemoryImageStore()


@pytest.fixture
def session_broker(
    settings: Settings,
    session_repository: InMemorySessionRepository,
    clock: FakeClock,
) -> SessionBroker:
    return SessionBroker(
        repository=session_repository,
        qr_renderer=FakeQrCodeRenderer(),
        editor_base_url=settings.editor_base_url,
        ttl_seconds=settings.session_ttl_seconds,
        completed_retention_seconds=settings.completed_session_retention_seconds,
        clock=clock,
    )


@pytest.fixture
def machine(
    request_repository: InMemoryRequestRepository, clock: FakeClock
) -> OrderStateMachine:
    return OrderStateMachine(request_repository, clock=clock)


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    clock: FakeClock,
    session_broker: SessionBroker,
    machine: OrderStateMachine,
    request_repository: InMemoryRequestRepository,
    image_store: InMemoryImageStore,
    notification_client: RecordingNotificationClient,
) -> AppContainer:
    calculator = QuoteCalculator()

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        session_broker=session_broker,
        session_sweeper=SessionSweeper(
            broker=session_broker,
            interval_seconds=settings.session_sweep_interval_seconds,
        ),
        order_machine=machine,
        quote_calculator=calculator,
        custom_cake_service=CustomCakeService(
            sessions=session_broker, machine=machine, calculator=calculator
        ),
        receipt_ledger=PaymentReceiptLedger(
            machine=machine, images=image_store, clock=clock
        ),
        pickup_scheduler=PickupScheduler(
            machine=machine,
            capacity=MaxOrdersPerDayPolicy(
                repository=request_repository,
                max_orders_per_day=settings.max_orders_per_day,
                timezone=MANILA,
            ),
            timezone=MANILA,
            clock=clock,
        ),
        tracking_service=TrackingService(machine),
        notification_service=NotificationService(
            client=notification_client,
            sender=settings.notification_sender,
            admin_email=settings.admin_email,
            timezone=MANILA,
        ),
        close_resources=close_resources,
    )


def create_draft(container: AppContainer, **overrides: object) -> CustomCakeRequest:
    """Run a design session to completion and turn it into a draft."""
    broker = container.session_broker
    ticket = broker.create("kiosk-1")
    broker.complete(ticket.token, design_payload(**overrides))
    return container.custom_cake_service.create_from_session(ticket.token)


def quoted_request(
    container: AppContainer, price: str = "1500", days: int = 3
) -> CustomCakeRequest:
    """A request that has been submitted and quoted."""
    draft = create_draft(container)
    container.custom_cake_service.submit(draft.tracking_code)
    result = container.order_machine.apply(
        draft.request_id,
        IssueQuote(quoted_price=Decimal(price), preparation_days=days),
        ADMIN,
    )
    return result.request


def upload_receipt(
    container: AppContainer,
    tracking_code: str,
    reference: str = "GC-0001",
    amount: str = "1500",
) -> PaymentReceipt:
    """Upload a GCash receipt for a quoted request."""
    outcome = container.receipt_ledger.upload(
        tracking_code,
        ReceiptUpload(
            amount=Decimal(amount),
            method=PaymentMethod.GCASH,
            image_data_url=PNG_DATA_URL,
            reference=reference,
        ),
        CUSTOMER,
    )
    return outcome.receipt


def verified_request(container: AppContainer) -> CustomCakeRequest:
    """A request whose payment has been approved."""
    request = quoted_request(container)
    receipt = upload_receipt(container, request.tracking_code)
    return container.receipt_ledger.verify(
        receipt.receipt_id, True, None, ADMIN
    ).request


