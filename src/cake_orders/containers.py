"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from supabase import create_client

from cake_orders.adapters.notification_client import (
    HttpxWebhookNotificationClient,
    LoggingNotificationClient,
)
from cake_orders.adapters.segno_qr_renderer import SegnoQrCodeRenderer
from cake_orders.adapters.supabase_receipt_image_store import (
    SupabaseReceiptImageStore,
)
from cake_orders.adapters.supabase_request_repository import (
    SupabaseRequestRepository,
)
from cake_orders.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from cake_orders.config import Settings
from cake_orders.services.custom_cakes import CustomCakeService
from cake_orders.services.notifications import NotificationService
from cake_orders.services.orders import OrderStateMachine
from cake_orders.services.quotes import QuoteCalculator
from cake_orders.services.receipts import PaymentReceiptLedger
from cake_orders.services.scheduling import MaxOrdersPerDayPolicy, PickupScheduler
from cake_orders.services.sessions import SessionBroker, SessionSweeper
from cake_orders.services.tracking import TrackingService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_broker: SessionBroker
    session_sweeper: SessionSweeper
    order_machine: OrderStateMachine
    quote_calculator: QuoteCalculator
    custom_cake_service: CustomCakeService
    receipt_ledger: PaymentReceiptLedger
    pickup_scheduler: PickupScheduler
    tracking_service: TrackingService
    notification_service: NotificationService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    timezone = ZoneInfo(resolved_settings.bakery_timezone)
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    request_repository = SupabaseRequestRepository(supabase_client)
    session_broker = SessionBroker(
        repository=SupabaseSessionRepository(supabase_client),
        qr_renderer=SegnoQrCodeRenderer(),
        editor_base_url=resolved_settings.editor_base_url,
        ttl_seconds=resolved_settings.session_ttl_seconds,
        completed_retention_seconds=(
            resolved_settings.completed_session_retention_seconds
        ),
    )
    order_machine = OrderStateMachine(request_repository)
    quote_calculator = QuoteCalculator()
    if resolved_settings.notification_webhook_url:
        notification_client = HttpxWebhookNotificationClient.create(
            resolved_settings.notification_webhook_url
        )
    else:
        notification_client = LoggingNotificationClient()

    async def close_resources() -> None:
        await notification_client.close()

    return AppContainer(
        settings=resolved_settings,
        session_broker=session_broker,
        session_sweeper=SessionSweeper(
            broker=session_broker,
            interval_seconds=resolved_settings.session_sweep_interval_seconds,
        ),
        order_machine=order_machine,
        quote_calculator=quote_calculator,
        custom_cake_service=CustomCakeService(
            sessions=session_broker,
            machine=order_machine,
            calculator=quote_calculator,
        ),
        receipt_ledger=PaymentReceiptLedger(
            machine=order_machine,
            images=SupabaseReceiptImageStore(
                supabase_client, resolved_settings.receipt_bucket
            ),
        ),
        pickup_scheduler=PickupScheduler(
            machine=order_machine,
            capacity=MaxOrdersPerDayPolicy(
                repository=request_repository,
                max_orders_per_day=resolved_settings.max_orders_per_day,
                timezone=timezone,
            ),
            timezone=timezone,
        ),
        tracking_service=TrackingService(order_machine),
        notification_service=NotificationService(
            client=notification_client,
            sender=resolved_settings.notification_sender,
            admin_email=resolved_settings.admin_email,
            timezone=timezone,
        ),
        close_resources=close_resources,
    )
