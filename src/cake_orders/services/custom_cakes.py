"""Customer-facing flows that span sessions, pricing and the state machine."""

from dataclasses import dataclass

from cake_orders.domain.requests import (
    CUSTOMER,
    ContactInfo,
    CustomCakeRequest,
)
from cake_orders.services.orders import (
    OrderStateMachine,
    ResubmitDesign,
    SubmitForReview,
    TransitionResult,
)
from cake_orders.services.quotes import QuoteCalculator
from cake_orders.services.sessions import SessionBroker
from cake_orders.services.validation import parse_contact, parse_design


@dataclass
class CustomCakeService:
    """Creates drafts from finished design sessions and submits them."""

    sessions: SessionBroker
    machine: OrderStateMachine
    calculator: QuoteCalculator

    def create_from_session(
        self, session_token: str, contact: ContactInfo | None = None
    ) -> CustomCakeRequest:
        """Turn a completed session's payload into a draft request."""
        payload = self.sessions.consume_completed(session_token)
        design = parse_design(payload)
        return self.machine.create_draft(
            session_token,
            design,
            _merge_contact(parse_contact(payload), contact),
            CUSTOMER,
        )

    def update_draft(
        self,
        tracking_code: str,
        payload: dict[str, object] | None = None,
        contact: ContactInfo | None = None,
    ) -> CustomCakeRequest:
        """Save edits to a draft's design or contact details."""
        request = self.machine.get_by_tracking_code(tracking_code)
        design = parse_design(payload) if payload else None
        return self.machine.update_draft(
            request.request_id,
            design=design,
            contact=_merge_contact(request.contact, contact) if contact else None,
        )

    def submit(
        self, tracking_code: str, contact: ContactInfo | None = None
    ) -> TransitionResult:
        """Send a draft for review with a suggested price attached."""
        request = self.machine.get_by_tracking_code(tracking_code)
        return self.machine.apply(
            request.request_id,
            SubmitForReview(
                estimate=self.calculator.suggest(request.design),
                contact=_merge_contact(request.contact, contact),
            ),
            CUSTOMER,
        )

    def resubmit(
        self, tracking_code: str, payload: dict[str, object]
    ) -> TransitionResult:
        """Replace the design after a revision request and resubmit it."""
        request = self.machine.get_by_tracking_code(tracking_code)
        design = parse_design(payload)
        return self.machine.apply(
            request.request_id,
            ResubmitDesign(design=design, estimate=self.calculator.suggest(design)),
            CUSTOMER,
        )


def _merge_contact(base: ContactInfo, override: ContactInfo | None) -> ContactInfo:
    if override is None:
        return base
    return ContactInfo(
        name=override.name or base.name,
        email=override.email or base.email,
        phone=override.phone or base.phone,
    )
