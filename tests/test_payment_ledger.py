"""Tests for the payment receipt ledger."""

from decimal import Decimal
from uuid import uuid4

import pytest

from cake_orders.domain.errors import ConflictError, NotFoundError, ValidationError
from cake_orders.domain.receipts import (
    SUPERSEDED_NOTE,
    PaymentMethod,
    ReceiptVerification,
    VerificationStatus,
)
from cake_orders.domain.requests import CUSTOMER, RequestStatus
from cake_orders.services.orders import ApprovePayment
from cake_orders.services.receipts import ReceiptUpload, decode_image
from tests.conftest import (
    ADMIN,
    PNG_DATA_URL,
    create_draft,
    quoted_request,
    upload_receipt,
)


def test_first_upload_moves_quoted_to_pending_verification(
    container, image_store
) -> None:
    request = quoted_request(container)

    outcome = container.receipt_ledger.upload(
        request.tracking_code,
        ReceiptUpload(
            amount=Decimal("1500"),
            method=PaymentMethod.GCASH,
            image_data_url=PNG_DATA_URL,
            reference=" GC-0001 ",
        ),
        CUSTOMER,
    )

    assert outcome.request.status is RequestStatus.PAYMENT_PENDING_VERIFICATION
    assert outcome.transition is not None
    assert outcome.receipt.reference == "GC-0001"
    assert outcome.receipt.verification_status is VerificationStatus.PENDING
    path = f"{request.tracking_code}/{outcome.receipt.receipt_id}.png"
    assert outcome.receipt.image_ref == f"test-receipts/{path}"
    assert image_store.images[path][1] == "image/png"


def test_upload_before_quote_conflicts(container) -> None:
    draft = create_draft(container)

    with pytest.raises(ConflictError):
        upload_receipt(container, draft.tracking_code)


def test_second_upload_keeps_status_and_adds_receipt(container) -> None:
    request = quoted_request(container)
    upload_receipt(container, request.tracking_code, reference="GC-0001")
    history_before = container.order_machine.history(request.request_id)

    outcome = container.receipt_ledger.upload(
        request.tracking_code,
        ReceiptUpload(
            amount=Decimal("500"),
            method=PaymentMethod.BANK_TRANSFER,
            image_data_url=PNG_DATA_URL,
            reference="BT-77",
        ),
        CUSTOMER,
    )

    assert outcome.transition is None
    assert outcome.request.status is RequestStatus.PAYMENT_PENDING_VERIFICATION
    assert len(container.receipt_ledger.list_receipts(request.request_id)) == 2
    assert container.order_machine.history(request.request_id) == history_before


def test_duplicate_pending_reference_conflicts(container) -> None:
    request = quoted_request(container)
    upload_receipt(container, request.tracking_code, reference="GC-0001")

    with pytest.raises(ConflictError):
        upload_receipt(container, request.tracking_code, reference="GC-0001")


def test_upload_validation(container) -> None:
    request = quoted_request(container)
    ledger = container.receipt_ledger

    with pytest.raises(ValidationError) as excinfo:
        ledger.upload(
            request.tracking_code,
            ReceiptUpload(
                amount=Decimal("1500"),
                method=PaymentMethod.GCASH,
                image_data_url=PNG_DATA_URL,
            ),
            CUSTOMER,
        )
    assert excinfo.value.errors[0].field == "payment_reference"

    with pytest.raises(ValidationError) as excinfo:
        ledger.upload(
            request.tracking_code,
            ReceiptUpload(
                amount=Decimal("0"),
                method=PaymentMethod.CASH,
                image_data_url=PNG_DATA_URL,
            ),
            CUSTOMER,
        )
    assert excinfo.value.errors[0].field == "payment_amount"
    assert ledger.list_receipts(request.request_id) == []
    assert container.order_machine.get(request.request_id).status is (
        RequestStatus.QUOTED
    )


def test_cash_receipt_needs_no_reference(container) -> None:
    request = quoted_request(container)

    outcome = container.receipt_ledger.upload(
        request.tracking_code,
        ReceiptUpload(
            amount=Decimal("1500"),
            method=PaymentMethod.CASH,
            image_data_url=PNG_DATA_URL,
        ),
        CUSTOMER,
    )

    assert outcome.receipt.reference is None


@pytest.mark.parametrize(
    "data_url",
    [
        "",
        "data:application/pdf;base64,JVBERi0=",
        "data:image/png;base64,not base64!!",
        "https://example.com/receipt.png",
    ],
)
def test_decode_image_rejects_non_images(data_url: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        decode_image(data_url)

    assert excinfo.value.errors[0].field == "receipt_image"


def test_decode_image_maps_jpeg_extension() -> None:
    image = decode_image("data:image/jpeg;base64,/9j/4AAQ")

    assert image.extension == "jpg"
    assert image.content_type == "image/jpeg"


def test_approve_marks_primary_and_verifies_payment(container) -> None:
    request = quoted_request(container)
    receipt = upload_receipt(container, request.tracking_code)

    outcome = container.receipt_ledger.verify(receipt.receipt_id, True, None, ADMIN)

    assert outcome.request.status is RequestStatus.PAYMENT_VERIFIED
    stored = container.receipt_ledger.list_receipts(request.request_id)[0]
    assert stored.verification_status is VerificationStatus.APPROVED
    assert stored.is_primary
    assert stored.verified_by == "admin:7"
    assert outcome.receipt == stored


def test_reject_returns_request_to_quoted_and_keeps_receipt(container) -> None:
    request = quoted_request(container)
    receipt = upload_receipt(container, request.tracking_code)

    outcome = container.receipt_ledger.verify(
        receipt.receipt_id, False, "amount mismatch", ADMIN
    )

    assert outcome.request.status is RequestStatus.QUOTED
    assert outcome.transition is not None
    assert outcome.transition.entry.notes == "amount mismatch"
    receipts = container.receipt_ledger.list_receipts(request.request_id)
    assert len(receipts) == 1
    assert receipts[0].verification_status is VerificationStatus.REJECTED
    assert receipts[0].verification_notes == "amount mismatch"
    assert container.tracking_service.track(request.tracking_code).can_upload_receipt


def test_reject_requires_notes(container) -> None:
    request = quoted_request(container)
    receipt = upload_receipt(container, request.tracking_code)

    with pytest.raises(ValidationError):
        container.receipt_ledger.verify(receipt.receipt_id, False, "  ", ADMIN)

    stored = container.receipt_ledger.list_receipts(request.request_id)[0]
    assert stored.verification_status is VerificationStatus.PENDING


def test_reject_with_other_pending_receipt_keeps_status(container, clock) -> None:
    request = quoted_request(container)
    first = upload_receipt(container, request.tracking_code, reference="GC-1")
    clock.advance(minutes=5)
    upload_receipt(container, request.tracking_code, reference="GC-2")

    outcome = container.receipt_ledger.verify(
        first.receipt_id, False, "blurry photo", ADMIN
    )

    assert outcome.transition is None
    assert outcome.request.status is RequestStatus.PAYMENT_PENDING_VERIFICATION


def test_verdict_is_final(container) -> None:
    request = quoted_request(container)
    receipt = upload_receipt(container, request.tracking_code)
    container.receipt_ledger.verify(receipt.receipt_id, True, None, ADMIN)

    with pytest.raises(ConflictError):
        container.receipt_ledger.verify(receipt.receipt_id, False, "oops", ADMIN)


def test_verify_unknown_receipt(container) -> None:
    with pytest.raises(NotFoundError):
        container.receipt_ledger.verify(uuid4(), True, None, ADMIN)


def test_verified_payment_always_has_approved_receipt(container) -> None:
    request = quoted_request(container)
    rejected = upload_receipt(container, request.tracking_code, reference="GC-1")
    container.receipt_ledger.verify(rejected.receipt_id, False, "wrong", ADMIN)
    approved = upload_receipt(container, request.tracking_code, reference="GC-2")
    container.receipt_ledger.verify(approved.receipt_id, True, "ok", ADMIN)

    current = container.order_machine.get(request.request_id)
    receipts = container.receipt_ledger.list_receipts(request.request_id)

    assert current.status is RequestStatus.PAYMENT_VERIFIED
    primary = [r for r in receipts if r.is_primary]
    assert [r.receipt_id for r in primary] == [approved.receipt_id]
    assert primary[0].verification_status is VerificationStatus.APPROVED


def test_approve_rejects_other_pending_receipts(container, clock) -> None:
    request = quoted_request(container)
    first = upload_receipt(container, request.tracking_code, reference="GC-1")
    clock.advance(minutes=5)
    second = upload_receipt(container, request.tracking_code, reference="GC-2")

    container.receipt_ledger.verify(second.receipt_id, True, None, ADMIN)

    receipts = {
        r.receipt_id: r
        for r in container.receipt_ledger.list_receipts(request.request_id)
    }
    superseded = receipts[first.receipt_id]
    assert superseded.verification_status is VerificationStatus.REJECTED
    assert superseded.verification_notes == SUPERSEDED_NOTE
    assert superseded.verified_by == "system"
    assert not superseded.is_primary
    assert receipts[second.receipt_id].is_primary


def test_approving_an_already_rejected_receipt_conflicts(container, clock) -> None:
    request = quoted_request(container)
    first = upload_receipt(container, request.tracking_code, reference="GC-1")
    clock.advance(minutes=5)
    upload_receipt(container, request.tracking_code, reference="GC-2")
    container.receipt_ledger.verify(first.receipt_id, False, "blurry", ADMIN)

    with pytest.raises(ConflictError):
        container.order_machine.apply(
            request.request_id,
            ApprovePayment(
                ReceiptVerification(
                    receipt_id=first.receipt_id,
                    status=VerificationStatus.APPROVED,
                    verified_at=clock(),
                    notes=None,
                    verified_by="admin:8",
                )
            ),
            ADMIN,
        )

    current = container.order_machine.get(request.request_id)
    assert current.status is RequestStatus.PAYMENT_PENDING_VERIFICATION
    stored = container.order_machine.repository.get_receipt(first.receipt_id)
    assert stored.verification_status is VerificationStatus.REJECTED


def test_verify_from_stale_read_is_conflict(
    container, request_repository, clock, monkeypatch
) -> None:
    request = quoted_request(container)
    first = upload_receipt(container, request.tracking_code, reference="GC-1")
    clock.advance(minutes=5)
    upload_receipt(container, request.tracking_code, reference="GC-2")
    container.receipt_ledger.verify(first.receipt_id, False, "blurry", ADMIN)
    fresh_read = request_repository.get_receipt

    def stale_read(receipt_id):  # type: ignore[no-untyped-def]
        return first if receipt_id == first.receipt_id else fresh_read(receipt_id)

    monkeypatch.setattr(request_repository, "get_receipt", stale_read)

    with pytest.raises(ConflictError):
        container.receipt_ledger.verify(first.receipt_id, True, None, ADMIN)

    current = container.order_machine.get(request.request_id)
    assert current.status is RequestStatus.PAYMENT_PENDING_VERIFICATION
    assert (
        request_repository.receipts[first.receipt_id].verification_status
        is VerificationStatus.REJECTED
    )


def test_failed_upload_removes_stored_image(
    container, request_repository, image_store, monkeypatch
) -> None:
    request = quoted_request(container)
    monkeypatch.setattr(request_repository, "commit", lambda record: False)

    with pytest.raises(ConflictError):
        upload_receipt(container, request.tracking_code)

    assert image_store.images == {}
    assert request_repository.receipts == {}
