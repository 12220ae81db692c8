"""Payment receipt ledger."""

import base64
import binascii
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID, uuid4

from cake_orders.domain.errors import ConflictError, NotFoundError, ValidationError
from cake_orders.domain.receipts import (
    PaymentMethod,
    PaymentReceipt,
    ReceiptVerification,
    VerificationStatus,
)
from cake_orders.domain.requests import Actor, CustomCakeRequest, RequestStatus
from cake_orders.services.orders import (
    RECEIPT_UPLOAD_STATUSES,
    ApprovePayment,
    OrderStateMachine,
    RecordReceiptUpload,
    RejectPayment,
    TransitionResult,
)
from cake_orders.services.sessions import utcnow

_logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
_DATA_URL_RE = re.compile(r"^data:image/(png|jpeg|jpg|gif);base64,(.+)$", re.DOTALL)
_EXTENSIONS = {"png": "png", "jpeg": "jpg", "jpg": "jpg", "gif": "gif"}


class ImageStore(Protocol):
    """Blob storage for receipt images."""

    def save(self, path: str, content: bytes, content_type: str) -> str:
        """Store the image and return a reference to it."""

    def delete(self, path: str) -> None:
        """Remove an image that no receipt ended up referencing."""


@dataclass(frozen=True)
class ReceiptUpload:
    """Customer-supplied receipt fields."""

    amount: Decimal
    method: PaymentMethod
    image_data_url: str
    reference: str | None = None


@dataclass(frozen=True)
class DecodedImage:
    content: bytes
    content_type: str
    extension: str


@dataclass(frozen=True)
class LedgerOutcome:
    """Receipt written or verified, with the transition it caused, if any."""

    request: CustomCakeRequest
    receipt: PaymentReceipt
    transition: TransitionResult | None = None


@dataclass
class PaymentReceiptLedger:
    """Records receipts and admin verdicts; receipts are never deleted."""

    machine: OrderStateMachine
    images: ImageStore
    clock: Callable[[], datetime] = utcnow

    def upload(
        self, tracking_code: str, upload: ReceiptUpload, actor: Actor
    ) -> LedgerOutcome:
        """Attach a receipt to a quoted request or one already awaiting review."""
        request_id = self.machine.get_by_tracking_code(tracking_code).request_id
        with self.machine.guard(request_id):
            request = self.machine.get(request_id)
            if request.status not in RECEIPT_UPLOAD_STATUSES:
                raise ConflictError(
                    "Receipts cannot be uploaded while request is "
                    f"{request.status.value}",
                    current_status=request.status.value,
                    target_status=RequestStatus.PAYMENT_PENDING_VERIFICATION.value,
                )
            reference = _validate_upload(upload)
            image = decode_image(upload.image_data_url)
            self._ensure_unique_reference(request_id, reference)
            receipt_id = uuid4()
            path = f"{request.tracking_code}/{receipt_id}.{image.extension}"
            image_ref = self.images.save(path, image.content, image.content_type)
            receipt = PaymentReceipt(
                receipt_id=receipt_id,
                request_id=request_id,
                amount=upload.amount,
                method=upload.method,
                reference=reference,
                image_ref=image_ref,
                verification_status=VerificationStatus.PENDING,
                is_primary=False,
                uploaded_at=self.clock(),
            )
            try:
                outcome = self._record_upload(request, receipt, actor)
            except Exception:
                self.images.delete(path)
                raise
        _logger.info(
            "Receipt uploaded: tracking_code=%s method=%s amount=%s",
            request.tracking_code,
            upload.method.value,
            upload.amount,
        )
        return outcome

    def verify(
        self, receipt_id: UUID, approve: bool, notes: str | None, actor: Actor
    ) -> LedgerOutcome:
        """Approve or reject a pending receipt."""
        repository = self.machine.repository
        receipt = repository.get_receipt(receipt_id)
        if receipt is None:
            raise NotFoundError("Receipt not found")
        with self.machine.guard(receipt.request_id):
            receipt = repository.get_receipt(receipt_id) or receipt
            if receipt.verification_status is not VerificationStatus.PENDING:
                raise ConflictError(
                    f"Receipt is already {receipt.verification_status.value}",
                    current_status=receipt.verification_status.value,
                )
            cleaned_notes = notes.strip() if notes and notes.strip() else None
            if not approve and cleaned_notes is None:
                raise ValidationError.single(
                    "notes", "Tell the customer why the receipt was rejected"
                )
            verification = ReceiptVerification(
                receipt_id=receipt_id,
                status=(
                    VerificationStatus.APPROVED
                    if approve
                    else VerificationStatus.REJECTED
                ),
                verified_at=self.clock(),
                notes=cleaned_notes,
                verified_by=actor.label(),
            )
            verified = replace(
                receipt,
                verification_status=verification.status,
                verified_at=verification.verified_at,
                verification_notes=verification.notes,
                verified_by=verification.verified_by,
                is_primary=approve,
            )
            if approve:
                result = self.machine.apply(
                    receipt.request_id, ApprovePayment(verification), actor
                )
                return LedgerOutcome(result.request, verified, result)
            others_pending = [
                r
                for r in repository.list_receipts(receipt.request_id)
                if r.receipt_id != receipt_id
                and r.verification_status is VerificationStatus.PENDING
            ]
            if others_pending:
                updated = self.machine.amend(
                    receipt.request_id,
                    frozenset({RequestStatus.PAYMENT_PENDING_VERIFICATION}),
                    verification=verification,
                )
                return LedgerOutcome(updated, verified)
            result = self.machine.apply(
                receipt.request_id, RejectPayment(verification), actor
            )
            return LedgerOutcome(result.request, verified, result)

    def list_receipts(self, request_id: UUID) -> list[PaymentReceipt]:
        """Return every receipt for a request, newest first."""
        self.machine.get(request_id)
        return self.machine.repository.list_receipts(request_id)

    def _ensure_unique_reference(self, request_id: UUID, reference: str | None) -> None:
        if reference is None:
            return
        if any(
            r.reference == reference
            and r.verification_status is VerificationStatus.PENDING
            for r in self.machine.repository.list_receipts(request_id)
        ):
            raise ConflictError("A pending receipt with this reference already exists")

    def _record_upload(
        self, request: CustomCakeRequest, receipt: PaymentReceipt, actor: Actor
    ) -> LedgerOutcome:
        if request.status is RequestStatus.QUOTED:
            result = self.machine.apply(
                request.request_id, RecordReceiptUpload(receipt), actor
            )
            return LedgerOutcome(result.request, receipt, result)
        updated = self.machine.amend(
            request.request_id,
            frozenset({RequestStatus.PAYMENT_PENDING_VERIFICATION}),
            new_receipt=receipt,
        )
        return LedgerOutcome(updated, receipt)


def decode_image(data_url: str) -> DecodedImage:
    """Decode a base64 image data URL, rejecting anything that is not an image."""
    match = _DATA_URL_RE.match(data_url.strip()) if data_url else None
    if match is None:
        raise ValidationError.single(
            "receipt_image", "Receipt must be a PNG, JPEG or GIF data URL"
        )
    kind = match.group(1)
    try:
        content = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError.single(
            "receipt_image", "Receipt image is not valid base64"
        ) from None
    if not content:
        raise ValidationError.single("receipt_image", "Receipt image is empty")
    if len(content) > MAX_IMAGE_BYTES:
        raise ValidationError.single("receipt_image", "Receipt image exceeds 5 MB")
    extension = _EXTENSIONS[kind]
    content_type = "image/jpeg" if extension == "jpg" else f"image/{extension}"
    return DecodedImage(content=content, content_type=content_type, extension=extension)


def _validate_upload(upload: ReceiptUpload) -> str | None:
    if upload.amount <= 0:
        raise ValidationError.single("payment_amount", "Amount must be greater than 0")
    reference = upload.reference.strip() if upload.reference else None
    if upload.method is not PaymentMethod.CASH and not reference:
        raise ValidationError.single(
            "payment_reference", "A payment reference is required"
        )
    return reference
