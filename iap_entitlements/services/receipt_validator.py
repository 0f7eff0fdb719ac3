"""Receipt validation against the platform stores.

Each validator exposes the same narrow contract so the subscription
commands stay platform-agnostic. Every failure behind the contract
(transport, signature, missing data) surfaces as InvalidReceiptError and
nothing else.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel

from iap_entitlements.exceptions import InvalidReceiptError
from iap_entitlements.logging_config import get_logger, mask_key
from iap_entitlements.models.subscription import SubscriptionPlatform

logger = get_logger(__name__)

_FRACTION_PATTERN = re.compile(r"\.(\d+)")


class ValidateReceiptInput(BaseModel):
    receipt: str
    billing_key: str
    product_id: Optional[str] = None


class ValidationResult(BaseModel):
    """Verified expiry and the billing key the store's notifications will carry."""

    expires_at: datetime
    billing_key: str


class ReceiptValidator(ABC):
    """Verifies a receipt with one store and returns the canonical expiry."""

    @abstractmethod
    def validate_receipt(self, data: ValidateReceiptInput) -> ValidationResult:
        """Verify the receipt.

        Raises:
            InvalidReceiptError: On any validation problem
        """

    @abstractmethod
    def get_platform(self) -> SubscriptionPlatform: ...


class AppleReceiptValidator(ReceiptValidator):
    """Validates App Store receipts via the transaction-info endpoint.

    The returned billing key is the verified originalTransactionId, which is
    also what App Store notifications are keyed by. The key the client sent
    is only used for logging.
    """

    def __init__(self, service: Any):
        self._service = service

    def validate_receipt(self, data: ValidateReceiptInput) -> ValidationResult:
        try:
            transaction = self._service.validate_receipt(data.receipt)
            original_transaction_id = getattr(transaction, "originalTransactionId", None)
            if not original_transaction_id:
                raise ValueError("No original transaction ID in transaction")
            expires_date = getattr(transaction, "expiresDate", None)
            if not expires_date:
                raise ValueError("No expiration date in transaction")
            expires_at = millis_to_datetime(expires_date)
        except Exception as e:
            logger.warning(
                "receipt_validation_failed",
                platform=self.get_platform().value,
                billing_key=mask_key(data.billing_key),
                error_type=type(e).__name__,
            )
            raise InvalidReceiptError() from None

        return ValidationResult(expires_at=expires_at, billing_key=str(original_transaction_id))

    def get_platform(self) -> SubscriptionPlatform:
        return SubscriptionPlatform.IOS


class GoogleReceiptValidator(ReceiptValidator):
    """Validates Google Play purchase tokens via subscriptionsv2.

    The billing key is the purchase token; the receipt itself is not sent.
    """

    def __init__(self, service: Any):
        self._service = service

    def validate_receipt(self, data: ValidateReceiptInput) -> ValidationResult:
        try:
            subscription_data = self._service.validate_receipt(data.billing_key)
            expires_at = first_line_item_expiry(subscription_data)
            if expires_at is None:
                raise ValueError("No expiration time in subscription data")
        except Exception as e:
            logger.warning(
                "receipt_validation_failed",
                platform=self.get_platform().value,
                billing_key=mask_key(data.billing_key),
                error_type=type(e).__name__,
            )
            raise InvalidReceiptError() from None

        return ValidationResult(expires_at=expires_at, billing_key=data.billing_key)

    def get_platform(self) -> SubscriptionPlatform:
        return SubscriptionPlatform.ANDROID


def millis_to_datetime(value: int) -> datetime:
    """Convert Unix milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp such as '2026-11-17T10:00:00.123Z'.

    Play reports up to nanosecond precision; fractions are cut or padded to
    microseconds so every supported Python accepts them.
    """
    normalized = value.replace("Z", "+00:00")
    normalized = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized, count=1)
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def first_line_item_expiry(subscription_data: Optional[dict]) -> Optional[datetime]:
    """Expiry of the first line item of a SubscriptionPurchaseV2, if any."""
    line_items = (subscription_data or {}).get("lineItems") or []
    if not line_items:
        return None
    expiry_time = line_items[0].get("expiryTime")
    return parse_rfc3339(expiry_time) if expiry_time else None
