"""Per-platform webhook decoding.

Turns raw store notifications into canonical WebhookEvents. Anything that
cannot or should not be processed (bad signature, test notification,
unmapped type) becomes an ignored DecodeOutcome rather than an exception:
the store only needs an acknowledgement, and a retry would fail the same
way.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from iap_entitlements.exceptions import EntitlementError
from iap_entitlements.logging_config import get_logger, mask_key
from iap_entitlements.models.events import GoogleNotificationType
from iap_entitlements.models.webhook import CanonicalEventType, WebhookEvent, WebhookPlatform
from iap_entitlements.services.receipt_validator import first_line_item_expiry, millis_to_datetime
from iap_entitlements.services.webhook_processor import WebhookEventProcessor

logger = get_logger(__name__)


APPLE_EVENT_TYPES: dict[str, CanonicalEventType] = {
    "DID_RENEW": CanonicalEventType.RENEWED,
    "DID_FAIL_TO_RENEW": CanonicalEventType.RENEWAL_FAILED,
    "DID_CHANGE_RENEWAL_STATUS": CanonicalEventType.CANCELED,
    "SUBSCRIBED": CanonicalEventType.PURCHASED,
    "EXPIRED": CanonicalEventType.EXPIRED,
    "GRACE_PERIOD_EXPIRED": CanonicalEventType.EXPIRED,
    "REFUND": CanonicalEventType.REFUNDED,
}

GOOGLE_EVENT_TYPES: dict[int, CanonicalEventType] = {
    GoogleNotificationType.SUBSCRIPTION_RECOVERED: CanonicalEventType.RECOVERED,
    GoogleNotificationType.SUBSCRIPTION_RENEWED: CanonicalEventType.RENEWED,
    GoogleNotificationType.SUBSCRIPTION_CANCELED: CanonicalEventType.CANCELED,
    GoogleNotificationType.SUBSCRIPTION_PURCHASED: CanonicalEventType.PURCHASED,
    GoogleNotificationType.SUBSCRIPTION_ON_HOLD: CanonicalEventType.ON_HOLD,
    GoogleNotificationType.SUBSCRIPTION_IN_GRACE_PERIOD: CanonicalEventType.RENEWAL_FAILED,
    GoogleNotificationType.SUBSCRIPTION_REVOKED: CanonicalEventType.EXPIRED,
    GoogleNotificationType.SUBSCRIPTION_EXPIRED: CanonicalEventType.EXPIRED,
}

# Google notifications don't carry the new expiry; fetch it for these
GOOGLE_EXPIRY_LOOKUP_TYPES = frozenset(
    {GoogleNotificationType.SUBSCRIPTION_RENEWED, GoogleNotificationType.SUBSCRIPTION_PURCHASED}
)


class DecodeOutcome(BaseModel):
    """Result of decoding one notification: an event, or a reason to skip it."""

    event: Optional[WebhookEvent] = None
    ignored_reason: Optional[str] = None

    @classmethod
    def accepted(cls, event: WebhookEvent) -> "DecodeOutcome":
        return cls(event=event)

    @classmethod
    def ignored(cls, reason: str) -> "DecodeOutcome":
        return cls(ignored_reason=reason)

    @property
    def is_ignored(self) -> bool:
        return self.event is None


class WebhookDecoder(ABC):
    """Decodes one store's notification body into a canonical event."""

    platform: WebhookPlatform

    @abstractmethod
    def decode(self, body: Any) -> DecodeOutcome: ...


class AppleWebhookDecoder(WebhookDecoder):
    """App Store Server Notifications V2.

    The billing key is the verified transaction's originalTransactionId,
    which is stable across renewals.

    Args:
        service: AppleStoreService used for signature verification
    """

    platform = WebhookPlatform.APPLE

    def __init__(self, service: Any):
        self._service = service

    def decode(self, body: Any) -> DecodeOutcome:
        signed_payload = body.get("signedPayload") if isinstance(body, dict) else None
        if not signed_payload:
            logger.warning("apple_webhook_missing_payload")
            return DecodeOutcome.ignored("missing_signed_payload")

        try:
            decoded = self._service.verify_notification(signed_payload)
        except Exception as e:
            logger.warning("apple_webhook_verification_failed", error=str(e), error_type=type(e).__name__)
            return DecodeOutcome.ignored("verification_failed")

        notification_type = _apple_notification_type(decoded)
        signed_transaction = getattr(decoded.data, "signedTransactionInfo", None) if decoded.data else None
        if not notification_type or not signed_transaction:
            logger.warning("apple_webhook_incomplete", notification_type=notification_type)
            return DecodeOutcome.ignored("missing_notification_type_or_transaction")

        event_type = APPLE_EVENT_TYPES.get(notification_type)
        if event_type is None:
            logger.warning("apple_webhook_type_unknown", notification_type=notification_type)
            return DecodeOutcome.ignored(f"unknown_notification_type:{notification_type}")

        try:
            transaction = self._service.verify_transaction(signed_transaction)
        except Exception as e:
            logger.warning(
                "apple_webhook_transaction_verification_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return DecodeOutcome.ignored("transaction_verification_failed")

        billing_key = transaction.originalTransactionId
        if not billing_key:
            return DecodeOutcome.ignored("missing_original_transaction_id")

        expires_at = millis_to_datetime(transaction.expiresDate) if transaction.expiresDate else None

        event = WebhookEvent(
            event_id=decoded.notificationUUID or str(uuid.uuid4()),
            platform=self.platform,
            event_type=event_type,
            billing_key=billing_key,
            payload=self._service.to_json(decoded),
            expires_at=expires_at,
        )
        logger.debug(
            "apple_webhook_decoded",
            event_id=event.event_id,
            notification_type=notification_type,
            billing_key=mask_key(billing_key),
        )
        return DecodeOutcome.accepted(event)


def _apple_notification_type(decoded: Any) -> Optional[str]:
    # rawNotificationType survives types newer than the installed library
    raw = getattr(decoded, "rawNotificationType", None)
    if raw:
        return raw
    notification_type = getattr(decoded, "notificationType", None)
    return getattr(notification_type, "value", notification_type)


class GoogleWebhookDecoder(WebhookDecoder):
    """Real-time Developer Notifications delivered as a Pub/Sub push body.

    The billing key is the purchase token.

    Args:
        service: GoogleStoreService used for message decoding and expiry lookups
    """

    platform = WebhookPlatform.GOOGLE

    def __init__(self, service: Any):
        self._service = service

    def decode(self, body: Any) -> DecodeOutcome:
        message = body.get("message") if isinstance(body, dict) else None
        data = message.get("data") if isinstance(message, dict) else None
        if not data:
            logger.warning("google_webhook_missing_data")
            return DecodeOutcome.ignored("missing_message_data")

        try:
            notification = self._service.decode_pubsub_message(data)
        except (ValueError, ValidationError) as e:
            logger.warning("google_webhook_decode_failed", error=str(e), error_type=type(e).__name__)
            return DecodeOutcome.ignored("undecodable_message")

        if notification.test_notification is not None:
            logger.info("google_webhook_test_notification", package_name=notification.package_name)
            return DecodeOutcome.ignored("test_notification")

        subscription_notification = notification.subscription_notification
        if subscription_notification is None:
            logger.warning("google_webhook_missing_subscription_notification")
            return DecodeOutcome.ignored("missing_subscription_notification")

        notification_type = subscription_notification.notification_type
        event_type = GOOGLE_EVENT_TYPES.get(notification_type)
        if event_type is None:
            logger.warning("google_webhook_type_unknown", notification_type=notification_type)
            return DecodeOutcome.ignored(f"unknown_notification_type:{notification_type}")

        billing_key = subscription_notification.purchase_token
        expires_at = None
        if notification_type in GOOGLE_EXPIRY_LOOKUP_TYPES:
            expires_at = self._fetch_expiry(billing_key)

        event = WebhookEvent(
            event_id=message.get("messageId") or str(uuid.uuid4()),
            platform=self.platform,
            event_type=event_type,
            billing_key=billing_key,
            payload=notification.model_dump_json(by_alias=True, exclude_none=True),
            expires_at=expires_at,
        )
        logger.debug(
            "google_webhook_decoded",
            event_id=event.event_id,
            notification_type=notification_type,
            billing_key=mask_key(billing_key, 10),
        )
        return DecodeOutcome.accepted(event)

    def _fetch_expiry(self, purchase_token: str) -> Optional[datetime]:
        try:
            return first_line_item_expiry(self._service.validate_receipt(purchase_token))
        except Exception as e:
            logger.warning(
                "google_webhook_expiry_lookup_failed",
                purchase_token=mask_key(purchase_token, 10),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None


def handle_webhook(decoder: WebhookDecoder, processor: WebhookEventProcessor, body: Any) -> DecodeOutcome:
    """Decode and process one notification without ever raising.

    Stores retry on any non-2xx response, so every failure here is logged
    and swallowed; the caller always acknowledges.

    Returns:
        The decode outcome (ignored outcomes were not processed)
    """
    try:
        outcome = decoder.decode(body)
        if outcome.is_ignored:
            logger.info(
                "webhook_ignored",
                platform=decoder.platform.value,
                reason=outcome.ignored_reason,
            )
            return outcome

        processor.process(outcome.event)
        return outcome
    except EntitlementError as e:
        logger.warning(
            "webhook_processing_rejected",
            platform=decoder.platform.value,
            error_code=e.code,
            error=e.message,
        )
        return DecodeOutcome.ignored(e.code)
    except Exception as e:
        logger.error(
            "webhook_processing_failed",
            platform=decoder.platform.value,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return DecodeOutcome.ignored(f"processing_failed:{type(e).__name__}")
