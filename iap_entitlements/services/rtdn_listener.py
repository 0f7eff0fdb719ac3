"""Google Play RTDN pull subscriber.

For deployments that receive Real-time Developer Notifications through a
Pub/Sub pull subscription instead of a push endpoint. Each message is
re-wrapped in the push body shape and handed to the same decoder path as
POST /webhooks/google.
"""

import base64
from threading import RLock
from typing import Any, Optional

from google.cloud import pubsub_v1

from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.settings import RtdnSettings
from iap_entitlements.services.webhook_decoders import GoogleWebhookDecoder, handle_webhook
from iap_entitlements.services.webhook_processor import WebhookEventProcessor

logger = get_logger(__name__)


def to_push_body(message: Any, subscription_path: str) -> dict[str, Any]:
    """Wrap a pulled Pub/Sub message in the push delivery JSON shape."""
    publish_time = getattr(message, "publish_time", None)
    return {
        "message": {
            "data": base64.b64encode(message.data).decode("ascii"),
            "messageId": message.message_id,
            "publishTime": publish_time.isoformat() if publish_time else None,
        },
        "subscription": subscription_path,
    }


class RtdnListener:
    """Streaming pull subscriber feeding RTDN messages to the webhook processor.

    Messages are always acked: handle_webhook never raises, and a message
    that failed once would fail again on redelivery.

    Args:
        settings: Pub/Sub project and subscription
        decoder: Google webhook decoder
        processor: Webhook event processor
        subscriber: Prebuilt SubscriberClient (created on start if omitted)
    """

    def __init__(
        self,
        settings: RtdnSettings,
        decoder: GoogleWebhookDecoder,
        processor: WebhookEventProcessor,
        subscriber: Optional[pubsub_v1.SubscriberClient] = None,
    ):
        self._lock = RLock()
        self._settings = settings
        self._decoder = decoder
        self._processor = processor
        self._subscriber = subscriber
        self._future = None
        self._subscription_path: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._future is not None

    def start(self) -> None:
        """Open the streaming pull. No-op when already running."""
        with self._lock:
            if self._future is not None:
                return
            if not (self._settings.project_id and self._settings.subscription):
                logger.warning("rtdn_listener_not_configured")
                return

            if self._subscriber is None:
                self._subscriber = pubsub_v1.SubscriberClient()
            self._subscription_path = self._subscriber.subscription_path(
                self._settings.project_id, self._settings.subscription
            )
            self._future = self._subscriber.subscribe(self._subscription_path, callback=self._callback)

            logger.info("rtdn_listener_started", subscription_path=self._subscription_path)

    def stop(self) -> None:
        """Cancel the streaming pull and close the client."""
        with self._lock:
            if self._future is None:
                return
            self._future.cancel()
            try:
                self._future.result(timeout=10)
            except Exception as e:
                # result() re-raises the cancellation
                logger.debug("rtdn_listener_future_closed", error_type=type(e).__name__)
            self._future = None
            if self._subscriber is not None:
                self._subscriber.close()
                self._subscriber = None

            logger.info("rtdn_listener_stopped", subscription_path=self._subscription_path)

    def _callback(self, message: Any) -> None:
        try:
            body = to_push_body(message, self._subscription_path)
            outcome = handle_webhook(self._decoder, self._processor, body)
            logger.debug(
                "rtdn_message_handled",
                message_id=message.message_id,
                ignored_reason=outcome.ignored_reason,
            )
        except Exception as e:
            logger.error(
                "rtdn_message_failed",
                message_id=getattr(message, "message_id", None),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            message.ack()
