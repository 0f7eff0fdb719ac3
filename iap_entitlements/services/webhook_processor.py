"""Store-initiated subscription lifecycle events.

Responsibilities:
- Apply each distinct event ID at most once
- Map canonical event types onto subscription status transitions
- Keep the owning user's entitlement in step with the subscription

The webhook log row is inserted first, inside the same store transaction
as the transition. The store's unique constraint on event_id is the
duplicate signal; a failed transition rolls the log row back so a
redelivery can still apply it.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from iap_entitlements.exceptions import (
    DuplicateWebhookEventError,
    SubscriptionNotFoundError,
    WebhookLogCreationFailedError,
)
from iap_entitlements.logging_config import get_logger, mask_key
from iap_entitlements.models.subscription import Subscription, SubscriptionStatus
from iap_entitlements.models.webhook import (
    CanonicalEventType,
    CreateWebhookLogData,
    ProcessWebhookResult,
    WebhookEvent,
)
from iap_entitlements.repositories.subscription_store import (
    SubscriptionRepository,
    get_subscription_store,
)
from iap_entitlements.repositories.user_store import UserRepository, get_user_store
from iap_entitlements.services.clock import Clock
from iap_entitlements.services.entitlement import grant_premium, revoke_premium, update_subscription

logger = get_logger(__name__)


class EntitlementEffect(Enum):
    UNCHANGED = "unchanged"
    GRANT = "grant"  # premium until the event's expiry
    REVOKE = "revoke"  # free, expiry cleared
    GRANT_IF_UNEXPIRED = "grant_if_unexpired"  # premium only if the stored expiry is in the future


@dataclass(frozen=True)
class Transition:
    """Effect of one canonical event.

    status None leaves the subscription untouched. With uses_event_expiry
    the transition needs the event's expires_at and is skipped without it.
    """

    status: Optional[SubscriptionStatus]
    entitlement: EntitlementEffect
    uses_event_expiry: bool = False


TRANSITIONS: Mapping[CanonicalEventType, Transition] = MappingProxyType(
    {
        CanonicalEventType.RENEWED: Transition(
            SubscriptionStatus.ACTIVE, EntitlementEffect.GRANT, uses_event_expiry=True
        ),
        CanonicalEventType.RENEWAL_FAILED: Transition(
            SubscriptionStatus.GRACE_PERIOD, EntitlementEffect.UNCHANGED
        ),
        CanonicalEventType.CANCELED: Transition(SubscriptionStatus.CANCELED, EntitlementEffect.UNCHANGED),
        CanonicalEventType.EXPIRED: Transition(SubscriptionStatus.EXPIRED, EntitlementEffect.REVOKE),
        CanonicalEventType.REFUNDED: Transition(None, EntitlementEffect.REVOKE),
        CanonicalEventType.RECOVERED: Transition(
            SubscriptionStatus.ACTIVE, EntitlementEffect.GRANT_IF_UNEXPIRED
        ),
        CanonicalEventType.PURCHASED: Transition(
            SubscriptionStatus.ACTIVE, EntitlementEffect.GRANT, uses_event_expiry=True
        ),
        CanonicalEventType.ON_HOLD: Transition(None, EntitlementEffect.UNCHANGED),
    }
)

_unclassified = set(CanonicalEventType) - set(TRANSITIONS)
if _unclassified:
    raise RuntimeError(f"Event types without a transition: {sorted(e.value for e in _unclassified)}")


def to_canonical(event_type) -> Optional[CanonicalEventType]:
    """Canonical event type, or None for anything unrecognized."""
    try:
        return CanonicalEventType(event_type)
    except ValueError:
        return None


class WebhookEventProcessor:
    """Idempotent applier of canonical webhook events.

    Args:
        subscription_repository: Subscription storage (defaults to global instance)
        user_repository: User storage (defaults to global instance)
        clock: Time source
    """

    def __init__(
        self,
        subscription_repository: Optional[SubscriptionRepository] = None,
        user_repository: Optional[UserRepository] = None,
        clock: Optional[Clock] = None,
    ):
        self.subscriptions = subscription_repository if subscription_repository is not None else get_subscription_store()
        self.users = user_repository if user_repository is not None else get_user_store()
        self.clock = clock if clock is not None else Clock()

    def process(self, event: WebhookEvent) -> ProcessWebhookResult:
        """Apply one webhook event.

        Args:
            event: Canonical event from a platform decoder

        Returns:
            ProcessWebhookResult with already_processed=True for a repeated event_id

        Raises:
            SubscriptionNotFoundError: If no subscription has the event's billing key
            WebhookLogCreationFailedError: If storage fails to insert the log row
        """
        event_type = to_canonical(event.event_type)
        event_type_name = event_type.value if event_type else str(event.event_type)

        try:
            with self.subscriptions.transaction():
                self._record(event, event_type_name)

                subscription = self.subscriptions.find_by_billing_key(event.billing_key)
                if subscription is None:
                    logger.warning(
                        "webhook_subscription_not_found",
                        event_id=event.event_id,
                        event_type=event_type_name,
                        billing_key=mask_key(event.billing_key),
                    )
                    raise SubscriptionNotFoundError()

                logger.info(
                    "webhook_event_processing",
                    event_id=event.event_id,
                    platform=event.platform.value,
                    event_type=event_type_name,
                    billing_key=mask_key(event.billing_key),
                    subscription_id=subscription.id,
                )

                if event_type is None:
                    logger.warning(
                        "webhook_event_type_unhandled",
                        event_id=event.event_id,
                        event_type=event_type_name,
                    )
                else:
                    self._apply(TRANSITIONS[event_type], subscription, event)

        except DuplicateWebhookEventError:
            logger.info(
                "webhook_event_already_processed",
                event_id=event.event_id,
                platform=event.platform.value,
                event_type=event_type_name,
            )
            return ProcessWebhookResult(already_processed=True)

        logger.info("webhook_event_processed", event_id=event.event_id, event_type=event_type_name)
        return ProcessWebhookResult(already_processed=False)

    def _record(self, event: WebhookEvent, event_type_name: str) -> None:
        """Insert the log row; a duplicate event ID propagates unchanged."""
        try:
            self.subscriptions.create_webhook_log(
                CreateWebhookLogData(
                    event_id=event.event_id,
                    platform=event.platform,
                    event_type=event_type_name,
                    billing_key=event.billing_key,
                    payload=event.payload,
                )
            )
        except DuplicateWebhookEventError:
            raise
        except Exception as e:
            logger.error(
                "webhook_log_create_failed",
                event_id=event.event_id,
                event_type=event_type_name,
                error_type=type(e).__name__,
            )
            raise WebhookLogCreationFailedError() from e

    def _apply(self, transition: Transition, subscription: Subscription, event: WebhookEvent) -> None:
        event_type = to_canonical(event.event_type)
        if transition.uses_event_expiry and event.expires_at is None:
            logger.warning(
                "webhook_event_missing_expiry",
                event_id=event.event_id,
                event_type=event_type.value,
                subscription_id=subscription.id,
            )
            return

        reason = f"webhook:{event_type.value}"

        if transition.status is not None:
            update_subscription(
                self.subscriptions,
                subscription,
                status=transition.status,
                expires_at=event.expires_at if transition.uses_event_expiry else None,
                reason=reason,
                event_id=event.event_id,
            )

        effect = transition.entitlement
        if effect == EntitlementEffect.GRANT:
            grant_premium(self.users, subscription.user_id, event.expires_at, reason=reason)
        elif effect == EntitlementEffect.REVOKE:
            revoke_premium(self.users, subscription.user_id, reason=reason)
        elif effect == EntitlementEffect.GRANT_IF_UNEXPIRED:
            self._grant_if_unexpired(subscription, self.clock.now(), reason)

    def _grant_if_unexpired(self, subscription: Subscription, now: datetime, reason: str) -> None:
        if subscription.expires_at > now:
            grant_premium(self.users, subscription.user_id, subscription.expires_at, reason=reason)
        else:
            logger.info(
                "webhook_recovery_not_granted",
                subscription_id=subscription.id,
                expires_at=subscription.expires_at.isoformat(),
            )


def process_webhook_event(event: WebhookEvent, processor: WebhookEventProcessor) -> ProcessWebhookResult:
    """Apply event through processor (see WebhookEventProcessor.process)."""
    return processor.process(event)
