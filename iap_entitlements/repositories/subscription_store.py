"""Subscription store - subscription records and the webhook idempotency ledger.

SubscriptionRepository is the storage contract used by the commands and
the webhook processor. InMemorySubscriptionStore enforces the same
uniqueness constraints a database would (billing_key, event_id) and
supports a rollback-on-error transaction.
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from iap_entitlements.exceptions import (
    DuplicateBillingKeyError,
    DuplicateWebhookEventError,
    SubscriptionUpdateFailedError,
)
from iap_entitlements.models.subscription import (
    CreateSubscriptionData,
    Subscription,
    SubscriptionStatus,
    UpdateSubscriptionData,
    utc_now,
)
from iap_entitlements.models.webhook import CreateWebhookLogData, WebhookLog

# Statuses that still need an expiry sweep once expires_at has passed
SWEEPABLE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.CANCELED,
    SubscriptionStatus.GRACE_PERIOD,
)


class SubscriptionRepository(ABC):
    """Storage contract for subscriptions and webhook logs."""

    @abstractmethod
    def find_by_id(self, subscription_id: str) -> Optional[Subscription]: ...

    @abstractmethod
    def find_by_user_id(self, user_id: str) -> Optional[Subscription]: ...

    @abstractmethod
    def find_by_billing_key(self, billing_key: str) -> Optional[Subscription]: ...

    @abstractmethod
    def find_expired(self, now: datetime) -> List[Subscription]: ...

    @abstractmethod
    def create(self, data: CreateSubscriptionData) -> Subscription:
        """Insert a subscription.

        Raises:
            DuplicateBillingKeyError: If the billing key already exists
        """

    @abstractmethod
    def update(self, subscription_id: str, data: UpdateSubscriptionData) -> Subscription:
        """Apply a partial update.

        Raises:
            SubscriptionUpdateFailedError: If the subscription does not exist
        """

    @abstractmethod
    def find_webhook_log(self, event_id: str) -> Optional[WebhookLog]: ...

    @abstractmethod
    def create_webhook_log(self, data: CreateWebhookLogData) -> WebhookLog:
        """Insert a webhook log row.

        Raises:
            DuplicateWebhookEventError: If the event ID already exists
        """

    @abstractmethod
    def transaction(self) -> Iterator[None]:
        """Context manager; all writes inside are undone if the block raises."""


class InMemorySubscriptionStore(SubscriptionRepository):
    """Thread-safe in-memory subscription repository.

    Records are copied on the way in and out so callers never hold a
    reference into the store.
    """

    def __init__(self):
        """Initialize subscription store with empty storage."""
        self._subscriptions: Dict[str, Subscription] = {}
        self._billing_keys: Dict[str, str] = {}
        self._webhook_logs: Dict[str, WebhookLog] = {}
        self._lock = threading.RLock()

    def find_by_id(self, subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
            return subscription.model_copy() if subscription else None

    def find_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """Most recently updated subscription owned by the user."""
        with self._lock:
            owned = [s for s in self._subscriptions.values() if s.user_id == user_id]
            if not owned:
                return None
            return max(owned, key=lambda s: s.updated_at).model_copy()

    def find_by_billing_key(self, billing_key: str) -> Optional[Subscription]:
        with self._lock:
            subscription_id = self._billing_keys.get(billing_key)
            if subscription_id is None:
                return None
            return self._subscriptions[subscription_id].model_copy()

    def find_expired(self, now: datetime) -> List[Subscription]:
        """Subscriptions past expiry whose status has not caught up yet.

        Args:
            now: Reference time, normally the injected clock's now()

        Returns:
            Subscriptions with expires_at < now and a non-expired status
        """
        with self._lock:
            return [
                s.model_copy()
                for s in self._subscriptions.values()
                if s.expires_at < now and s.status in SWEEPABLE_STATUSES
            ]

    def create(self, data: CreateSubscriptionData) -> Subscription:
        with self._lock:
            if data.billing_key in self._billing_keys:
                raise DuplicateBillingKeyError(data.billing_key)

            now = utc_now()
            subscription = Subscription(
                id=str(uuid.uuid4()),
                user_id=data.user_id,
                platform=data.platform,
                billing_key=data.billing_key,
                status=data.status,
                expires_at=data.expires_at,
                created_at=now,
                updated_at=now,
            )
            self._subscriptions[subscription.id] = subscription
            self._billing_keys[subscription.billing_key] = subscription.id
            return subscription.model_copy()

    def update(self, subscription_id: str, data: UpdateSubscriptionData) -> Subscription:
        with self._lock:
            existing = self._subscriptions.get(subscription_id)
            if existing is None:
                raise SubscriptionUpdateFailedError(
                    f"Subscription not found for id: {subscription_id}"
                )

            changes = data.model_dump(exclude_none=True)
            changes["updated_at"] = utc_now()
            updated = existing.model_copy(update=changes)
            self._subscriptions[subscription_id] = updated
            return updated.model_copy()

    def find_webhook_log(self, event_id: str) -> Optional[WebhookLog]:
        with self._lock:
            log = self._webhook_logs.get(event_id)
            return log.model_copy() if log else None

    def create_webhook_log(self, data: CreateWebhookLogData) -> WebhookLog:
        with self._lock:
            if data.event_id in self._webhook_logs:
                raise DuplicateWebhookEventError(data.event_id)

            log = WebhookLog(**data.model_dump())
            self._webhook_logs[log.event_id] = log
            return log.model_copy()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the store lock and restore the prior state if the block raises."""
        with self._lock:
            snapshot = (
                copy.copy(self._subscriptions),
                copy.copy(self._billing_keys),
                copy.copy(self._webhook_logs),
            )
            try:
                yield
            except BaseException:
                self._subscriptions, self._billing_keys, self._webhook_logs = snapshot
                raise

    def count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def count_webhook_logs(self) -> int:
        with self._lock:
            return len(self._webhook_logs)

    def clear(self) -> None:
        """Clear all subscriptions and webhook logs.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._subscriptions.clear()
            self._billing_keys.clear()
            self._webhook_logs.clear()

    def __len__(self) -> int:
        return self.count()

    def __repr__(self) -> str:
        return (
            f"InMemorySubscriptionStore(subscriptions={self.count()}, "
            f"webhook_logs={self.count_webhook_logs()})"
        )


# Global store instance
_store_instance: Optional[InMemorySubscriptionStore] = None
_store_lock = threading.Lock()


def get_subscription_store() -> InMemorySubscriptionStore:
    """Get global subscription store instance (singleton).

    Returns:
        InMemorySubscriptionStore instance
    """
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = InMemorySubscriptionStore()
    return _store_instance


def reset_subscription_store() -> None:
    """Reset global subscription store (clears all data)."""
    get_subscription_store().clear()
