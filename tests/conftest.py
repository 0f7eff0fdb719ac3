"""Shared fixtures: isolated stores, a frozen clock and fake store services."""

import base64
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from iap_entitlements.models.subscription import (
    CreateSubscriptionData,
    SubscriptionPlatform,
    SubscriptionStatus,
)
from iap_entitlements.models.user import AccountTier, User
from iap_entitlements.repositories.subscription_store import InMemorySubscriptionStore
from iap_entitlements.repositories.user_store import InMemoryUserStore
from iap_entitlements.services.clock import FrozenClock

NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

# originalTransactionId the fake App Store resolves receipts to
APPLE_ORIGINAL_TRANSACTION_ID = "2000000000000001"


def to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def to_rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


class FakeAppleService:
    """Stands in for AppleStoreService; returns library-shaped objects."""

    def __init__(self, expires_at: Optional[datetime] = None, fail: bool = False):
        self.expires_at = expires_at
        self.fail = fail
        self.original_transaction_id: Optional[str] = APPLE_ORIGINAL_TRANSACTION_ID
        self.notifications: dict[str, Any] = {}
        self.transactions: dict[str, Any] = {}
        self.receipts: list[str] = []

    def validate_receipt(self, receipt: str):
        self.receipts.append(receipt)
        if self.fail:
            raise ValueError("No transaction found in receipt")
        return SimpleNamespace(
            originalTransactionId=self.original_transaction_id,
            expiresDate=to_millis(self.expires_at) if self.expires_at else None,
        )

    def add_notification(
        self,
        signed_payload: str,
        notification_type: str,
        original_transaction_id: str,
        expires_at: Optional[datetime] = None,
        notification_uuid: Optional[str] = "notif-1",
    ) -> None:
        signed_transaction = f"signed-{signed_payload}"
        self.notifications[signed_payload] = SimpleNamespace(
            rawNotificationType=notification_type,
            notificationType=SimpleNamespace(value=notification_type),
            notificationUUID=notification_uuid,
            data=SimpleNamespace(signedTransactionInfo=signed_transaction),
        )
        self.transactions[signed_transaction] = SimpleNamespace(
            originalTransactionId=original_transaction_id,
            expiresDate=to_millis(expires_at) if expires_at else None,
        )

    def verify_notification(self, signed_payload: str):
        if signed_payload not in self.notifications:
            raise ValueError("Invalid signature")
        return self.notifications[signed_payload]

    def verify_transaction(self, signed_transaction: str):
        return self.transactions[signed_transaction]

    @staticmethod
    def to_json(decoded: Any) -> str:
        return json.dumps({"notificationType": decoded.rawNotificationType})


class FakeGoogleService:
    """Stands in for GoogleStoreService."""

    def __init__(self, expires_at: Optional[datetime] = None, fail: bool = False):
        self.expires_at = expires_at
        self.fail = fail
        self.lookups: list[str] = []

    def validate_receipt(self, purchase_token: str) -> dict[str, Any]:
        self.lookups.append(purchase_token)
        if self.fail:
            raise ValueError("No subscription data returned from Google Play")
        if self.expires_at is None:
            return {"lineItems": []}
        return {
            "subscriptionState": "SUBSCRIPTION_STATE_ACTIVE",
            "lineItems": [{"productId": "premium.monthly", "expiryTime": to_rfc3339(self.expires_at)}],
        }

    @staticmethod
    def decode_pubsub_message(data: str):
        from iap_entitlements.services.google_store import GoogleStoreService

        return GoogleStoreService.decode_pubsub_message(data)


def google_push_body(
    notification_type: Optional[int] = None,
    purchase_token: str = "purchase-token-1",
    message_id: Optional[str] = "msg-1",
    test: bool = False,
) -> dict[str, Any]:
    """Pub/Sub push body wrapping an RTDN payload."""
    notification: dict[str, Any] = {
        "version": "1.0",
        "packageName": "com.example.app",
        "eventTimeMillis": str(to_millis(NOW)),
    }
    if test:
        notification["testNotification"] = {"version": "1.0"}
    if notification_type is not None:
        notification["subscriptionNotification"] = {
            "version": "1.0",
            "notificationType": notification_type,
            "purchaseToken": purchase_token,
            "subscriptionId": "premium.monthly",
        }
    message: dict[str, Any] = {
        "data": base64.b64encode(json.dumps(notification).encode("utf-8")).decode("ascii"),
    }
    if message_id:
        message["messageId"] = message_id
    return {"message": message, "subscription": "projects/p/subscriptions/rtdn"}


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def subscription_store():
    store = InMemorySubscriptionStore()
    yield store
    store.clear()


@pytest.fixture
def user_store():
    store = InMemoryUserStore()
    yield store
    store.clear()


@pytest.fixture
def user(user_store):
    """Free-tier user 'user-1'."""
    return user_store.create(User(id="user-1", account_tier=AccountTier.FREE))


@pytest.fixture
def make_subscription(subscription_store):
    """Factory inserting a subscription directly into the store."""

    def _make(
        billing_key: str = "b1",
        user_id: str = "user-1",
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        expires_at: datetime = NOW + timedelta(days=30),
        platform: SubscriptionPlatform = SubscriptionPlatform.IOS,
    ):
        return subscription_store.create(
            CreateSubscriptionData(
                user_id=user_id,
                platform=platform,
                billing_key=billing_key,
                status=status,
                expires_at=expires_at,
            )
        )

    return _make


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def apple_service():
    """Apple service whose receipts expire 30 days from NOW."""
    return FakeAppleService(expires_at=NOW + timedelta(days=30))


@pytest.fixture
def google_service():
    """Google service whose purchase tokens expire 30 days from NOW."""
    return FakeGoogleService(expires_at=NOW + timedelta(days=30))


@pytest.fixture
def push_body():
    """Builder for Pub/Sub push bodies (see google_push_body)."""
    return google_push_body


@pytest.fixture
def container(apple_service, google_service, subscription_store, user_store, clock):
    """Service container wired with fake store services and isolated stores."""
    from iap_entitlements.dependencies import build_container
    from iap_entitlements.models.settings import EntitlementsConfig

    return build_container(
        EntitlementsConfig(),
        apple_service=apple_service,
        google_service=google_service,
        subscriptions=subscription_store,
        users=user_store,
        clock=clock,
    )


@pytest.fixture
def client(container):
    """TestClient running the app lifespan around the injected container."""
    from fastapi.testclient import TestClient

    from iap_entitlements.main import create_app

    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def apple_key():
    """Billing key the fake App Store resolves every receipt to."""
    return APPLE_ORIGINAL_TRANSACTION_ID
