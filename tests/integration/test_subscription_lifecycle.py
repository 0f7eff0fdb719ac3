"""End-to-end lifecycle scenarios through the HTTP API.

Verify, restore and webhook calls share one container, so each scenario
sees the state left behind by the previous step.
"""

from datetime import timedelta

from iap_entitlements.models.subscription import SubscriptionPlatform, SubscriptionStatus
from iap_entitlements.models.user import AccountTier


def verify(client, user_id, billing_key, platform="ios"):
    return client.post(
        "/subscriptions/verify",
        json={"platform": platform, "receipt": "receipt", "billingKey": billing_key, "productId": "premium.monthly"},
        headers={"X-User-Id": user_id},
    )


def restore(client, user_id, billing_key, platform="ios", receipt=None):
    body = {"platform": platform, "billingKey": billing_key}
    if receipt:
        body["receipt"] = receipt
    return client.post("/subscriptions/restore", json=body, headers={"X-User-Id": user_id})


class TestSubscriptionLifecycle:
    def test_fresh_verify(self, client, subscription_store, user_store, apple_key, now):
        """Free user verifies and becomes premium until the store expiry."""
        response = verify(client, "user-1", apple_key)

        assert response.status_code == 200
        subscription = subscription_store.find_by_billing_key(apple_key)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.user_id == "user-1"
        user = user_store.find_by_id("user-1")
        assert user.account_tier == AccountTier.PREMIUM
        assert user.subscription_expires_at == now + timedelta(days=30)

    def test_restore_expired_subscription_fails(self, client, make_subscription, user_store, now):
        """b2 expired yesterday and no receipt is sent: restore is refused."""
        make_subscription(billing_key="b2", expires_at=now - timedelta(days=1))

        response = restore(client, "user-1", "b2")

        assert response.status_code == 400
        assert response.json()["error"] == "errors.subscription.expired"
        assert user_store.find_by_id("user-1").account_tier == AccountTier.FREE

    def test_webhook_expire_after_verify(self, client, apple_service, subscription_store, user_store):
        """Expire notification for a verified subscription revokes premium."""
        verify(client, "user-1", "2000000000000001")
        apple_service.add_notification("jws-expired", "EXPIRED", "2000000000000001", notification_uuid="e1")

        client.post("/webhooks/apple", json={"signedPayload": "jws-expired"})

        assert subscription_store.find_by_billing_key("2000000000000001").status == SubscriptionStatus.EXPIRED
        user = user_store.find_by_id("user-1")
        assert user.account_tier == AccountTier.FREE
        assert user.subscription_expires_at is None

    def test_webhook_reaches_subscription_verified_with_client_key(
        self, client, apple_service, subscription_store, user_store, apple_key
    ):
        """The client's billing key differs from the receipt's originalTransactionId."""
        response = verify(client, "user-1", "2000000000000099")
        assert response.json()["subscription"]["billingKey"] == apple_key

        apple_service.add_notification("jws-expired", "EXPIRED", apple_key, notification_uuid="e2")
        client.post("/webhooks/apple", json={"signedPayload": "jws-expired"})

        assert subscription_store.find_by_billing_key("2000000000000099") is None
        assert subscription_store.find_by_billing_key(apple_key).status == SubscriptionStatus.EXPIRED
        assert subscription_store.count() == 1
        assert user_store.find_by_id("user-1").account_tier == AccountTier.FREE

    def test_unknown_event_type_changes_nothing(self, client, push_body, subscription_store, user_store):
        """A store notification outside the canonical set is ignored."""
        verify(client, "user-1", "purchase-token-1", platform="android")
        before = subscription_store.find_by_billing_key("purchase-token-1")

        response = client.post("/webhooks/google", json=push_body(7))

        assert response.json() == {"received": True}
        assert subscription_store.find_by_billing_key("purchase-token-1") == before
        assert user_store.find_by_id("user-1").account_tier == AccountTier.PREMIUM

    def test_full_android_lifecycle(self, client, push_body, subscription_store, user_store, clock, now):
        """Purchase, failed renewal, recovery, cancel and final expiry."""
        verify(client, "user-1", "purchase-token-1", platform="android")

        def send(code, message_id):
            client.post("/webhooks/google", json=push_body(code, message_id=message_id))
            return subscription_store.find_by_billing_key("purchase-token-1")

        assert send(6, "m1").status == SubscriptionStatus.GRACE_PERIOD
        assert user_store.find_by_id("user-1").account_tier == AccountTier.PREMIUM

        assert send(1, "m2").status == SubscriptionStatus.ACTIVE
        assert user_store.find_by_id("user-1").account_tier == AccountTier.PREMIUM

        assert send(3, "m3").status == SubscriptionStatus.CANCELED
        assert user_store.find_by_id("user-1").account_tier == AccountTier.PREMIUM

        clock.advance(days=31)
        assert send(13, "m4").status == SubscriptionStatus.EXPIRED
        assert user_store.find_by_id("user-1").account_tier == AccountTier.FREE
        assert subscription_store.count_webhook_logs() == 4

    def test_restore_on_new_device_after_verify(self, client, subscription_store, user_store, apple_key):
        """A second account restoring the same billing key takes over entitlement."""
        verify(client, "user-1", apple_key)

        response = restore(client, "user-2", apple_key, receipt="fresh-receipt")

        assert response.status_code == 200
        assert user_store.find_by_id("user-2").account_tier == AccountTier.PREMIUM
        assert subscription_store.find_by_billing_key(apple_key).user_id == "user-1"
        assert subscription_store.count() == 1

    def test_android_subscription_record(self, client, subscription_store):
        verify(client, "user-1", "purchase-token-1", platform="android")
        assert subscription_store.find_by_billing_key("purchase-token-1").platform == SubscriptionPlatform.ANDROID
