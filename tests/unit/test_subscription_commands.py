"""Tests for VerifySubscriptionCommand and RestoreSubscriptionCommand."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from iap_entitlements.exceptions import (
    DuplicateBillingKeyError,
    InvalidReceiptError,
    NoActiveSubscriptionError,
    PlatformNotSupportedError,
    SubscriptionCreationFailedError,
    SubscriptionExpiredError,
)
from iap_entitlements.models.subscription import SubscriptionPlatform, SubscriptionStatus
from iap_entitlements.models.user import AccountTier, User
from iap_entitlements.repositories.subscription_store import InMemorySubscriptionStore
from iap_entitlements.repositories.user_store import InMemoryUserStore
from iap_entitlements.services.receipt_validator import AppleReceiptValidator, GoogleReceiptValidator
from iap_entitlements.services.subscription_commands import (
    RestoreSubscriptionCommand,
    RestoreSubscriptionInput,
    VerifySubscriptionCommand,
    VerifySubscriptionInput,
)
from iap_entitlements.services.validator_registry import ValidatorRegistry


@pytest.fixture
def registry(apple_service, google_service):
    return ValidatorRegistry([AppleReceiptValidator(apple_service), GoogleReceiptValidator(google_service)])


@pytest.fixture
def verify(registry, subscription_store, user_store, clock):
    return VerifySubscriptionCommand(registry, subscription_store, user_store, clock)


@pytest.fixture
def restore(registry, subscription_store, user_store, clock):
    return RestoreSubscriptionCommand(registry, subscription_store, user_store, clock)


APPLE_KEY = "2000000000000001"


def verify_input(billing_key=APPLE_KEY, platform=SubscriptionPlatform.IOS):
    return VerifySubscriptionInput(platform=platform, receipt="r1", billing_key=billing_key, product_id="p1")


class TestVerifySubscription:
    """Test the verify flow."""

    def test_fresh_verify_creates_active_subscription(self, verify, user, subscription_store, user_store, now):
        """Fresh verify: new active subscription and premium user."""
        result = verify.execute(verify_input(), "user-1")

        subscription = subscription_store.find_by_billing_key(APPLE_KEY)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.expires_at == now + timedelta(days=30)
        assert subscription.user_id == "user-1"
        assert result.subscription.id == subscription.id

        stored_user = user_store.find_by_id("user-1")
        assert stored_user.account_tier == AccountTier.PREMIUM
        assert stored_user.subscription_expires_at == now + timedelta(days=30)
        assert result.user.account_tier == AccountTier.PREMIUM

    def test_repeat_verify_upserts(self, verify, user, subscription_store, apple_service, now):
        """Verifying the same billing key twice keeps one record with the latest expiry."""
        first = verify.execute(verify_input(), "user-1")
        apple_service.expires_at = now + timedelta(days=60)

        second = verify.execute(verify_input(), "user-1")

        assert subscription_store.count() == 1
        assert second.subscription.id == first.subscription.id
        assert second.subscription.expires_at == now + timedelta(days=60)

    def test_verify_reactivates_expired_subscription(self, verify, user, make_subscription, now):
        make_subscription(billing_key=APPLE_KEY, status=SubscriptionStatus.EXPIRED, expires_at=now - timedelta(days=3))

        result = verify.execute(verify_input(), "user-1")

        assert result.subscription.status == SubscriptionStatus.ACTIVE
        assert result.subscription.expires_at == now + timedelta(days=30)

    def test_android_verify_uses_billing_key(self, verify, user, google_service):
        verify.execute(verify_input(billing_key="purchase-token", platform=SubscriptionPlatform.ANDROID), "user-1")

        assert google_service.lookups == ["purchase-token"]

    def test_invalid_receipt_writes_nothing(self, verify, user, apple_service, subscription_store, user_store):
        apple_service.fail = True

        with pytest.raises(InvalidReceiptError):
            verify.execute(verify_input(), "user-1")

        assert subscription_store.count() == 0
        assert user_store.find_by_id("user-1").account_tier == AccountTier.FREE

    def test_unsupported_platform(self, subscription_store, user_store, clock, apple_service, user):
        command = VerifySubscriptionCommand(
            ValidatorRegistry([AppleReceiptValidator(apple_service)]), subscription_store, user_store, clock
        )

        with pytest.raises(PlatformNotSupportedError):
            command.execute(verify_input(platform=SubscriptionPlatform.ANDROID), "user-1")

    def test_lost_create_race_updates_winner(self, verify, user, subscription_store, make_subscription, now):
        """A concurrent verify that inserted first is updated instead of duplicated."""
        winner = make_subscription(billing_key=APPLE_KEY, expires_at=now + timedelta(days=1))
        original_find = subscription_store.find_by_billing_key
        calls = []

        def find_missing_first(billing_key):
            calls.append(billing_key)
            return None if len(calls) == 1 else original_find(billing_key)

        with patch.object(subscription_store, "find_by_billing_key", side_effect=find_missing_first):
            result = verify.execute(verify_input(), "user-1")

        assert result.subscription.id == winner.id
        assert result.subscription.expires_at == now + timedelta(days=30)
        assert subscription_store.count() == 1

    def test_create_conflict_without_winner_propagates(self, verify, user, subscription_store):
        with patch.object(subscription_store, "find_by_billing_key", return_value=None), patch.object(
            subscription_store, "create", side_effect=DuplicateBillingKeyError(APPLE_KEY)
        ):
            with pytest.raises(DuplicateBillingKeyError):
                verify.execute(verify_input(), "user-1")

    def test_storage_failure_on_create_is_wrapped(self, verify, user, subscription_store, user_store):
        with patch.object(subscription_store, "create", side_effect=OSError("disk full")):
            with pytest.raises(SubscriptionCreationFailedError):
                verify.execute(verify_input(), "user-1")

        assert user_store.find_by_id("user-1").account_tier == AccountTier.FREE

    def test_apple_verify_stores_original_transaction_id(self, verify, user, subscription_store):
        """The client-sent key is replaced by the one the App Store resolves the receipt to."""
        result = verify.execute(verify_input(billing_key="2000000000000099"), "user-1")

        assert result.subscription.billing_key == APPLE_KEY
        assert subscription_store.find_by_billing_key("2000000000000099") is None
        assert subscription_store.count() == 1

    def test_apple_verify_with_other_key_upserts_existing(self, verify, user, make_subscription, subscription_store, now):
        existing = make_subscription(billing_key=APPLE_KEY, expires_at=now + timedelta(days=1))

        result = verify.execute(verify_input(billing_key="client-key"), "user-1")

        assert result.subscription.id == existing.id
        assert subscription_store.count() == 1


class TestInjectedStores:
    """Injected stores are used even while empty."""

    def test_verify_keeps_empty_stores(self, registry, clock):
        subscriptions, users = InMemorySubscriptionStore(), InMemoryUserStore()

        command = VerifySubscriptionCommand(registry, subscriptions, users, clock)

        assert command.subscriptions is subscriptions
        assert command.users is users
        assert command.clock is clock

    def test_restore_keeps_empty_stores(self, registry, clock):
        subscriptions, users = InMemorySubscriptionStore(), InMemoryUserStore()

        command = RestoreSubscriptionCommand(registry, subscriptions, users, clock)

        assert command.subscriptions is subscriptions
        assert command.users is users

    def test_verify_writes_to_injected_store(self, registry, clock):
        subscriptions, users = InMemorySubscriptionStore(), InMemoryUserStore()
        users.create(User(id="user-1"))

        VerifySubscriptionCommand(registry, subscriptions, users, clock).execute(verify_input(), "user-1")

        assert len(subscriptions) == 1
        assert users.find_by_id("user-1").account_tier == AccountTier.PREMIUM


class TestRestoreSubscription:
    """Test the restore flow."""

    def test_unknown_billing_key(self, restore, user):
        """Restore never creates a subscription."""
        with pytest.raises(NoActiveSubscriptionError):
            restore.execute(
                RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key="unknown"), "user-1"
            )

    def test_expired_restore_without_receipt(self, restore, user, make_subscription, now):
        """Expired restore without receipt raises SubscriptionExpired."""
        make_subscription(billing_key="b2", status=SubscriptionStatus.EXPIRED, expires_at=now - timedelta(days=1))

        with pytest.raises(SubscriptionExpiredError):
            restore.execute(RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key="b2"), "user-1")

    def test_restore_from_stored_expiry(self, restore, user, make_subscription, user_store, now):
        make_subscription(billing_key="b1", status=SubscriptionStatus.CANCELED, expires_at=now + timedelta(days=5))

        result = restore.execute(
            RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key="b1"), "user-1"
        )

        assert result.restored is True
        assert result.subscription.status == SubscriptionStatus.ACTIVE
        assert result.subscription.expires_at == now + timedelta(days=5)
        assert user_store.find_by_id("user-1").account_tier == AccountTier.PREMIUM

    def test_receipt_revalidation_refreshes_expiry(self, restore, user, make_subscription, now):
        make_subscription(billing_key=APPLE_KEY, status=SubscriptionStatus.EXPIRED, expires_at=now - timedelta(days=1))

        result = restore.execute(
            RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key=APPLE_KEY, receipt="r1"), "user-1"
        )

        assert result.subscription.expires_at == now + timedelta(days=30)

    def test_failed_revalidation_is_treated_as_inactive(self, restore, user, make_subscription, apple_service, now):
        """A receipt that fails revalidation makes restore fail even if the stored expiry is current."""
        make_subscription(billing_key="b1", expires_at=now + timedelta(days=5))
        apple_service.fail = True

        with pytest.raises(SubscriptionExpiredError):
            restore.execute(
                RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key="b1", receipt="bad"),
                "user-1",
            )

    def test_receipt_for_other_subscription_fails_restore(
        self, restore, user, make_subscription, apple_service, user_store, now
    ):
        make_subscription(billing_key=APPLE_KEY, expires_at=now + timedelta(days=5))
        apple_service.original_transaction_id = "2000000000000777"

        with pytest.raises(SubscriptionExpiredError):
            restore.execute(
                RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key=APPLE_KEY, receipt="r1"),
                "user-1",
            )

        assert user_store.find_by_id("user-1").account_tier == AccountTier.FREE

    def test_restore_reassigns_entitlement_to_caller(
        self, restore, user, user_store, make_subscription, subscription_store, now
    ):
        """Device transfer: the requesting user gets premium, the record keeps its owner."""
        user_store.create(User(id="user-2"))
        make_subscription(billing_key="b1", user_id="user-1", expires_at=now + timedelta(days=5))

        restore.execute(RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key="b1"), "user-2")

        assert user_store.find_by_id("user-2").account_tier == AccountTier.PREMIUM
        assert subscription_store.find_by_billing_key("b1").user_id == "user-1"

    def test_restore_boundary_expiry_equal_to_now_is_expired(self, restore, user, make_subscription, now):
        make_subscription(billing_key="b1", expires_at=now)

        with pytest.raises(SubscriptionExpiredError):
            restore.execute(RestoreSubscriptionInput(platform=SubscriptionPlatform.IOS, billing_key="b1"), "user-1")
