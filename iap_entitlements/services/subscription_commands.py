"""User-initiated subscription flows: verify and restore.

Both commands validate through the ValidatorRegistry, upsert the
subscription keyed by billing key and mirror the result onto the user's
entitlement fields. Errors are surfaced to the caller; nothing is retried.
"""

from typing import Optional

from pydantic import BaseModel

from iap_entitlements.exceptions import (
    DuplicateBillingKeyError,
    InvalidReceiptError,
    NoActiveSubscriptionError,
    SubscriptionCreationFailedError,
    SubscriptionExpiredError,
)
from iap_entitlements.logging_config import get_logger, mask_key
from iap_entitlements.models.subscription import (
    CreateSubscriptionData,
    Subscription,
    SubscriptionPlatform,
    SubscriptionStatus,
)
from iap_entitlements.models.user import User
from iap_entitlements.repositories.subscription_store import (
    SubscriptionRepository,
    get_subscription_store,
)
from iap_entitlements.repositories.user_store import UserRepository, get_user_store
from iap_entitlements.services.clock import Clock
from iap_entitlements.services.entitlement import grant_premium, update_subscription
from iap_entitlements.services.receipt_validator import ValidateReceiptInput
from iap_entitlements.services.validator_registry import ValidatorRegistry

logger = get_logger(__name__)


class VerifySubscriptionInput(BaseModel):
    platform: SubscriptionPlatform
    receipt: str
    billing_key: str
    product_id: str


class VerifySubscriptionResult(BaseModel):
    user: User
    subscription: Subscription


class RestoreSubscriptionInput(BaseModel):
    platform: SubscriptionPlatform
    billing_key: str
    receipt: Optional[str] = None


class RestoreSubscriptionResult(BaseModel):
    restored: bool = True
    user: User
    subscription: Subscription


class VerifySubscriptionCommand:
    """Validate a receipt and activate the subscription for a user.

    Safe to call repeatedly for the same billing key: the subscription is
    upserted, never duplicated.

    Args:
        registry: Validators for the configured platforms
        subscription_repository: Subscription storage (defaults to global instance)
        user_repository: User storage (defaults to global instance)
        clock: Time source
    """

    def __init__(
        self,
        registry: ValidatorRegistry,
        subscription_repository: Optional[SubscriptionRepository] = None,
        user_repository: Optional[UserRepository] = None,
        clock: Optional[Clock] = None,
    ):
        self.registry = registry
        self.subscriptions = subscription_repository if subscription_repository is not None else get_subscription_store()
        self.users = user_repository if user_repository is not None else get_user_store()
        self.clock = clock if clock is not None else Clock()

    def execute(self, data: VerifySubscriptionInput, user_id: str) -> VerifySubscriptionResult:
        """Run the verify flow.

        Args:
            data: Receipt and billing key from the client
            user_id: Authenticated user

        Returns:
            Refreshed subscription and user entitlement

        Raises:
            PlatformNotSupportedError: If the platform has no validator
            InvalidReceiptError: If the store rejects the receipt
            SubscriptionCreationFailedError: If storage fails to insert a new subscription
        """
        validator = self.registry.get(data.platform)
        result = validator.validate_receipt(
            ValidateReceiptInput(
                receipt=data.receipt,
                billing_key=data.billing_key,
                product_id=data.product_id,
            )
        )
        expires_at = result.expires_at
        # The store decides the key: App Store receipts resolve to their originalTransactionId
        billing_key = result.billing_key
        if billing_key != data.billing_key:
            logger.info(
                "verify_billing_key_resolved",
                client_billing_key=mask_key(data.billing_key),
                billing_key=mask_key(billing_key),
            )

        existing = self.subscriptions.find_by_billing_key(billing_key)
        if existing is None:
            try:
                subscription = self.subscriptions.create(
                    CreateSubscriptionData(
                        user_id=user_id,
                        platform=data.platform,
                        billing_key=billing_key,
                        status=SubscriptionStatus.ACTIVE,
                        expires_at=expires_at,
                    )
                )
                logger.info(
                    "subscription_created",
                    subscription_id=subscription.id,
                    platform=data.platform.value,
                    billing_key=mask_key(billing_key),
                    user_id=user_id,
                )
            except DuplicateBillingKeyError:
                # Lost a race with a concurrent verify; update the winner instead
                existing = self.subscriptions.find_by_billing_key(billing_key)
                if existing is None:
                    raise
            except Exception as e:
                logger.error(
                    "subscription_create_failed",
                    billing_key=mask_key(billing_key),
                    user_id=user_id,
                    error_type=type(e).__name__,
                )
                raise SubscriptionCreationFailedError() from e

        if existing is not None:
            subscription = update_subscription(
                self.subscriptions,
                existing,
                status=SubscriptionStatus.ACTIVE,
                expires_at=expires_at,
                reason="verify",
            )

        user = grant_premium(self.users, user_id, expires_at, reason="verify")

        logger.info(
            "subscription_verified",
            subscription_id=subscription.id,
            user_id=user_id,
            expires_at=expires_at.isoformat(),
        )
        return VerifySubscriptionResult(user=user, subscription=subscription)


class RestoreSubscriptionCommand:
    """Re-attach an existing subscription to the calling user.

    Without a receipt the stored expiry decides. A receipt that fails
    revalidation, or resolves to a different billing key, makes the restore
    fail. Entitlement moves to the requesting user even if another user owns
    the record (device transfer).

    Args:
        registry: Validators for the configured platforms
        subscription_repository: Subscription storage (defaults to global instance)
        user_repository: User storage (defaults to global instance)
        clock: Time source
    """

    def __init__(
        self,
        registry: ValidatorRegistry,
        subscription_repository: Optional[SubscriptionRepository] = None,
        user_repository: Optional[UserRepository] = None,
        clock: Optional[Clock] = None,
    ):
        self.registry = registry
        self.subscriptions = subscription_repository if subscription_repository is not None else get_subscription_store()
        self.users = user_repository if user_repository is not None else get_user_store()
        self.clock = clock if clock is not None else Clock()

    def execute(self, data: RestoreSubscriptionInput, user_id: str) -> RestoreSubscriptionResult:
        """Run the restore flow.

        Raises:
            NoActiveSubscriptionError: If no subscription has this billing key
            SubscriptionExpiredError: If the subscription is not active after revalidation
        """
        existing = self.subscriptions.find_by_billing_key(data.billing_key)
        if existing is None:
            raise NoActiveSubscriptionError()

        expires_at = existing.expires_at
        is_active = expires_at > self.clock.now()

        if data.receipt:
            try:
                validator = self.registry.get(data.platform)
                result = validator.validate_receipt(
                    ValidateReceiptInput(receipt=data.receipt, billing_key=data.billing_key)
                )
                if result.billing_key != existing.billing_key:
                    raise InvalidReceiptError("Receipt belongs to a different subscription")
                expires_at = result.expires_at
                is_active = expires_at > self.clock.now()
            except Exception as e:
                logger.warning(
                    "restore_revalidation_failed",
                    billing_key=mask_key(data.billing_key),
                    error_type=type(e).__name__,
                )
                is_active = False

        if not is_active:
            raise SubscriptionExpiredError()

        subscription = update_subscription(
            self.subscriptions,
            existing,
            status=SubscriptionStatus.ACTIVE,
            expires_at=expires_at,
            reason="restore",
        )

        if existing.user_id != user_id:
            logger.warning(
                "subscription_restored_by_other_user",
                subscription_id=existing.id,
                owner_user_id=existing.user_id,
                requesting_user_id=user_id,
            )

        user = grant_premium(self.users, user_id, expires_at, reason="restore")

        logger.info(
            "subscription_restored",
            subscription_id=subscription.id,
            user_id=user_id,
            expires_at=expires_at.isoformat(),
        )
        return RestoreSubscriptionResult(restored=True, user=user, subscription=subscription)
