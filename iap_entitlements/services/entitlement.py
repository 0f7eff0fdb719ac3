"""Write helpers shared by the commands and the webhook processor.

Every subscription or entitlement write goes through here so each
transition is state-logged the same way.
"""

from datetime import datetime
from typing import Any, Optional

from iap_entitlements.models.subscription import Subscription, SubscriptionStatus, UpdateSubscriptionData
from iap_entitlements.models.user import AccountTier, UpdateUserEntitlementData, User
from iap_entitlements.repositories.subscription_store import SubscriptionRepository
from iap_entitlements.repositories.user_store import UserRepository
from iap_entitlements.state_logger import (
    log_entitlement_change,
    log_expiry_change,
    log_subscription_status_change,
)


def update_subscription(
    repository: SubscriptionRepository,
    subscription: Subscription,
    status: Optional[SubscriptionStatus] = None,
    expires_at: Optional[datetime] = None,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> Subscription:
    """Overwrite status and/or expiry and log what changed."""
    updated = repository.update(
        subscription.id,
        UpdateSubscriptionData(status=status, expires_at=expires_at),
    )

    if updated.status != subscription.status:
        log_subscription_status_change(
            billing_key=updated.billing_key,
            subscription_id=updated.id,
            old_status=subscription.status.value,
            new_status=updated.status.value,
            reason=reason,
            user_id=updated.user_id,
            **extra_context,
        )
    if updated.expires_at != subscription.expires_at:
        log_expiry_change(
            billing_key=updated.billing_key,
            subscription_id=updated.id,
            old_expires_at=subscription.expires_at,
            new_expires_at=updated.expires_at,
            reason=reason,
            **extra_context,
        )
    return updated


def grant_premium(
    repository: UserRepository,
    user_id: str,
    expires_at: datetime,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> User:
    user = repository.update(
        user_id,
        UpdateUserEntitlementData(account_tier=AccountTier.PREMIUM, subscription_expires_at=expires_at),
    )
    log_entitlement_change(user_id, AccountTier.PREMIUM.value, expires_at, reason=reason, **extra_context)
    return user


def revoke_premium(
    repository: UserRepository,
    user_id: str,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> User:
    user = repository.update(
        user_id,
        UpdateUserEntitlementData(account_tier=AccountTier.FREE, subscription_expires_at=None),
    )
    log_entitlement_change(user_id, AccountTier.FREE.value, None, reason=reason, **extra_context)
    return user
