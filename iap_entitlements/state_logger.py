"""Simple state change logging for subscriptions and user entitlements.

Tracks state transitions with before/after values for debugging and auditing.
"""

from datetime import datetime
from typing import Any, Optional

from iap_entitlements.logging_config import get_logger, mask_key

logger = get_logger(__name__)


def log_subscription_status_change(
    billing_key: str,
    subscription_id: str,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log subscription status change.

    Args:
        billing_key: Store billing key of the subscription
        subscription_id: Internal subscription ID
        old_status: Previous status value
        new_status: New status value
        reason: Reason for status change
        **extra_context: Additional context (user_id, event_id, etc.)
    """
    logger.info(
        "subscription_status_changed",
        billing_key=mask_key(billing_key),
        subscription_id=subscription_id,
        old_status=str(old_status),
        new_status=str(new_status),
        reason=reason,
        **extra_context,
    )


def log_expiry_change(
    billing_key: str,
    subscription_id: str,
    old_expires_at: datetime,
    new_expires_at: datetime,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log subscription expiry change.

    Args:
        billing_key: Store billing key of the subscription
        subscription_id: Internal subscription ID
        old_expires_at: Previous expiry
        new_expires_at: New expiry
        reason: Reason for change (verify, restore, renewal, ...)
        **extra_context: Additional context
    """
    logger.info(
        "subscription_expiry_changed",
        billing_key=mask_key(billing_key),
        subscription_id=subscription_id,
        old_expires_at=old_expires_at.isoformat(),
        new_expires_at=new_expires_at.isoformat(),
        extension_days=round((new_expires_at - old_expires_at).total_seconds() / 86400, 2),
        reason=reason,
        **extra_context,
    )


def log_entitlement_change(
    user_id: str,
    account_tier: Any,
    subscription_expires_at: Optional[datetime],
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a write to a user's entitlement fields.

    Args:
        user_id: User whose entitlement was written
        account_tier: Tier after the write
        subscription_expires_at: Expiry after the write (None when revoked)
        reason: Reason for change
        **extra_context: Additional context
    """
    logger.info(
        "entitlement_changed",
        user_id=user_id,
        account_tier=str(account_tier),
        subscription_expires_at=subscription_expires_at.isoformat() if subscription_expires_at else None,
        reason=reason,
        **extra_context,
    )
