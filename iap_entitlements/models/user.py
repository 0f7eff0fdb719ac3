"""User entitlement models.

The user record is owned elsewhere; this package reads and writes only
the entitlement fields.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .subscription import utc_now


class AccountTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class User(BaseModel):
    """User entitlement view."""

    id: str
    account_tier: AccountTier = AccountTier.FREE
    subscription_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def has_active_subscription(self, now: Optional[datetime] = None) -> bool:
        """Premium tier with an expiry still in the future."""
        if self.account_tier != AccountTier.PREMIUM:
            return False
        if self.subscription_expires_at is None:
            return False
        return self.subscription_expires_at > (now or utc_now())


class UpdateUserEntitlementData(BaseModel):
    """Partial entitlement update.

    Only fields explicitly set are written, so subscription_expires_at=None
    clears the expiry while an omitted field leaves it alone.
    """

    account_tier: Optional[AccountTier] = None
    subscription_expires_at: Optional[datetime] = None
