"""Subscription state and lifecycle models.

One record per store billing key; status follows the canonical lifecycle
shared by both stores.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionPlatform(str, Enum):
    """Client platform the subscription was purchased on."""

    IOS = "ios"
    ANDROID = "android"


class SubscriptionStatus(str, Enum):
    """Canonical subscription status."""

    ACTIVE = "active"  # Paid up, entitlement granted
    EXPIRED = "expired"  # Ended, entitlement revoked
    CANCELED = "canceled"  # Auto-renew turned off, valid until expiry
    GRACE_PERIOD = "grace_period"  # Renewal failed, store still retrying billing


class Subscription(BaseModel):
    """Subscription record keyed by the store billing key."""

    id: str = Field(..., description="Internal subscription ID")
    user_id: str = Field(..., description="User that owns the subscription")
    platform: SubscriptionPlatform = Field(..., description="Purchase platform")
    billing_key: str = Field(..., description="Store purchase/transaction token, globally unique")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE, description="Current status")
    expires_at: datetime = Field(..., description="Current expiry instant")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def is_active(self, now: datetime) -> bool:
        """Active status and not yet past expiry at `now` (pass the injected clock's time)."""
        return self.status == SubscriptionStatus.ACTIVE and self.expires_at > now

    def is_expired(self, now: datetime) -> bool:
        """Expired status or past expiry at `now`, whichever comes first."""
        return self.status == SubscriptionStatus.EXPIRED or self.expires_at <= now

    @property
    def is_in_grace_period(self) -> bool:
        return self.status == SubscriptionStatus.GRACE_PERIOD

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELED

    class Config:
        json_schema_extra = {
            "example": {
                "id": "6f1c1c3e-1b6e-4c1f-9d3a-1c1d1f0e2a11",
                "user_id": "user-123",
                "platform": "ios",
                "billing_key": "2000000456789012",
                "status": "active",
                "expires_at": "2026-11-17T00:00:00Z",
            }
        }


class CreateSubscriptionData(BaseModel):
    """Fields required to create a subscription record."""

    user_id: str
    platform: SubscriptionPlatform
    billing_key: str
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    expires_at: datetime


class UpdateSubscriptionData(BaseModel):
    """Partial subscription update; only provided fields are written."""

    status: Optional[SubscriptionStatus] = None
    expires_at: Optional[datetime] = None
