"""API response models for subscription and webhook endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .subscription import Subscription
from .user import User


class SubscriptionResponse(BaseModel):
    id: str
    platform: str
    billingKey: str
    status: str
    expiresAt: datetime
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            platform=subscription.platform.value,
            billingKey=subscription.billing_key,
            status=subscription.status.value,
            expiresAt=subscription.expires_at,
            createdAt=subscription.created_at,
            updatedAt=subscription.updated_at,
        )


class UserEntitlementResponse(BaseModel):
    id: str
    accountTier: str
    subscriptionExpiresAt: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserEntitlementResponse":
        return cls(
            id=user.id,
            accountTier=user.account_tier.value,
            subscriptionExpiresAt=user.subscription_expires_at,
        )


class VerifySubscriptionResponse(BaseModel):
    success: bool = True
    user: UserEntitlementResponse
    subscription: SubscriptionResponse


class RestoreSubscriptionResponse(BaseModel):
    success: bool = True
    restored: bool = True
    user: UserEntitlementResponse
    subscription: SubscriptionResponse


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to the store for every delivery."""

    received: bool = True


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable message")
    details: Optional[dict[str, Any]] = None
