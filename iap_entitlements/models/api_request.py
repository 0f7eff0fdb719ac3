"""API request models for subscription and webhook endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from .subscription import SubscriptionPlatform


class VerifySubscriptionRequest(BaseModel):
    """Request to verify a purchase receipt and activate the subscription."""

    platform: SubscriptionPlatform = Field(..., description="Purchase platform")
    receipt: str = Field(..., min_length=1, description="App receipt (iOS) or purchase token (Android)")
    billing_key: str = Field(..., min_length=1, alias="billingKey", description="Store billing key")
    product_id: str = Field(..., min_length=1, alias="productId", description="Store product ID")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "platform": "ios",
                "receipt": "MIIT...",
                "billingKey": "2000000456789012",
                "productId": "premium.monthly",
            }
        }


class RestoreSubscriptionRequest(BaseModel):
    """Request to restore an existing subscription onto the calling user."""

    platform: SubscriptionPlatform = Field(..., description="Purchase platform")
    billing_key: str = Field(..., min_length=1, alias="billingKey", description="Store billing key")
    receipt: Optional[str] = Field(None, description="Optional receipt for revalidation")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "platform": "android",
                "billingKey": "opaque-purchase-token",
            }
        }


class AppleNotificationRequest(BaseModel):
    """App Store Server Notification V2 body."""

    signedPayload: str = Field(..., description="JWS-signed notification payload")


class PubSubMessage(BaseModel):
    """Pub/Sub push message envelope."""

    data: Optional[str] = Field(None, description="Base64-encoded notification JSON")
    messageId: Optional[str] = Field(None, description="Pub/Sub message ID")
    publishTime: Optional[str] = None


class GooglePushRequest(BaseModel):
    """Pub/Sub push body carrying a Real-time Developer Notification."""

    message: PubSubMessage
    subscription: Optional[str] = None
