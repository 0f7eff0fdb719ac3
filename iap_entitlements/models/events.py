"""Google Play RTDN models - DeveloperNotification and its payloads.

Maps the Real-time Developer Notifications JSON carried in Pub/Sub
message data. Field aliases follow Google's camelCase wire names.
"""

from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, Field


class GoogleNotificationType(IntEnum):
    """RTDN subscription notification types matching Google Play values."""

    SUBSCRIPTION_RECOVERED = 1  # Recovered from account hold
    SUBSCRIPTION_RENEWED = 2  # Active subscription renewed
    SUBSCRIPTION_CANCELED = 3  # Voluntarily or involuntarily canceled
    SUBSCRIPTION_PURCHASED = 4  # New subscription purchased
    SUBSCRIPTION_ON_HOLD = 5  # Entered account hold
    SUBSCRIPTION_IN_GRACE_PERIOD = 6  # Entered grace period
    SUBSCRIPTION_RESTARTED = 7  # Restored from Play > Account > Subscriptions
    SUBSCRIPTION_PRICE_CHANGE_CONFIRMED = 8
    SUBSCRIPTION_DEFERRED = 9
    SUBSCRIPTION_PAUSED = 10
    SUBSCRIPTION_PAUSE_SCHEDULE_CHANGED = 11
    SUBSCRIPTION_REVOKED = 12  # Revoked before expiry
    SUBSCRIPTION_EXPIRED = 13


class SubscriptionNotification(BaseModel):
    """Subscription notification payload within DeveloperNotification."""

    version: str = Field(default="1.0")
    notification_type: int = Field(..., alias="notificationType", description="Type of notification (1-13)")
    purchase_token: str = Field(..., alias="purchaseToken", description="Purchase token for the subscription")
    subscription_id: Optional[str] = Field(None, alias="subscriptionId", description="Subscription product ID")

    class Config:
        populate_by_name = True


class TestNotification(BaseModel):
    """Test notification sent when RTDN is configured in the Play Console."""

    __test__ = False  # not a pytest class

    version: str = Field(default="1.0")


class DeveloperNotification(BaseModel):
    """Root RTDN message published to Pub/Sub."""

    version: str = Field(default="1.0")
    package_name: Optional[str] = Field(None, alias="packageName")
    event_time_millis: Optional[int] = Field(None, alias="eventTimeMillis")

    # Only one of these will be populated per notification
    subscription_notification: Optional[SubscriptionNotification] = Field(
        None, alias="subscriptionNotification"
    )
    test_notification: Optional[TestNotification] = Field(None, alias="testNotification")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "version": "1.0",
                "packageName": "com.example.app",
                "eventTimeMillis": "1700000000000",
                "subscriptionNotification": {
                    "version": "1.0",
                    "notificationType": GoogleNotificationType.SUBSCRIPTION_RENEWED,
                    "purchaseToken": "opaque-purchase-token",
                    "subscriptionId": "premium.monthly",
                },
            }
        }
