"""Pydantic models for API requests, responses, and domain objects."""

# Configuration models
from .settings import (
    AppleStoreSettings,
    GoogleStoreSettings,
    RtdnSettings,
    EntitlementsConfig,
)

# Subscription models
from .subscription import (
    SubscriptionPlatform,
    SubscriptionStatus,
    Subscription,
    CreateSubscriptionData,
    UpdateSubscriptionData,
)

# User models
from .user import (
    AccountTier,
    User,
    UpdateUserEntitlementData,
)

# Webhook models
from .webhook import (
    WebhookPlatform,
    CanonicalEventType,
    WebhookEvent,
    WebhookLog,
    CreateWebhookLogData,
    ProcessWebhookResult,
)

# Event models (RTDN)
from .events import (
    GoogleNotificationType,
    SubscriptionNotification,
    TestNotification,
    DeveloperNotification,
)

# API request models
from .api_request import (
    VerifySubscriptionRequest,
    RestoreSubscriptionRequest,
    AppleNotificationRequest,
    PubSubMessage,
    GooglePushRequest,
)

# API response models
from .api_response import (
    SubscriptionResponse,
    UserEntitlementResponse,
    VerifySubscriptionResponse,
    RestoreSubscriptionResponse,
    WebhookAckResponse,
    ErrorResponse,
)

__all__ = [
    # Configuration
    "AppleStoreSettings",
    "GoogleStoreSettings",
    "RtdnSettings",
    "EntitlementsConfig",
    # Subscription
    "SubscriptionPlatform",
    "SubscriptionStatus",
    "Subscription",
    "CreateSubscriptionData",
    "UpdateSubscriptionData",
    # User
    "AccountTier",
    "User",
    "UpdateUserEntitlementData",
    # Webhooks
    "WebhookPlatform",
    "CanonicalEventType",
    "WebhookEvent",
    "WebhookLog",
    "CreateWebhookLogData",
    "ProcessWebhookResult",
    # Events
    "GoogleNotificationType",
    "SubscriptionNotification",
    "TestNotification",
    "DeveloperNotification",
    # API requests
    "VerifySubscriptionRequest",
    "RestoreSubscriptionRequest",
    "AppleNotificationRequest",
    "PubSubMessage",
    "GooglePushRequest",
    # API responses
    "SubscriptionResponse",
    "UserEntitlementResponse",
    "VerifySubscriptionResponse",
    "RestoreSubscriptionResponse",
    "WebhookAckResponse",
    "ErrorResponse",
]
