"""Exception hierarchy for subscription entitlement operations.

EntitlementError subclasses carry a stable error code and an HTTP status
so the API layer can render them without knowing each type.
"""

from typing import Any, Optional


class EntitlementError(Exception):
    """Base exception for errors surfaced to API callers."""

    code = "errors.internal"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Error body as returned by the API."""
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class PlatformNotSupportedError(EntitlementError):
    """No receipt validator is registered for the platform."""

    code = "errors.subscription.platform_not_supported"
    status_code = 400
    default_message = "Platform is not supported"

    def __init__(self, platform: Any):
        self.platform = getattr(platform, "value", platform)
        super().__init__(
            f"Platform is not supported: {self.platform}",
            details={"platform": self.platform},
        )


class InvalidReceiptError(EntitlementError):
    code = "errors.receipt.invalid"
    status_code = 400
    default_message = "Receipt could not be verified"


class SubscriptionNotFoundError(EntitlementError):
    code = "errors.subscription.not_found"
    status_code = 404
    default_message = "Subscription not found"


class NoActiveSubscriptionError(EntitlementError):
    code = "errors.subscription.no_active_subscription"
    status_code = 404
    default_message = "No subscription found for this billing key"


class SubscriptionExpiredError(EntitlementError):
    code = "errors.subscription.expired"
    status_code = 400
    default_message = "Subscription has expired"


class SubscriptionCreationFailedError(EntitlementError):
    code = "errors.subscription.creation_failed"


class SubscriptionUpdateFailedError(EntitlementError):
    code = "errors.subscription.update_failed"


class WebhookLogCreationFailedError(EntitlementError):
    code = "errors.subscription.webhook_log_creation_failed"


class UserNotFoundError(EntitlementError):
    code = "errors.user.not_found"
    status_code = 404
    default_message = "User not found"


class UniqueConstraintError(Exception):
    """Raised by a store when an insert violates a uniqueness constraint."""

    pass


class DuplicateBillingKeyError(UniqueConstraintError):
    """A subscription with this billing key already exists."""

    def __init__(self, billing_key: str):
        self.billing_key = billing_key
        super().__init__("Subscription with this billing key already exists")


class DuplicateWebhookEventError(UniqueConstraintError):
    """A webhook log row with this event ID already exists."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Webhook event already recorded: {event_id}")


class StoreNotConfiguredError(Exception):
    """Raised when a store service is built without the credentials it needs."""

    pass


class DuplicateValidatorError(ValueError):
    """Raised when two validators are registered for one platform."""

    pass
