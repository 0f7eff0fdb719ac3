"""Webhook event models and the idempotency ledger record.

Both stores' notification vocabularies are reduced to CanonicalEventType
by the per-platform decoders before reaching the event processor.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .subscription import utc_now


class WebhookPlatform(str, Enum):
    """Store that sent the notification."""

    APPLE = "apple"
    GOOGLE = "google"


class CanonicalEventType(str, Enum):
    """Platform-independent classification of a store notification."""

    RENEWED = "renewed"
    RENEWAL_FAILED = "renewal_failed"
    CANCELED = "canceled"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    RECOVERED = "recovered"
    PURCHASED = "purchased"
    ON_HOLD = "on_hold"


class WebhookEvent(BaseModel):
    """Canonical webhook event handed to the event processor.

    event_type is either a CanonicalEventType or, for codes the decoder
    passed through unmapped, the raw string. Unrecognized types are
    recorded but change nothing.
    """

    event_id: str = Field(..., description="Store-supplied notification ID")
    platform: WebhookPlatform
    event_type: Union[CanonicalEventType, str]
    billing_key: str
    payload: str = Field(..., description="Decoded notification, stored verbatim")
    expires_at: Optional[datetime] = None


class WebhookLog(BaseModel):
    """Idempotency ledger row, one per distinct event_id."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_id: str
    platform: WebhookPlatform
    event_type: str
    billing_key: str
    payload: str
    processed_at: datetime = Field(default_factory=utc_now)


class CreateWebhookLogData(BaseModel):
    """Fields required to record a processed webhook event."""

    event_id: str
    platform: WebhookPlatform
    event_type: str
    billing_key: str
    payload: str


class ProcessWebhookResult(BaseModel):
    """Outcome of processing one webhook event."""

    already_processed: bool
