"""Store notification endpoints.

Implements:
- POST /webhooks/apple - App Store Server Notifications V2
- POST /webhooks/google - Google Play RTDN via Pub/Sub push

Both always answer 200 {"received": true}; decode and processing
failures are logged, never returned, so the stores don't retry.
"""

from typing import Any, Optional

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from iap_entitlements.dependencies import Container
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.api_request import AppleNotificationRequest
from iap_entitlements.models.api_response import WebhookAckResponse
from iap_entitlements.services.webhook_decoders import WebhookDecoder, handle_webhook

logger = get_logger(__name__)
router = APIRouter(tags=["Webhooks"], prefix="/webhooks")


async def _read_body(request: Request) -> Optional[Any]:
    try:
        return await request.json()
    except ValueError as e:
        logger.warning("webhook_body_unreadable", path=request.url.path, error=str(e))
        return None


async def _acknowledge(decoder: Optional[WebhookDecoder], container: Container, request: Request, store: str):
    body = await _read_body(request)
    if decoder is None:
        logger.warning("webhook_store_not_configured", store=store)
    elif body is not None:
        await run_in_threadpool(handle_webhook, decoder, container.processor, body)
    return WebhookAckResponse(received=True)


@router.post(
    "/apple",
    response_model=WebhookAckResponse,
    summary="Apple App Store webhook",
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": AppleNotificationRequest.model_json_schema()}}
        }
    },
)
async def apple_webhook(request: Request, container: Container) -> WebhookAckResponse:
    """Receive an App Store Server Notification."""
    return await _acknowledge(container.apple_decoder, container, request, "apple")


@router.post(
    "/google",
    response_model=WebhookAckResponse,
    summary="Google Play webhook",
)
async def google_webhook(request: Request, container: Container) -> WebhookAckResponse:
    """Receive a Real-time Developer Notification pushed by Pub/Sub.

    Body shape: GooglePushRequest.
    """
    return await _acknowledge(container.google_decoder, container, request, "google")
