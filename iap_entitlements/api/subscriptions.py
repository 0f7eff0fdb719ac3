"""Client-facing subscription endpoints.

Implements:
- POST /subscriptions/verify - Validate a receipt and activate premium
- POST /subscriptions/restore - Re-attach an existing subscription to the caller

The caller is identified by the X-User-Id header set by the upstream
auth layer. Store calls are blocking, so both routes are sync and run in
the threadpool.
"""

from fastapi import APIRouter

from iap_entitlements.dependencies import Container, CurrentUserId
from iap_entitlements.logging_config import bind_context, get_logger, mask_key
from iap_entitlements.models.api_request import RestoreSubscriptionRequest, VerifySubscriptionRequest
from iap_entitlements.models.api_response import (
    ErrorResponse,
    RestoreSubscriptionResponse,
    SubscriptionResponse,
    UserEntitlementResponse,
    VerifySubscriptionResponse,
)
from iap_entitlements.services.subscription_commands import (
    RestoreSubscriptionInput,
    VerifySubscriptionInput,
)

logger = get_logger(__name__)
router = APIRouter(tags=["Subscriptions"], prefix="/subscriptions")


@router.post(
    "/verify",
    response_model=VerifySubscriptionResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Verify purchase receipt",
)
def verify_subscription(
    request: VerifySubscriptionRequest,
    container: Container,
    user_id: CurrentUserId,
) -> VerifySubscriptionResponse:
    """Validate a receipt with the store and grant premium.

    Idempotent per billing key: repeating the call refreshes the existing
    subscription instead of creating another.
    """
    bind_context(user_id=user_id, platform=request.platform.value)
    logger.info(
        "verify_subscription_requested",
        product_id=request.product_id,
        billing_key=mask_key(request.billing_key),
    )

    container.users.get_or_create(user_id)
    result = container.verify_command.execute(
        VerifySubscriptionInput(
            platform=request.platform,
            receipt=request.receipt,
            billing_key=request.billing_key,
            product_id=request.product_id,
        ),
        user_id,
    )

    return VerifySubscriptionResponse(
        success=True,
        user=UserEntitlementResponse.from_user(result.user),
        subscription=SubscriptionResponse.from_subscription(result.subscription),
    )


@router.post(
    "/restore",
    response_model=RestoreSubscriptionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Restore subscription",
)
def restore_subscription(
    request: RestoreSubscriptionRequest,
    container: Container,
    user_id: CurrentUserId,
) -> RestoreSubscriptionResponse:
    """Restore a previously verified subscription onto the calling user."""
    bind_context(user_id=user_id, platform=request.platform.value)
    logger.info("restore_subscription_requested", billing_key=mask_key(request.billing_key))

    container.users.get_or_create(user_id)
    result = container.restore_command.execute(
        RestoreSubscriptionInput(
            platform=request.platform,
            billing_key=request.billing_key,
            receipt=request.receipt,
        ),
        user_id,
    )

    return RestoreSubscriptionResponse(
        success=True,
        restored=result.restored,
        user=UserEntitlementResponse.from_user(result.user),
        subscription=SubscriptionResponse.from_subscription(result.subscription),
    )
