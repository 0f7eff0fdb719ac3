"""Application wiring and FastAPI dependencies.

Everything the routes need is built once at startup into an
EntitlementsContainer held on app.state.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.settings import EntitlementsConfig
from iap_entitlements.repositories.subscription_store import (
    SubscriptionRepository,
    get_subscription_store,
)
from iap_entitlements.repositories.user_store import InMemoryUserStore, get_user_store
from iap_entitlements.services.clock import Clock
from iap_entitlements.services.subscription_commands import (
    RestoreSubscriptionCommand,
    VerifySubscriptionCommand,
)
from iap_entitlements.services.validator_registry import (
    ValidatorRegistry,
    build_store_services,
    build_validator_registry,
)
from iap_entitlements.services.webhook_decoders import AppleWebhookDecoder, GoogleWebhookDecoder
from iap_entitlements.services.webhook_processor import WebhookEventProcessor

logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"


@dataclass
class EntitlementsContainer:
    registry: ValidatorRegistry
    subscriptions: SubscriptionRepository
    users: InMemoryUserStore
    verify_command: VerifySubscriptionCommand
    restore_command: RestoreSubscriptionCommand
    processor: WebhookEventProcessor
    apple_decoder: Optional[AppleWebhookDecoder] = None
    google_decoder: Optional[GoogleWebhookDecoder] = None


def build_container(
    settings: EntitlementsConfig,
    apple_service: Optional[Any] = None,
    google_service: Optional[Any] = None,
    subscriptions: Optional[SubscriptionRepository] = None,
    users: Optional[InMemoryUserStore] = None,
    clock: Optional[Clock] = None,
) -> EntitlementsContainer:
    """Wire stores, validators, commands and decoders.

    Store services are built from settings unless both are passed in,
    which is how tests inject fakes.
    """
    if apple_service is None and google_service is None:
        apple_service, google_service = build_store_services(settings)

    subscriptions = subscriptions if subscriptions is not None else get_subscription_store()
    users = users if users is not None else get_user_store()
    clock = clock if clock is not None else Clock()
    registry = build_validator_registry(apple_service, google_service)

    return EntitlementsContainer(
        registry=registry,
        subscriptions=subscriptions,
        users=users,
        verify_command=VerifySubscriptionCommand(registry, subscriptions, users, clock),
        restore_command=RestoreSubscriptionCommand(registry, subscriptions, users, clock),
        processor=WebhookEventProcessor(subscriptions, users, clock),
        apple_decoder=AppleWebhookDecoder(apple_service) if apple_service is not None else None,
        google_decoder=GoogleWebhookDecoder(google_service) if google_service is not None else None,
    )


def get_container(request: Request) -> EntitlementsContainer:
    return request.app.state.container


def get_user_id(x_user_id: Annotated[Optional[str], Header(alias=USER_ID_HEADER)] = None) -> str:
    """Authenticated user ID, set by the upstream auth layer."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "errors.auth.unauthenticated", "message": "Missing user identity"},
        )
    return x_user_id


Container = Annotated[EntitlementsContainer, Depends(get_container)]
CurrentUserId = Annotated[str, Depends(get_user_id)]
