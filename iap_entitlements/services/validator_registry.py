"""Platform to receipt-validator routing.

The registry is built once at startup and never mutated; register()
returns a new registry. Only platforms with configured store credentials
get a validator, so single-store deployments need no special cases.
"""

from collections.abc import Iterable
from types import MappingProxyType
from typing import Any, Optional, Union

from iap_entitlements.exceptions import (
    DuplicateValidatorError,
    PlatformNotSupportedError,
    StoreNotConfiguredError,
)
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.settings import EntitlementsConfig
from iap_entitlements.models.subscription import SubscriptionPlatform
from iap_entitlements.services.receipt_validator import (
    AppleReceiptValidator,
    GoogleReceiptValidator,
    ReceiptValidator,
)

logger = get_logger(__name__)


class ValidatorRegistry:
    """Immutable mapping of platform to ReceiptValidator.

    Args:
        validators: One validator per platform

    Raises:
        DuplicateValidatorError: If two validators report the same platform
    """

    def __init__(self, validators: Iterable[ReceiptValidator] = ()):
        mapping: dict[SubscriptionPlatform, ReceiptValidator] = {}
        for validator in validators:
            platform = validator.get_platform()
            if platform in mapping:
                raise DuplicateValidatorError(
                    f"A validator is already registered for platform: {platform.value}"
                )
            mapping[platform] = validator
        self._validators = MappingProxyType(mapping)

    def register(self, validator: ReceiptValidator) -> "ValidatorRegistry":
        """Return a new registry that also holds validator."""
        return ValidatorRegistry([*self._validators.values(), validator])

    def get(self, platform: Union[SubscriptionPlatform, str]) -> ReceiptValidator:
        """Resolve the validator for a platform.

        Raises:
            PlatformNotSupportedError: If no validator is registered
        """
        validator = self._validators.get(_coerce_platform(platform))
        if validator is None:
            raise PlatformNotSupportedError(platform)
        return validator

    def is_supported(self, platform: Union[SubscriptionPlatform, str]) -> bool:
        return _coerce_platform(platform) in self._validators

    def list_supported_platforms(self) -> list[SubscriptionPlatform]:
        return list(self._validators.keys())

    def __len__(self) -> int:
        return len(self._validators)

    def __repr__(self) -> str:
        platforms = ", ".join(p.value for p in self._validators)
        return f"ValidatorRegistry(platforms=[{platforms}])"


def _coerce_platform(platform: Union[SubscriptionPlatform, str]) -> Optional[SubscriptionPlatform]:
    try:
        return SubscriptionPlatform(platform)
    except ValueError:
        return None


def build_store_services(settings: EntitlementsConfig) -> tuple[Optional[Any], Optional[Any]]:
    """Construct the Apple and Google store services that have credentials.

    A store whose credentials are missing or unreadable is logged and left
    out (None) rather than failing startup.

    Returns:
        (apple_service, google_service)
    """
    apple_service = None
    if settings.apple.is_configured:
        from iap_entitlements.services.apple_store import AppleStoreService

        try:
            apple_service = AppleStoreService(settings.apple, production=settings.is_production)
        except (StoreNotConfiguredError, OSError) as e:
            logger.warning("apple_store_unavailable", error=str(e), error_type=type(e).__name__)

    google_service = None
    if settings.google.is_configured:
        from iap_entitlements.services.google_store import GoogleStoreService

        try:
            google_service = GoogleStoreService(settings.google)
        except (StoreNotConfiguredError, OSError, ValueError) as e:
            logger.warning("google_store_unavailable", error=str(e), error_type=type(e).__name__)

    return apple_service, google_service


def build_validator_registry(
    apple_service: Optional[Any] = None,
    google_service: Optional[Any] = None,
) -> ValidatorRegistry:
    """Create one validator per available store service.

    Args:
        apple_service: AppleStoreService, or None when iOS is not configured
        google_service: GoogleStoreService, or None when Android is not configured

    Returns:
        ValidatorRegistry holding zero, one or two validators
    """
    validators: list[ReceiptValidator] = []
    if apple_service is not None:
        validators.append(AppleReceiptValidator(apple_service))
    if google_service is not None:
        validators.append(GoogleReceiptValidator(google_service))

    registry = ValidatorRegistry(validators)
    logger.info(
        "validator_registry_built",
        platforms=[p.value for p in registry.list_supported_platforms()],
    )
    return registry
