"""App Store Server API client.

Responsibilities:
- Resolve the transaction behind an app receipt and verify its signature
- Verify and decode App Store Server Notifications V2
- Query subscription statuses
"""

import json
from pathlib import Path
from typing import Any, Optional

import attrs
from appstoreserverlibrary.api_client import AppStoreServerAPIClient
from appstoreserverlibrary.models.Environment import Environment
from appstoreserverlibrary.models.JWSTransactionDecodedPayload import JWSTransactionDecodedPayload
from appstoreserverlibrary.models.ResponseBodyV2DecodedPayload import ResponseBodyV2DecodedPayload
from appstoreserverlibrary.receipt_utility import ReceiptUtility
from appstoreserverlibrary.signed_data_verifier import SignedDataVerifier

from iap_entitlements.exceptions import StoreNotConfiguredError
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.settings import AppleStoreSettings

logger = get_logger(__name__)


class AppleStoreService:
    """Wrapper around the App Store Server Library.

    Args:
        settings: Apple credentials
        production: Use the production environment instead of sandbox
    """

    def __init__(self, settings: AppleStoreSettings, production: bool = False):
        if not (settings.key_id and settings.issuer_id and settings.bundle_id and settings.private_key_path):
            raise StoreNotConfiguredError(
                "Apple Store integration is not configured. Set key_id, issuer_id, bundle_id "
                "and private_key_path (or APPLE_KEY_ID, APPLE_ISSUER_ID, APPLE_BUNDLE_ID, "
                "APPLE_PRIVATE_KEY_PATH)."
            )
        if not settings.root_ca_paths:
            raise StoreNotConfiguredError(
                "Apple root CA certificate paths are not configured (apple.root_ca_paths)."
            )

        self._environment = Environment.PRODUCTION if production else Environment.SANDBOX

        signing_key = Path(settings.private_key_path).read_bytes()
        self._client = AppStoreServerAPIClient(
            signing_key,
            settings.key_id,
            settings.issuer_id,
            settings.bundle_id,
            self._environment,
        )

        root_certificates = [Path(path).read_bytes() for path in settings.root_ca_paths]
        self._verifier = SignedDataVerifier(
            root_certificates,
            settings.enable_online_checks,
            self._environment,
            settings.bundle_id,
            settings.app_apple_id,
        )
        self._receipt_util = ReceiptUtility()

        logger.info("apple_store_service_initialized", environment=self._environment.value)

    def validate_receipt(self, receipt: str) -> JWSTransactionDecodedPayload:
        """Resolve and verify the transaction referenced by an app receipt.

        Args:
            receipt: Base64-encoded app receipt

        Returns:
            Verified, decoded transaction

        Raises:
            ValueError: If the receipt holds no transaction or the API returns no signed data
            APIException / VerificationException: From the library on transport or signature failure
        """
        transaction_id = self._receipt_util.extract_transaction_id_from_app_receipt(receipt)
        if not transaction_id:
            raise ValueError("No transaction found in receipt")

        logger.debug("apple_transaction_lookup", transaction_id=transaction_id)

        response = self._client.get_transaction_info(transaction_id)
        if not response.signedTransactionInfo:
            raise ValueError("No signed transaction info in response")

        return self._verifier.verify_and_decode_signed_transaction(response.signedTransactionInfo)

    def verify_notification(self, signed_payload: str) -> ResponseBodyV2DecodedPayload:
        """Verify the signature chain of a server notification and decode it."""
        return self._verifier.verify_and_decode_notification(signed_payload)

    def verify_transaction(self, signed_transaction: str) -> JWSTransactionDecodedPayload:
        """Verify and decode a signed transaction embedded in a notification."""
        return self._verifier.verify_and_decode_signed_transaction(signed_transaction)

    @staticmethod
    def to_json(decoded: Any) -> str:
        """Serialize a decoded library model for the webhook ledger."""
        if attrs.has(type(decoded)):
            decoded = attrs.asdict(decoded)
        return json.dumps(decoded, default=_json_default, sort_keys=True)


def _json_default(value: Any) -> Any:
    enum_value: Optional[Any] = getattr(value, "value", None)
    if enum_value is not None:
        return enum_value
    return str(value)
