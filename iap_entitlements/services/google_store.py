"""Google Play Developer API client.

Responsibilities:
- Look up subscription purchases by purchase token (subscriptionsv2)
- Decode Real-time Developer Notification data from Pub/Sub messages
"""

import base64
import json
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build

from iap_entitlements.exceptions import StoreNotConfiguredError
from iap_entitlements.logging_config import get_logger, mask_key
from iap_entitlements.models.events import DeveloperNotification
from iap_entitlements.models.settings import GoogleStoreSettings

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"


class GoogleStoreService:
    """Wrapper around the Android Publisher v3 API.

    Args:
        settings: Google Play credentials
        client: Prebuilt discovery client (built from the service account key if omitted)
    """

    def __init__(self, settings: GoogleStoreSettings, client: Any = None):
        if not settings.package_name or not (settings.service_account_key_path or client):
            raise StoreNotConfiguredError(
                "Google Play integration is not configured. Set package_name and "
                "service_account_key_path (or GOOGLE_PACKAGE_NAME, GOOGLE_SERVICE_ACCOUNT_KEY_PATH)."
            )

        self.package_name = settings.package_name

        if client is None:
            credentials = service_account.Credentials.from_service_account_file(
                settings.service_account_key_path,
                scopes=[ANDROID_PUBLISHER_SCOPE],
            )
            client = build("androidpublisher", "v3", credentials=credentials, cache_discovery=False)
        self._client = client

        logger.info("google_store_service_initialized", package_name=self.package_name)

    def validate_receipt(self, purchase_token: str) -> dict[str, Any]:
        """Fetch the SubscriptionPurchaseV2 resource for a purchase token.

        Args:
            purchase_token: Play purchase token (the subscription's billing key)

        Returns:
            SubscriptionPurchaseV2 as a dict

        Raises:
            ValueError: If the API returns an empty body
            googleapiclient.errors.HttpError: On API failure
        """
        logger.debug("google_subscription_lookup", purchase_token=mask_key(purchase_token, 10))

        response = (
            self._client.purchases()
            .subscriptionsv2()
            .get(packageName=self.package_name, token=purchase_token)
            .execute()
        )
        if not response:
            raise ValueError("No subscription data returned from Google Play")
        return response

    @staticmethod
    def decode_pubsub_message(data: str) -> DeveloperNotification:
        """Decode base64 Pub/Sub message data into a DeveloperNotification.

        Raises:
            ValueError: If the data is not base64-encoded JSON
            pydantic.ValidationError: If the JSON is not a developer notification
        """
        decoded = base64.b64decode(data, validate=True).decode("utf-8")
        return DeveloperNotification.model_validate(json.loads(decoded))
