"""Store credential and runtime settings models.

Models from entitlements.yaml configuration.
"""

from typing import Optional

from pydantic import BaseModel, Field


class AppleStoreSettings(BaseModel):
    """App Store Server API credentials."""

    key_id: Optional[str] = Field(None, description="In-App Purchase key ID")
    issuer_id: Optional[str] = Field(None, description="App Store Connect issuer ID")
    bundle_id: Optional[str] = Field(None, description="App bundle identifier")
    app_apple_id: Optional[int] = Field(None, description="Numeric Apple app ID (required in production)")
    private_key_path: Optional[str] = Field(None, description="Path to the .p8 signing key")
    root_ca_paths: list[str] = Field(
        default_factory=list, description="Apple root CA certificates used to verify signed data"
    )
    enable_online_checks: bool = Field(default=True, description="OCSP checks during chain verification")

    @property
    def is_configured(self) -> bool:
        return bool(
            self.key_id
            and self.issuer_id
            and self.bundle_id
            and self.private_key_path
            and self.root_ca_paths
        )

    class Config:
        json_schema_extra = {
            "example": {
                "key_id": "ABCDEFGHIJ",
                "issuer_id": "57246542-96fe-1a63-e053-0824d011072a",
                "bundle_id": "com.example.app",
                "app_apple_id": 1234567890,
                "private_key_path": "secrets/SubscriptionKey_ABCDEFGHIJ.p8",
                "root_ca_paths": ["certs/AppleRootCA-G3.cer", "certs/AppleRootCA-G2.cer"],
            }
        }


class GoogleStoreSettings(BaseModel):
    """Google Play Developer API credentials."""

    package_name: Optional[str] = Field(None, description="Android package name")
    service_account_key_path: Optional[str] = Field(None, description="Service account JSON key file")

    @property
    def is_configured(self) -> bool:
        return bool(self.package_name and self.service_account_key_path)


class RtdnSettings(BaseModel):
    """Pull subscription for Google Play Real-time Developer Notifications."""

    enabled: bool = Field(default=False, description="Run the Pub/Sub pull listener")
    project_id: Optional[str] = Field(None, description="GCP project ID")
    subscription: Optional[str] = Field(None, description="Pub/Sub subscription name")


class EntitlementsConfig(BaseModel):
    """Complete entitlements.yaml configuration."""

    environment: str = Field(default="sandbox", description="Store environment: 'sandbox' or 'production'")
    apple: AppleStoreSettings = Field(default_factory=AppleStoreSettings)
    google: GoogleStoreSettings = Field(default_factory=GoogleStoreSettings)
    rtdn: RtdnSettings = Field(default_factory=RtdnSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
