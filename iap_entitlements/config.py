"""Configuration management - loads entitlements.yaml and environment variables."""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from iap_entitlements.models.settings import (
    AppleStoreSettings,
    EntitlementsConfig,
    GoogleStoreSettings,
    RtdnSettings,
)

# Environment variables that override values from the YAML file
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "APPLE_KEY_ID": ("apple", "key_id"),
    "APPLE_ISSUER_ID": ("apple", "issuer_id"),
    "APPLE_BUNDLE_ID": ("apple", "bundle_id"),
    "APPLE_APP_ID": ("apple", "app_apple_id"),
    "APPLE_PRIVATE_KEY_PATH": ("apple", "private_key_path"),
    "GOOGLE_PACKAGE_NAME": ("google", "package_name"),
    "GOOGLE_SERVICE_ACCOUNT_KEY_PATH": ("google", "service_account_key_path"),
    "RTDN_PROJECT_ID": ("rtdn", "project_id"),
    "RTDN_SUBSCRIPTION": ("rtdn", "subscription"),
    "RTDN_ENABLED": ("rtdn", "enabled"),
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader and manager.

    Loads entitlements.yaml and provides validated access to:
    - Apple App Store credentials
    - Google Play credentials
    - RTDN pull subscription settings
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to entitlements.yaml file. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/entitlements.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[EntitlementsConfig] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/entitlements.yaml")

    def _load_config(self) -> None:
        """Load and validate entitlements.yaml, then apply env overrides."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/entitlements.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self._config_path}")

        self._apply_env_overrides(raw_config)

        try:
            self._settings = EntitlementsConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @staticmethod
    def _apply_env_overrides(raw_config: dict[str, Any]) -> None:
        if os.getenv("STORE_ENVIRONMENT"):
            raw_config["environment"] = os.environ["STORE_ENVIRONMENT"]

        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                section_values = raw_config.get(section) or {}
                section_values[key] = value
                raw_config[section] = section_values

    @property
    def settings(self) -> EntitlementsConfig:
        """Get validated configuration."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def apple(self) -> AppleStoreSettings:
        return self.settings.apple

    @property
    def google(self) -> GoogleStoreSettings:
        return self.settings.google

    @property
    def rtdn(self) -> RtdnSettings:
        return self.settings.rtdn

    @property
    def is_production(self) -> bool:
        return self.settings.is_production

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()


def reset_config() -> None:
    """Drop the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
