"""
Settings Manager for BomExtractor.

Handles API key storage using the system keychain (macOS Keychain, Windows
Credential Manager, or Linux Secret Service), with environment variables
and a JSON settings file as fallbacks.
"""

import os
import json
import logging
import platform
from pathlib import Path
from typing import Optional, Tuple, Dict, Any

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .extraction_providers import PROVIDERS, get_provider, get_provider_display_names

logger = logging.getLogger(__name__)


class SettingsManager:
    """
    Manages user settings: API keys per provider and the active provider.

    API keys are looked up in the keychain, then the environment, then the
    settings file.
    """

    SERVICE_NAME = "BomExtractor"

    PROVIDER_GEMINI = "gemini"
    PROVIDER_ANTHROPIC = "anthropic"
    PROVIDER_OPENAI = "openai"

    # Checked in order; the first variable set wins
    ENV_VARS = {
        PROVIDER_GEMINI: ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"),
        PROVIDER_ANTHROPIC: ("ANTHROPIC_API_KEY",),
        PROVIDER_OPENAI: ("OPENAI_API_KEY",),
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the settings manager.

        Args:
            config_dir: Override for the settings directory (used by tests)
        """
        self._config_dir = Path(config_dir) if config_dir else self._get_config_dir()
        self._config_file = self._config_dir / "settings.json"
        self._config_dir.mkdir(parents=True, exist_ok=True)
        self._config = self._load_config()

    def _get_config_dir(self) -> Path:
        """Get platform-specific config directory."""
        system = platform.system()

        if system == "Darwin":
            return Path.home() / "Library" / "Application Support" / self.SERVICE_NAME
        if system == "Windows":
            appdata = os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming")
            return Path(appdata) / self.SERVICE_NAME
        return Path.home() / ".config" / self.SERVICE_NAME

    def _load_config(self) -> Dict[str, Any]:
        if self._config_file.exists():
            try:
                with open(self._config_file, "r") as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Failed to load settings: {e}")
        return {"active_provider": self.PROVIDER_GEMINI}

    def _save_config(self):
        try:
            with open(self._config_file, "w") as f:
                json.dump(self._config, f, indent=2)
        except IOError as e:
            logger.error(f"Failed to save settings: {e}")

    # ========================================
    # API Key Management
    # ========================================

    def get_api_key(self, provider: str) -> Optional[str]:
        """
        Get API key for a provider.

        Checks in order:
        1. System keychain
        2. Environment variable
        3. Settings file

        Returns:
            API key string or None if not found
        """
        try:
            key = keyring.get_password(self.SERVICE_NAME, f"api_key_{provider}")
            if key:
                return key
        except KeyringError as e:
            logger.debug(f"Keyring access failed: {e}")

        for env_var in self.ENV_VARS.get(provider, ()):
            key = os.environ.get(env_var)
            if key:
                return key

        return self._config.get(f"{provider}_api_key")

    def set_api_key(self, provider: str, api_key: str) -> bool:
        """
        Store API key for a provider, preferring the keychain.

        Returns:
            True when stored in the keychain, False when it fell back to the
            settings file
        """
        try:
            keyring.set_password(self.SERVICE_NAME, f"api_key_{provider}", api_key)
            if self._config.pop(f"{provider}_api_key", None) is not None:
                self._save_config()
            return True
        except KeyringError as e:
            logger.warning(f"Keyring unavailable ({e}), storing {provider} API key in settings file")

        self._config[f"{provider}_api_key"] = api_key
        self._save_config()
        return False

    def delete_api_key(self, provider: str):
        """Delete API key for a provider from the keychain and settings file."""
        try:
            keyring.delete_password(self.SERVICE_NAME, f"api_key_{provider}")
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            logger.warning(f"Failed to delete from keyring: {e}")

        if self._config.pop(f"{provider}_api_key", None) is not None:
            self._save_config()

    def has_api_key(self, provider: str) -> bool:
        return self.get_api_key(provider) is not None

    # ========================================
    # Provider Management
    # ========================================

    def get_active_provider(self) -> str:
        return self._config.get("active_provider", self.PROVIDER_GEMINI)

    def set_active_provider(self, provider: str) -> bool:
        if provider not in PROVIDERS:
            logger.error(f"Invalid provider: {provider}")
            return False

        self._config["active_provider"] = provider
        self._save_config()
        return True

    def resolve_provider(self, requested: Optional[str] = None) -> str:
        """
        Pick the provider for a run.

        An explicit choice becomes the new active provider; otherwise the
        saved active provider is used.
        """
        if requested:
            if requested != self.get_active_provider():
                self.set_active_provider(requested)
            return requested
        return self.get_active_provider()

    def get_default_model(self, provider: str) -> str:
        provider_class = PROVIDERS.get(provider, PROVIDERS[self.PROVIDER_GEMINI])
        return provider_class.DEFAULT_MODEL

    def get_provider_display_name(self, provider: str) -> str:
        return get_provider_display_names().get(provider, provider)

    def test_connection(self, provider: str, api_key: Optional[str] = None,
                        model: Optional[str] = None) -> Tuple[bool, str]:
        """
        Test connection to a provider API.

        Returns:
            Tuple of (success, message)
        """
        if api_key is None:
            api_key = self.get_api_key(provider)

        if not api_key:
            return False, "No API key configured"

        try:
            return get_provider(provider, api_key, model).test_connection()
        except ValueError as e:
            return False, str(e)


_settings_manager: Optional[SettingsManager] = None


def get_settings_manager() -> SettingsManager:
    """Get the singleton SettingsManager instance."""
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager
