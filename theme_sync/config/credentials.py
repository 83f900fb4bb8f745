"""Secure credential storage for the theme sync tool.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) so the FTP password can stay out of the .env file.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger("theme_sync.credentials")


class CredentialManager:
    """Secure credential storage using system keyring."""

    SERVICE_NAME = "tiendanube-theme-sync"

    def _make_key(self, host: str, username: str) -> str:
        """Key under which the password of username@host is stored."""
        return f"{host}:{username}"

    def save_password(self, host: str, username: str, password: str) -> bool:
        """
        Save FTP password securely.

        Args:
            host: FTP host
            username: FTP username
            password: Password to save

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_key(host, username), password)
            return True
        except KeyringError as e:
            logger.warning(f"Could not store password in keyring: {e}")
            return False

    def get_password(self, host: str, username: str) -> Optional[str]:
        """
        Retrieve saved password.

        Returns:
            Password string or None if not found or the keyring is unavailable
        """
        try:
            return keyring.get_password(self.SERVICE_NAME, self._make_key(host, username))
        except KeyringError as e:
            logger.debug(f"Keyring lookup failed: {e}")
            return None

    def delete_password(self, host: str, username: str) -> bool:
        """Remove saved password. Returns False if nothing was removed."""
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_key(host, username))
            return True
        except KeyringError:
            return False

    def has_password(self, host: str, username: str) -> bool:
        return self.get_password(host, username) is not None
