"""Secure credential storage for the iNews FTP client.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) to store iNews FTP passwords.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger("inews.credentials")


class CredentialManager:
    """Secure credential storage using system keyring."""

    SERVICE_NAME = "inews-ftp-client"

    def _make_key(self, host: str, user: str) -> str:
        """Create the keyring username for a host/user pair."""
        return f"{host}:{user}"

    def save_password(self, host: str, user: str, password: str) -> bool:
        """
        Save a password securely.

        Args:
            host: iNews host
            user: iNews username
            password: Password to save

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_key(host, user), password)
            return True
        except KeyringError as e:
            logger.warning(f"Could not save password for {user}: {e}")
            return False

    def get_password(self, host: str, user: str) -> Optional[str]:
        """
        Retrieve a saved password.

        Returns:
            Password string or None if not found
        """
        try:
            return keyring.get_password(self.SERVICE_NAME, self._make_key(host, user))
        except KeyringError as e:
            logger.debug(f"Keyring lookup failed for {user}: {e}")
            return None

    def delete_password(self, host: str, user: str) -> bool:
        """
        Remove a saved password.

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_key(host, user))
            return True
        except KeyringError:
            return False

    def find_password(self, hosts: list, user: str) -> Optional[str]:
        """
        Look up a password saved for any of several hosts.

        iNews installations usually share credentials across their
        servers, so the first password found is used for all of them.

        Args:
            hosts: Candidate hosts in preference order
            user: iNews username

        Returns:
            Password string or None if none of the hosts has one
        """
        for host in hosts:
            password = self.get_password(host, user)
            if password is not None:
                return password
        return None
