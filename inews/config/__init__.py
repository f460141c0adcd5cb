"""Configuration module for the iNews FTP client.

This module handles client settings and credentials:
- ClientConfig: Settings dataclass
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Path constants and discovery
"""
