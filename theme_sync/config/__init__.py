"""Configuration module for the theme sync tool.

This module handles application settings and credentials:
- SettingsManager: .env based settings loading and persistence
- CredentialManager: Secure password storage via keyring
- Paths: Application data directories
- AppSettings: Settings dataclasses
"""
