"""Application settings management for the theme sync tool.

Settings come from environment variables, with a .env file in the working
directory loaded through python-dotenv. The FTP password may instead live
in the system keyring.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values, load_dotenv, set_key, unset_key

from theme_sync.config.credentials import CredentialManager
from theme_sync.config.paths import DEFAULT_THEME_FOLDER, get_env_file_path
from theme_sync.ftp.connection import FTPConnectionConfig
from theme_sync.ftp.service import RetryPolicy
from theme_sync.utils.validators import (
    validate_ftp_path,
    validate_host,
    validate_port,
    validate_timeout,
)

logger = logging.getLogger("theme_sync.config")

# Values shipped in the sample .env; treated as "not configured"
PLACEHOLDER_HOST = "example.com"
PLACEHOLDER_USER = "user"
PLACEHOLDER_PASSWORD = "password"

TRUE_VALUES = ("true", "1", "yes", "on")

DEFAULT_IGNORE_PATTERNS = [
    ".git",
    ".DS_Store",
    "Thumbs.db",
    "*.swp",
    "*.tmp",
    "*~",
]


class ConfigurationError(ValueError):
    """Settings are missing or invalid."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"Invalid configuration:\n{lines}")


@dataclass
class FTPSettings:
    """FTP server settings."""
    host: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    port: int = 21
    secure: bool = False
    base_path: str = "/"
    timeout_ms: int = 30000
    passive: bool = True


@dataclass
class LocalSettings:
    """Local file system settings."""
    theme_folder: Path = field(default_factory=lambda: Path.cwd() / DEFAULT_THEME_FOLDER)


@dataclass
class WatcherSettings:
    """File watcher settings."""
    # Seconds a path must stay quiet before its event is processed
    stability_threshold: float = 0.3
    ignore_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))


@dataclass
class ConnectionSettings:
    """Session pooling and retry settings."""
    idle_timeout_ms: int = 5 * 60 * 1000
    max_retries: int = 2
    retry_delay_ms: int = 1000


@dataclass
class AppSettings:
    """Complete application settings."""
    ftp: FTPSettings = field(default_factory=FTPSettings)
    local: LocalSettings = field(default_factory=LocalSettings)
    watcher: WatcherSettings = field(default_factory=WatcherSettings)
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    debug: bool = False

    def validate(self) -> None:
        """
        Check that the settings can be used to connect.

        Raises:
            ConfigurationError: Listing every problem found
        """
        errors = []
        ftp = self.ftp

        if not ftp.host or ftp.host == PLACEHOLDER_HOST:
            errors.append("FTP_HOST not configured in .env")
        else:
            is_valid, error = validate_host(ftp.host)
            if not is_valid:
                errors.append(f"FTP_HOST: {error}")

        if not ftp.user or ftp.user == PLACEHOLDER_USER:
            errors.append("FTP_USER not configured in .env")

        if not ftp.password or ftp.password == PLACEHOLDER_PASSWORD:
            errors.append("FTP_PASSWORD not configured in .env")

        is_valid, error = validate_port(ftp.port)
        if not is_valid:
            errors.append(f"FTP_PORT: {error}")

        is_valid, error = validate_timeout(ftp.timeout_ms // 1000)
        if not is_valid:
            errors.append(f"FTP_TIMEOUT: {error}")

        is_valid, error = validate_ftp_path(ftp.base_path)
        if not is_valid:
            errors.append(f"FTP_BASE_PATH: {error}")

        if self.connection.idle_timeout_ms <= 0:
            errors.append("FTP_IDLE_TIMEOUT must be positive")
        if self.connection.max_retries < 1:
            errors.append("FTP_MAX_RETRIES must be at least 1")
        if self.connection.retry_delay_ms < 0:
            errors.append("FTP_RETRY_DELAY cannot be negative")

        if errors:
            raise ConfigurationError(errors)

    def to_connection_config(self) -> FTPConnectionConfig:
        """Build the connection manager configuration."""
        return FTPConnectionConfig(
            host=self.ftp.host,
            username=self.ftp.user,
            password=self.ftp.password,
            port=self.ftp.port,
            secure=self.ftp.secure,
            passive_mode=self.ftp.passive,
            timeout=self.ftp.timeout_ms // 1000,
            idle_timeout=self.connection.idle_timeout_ms / 1000,
            debug=self.debug,
        )

    def to_retry_policy(self) -> RetryPolicy:
        """Build the transfer service retry policy."""
        return RetryPolicy(
            max_retries=self.connection.max_retries,
            base_delay=self.connection.retry_delay_ms / 1000,
        )


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def _parse_int(
    environ: Mapping[str, str],
    name: str,
    default: int,
    errors: List[str],
) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        errors.append(f"{name} must be a number, got {raw!r}")
        return default


class SettingsManager:
    """Loads settings from the environment and writes the .env file."""

    def __init__(
        self,
        env_path: Optional[Path] = None,
        credentials: Optional[CredentialManager] = None,
    ):
        """
        Initialize settings manager.

        Args:
            env_path: Optional .env path, defaults to ./.env
            credentials: Keyring access used for the password fallback
        """
        self._env_path = env_path or get_env_file_path()
        self._credentials = credentials or CredentialManager()

    @property
    def env_path(self) -> Path:
        """Path to the .env file."""
        return self._env_path

    def load(self, environ: Optional[Mapping[str, str]] = None) -> AppSettings:
        """
        Load settings.

        Variables already present in the environment win over the .env file.

        Args:
            environ: Mapping to read instead of os.environ (the .env file
                is not loaded in that case)

        Returns:
            AppSettings instance

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        if environ is None:
            if self._env_path.exists():
                load_dotenv(self._env_path, override=False)
                logger.debug(f"Loaded settings from {self._env_path}")
            environ = os.environ

        errors: List[str] = []

        ftp = FTPSettings(
            host=environ.get("FTP_HOST", "").strip(),
            user=environ.get("FTP_USER", "").strip(),
            password=environ.get("FTP_PASSWORD", ""),
            port=_parse_int(environ, "FTP_PORT", 21, errors),
            secure=_parse_bool(environ.get("FTP_SECURE"), False),
            base_path=environ.get("FTP_BASE_PATH", "").strip() or "/",
            timeout_ms=_parse_int(environ, "FTP_TIMEOUT", 30000, errors),
            passive=_parse_bool(environ.get("FTP_PASSIVE"), True),
        )

        if not ftp.password and ftp.host and ftp.user:
            stored = self._credentials.get_password(ftp.host, ftp.user)
            if stored:
                logger.debug("Using FTP password from system keyring")
                ftp.password = stored

        theme_folder = environ.get("THEME_FOLDER", "").strip()
        local = LocalSettings(
            theme_folder=Path(theme_folder).expanduser().resolve()
            if theme_folder
            else Path.cwd() / DEFAULT_THEME_FOLDER
        )

        connection = ConnectionSettings(
            idle_timeout_ms=_parse_int(environ, "FTP_IDLE_TIMEOUT", 5 * 60 * 1000, errors),
            max_retries=_parse_int(environ, "FTP_MAX_RETRIES", 2, errors),
            retry_delay_ms=_parse_int(environ, "FTP_RETRY_DELAY", 1000, errors),
        )

        if errors:
            raise ConfigurationError(errors)

        return AppSettings(
            ftp=ftp,
            local=local,
            connection=connection,
            debug=_parse_bool(environ.get("DEBUG"), False),
        )

    def save_env(self, settings: AppSettings, store_password: bool = True) -> Path:
        """
        Write the FTP settings to the .env file.

        Other variables already in the file are kept.

        Args:
            settings: Settings to save
            store_password: Write FTP_PASSWORD to the file; when False the
                password is removed from the file (it is expected in the keyring)

        Returns:
            Path of the written file
        """
        ftp = settings.ftp
        values: Dict[str, str] = {
            "FTP_HOST": ftp.host,
            "FTP_USER": ftp.user,
            "FTP_PORT": str(ftp.port),
            "FTP_SECURE": "true" if ftp.secure else "false",
            "FTP_BASE_PATH": ftp.base_path,
        }
        if store_password:
            values["FTP_PASSWORD"] = ftp.password

        self._env_path.parent.mkdir(parents=True, exist_ok=True)
        self._env_path.touch(exist_ok=True)

        for key, value in values.items():
            set_key(str(self._env_path), key, value)

        if not store_password and "FTP_PASSWORD" in dotenv_values(self._env_path):
            unset_key(str(self._env_path), "FTP_PASSWORD")

        logger.info(f"Settings saved to {self._env_path}")
        return self._env_path
