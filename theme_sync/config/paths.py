"""Path constants and discovery for the theme sync tool."""

import os
import sys
from pathlib import Path


# Application name for config directories
APP_NAME = "TiendaNubeThemeSync"

# Settings file read from the working directory
ENV_FILE_NAME = ".env"

# Default local theme folder, relative to the working directory
DEFAULT_THEME_FOLDER = "theme"


def get_app_data_dir() -> Path:
    """
    Get the application data directory.

    Returns:
        Path to app data directory (created if not exists)

    Platform-specific locations:
        - Windows: %APPDATA%/TiendaNubeThemeSync
        - Linux: ~/.config/TiendaNubeThemeSync
        - macOS: ~/Library/Application Support/TiendaNubeThemeSync
    """
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    app_dir = base / APP_NAME
    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


def get_log_dir() -> Path:
    """
    Get the directory for log files.

    Returns:
        Path to logs directory (created if not exists)
    """
    log_dir = get_app_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def get_log_file_path() -> Path:
    """Path to the main log file."""
    return get_log_dir() / "theme-sync.log"


def get_env_file_path() -> Path:
    """Path to the .env file in the current working directory."""
    return Path.cwd() / ENV_FILE_NAME
