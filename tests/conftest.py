"""Pytest configuration and shared fixtures for theme sync tests."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from theme_sync.ftp.connection import FTPConnectionConfig
from theme_sync.utils.logging import APP_LOGGER


# Test constants
TEST_FTP_HOST = "127.0.0.1"
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"


@pytest.fixture
def connection_config() -> FTPConnectionConfig:
    """Connection configuration pointing at a fake server."""
    return FTPConnectionConfig(
        host=TEST_FTP_HOST,
        username=TEST_FTP_USER,
        password=TEST_FTP_PASS,
    )


@pytest.fixture
def mock_session() -> MagicMock:
    """An open ftplib-like session."""
    session = MagicMock()
    session.closed = False
    return session


@pytest.fixture
def mock_connection(mock_session: MagicMock, connection_config: FTPConnectionConfig) -> MagicMock:
    """Connection manager double handing out mock_session."""
    connection = MagicMock()
    connection.get_connection.return_value = mock_session
    connection.config = connection_config
    return connection


@pytest.fixture
def theme_dir(tmp_path: Path) -> Path:
    """A small local theme tree."""
    root = tmp_path / "theme"
    (root / "config").mkdir(parents=True)
    (root / "templates").mkdir()
    (root / "config" / "settings.txt").write_text("Header\n\tname = logo\n")
    (root / "config" / "defaults.txt").write_text("logo = logo.png\n")
    (root / "templates" / "home.tpl").write_text("<h1>{{ store.name }}</h1>\n")
    return root


@pytest.fixture(autouse=True)
def isolated_app_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep log files and keyring lookups away from the real user profile."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    for name in (
        "FTP_HOST", "FTP_USER", "FTP_PASSWORD", "FTP_PORT", "FTP_SECURE",
        "FTP_BASE_PATH", "FTP_TIMEOUT", "FTP_PASSIVE", "FTP_IDLE_TIMEOUT",
        "FTP_MAX_RETRIES", "FTP_RETRY_DELAY", "THEME_FOLDER", "DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_app_logger():
    """Undo setup_logging() calls made by CLI tests."""
    logger = logging.getLogger(APP_LOGGER)
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
