"""Command-line entry point for the theme sync tool.

Wires settings, the FTP connection manager, the transfer service and the
watcher together behind the `tiendanube` command group.
"""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import NoReturn, Optional

import click

from theme_sync import __version__
from theme_sync.checker import run_config_check
from theme_sync.config.paths import get_log_file_path
from theme_sync.config.settings import AppSettings, ConfigurationError, SettingsManager
from theme_sync.config.wizard import run_setup_wizard
from theme_sync.ftp.connection import FTPConnectionManager
from theme_sync.ftp.exceptions import FTPError
from theme_sync.ftp.service import FTPService, TransferSummary
from theme_sync.local.watcher import ThemeWatcher
from theme_sync.utils.logging import setup_logging
from theme_sync.utils.paths import PathTranslator

logger = logging.getLogger("theme_sync.cli")


def _init_logging(debug: bool = False) -> None:
    setup_logging(
        level=logging.DEBUG if debug else logging.INFO,
        log_file=get_log_file_path(),
    )


def _fail(message: str, error: BaseException, debug: bool = False) -> NoReturn:
    """Report a failed command and exit with status 1."""
    logger.error(f"{message}: {error}")
    if debug:
        cause = getattr(error, "original_error", None)
        if cause is not None:
            logger.debug(f"Caused by: {cause!r}", exc_info=cause)
        else:
            logger.debug("Details:", exc_info=error)
    sys.exit(1)


def load_settings(validate: bool = True) -> AppSettings:
    """
    Load settings from the environment / .env file.

    Exits with status 1 when the settings are unusable.
    """
    try:
        settings = SettingsManager().load()
        if validate:
            settings.validate()
    except ConfigurationError as e:
        _init_logging()
        logger.error(str(e))
        click.echo("Run 'tiendanube init' to configure the FTP connection.", err=True)
        sys.exit(1)

    _init_logging(settings.debug)
    return settings


def ensure_theme_folder(path: Path) -> Path:
    """Create the local theme folder if it does not exist."""
    if not path.exists():
        logger.info("Creating theme folder...")
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Theme folder created successfully.")
    return path


def build_service(settings: AppSettings) -> FTPService:
    """Create the connection manager and transfer service for settings."""
    connection = FTPConnectionManager(settings.to_connection_config())
    return FTPService(connection, settings.to_retry_policy())


def _report(summary: TransferSummary, verb: str) -> None:
    logger.info(
        f"{summary.files_transferred} files {verb}, "
        f"{summary.directories_created} directories created "
        f"in {summary.duration_seconds:.1f}s"
    )
    if summary.has_failures:
        logger.warning(f"{summary.files_failed} items failed:")
        for path, reason in summary.failures:
            logger.warning(f"  {path}: {reason}")
        sys.exit(1)
    logger.info("Operation completed")


@click.group()
@click.version_option(__version__, prog_name="tiendanube")
def cli() -> None:
    """CLI tool for Tienda Nube / Nuvemshop theme development with FTP synchronization."""


@cli.command()
def init() -> None:
    """Interactive setup to configure the FTP connection."""
    _init_logging()

    def tester(settings: AppSettings) -> None:
        service = build_service(settings)
        try:
            service.test_connection()
        finally:
            service.shutdown()

    try:
        saved = run_setup_wizard(SettingsManager(), tester=tester)
    except (click.Abort, EOFError):
        click.echo("\nSetup cancelled.", err=True)
        sys.exit(1)

    if saved is None:
        click.echo("Setup cancelled, nothing was saved.")
        return
    click.echo("Run 'tiendanube download' to fetch your theme.")


@cli.command()
def watch() -> None:
    """Watch the theme folder and automatically sync changes to FTP."""
    settings = load_settings()
    theme_folder = ensure_theme_folder(settings.local.theme_folder)

    logger.info("=== FTP SYNCHRONIZATION SYSTEM ===")

    service = build_service(settings)
    translator = PathTranslator(theme_folder, settings.ftp.base_path)
    watcher = ThemeWatcher(
        service,
        translator,
        stability_threshold=settings.watcher.stability_threshold,
        ignore_patterns=settings.watcher.ignore_patterns,
    )

    stop_requested = threading.Event()
    previous_handler = signal.signal(signal.SIGTERM, lambda *_: stop_requested.set())

    try:
        service.test_connection()
        watcher.start()
        click.echo("Press Ctrl+C to stop.")
        while not stop_requested.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    except FTPError as e:
        _fail("Could not establish FTP connection", e, settings.debug)
    finally:
        signal.signal(signal.SIGTERM, previous_handler)
        logger.info("Closing application...")
        watcher.stop()
        service.shutdown()

    logger.info("System stopped successfully")


@cli.command()
def download() -> None:
    """Download the entire theme from the FTP server to the local theme folder."""
    settings = load_settings()
    theme_folder = ensure_theme_folder(settings.local.theme_folder)

    logger.info("=== FTP DOWNLOAD SYSTEM ===")

    service = build_service(settings)
    try:
        summary = service.download_all(settings.ftp.base_path, theme_folder)
    except FTPError as e:
        _fail("Error during download", e, settings.debug)
    finally:
        service.shutdown()

    _report(summary, "downloaded")


@cli.command()
def push() -> None:
    """Upload the entire local theme to the FTP server."""
    settings = load_settings()
    theme_folder = ensure_theme_folder(settings.local.theme_folder)

    logger.info("=== FTP UPLOAD SYSTEM ===")

    service = build_service(settings)
    try:
        summary = service.upload_all(theme_folder, settings.ftp.base_path)
    except FTPError as e:
        _fail("Error during upload", e, settings.debug)
    finally:
        service.shutdown()

    _report(summary, "uploaded")


@cli.command("download-file")
@click.argument("remote_path")
def download_file(remote_path: str) -> None:
    """Download a single file from the FTP server.

    REMOTE_PATH may be absolute or relative to FTP_BASE_PATH,
    e.g. config/settings.txt.
    """
    settings = load_settings()
    theme_folder = ensure_theme_folder(settings.local.theme_folder)

    logger.info("=== FTP FILE DOWNLOAD SYSTEM ===")

    translator = PathTranslator(theme_folder, settings.ftp.base_path)
    remote_file = translator.normalize_remote_path(remote_path)
    local_file = translator.get_local_path(remote_file)

    logger.info(f"FTP file: {remote_file}")
    logger.info(f"Local destination: {local_file}")

    service = build_service(settings)
    try:
        service.download_file(remote_file, local_file)
    except FTPError as e:
        _fail("Error during download", e, settings.debug)
    finally:
        service.shutdown()

    logger.info("Operation completed")


@cli.command()
@click.option(
    "--theme-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Theme directory (default: THEME_FOLDER or ./theme).",
)
def check(theme_path: Optional[Path]) -> None:
    """Validate theme configuration files (config/*.txt and *.json)."""
    if theme_path is None:
        theme_path = load_settings(validate=False).local.theme_folder
    else:
        _init_logging()

    if not run_config_check(theme_path):
        sys.exit(1)


if __name__ == "__main__":
    cli()
