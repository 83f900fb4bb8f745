"""Interactive setup wizard behind `tiendanube init`."""

import logging
from typing import Callable, Optional

import click

from theme_sync.config.credentials import CredentialManager
from theme_sync.config.settings import AppSettings, FTPSettings, SettingsManager
from theme_sync.utils.validators import (
    ValidationResult,
    validate_ftp_path,
    validate_host,
    validate_port,
)

logger = logging.getLogger("theme_sync.cli")

# Receives the settings to try; raises on failure
ConnectionTester = Callable[[AppSettings], None]


def _prompt_validated(
    text: str,
    validator: Callable[[str], ValidationResult],
    **kwargs,
) -> str:
    """Prompt until validator accepts the answer."""
    while True:
        value = click.prompt(text, **kwargs)
        is_valid, error = validator(value)
        if is_valid:
            return value.strip() if isinstance(value, str) else value
        click.echo(click.style(f"  {error}", fg="red"))


def run_setup_wizard(
    manager: SettingsManager,
    credentials: Optional[CredentialManager] = None,
    tester: Optional[ConnectionTester] = None,
) -> Optional[AppSettings]:
    """
    Ask for the FTP settings and write them to the .env file.

    Args:
        manager: Settings manager owning the .env file
        credentials: Keyring access for storing the password
        tester: Optional connection check run before saving

    Returns:
        The saved settings, or None if the user aborted
    """
    credentials = credentials or CredentialManager()

    click.echo(click.style("Tienda Nube theme sync setup", bold=True))
    click.echo("Find these values in your store admin under FTP access.\n")

    if manager.env_path.exists():
        click.echo(f"A settings file already exists at {manager.env_path}")
        if not click.confirm("Overwrite the FTP settings in it?", default=False):
            return None

    host = _prompt_validated("FTP host", validate_host)
    user = click.prompt("FTP user").strip()
    password = click.prompt("FTP password", hide_input=True)
    port = int(_prompt_validated("FTP port", validate_port, default="21"))
    secure = click.confirm("Use FTPS (explicit TLS)?", default=False)
    base_path = _prompt_validated("Remote theme path", validate_ftp_path, default="/")

    settings = AppSettings(
        ftp=FTPSettings(
            host=host,
            user=user,
            password=password,
            port=port,
            secure=secure,
            base_path=base_path,
        )
    )

    if tester is not None and click.confirm("Test the connection now?", default=True):
        try:
            tester(settings)
        except Exception as e:
            click.echo(click.style(f"Connection test failed: {e}", fg="red"))
            if not click.confirm("Save these settings anyway?", default=False):
                return None
        else:
            click.echo(click.style("Connection successful", fg="green"))

    store_in_keyring = click.confirm(
        "Store the password in the system keyring instead of .env?",
        default=False,
    )
    store_in_file = True
    if store_in_keyring:
        if credentials.save_password(host, user, password):
            store_in_file = False
            click.echo("Password stored in the system keyring")
        else:
            click.echo(click.style(
                "Keyring unavailable, the password will be written to .env",
                fg="yellow",
            ))

    path = manager.save_env(settings, store_password=store_in_file)
    click.echo(click.style(f"Settings saved to {path}", fg="green"))
    return settings
