"""Input validators for the theme sync tool.

Provides validation functions for connection settings entered in the
.env file or through the setup wizard.
"""

import re
from typing import Optional, Tuple


# IPv4 address pattern
IPV4_PATTERN = re.compile(
    r'^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}'
    r'(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$'
)

# Hostname pattern (simplified)
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})*$'
)

ValidationResult = Tuple[bool, Optional[str]]


def validate_host(host: str) -> ValidationResult:
    """
    Validate a host (IPv4 address or hostname).

    Args:
        host: Host string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not host or not host.strip():
        return False, "Host is required"

    host = host.strip()
    if IPV4_PATTERN.match(host) or HOSTNAME_PATTERN.match(host):
        return True, None

    return False, f"Invalid host: {host}. Must be a valid IP address or hostname."


def _as_int(value, label: str) -> Tuple[Optional[int], Optional[str]]:
    if isinstance(value, bool):
        return None, f"{label} must be a number"
    try:
        return int(value), None
    except (ValueError, TypeError):
        return None, f"{label} must be a number"


def validate_port(port) -> ValidationResult:
    """
    Validate a port number.

    Args:
        port: Port number (int or numeric string)

    Returns:
        Tuple of (is_valid, error_message)
    """
    port, error = _as_int(port, "Port")
    if error:
        return False, error

    if port < 1 or port > 65535:
        return False, f"Port must be between 1 and 65535, got {port}"

    return True, None


def validate_timeout(timeout) -> ValidationResult:
    """
    Validate a timeout value in seconds.

    Args:
        timeout: Timeout in seconds

    Returns:
        Tuple of (is_valid, error_message)
    """
    timeout, error = _as_int(timeout, "Timeout")
    if error:
        return False, error

    if timeout < 5 or timeout > 300:
        return False, f"Timeout must be between 5 and 300 seconds, got {timeout}"

    return True, None


def validate_ftp_path(path: str) -> ValidationResult:
    """
    Validate an FTP base path.

    Args:
        path: FTP path to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not path or not path.strip():
        return False, "FTP path is required"

    path = path.strip()

    if not path.startswith("/"):
        return False, "FTP path must be absolute (start with /)"

    if ".." in path.split("/"):
        return False, "FTP path cannot contain '..'"

    return True, None
