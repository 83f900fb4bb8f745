"""FTP-specific exceptions for the theme sync tool.

Every transport failure is turned into one of the classified error types
below by classify_error(), so the rest of the application only ever deals
with the typed taxonomy and its retryable flag.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Stable error codes for classified FTP failures."""
    CONNECTION = "CONNECTION_ERROR"
    AUTH = "AUTH_ERROR"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PERMISSION = "PERMISSION_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    code = ErrorCode.UNKNOWN
    is_retryable = False

    def __init__(
        self,
        message: str,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)
        if original_error is not None:
            self.__cause__ = original_error

    @property
    def file_path(self) -> Optional[str]:
        """Path involved in the failure, if known."""
        return self.context.get("file_path")

    def __str__(self) -> str:
        return self.message


class FTPConnectionError(FTPError):
    """Could not reach the server or the connection dropped."""

    code = ErrorCode.CONNECTION
    is_retryable = True


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    code = ErrorCode.AUTH


class FTPPathError(FTPError):
    """Failure tied to a specific remote or local path."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = dict(context or {})
        if file_path is not None:
            context["file_path"] = file_path
        super().__init__(message, original_error, context)


class FTPFileNotFoundError(FTPPathError):
    """Remote or local resource does not exist."""

    code = ErrorCode.FILE_NOT_FOUND


class FTPPermissionError(FTPPathError):
    """FTP permission denied for operation."""

    code = ErrorCode.PERMISSION


class FTPTimeoutError(FTPError):
    """FTP operation timed out."""

    code = ErrorCode.TIMEOUT
    is_retryable = True


# Substring markers, checked against the lower-cased message in this order.
CONNECTION_MARKERS = (
    "econnrefused",
    "enotfound",
    "etimedout",
    "econnreset",
    "connection refused",
    "connection reset",
    "connection aborted",
    "connection timed out",
    "connection closed",
    "broken pipe",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "no route to host",
    "network is unreachable",
)
AUTH_MARKERS = ("login", "authentication", "530")
NOT_FOUND_MARKERS = ("no such file", "550", "not found")
PERMISSION_MARKERS = ("permission", "553", "access denied")
TIMEOUT_MARKERS = ("timeout", "timed out")


def is_retryable_error(error: object) -> bool:
    """True if error is a classified error worth retrying."""
    return isinstance(error, FTPError) and error.is_retryable


def classify_error(
    error: object,
    context: Optional[Dict[str, Any]] = None,
) -> FTPError:
    """
    Classify a raw failure into a typed FTP error.

    Never raises. Already-classified errors are returned unchanged.

    Args:
        error: Any raised failure (or arbitrary object)
        context: Optional context, e.g. {"file_path": "/theme/a.txt"}

    Returns:
        Classified FTPError instance
    """
    context = dict(context or {})

    if isinstance(error, FTPError):
        return error

    if not isinstance(error, BaseException):
        return FTPError(f"Unknown error: {error!r}", context=context)

    raw_message = str(error)
    if isinstance(error, EOFError) and not raw_message:
        # ftplib raises a bare EOFError when the server drops the control channel
        raw_message = "connection closed by server"
    message = raw_message.lower()
    file_path = context.get("file_path")

    if any(marker in message for marker in CONNECTION_MARKERS):
        return FTPConnectionError(
            f"Could not connect to FTP server: {raw_message}", error, context
        )

    if any(marker in message for marker in AUTH_MARKERS):
        return FTPAuthenticationError(
            f"FTP authentication error: {raw_message}", error, context
        )

    if any(marker in message for marker in NOT_FOUND_MARKERS):
        return FTPFileNotFoundError(
            f"File not found: {file_path or 'unknown'}",
            file_path,
            error,
            context,
        )

    if any(marker in message for marker in PERMISSION_MARKERS):
        return FTPPermissionError(
            f"Permission denied: {file_path or 'unknown'}",
            file_path,
            error,
            context,
        )

    if any(marker in message for marker in TIMEOUT_MARKERS):
        return FTPTimeoutError(f"Timeout: {raw_message}", error, context)

    return FTPError(f"FTP error: {raw_message}", error, context)
