"""FTP connection management for the theme sync tool.

Provides ConnectionState enum, FTPConnectionConfig dataclass,
the monitored session classes, and FTPConnectionManager, which keeps a
single pooled session alive across operations.
"""

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from ftplib import FTP, FTP_TLS, error_perm
from typing import Callable, Optional, Union

from theme_sync.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPTimeoutError,
    classify_error,
)

logger = logging.getLogger("theme_sync.connection")


class ConnectionState(Enum):
    """FTP connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class FTPConnectionConfig:
    """FTP connection configuration."""
    host: str
    username: str = "anonymous"
    password: str = field(default="", repr=False)
    port: int = 21
    secure: bool = False
    passive_mode: bool = True
    timeout: int = 30
    idle_timeout: float = 300.0
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("Host is required")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if not 5 <= self.timeout <= 300:
            raise ValueError(f"Timeout must be between 5 and 300, got {self.timeout}")
        if self.idle_timeout <= 0:
            raise ValueError(f"Idle timeout must be positive, got {self.idle_timeout}")


ErrorHandler = Callable[["MonitoredFTP", BaseException], None]
CloseHandler = Callable[["MonitoredFTP"], None]


class _SessionEventsMixin:
    """Reports control-channel failures and closure to registered handlers."""

    _on_error: Optional[ErrorHandler] = None
    _on_close: Optional[CloseHandler] = None

    def set_event_handlers(
        self,
        on_error: Optional[ErrorHandler] = None,
        on_close: Optional[CloseHandler] = None,
    ) -> None:
        self._on_error = on_error
        self._on_close = on_close

    def clear_event_handlers(self) -> None:
        self._on_error = None
        self._on_close = None

    @property
    def closed(self) -> bool:
        """True once the control socket is gone."""
        return getattr(self, "sock", None) is None

    def putline(self, line):
        try:
            super().putline(line)
        except (OSError, EOFError) as e:
            self._emit_error(e)
            raise

    def getline(self):
        try:
            return super().getline()
        except (OSError, EOFError) as e:
            self._emit_error(e)
            raise

    def close(self):
        try:
            super().close()
        finally:
            handler, self._on_close = self._on_close, None
            self._on_error = None
            if handler is not None:
                handler(self)

    def _emit_error(self, error: BaseException) -> None:
        handler, self._on_error = self._on_error, None
        if handler is not None:
            handler(self, error)


class MonitoredFTP(_SessionEventsMixin, FTP):
    """Plain FTP session with transport event reporting."""


class MonitoredFTP_TLS(_SessionEventsMixin, FTP_TLS):
    """Explicit FTPS session with transport event reporting."""


Session = Union[MonitoredFTP, MonitoredFTP_TLS]


class FTPConnectionManager:
    """
    Owns the single pooled FTP session.

    The session is opened lazily on the first get_connection() call, reused
    while it stays open, and closed after idle_timeout seconds without
    activity, on transport failure, on invalidate_connection() or on
    shutdown(). Concurrent callers that arrive while a connection is being
    established wait on the same in-flight attempt instead of opening a
    second one.

    Every get_connection() borrows the session until the matching
    release_connection(). The idle timer never closes a borrowed session.
    """

    # Maximum time a caller waits for another caller's connection attempt
    CONNECT_WAIT_TIMEOUT = 10.0

    def __init__(self, config: FTPConnectionConfig):
        """
        Initialize the connection manager.

        Args:
            config: Connection configuration (credentials included)
        """
        self._config = config
        self._ftp: Optional[Session] = None
        self._state = ConnectionState.DISCONNECTED
        self._lock = threading.RLock()
        self._pending: Optional["Future[Session]"] = None
        self._idle_timer: Optional[threading.Timer] = None
        self._last_activity: Optional[float] = None
        # Open get_connection() borrows not yet released
        self._borrowed = 0
        self._connected_at: Optional[datetime] = None
        self._error_message: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True if currently connected."""
        return self._state == ConnectionState.CONNECTED

    @property
    def config(self) -> FTPConnectionConfig:
        """Current connection configuration."""
        return self._config

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when connection was established."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[float]:
        """Monotonic timestamp of the last get_connection() or release_connection() call."""
        return self._last_activity

    @property
    def error_message(self) -> Optional[str]:
        """Message of the last failed connection attempt."""
        return self._error_message

    @property
    def borrowed(self) -> int:
        """Number of get_connection() calls not yet released."""
        return self._borrowed

    def has_active_connection(self) -> bool:
        """True if a session exists and is open."""
        with self._lock:
            return self._ftp is not None and not self._ftp.closed

    def get_connection(self) -> Session:
        """
        Get an open FTP session, connecting if needed.

        Callers must pair a successful call with release_connection()
        once their operation is done.

        Returns:
            Open session, borrowed for the duration of one operation

        Raises:
            FTPError: Classified error if the connection cannot be established
        """
        with self._lock:
            self._touch()

            if self._ftp is not None:
                if not self._ftp.closed:
                    logger.debug("Reusing existing FTP connection")
                    self._borrowed += 1
                    return self._ftp
                self._detach()

            pending = self._pending
            owner = pending is None
            if owner:
                pending = Future()
                self._pending = pending
                self._state = ConnectionState.CONNECTING

        if owner:
            return self._connect(pending)
        ftp = self._wait_for_connection(pending)
        with self._lock:
            self._borrowed += 1
        return ftp

    def release_connection(self) -> None:
        """End one borrow and restart the idle clock."""
        with self._lock:
            if self._borrowed > 0:
                self._borrowed -= 1
            self._touch()

    def _connect(self, pending: "Future[Session]") -> Session:
        """Establish a new session and resolve the in-flight future."""
        try:
            ftp = self._open_session()
        except BaseException as e:
            # Waiters must always be released, even on KeyboardInterrupt
            with self._lock:
                self._pending = None
                self._ftp = None
                self._state = ConnectionState.DISCONNECTED
                self._error_message = str(e)
            if isinstance(e, FTPError):
                logger.error(e.message)
            pending.set_exception(e)
            raise

        with self._lock:
            self._pending = None
            self._ftp = ftp
            self._state = ConnectionState.CONNECTED
            self._connected_at = datetime.now()
            self._error_message = None
            self._borrowed += 1
            self._touch()
            ftp.set_event_handlers(
                on_error=self._on_session_error,
                on_close=self._on_session_closed,
            )

        logger.info(f"FTP connection established with {self._config.host}")
        pending.set_result(ftp)
        return ftp

    def _open_session(self) -> Session:
        """
        Connect and log in.

        Raises:
            FTPAuthenticationError: If login is rejected
            FTPError: Classified error for any other failure
        """
        config = self._config
        ftp = MonitoredFTP_TLS() if config.secure else MonitoredFTP()
        ftp.set_debuglevel(1 if config.debug else 0)

        try:
            ftp.connect(host=config.host, port=config.port, timeout=config.timeout)

            try:
                ftp.login(user=config.username, passwd=config.password)
            except error_perm as e:
                raise FTPAuthenticationError(
                    f"FTP authentication error: {e}", e
                ) from e

            if config.secure:
                ftp.prot_p()
            ftp.set_pasv(config.passive_mode)
            return ftp

        except FTPError:
            self._discard(ftp)
            raise
        except Exception as e:
            self._discard(ftp)
            raise classify_error(e) from e

    def _wait_for_connection(self, pending: "Future[Session]") -> Session:
        """Block until the in-flight connection attempt resolves."""
        logger.debug("Waiting for in-flight FTP connection")
        try:
            ftp = pending.result(timeout=self.CONNECT_WAIT_TIMEOUT)
        except FutureTimeoutError:
            raise FTPTimeoutError(
                f"Timeout waiting for FTP connection after "
                f"{self.CONNECT_WAIT_TIMEOUT:.0f} seconds"
            ) from None

        if ftp.closed:
            raise FTPConnectionError("Connection failed during wait")
        return ftp

    def _touch(self) -> None:
        """
        Record activity. Caller holds the lock.

        A single pending timer covers any number of calls; when it fires
        it re-arms itself for whatever is left of the idle period.
        """
        self._last_activity = time.monotonic()
        if self._idle_timer is None:
            self._schedule_idle_timer(self._config.idle_timeout)

    def _schedule_idle_timer(self, delay: float) -> None:
        self._clear_idle_timer()
        timer = threading.Timer(delay, self._on_idle_timeout)
        timer.daemon = True
        timer.start()
        self._idle_timer = timer

    def _clear_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _on_idle_timeout(self) -> None:
        """Close the session if nothing used it for a full idle period."""
        with self._lock:
            if self._idle_timer is not threading.current_thread():
                return
            self._idle_timer = None
            if self._ftp is None or self._last_activity is None:
                return

            if self._borrowed > 0:
                self._schedule_idle_timer(self._config.idle_timeout)
                return

            idle_for = time.monotonic() - self._last_activity
            if idle_for < self._config.idle_timeout:
                self._schedule_idle_timer(self._config.idle_timeout - idle_for)
                return

            logger.info("Closing idle FTP connection")
            ftp = self._detach()

        self._quit(ftp)

    def _on_session_error(self, session: Session, error: BaseException) -> None:
        logger.error(f"FTP socket error: {error}")
        stale = self._release(session)
        if stale is not None:
            self._discard(stale)

    def _on_session_closed(self, session: Session) -> None:
        logger.info("FTP connection closed")
        self._release(session)

    def _release(self, session: Session) -> Optional[Session]:
        """Forget a session that died underneath us, returning it if it was current."""
        with self._lock:
            if self._ftp is session:
                return self._detach()
        return None

    def _detach(self) -> Optional[Session]:
        """Clear the slot and timer, returning the old session. Caller holds the lock."""
        ftp = self._ftp
        self._ftp = None
        self._state = (
            ConnectionState.CONNECTING
            if self._pending is not None
            else ConnectionState.DISCONNECTED
        )
        self._connected_at = None
        self._clear_idle_timer()
        if ftp is not None:
            ftp.clear_event_handlers()
        return ftp

    def _quit(self, ftp: Optional[Session], log_level: int = logging.DEBUG) -> None:
        """Best-effort session shutdown."""
        if ftp is None:
            return
        try:
            ftp.quit()
        except Exception as e:
            logger.log(log_level, f"Error closing connection: {e}")
            self._discard(ftp)

    @staticmethod
    def _discard(ftp: FTP) -> None:
        try:
            ftp.close()
        except Exception as e:
            logger.debug(f"Error discarding session: {e}")

    def close(self) -> None:
        """Close the current session, if any. Idempotent."""
        with self._lock:
            ftp = self._detach()
        self._quit(ftp)

    def shutdown(self) -> None:
        """Graceful shutdown - close the session and cancel timers."""
        with self._lock:
            ftp = self._detach()
        if ftp is not None:
            logger.info("Closing FTP connection...")
        self._quit(ftp, log_level=logging.ERROR)

    def invalidate_connection(self) -> None:
        """Drop the current session so the next request reconnects."""
        logger.debug("Invalidating FTP connection")
        self.close()

    def __enter__(self) -> "FTPConnectionManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
