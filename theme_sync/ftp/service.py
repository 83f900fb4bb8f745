"""High-level FTP operations for the theme sync tool.

FTPService routes every remote operation through a retry wrapper that
borrows the pooled session from FTPConnectionManager, and implements the
whole-tree upload and download used by the push and download commands.
"""

import logging
import os
import posixpath
import threading
import time
from dataclasses import dataclass, field
from ftplib import FTP, error_perm
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from theme_sync.ftp.connection import FTPConnectionManager
from theme_sync.ftp.exceptions import (
    FTPError,
    FTPFileNotFoundError,
    classify_error,
)
from theme_sync.ftp.listing import RemoteEntry, list_entries

logger = logging.getLogger("theme_sync.service")

T = TypeVar("T")

# Operation executed against a borrowed session
FTPOperation = Callable[[FTP], T]

PathLike = Union[str, Path]


@dataclass
class RetryPolicy:
    """Retry settings for remote operations."""
    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 5.0

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay cannot be negative, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass
class TransferSummary:
    """Outcome of a bulk upload or download."""
    files_transferred: int = 0
    directories_created: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def files_failed(self) -> int:
        return len(self.failures)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def record_failure(self, path: str, error: BaseException) -> None:
        self.failures.append((path, str(error)))


class FTPService:
    """Retrying file operations and recursive transfers over one pooled session."""

    # Block size for FTP transfers (8KB)
    BLOCK_SIZE = 8192

    def __init__(
        self,
        connection: FTPConnectionManager,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the service.

        Args:
            connection: Connection manager owning the pooled session
            retry_policy: Retry settings (defaults to 2 attempts, 1s base delay)
        """
        self._connection = connection
        self._retry = retry_policy or RetryPolicy()
        # ftplib sessions carry one command at a time
        self._operation_lock = threading.RLock()

    @property
    def connection(self) -> FTPConnectionManager:
        return self._connection

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def execute_operation(
        self,
        operation: FTPOperation,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute an FTP operation with retry logic.

        Non-retryable failures surface after one attempt. Retryable ones are
        retried up to max_retries attempts in total, dropping the session and
        backing off exponentially between attempts.

        Args:
            operation: Callable receiving the borrowed session
            operation_name: Name for logging
            context: Error context, e.g. {"file_path": remote_path}

        Returns:
            Whatever the operation returns

        Raises:
            FTPError: Classified error of the last attempt
        """
        max_retries = self._retry.max_retries
        last_error: Optional[FTPError] = None

        for attempt in range(1, max_retries + 1):
            try:
                with self._operation_lock:
                    ftp = self._connection.get_connection()
                    try:
                        return operation(ftp)
                    finally:
                        self._connection.release_connection()
            except Exception as e:
                error = classify_error(e, context)
                last_error = error
                logger.error(
                    f"Error in {operation_name} "
                    f"(attempt {attempt}/{max_retries}): {error.message}"
                )

                if not error.is_retryable or attempt == max_retries:
                    break

                self._connection.invalidate_connection()

                delay = self._retry.delay_for(attempt)
                logger.info(f"Retrying in {delay:.1f}s...")
                time.sleep(delay)

        if last_error is None:
            raise FTPError(f"Operation {operation_name} failed without error")
        raise last_error

    def _ensure_remote_dir(self, ftp: FTP, remote_dir: str) -> bool:
        """
        Create remote_dir and any missing parents.

        A relative remote_dir is resolved against the working directory at
        call time, and that directory is restored afterwards.

        Returns:
            True if at least one directory was created
        """
        if remote_dir in ("", "/", "."):
            return False

        start = None if remote_dir.startswith("/") else ftp.pwd()
        created = False
        current = start or "/"
        try:
            for part in remote_dir.strip("/").split("/"):
                if not part:
                    continue
                current = posixpath.join(current, part)
                try:
                    ftp.cwd(current)
                except error_perm:
                    ftp.mkd(current)
                    created = True
        finally:
            if start is not None:
                ftp.cwd(start)
        return created

    def _remove_tree(self, ftp: FTP, remote_dir: str) -> None:
        """Delete remote_dir with everything below it."""
        stack = [remote_dir]
        to_remove: List[str] = []
        while stack:
            current = stack.pop()
            to_remove.append(current)
            for entry in list_entries(ftp, current):
                child = posixpath.join(current, entry.name)
                if entry.is_directory:
                    stack.append(child)
                else:
                    ftp.delete(child)
        # Deepest directories were appended last
        for directory in reversed(to_remove):
            ftp.rmd(directory)

    def upload_file(self, local_path: PathLike, remote_path: str) -> bool:
        """
        Upload a file to the FTP server.

        Args:
            local_path: Local file path
            remote_path: Remote FTP path

        Returns:
            True on success

        Raises:
            FTPFileNotFoundError: If the local file is missing (no network use)
            FTPError: If the upload fails
        """
        local = Path(local_path)
        if not local.is_file():
            raise FTPFileNotFoundError(
                f"Local file does not exist: {local}", file_path=str(local)
            )

        def upload(ftp: FTP) -> bool:
            self._ensure_remote_dir(ftp, posixpath.dirname(remote_path))
            with open(local, "rb") as f:
                ftp.storbinary(f"STOR {remote_path}", f, blocksize=self.BLOCK_SIZE)
            logger.info(f"File uploaded: {remote_path}")
            return True

        return self.execute_operation(
            upload, f"upload file {remote_path}", {"file_path": remote_path}
        )

    def download_file(self, remote_path: str, local_path: PathLike) -> bool:
        """
        Download a file from the FTP server.

        Creates the local parent directory when needed.

        Args:
            remote_path: Remote file path
            local_path: Local destination path

        Returns:
            True on success

        Raises:
            FTPError: If the download fails
        """
        local = Path(local_path)

        def download(ftp: FTP) -> bool:
            if not local.parent.exists():
                local.parent.mkdir(parents=True, exist_ok=True)
                logger.info(f"Local directory created: {local.parent}")

            try:
                with open(local, "wb") as f:
                    ftp.retrbinary(f"RETR {remote_path}", f.write, blocksize=self.BLOCK_SIZE)
            except BaseException:
                local.unlink(missing_ok=True)
                raise

            logger.info(f"File downloaded: {_display_path(local)}")
            return True

        return self.execute_operation(
            download, f"download file {remote_path}", {"file_path": remote_path}
        )

    def delete_file(self, remote_path: str) -> bool:
        """Delete a remote file."""
        def delete(ftp: FTP) -> bool:
            ftp.delete(remote_path)
            logger.info(f"File deleted: {remote_path}")
            return True

        return self.execute_operation(
            delete, f"delete file {remote_path}", {"file_path": remote_path}
        )

    def create_directory(self, remote_path: str) -> bool:
        """Create a remote directory (and missing parents)."""
        self._make_directory(remote_path)
        return True

    def _make_directory(self, remote_path: str) -> bool:
        """Like create_directory, but report whether anything was created."""
        def create(ftp: FTP) -> bool:
            created = self._ensure_remote_dir(ftp, remote_path)
            if created:
                logger.info(f"Directory created: {remote_path}")
            return created

        return self.execute_operation(
            create, f"create directory {remote_path}", {"file_path": remote_path}
        )

    def remove_directory(self, remote_path: str) -> bool:
        """Remove a remote directory and its contents."""
        def remove(ftp: FTP) -> bool:
            self._remove_tree(ftp, remote_path)
            logger.info(f"Directory deleted: {remote_path}")
            return True

        return self.execute_operation(
            remove, f"delete directory {remote_path}", {"file_path": remote_path}
        )

    def list_directory(self, remote_path: str) -> List[RemoteEntry]:
        """List a remote directory."""
        return self.execute_operation(
            lambda ftp: list_entries(ftp, remote_path),
            f"list directory {remote_path}",
            {"file_path": remote_path},
        )

    def upload_directory(
        self,
        local_path: PathLike,
        remote_path: str,
        summary: Optional[TransferSummary] = None,
    ) -> TransferSummary:
        """
        Upload a local directory tree.

        A file or subdirectory that fails is logged, recorded in the
        summary and skipped; the walk continues with its siblings.

        Args:
            local_path: Local directory
            remote_path: Remote directory it maps to (must exist)
            summary: Summary to accumulate into

        Returns:
            TransferSummary of the walk

        Raises:
            FTPError: If the top-level directory cannot be read
        """
        summary = summary if summary is not None else TransferSummary()
        root = Path(local_path)
        stack: List[Tuple[Path, str]] = [(root, remote_path)]

        while stack:
            local_dir, remote_dir = stack.pop()
            logger.info(f"Exploring local directory: {local_dir}")

            try:
                entries = sorted(os.scandir(local_dir), key=lambda e: e.name)
            except OSError as e:
                error = classify_error(e, {"file_path": str(local_dir)})
                logger.error(f"Error listing directory {local_dir}: {error.message}")
                if local_dir == root:
                    raise error from e
                summary.record_failure(str(local_dir), error)
                continue

            if not entries:
                logger.warning(f"No files found in: {local_dir}")
                continue

            logger.info(f"Found {len(entries)} items in {local_dir}")
            subdirectories: List[Tuple[Path, str]] = []

            for entry in entries:
                local_item = Path(entry.path)
                remote_item = posixpath.join(remote_dir, entry.name)
                relative = _relative_to(local_item, root)

                if entry.is_dir():
                    logger.info(f"Processing directory: {relative}")
                    try:
                        created = self._make_directory(remote_item)
                    except FTPError as e:
                        logger.error(f"Error creating directory {relative}: {e}")
                        summary.record_failure(remote_item, e)
                        continue
                    if created:
                        summary.directories_created += 1
                    subdirectories.append((local_item, remote_item))
                elif entry.is_file():
                    logger.info(f"Uploading: {remote_item}")
                    try:
                        self.upload_file(local_item, remote_item)
                    except FTPError as e:
                        logger.error(f"Error uploading {relative}: {e}")
                        summary.record_failure(remote_item, e)
                        continue
                    summary.files_transferred += 1
                else:
                    logger.warning(f"Unknown item type: {entry.name}")

            # Reversed so subdirectories are visited in name order
            stack.extend(reversed(subdirectories))

        return summary

    def download_directory(
        self,
        remote_path: str,
        local_path: PathLike,
        summary: Optional[TransferSummary] = None,
        entries: Optional[List[RemoteEntry]] = None,
    ) -> TransferSummary:
        """
        Download a remote directory tree.

        Mirror of upload_directory: failing files and subdirectories are
        logged, recorded and skipped.

        Args:
            remote_path: Remote directory
            local_path: Local directory it maps to
            summary: Summary to accumulate into
            entries: Pre-fetched listing of remote_path, if already known

        Returns:
            TransferSummary of the walk

        Raises:
            FTPError: If the top-level directory cannot be listed
        """
        summary = summary if summary is not None else TransferSummary()
        root = Path(local_path)
        stack: List[Tuple[str, Path, Optional[List[RemoteEntry]]]] = [
            (remote_path, root, entries)
        ]

        while stack:
            remote_dir, local_dir, listing = stack.pop()
            logger.info(f"Exploring directory: {remote_dir}")

            if listing is None:
                try:
                    listing = self.list_directory(remote_dir)
                except FTPError as e:
                    logger.error(f"Error listing directory {remote_dir}: {e}")
                    if remote_dir == remote_path:
                        raise
                    summary.record_failure(remote_dir, e)
                    continue

            if not listing:
                logger.warning(f"No files found in: {remote_dir}")
                continue

            logger.info(f"Found {len(listing)} items in {remote_dir}")
            subdirectories: List[Tuple[str, Path, None]] = []

            for item in listing:
                if not _is_safe_name(item.name):
                    logger.warning(f"Skipping unsafe entry name: {item.name!r}")
                    continue

                remote_item = posixpath.join(remote_dir, item.name)
                local_item = local_dir / item.name

                if item.is_directory:
                    logger.info(f"Processing directory: {item.name}")
                    if not local_item.exists():
                        try:
                            local_item.mkdir(parents=True, exist_ok=True)
                        except OSError as e:
                            error = classify_error(e, {"file_path": str(local_item)})
                            logger.error(f"Error creating {local_item}: {error.message}")
                            summary.record_failure(remote_item, error)
                            continue
                        summary.directories_created += 1
                        logger.info(
                            f"Local directory created: {_relative_to(local_item, root)}"
                        )
                    subdirectories.append((remote_item, local_item, None))
                elif item.is_file:
                    logger.info(f"Downloading: {remote_item}")
                    try:
                        self.download_file(remote_item, local_item)
                    except FTPError as e:
                        logger.error(f"Error downloading {remote_item}: {e}")
                        summary.record_failure(remote_item, e)
                        continue
                    summary.files_transferred += 1
                else:
                    logger.warning(f"Unknown item type: {item.raw_type} ({item.name})")

            stack.extend(reversed(subdirectories))

        return summary

    def upload_all(self, local_base_path: PathLike, remote_base_path: str) -> TransferSummary:
        """
        Upload the whole local tree to the server (push all).

        Args:
            local_base_path: Local root directory
            remote_base_path: Remote root directory

        Returns:
            TransferSummary; per-file failures do not raise

        Raises:
            FTPFileNotFoundError: If the local root does not exist
            FTPError: If the remote root cannot be created
        """
        config = self._connection.config
        local_root = Path(local_base_path)
        logger.info("Starting complete FTP upload...")
        logger.info(f"Source: {local_root}")
        logger.info(f"Destination: {config.host}:{config.port}{remote_base_path}")

        if not local_root.is_dir():
            raise FTPFileNotFoundError(
                f"Local directory does not exist: {local_root}",
                file_path=str(local_root),
            )

        start_time = time.time()
        item_count = sum(1 for _ in local_root.iterdir())
        logger.info(f"Local directory verified. {item_count} items found.")

        self.create_directory(remote_base_path)
        logger.info(f"Remote directory verified: {remote_base_path}")

        summary = self.upload_directory(local_root, remote_base_path)
        summary.duration_seconds = time.time() - start_time

        logger.info("Complete upload finished")
        logger.info(f"Files uploaded from: {local_root}")
        return summary

    def download_all(self, remote_base_path: str, local_base_path: PathLike) -> TransferSummary:
        """
        Download the whole remote tree to the local folder.

        Args:
            remote_base_path: Remote root directory
            local_base_path: Local root directory (created if missing)

        Returns:
            TransferSummary; per-file failures do not raise

        Raises:
            FTPError: If the remote root cannot be listed
        """
        config = self._connection.config
        local_root = Path(local_base_path)
        logger.info("Starting complete FTP download...")
        logger.info(f"Source: {config.host}:{config.port}{remote_base_path}")
        logger.info(f"Destination: {local_root}")

        start_time = time.time()
        if not local_root.exists():
            try:
                local_root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise classify_error(e, {"file_path": str(local_root)}) from e
            logger.info(f"Local directory created: {local_root}")

        entries = self.list_directory(remote_base_path)
        logger.info(f"Access confirmed. {len(entries)} items found.")

        summary = self.download_directory(remote_base_path, local_root, entries=entries)
        summary.duration_seconds = time.time() - start_time

        logger.info("Complete download finished")
        logger.info(f"Files downloaded to: {local_root}")
        return summary

    def test_connection(self) -> bool:
        """
        Open (or reuse) the pooled session to validate credentials.

        Raises:
            FTPError: If the connection cannot be established
        """
        self._connection.get_connection()
        self._connection.release_connection()
        return True

    def shutdown(self) -> None:
        """Close the pooled session."""
        self._connection.shutdown()


def _is_safe_name(name: str) -> bool:
    """Reject entry names that would escape the target directory."""
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def _relative_to(path: Path, base: Path) -> str:
    try:
        return str(path.relative_to(base))
    except ValueError:
        return str(path)


def _display_path(path: Path) -> str:
    """Path relative to the working directory when possible."""
    try:
        return os.path.relpath(path)
    except ValueError:
        return str(path)
