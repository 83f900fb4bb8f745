"""Unit tests for FTPService.

Tests the retry wrapper, single-file operations and the recursive
upload/download walks against a mocked connection manager.
"""

import socket
import threading
import time
from ftplib import error_perm
from unittest.mock import MagicMock, call, patch

import pytest

from theme_sync.ftp.exceptions import (
    FTPConnectionError,
    FTPFileNotFoundError,
    FTPPermissionError,
)
from theme_sync.ftp.listing import RemoteEntry
from theme_sync.ftp.service import FTPService, RetryPolicy, TransferSummary


@pytest.fixture
def service(mock_connection) -> FTPService:
    return FTPService(mock_connection)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 2
        assert policy.base_delay == 1.0
        assert policy.max_delay == 5.0

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(max_retries=5, base_delay=1.0, max_delay=5.0)
        assert [policy.delay_for(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]

    def test_invalid_max_retries(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=0)


class TestExecuteOperation:
    """Tests for the retry wrapper."""

    def test_returns_operation_result(self, service, mock_session):
        result = service.execute_operation(lambda ftp: ftp, "echo")
        assert result is mock_session

    @patch("theme_sync.ftp.service.time.sleep")
    def test_session_is_released_after_each_attempt(self, mock_sleep, service, mock_connection):
        operation = MagicMock(side_effect=[ConnectionResetError("Connection reset"), "ok"])

        assert service.execute_operation(operation, "flaky") == "ok"
        assert mock_connection.release_connection.call_count == 2

    @patch("theme_sync.ftp.service.time.sleep")
    def test_retryable_failure_is_retried(self, mock_sleep, service, mock_connection):
        operation = MagicMock(side_effect=ConnectionResetError("Connection reset by peer"))

        with pytest.raises(FTPConnectionError):
            service.execute_operation(operation, "flaky")

        assert operation.call_count == 2
        mock_connection.invalidate_connection.assert_called_once()
        mock_sleep.assert_called_once_with(1.0)

    @patch("theme_sync.ftp.service.time.sleep")
    def test_non_retryable_failure_is_not_retried(self, mock_sleep, service, mock_connection):
        operation = MagicMock(side_effect=error_perm("550 No such file or directory."))

        with pytest.raises(FTPFileNotFoundError) as exc_info:
            service.execute_operation(operation, "missing", {"file_path": "/theme/x.txt"})

        assert operation.call_count == 1
        assert exc_info.value.file_path == "/theme/x.txt"
        mock_connection.invalidate_connection.assert_not_called()
        mock_sleep.assert_not_called()

    @patch("theme_sync.ftp.service.time.sleep")
    def test_recovers_on_second_attempt(self, mock_sleep, service):
        operation = MagicMock(side_effect=[socket.timeout("timed out"), "ok"])

        assert service.execute_operation(operation, "slow") == "ok"
        assert operation.call_count == 2

    @patch("theme_sync.ftp.service.time.sleep")
    def test_connect_failure_counts_as_attempt(self, mock_sleep, service, mock_connection, mock_session):
        mock_connection.get_connection.side_effect = [
            FTPConnectionError("Could not connect to FTP server: refused"),
            mock_session,
        ]
        operation = MagicMock(return_value=True)

        assert service.execute_operation(operation, "op") is True
        operation.assert_called_once_with(mock_session)

    @patch("theme_sync.ftp.service.time.sleep")
    def test_backoff_sequence(self, mock_sleep, mock_connection):
        service = FTPService(mock_connection, RetryPolicy(max_retries=4, base_delay=1.0))
        operation = MagicMock(side_effect=ConnectionResetError("Connection reset"))

        with pytest.raises(FTPConnectionError):
            service.execute_operation(operation, "op")

        assert operation.call_count == 4
        assert mock_sleep.call_args_list == [call(1.0), call(2.0), call(4.0)]
        assert mock_connection.invalidate_connection.call_count == 3

    def test_operations_do_not_overlap(self, service):
        active = []
        overlaps = []

        def operation(ftp):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.05)
            active.pop()

        threads = [
            threading.Thread(target=service.execute_operation, args=(operation, "op"))
            for _ in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert overlaps == []


class TestFileOperations:
    """Tests for single-file operations."""

    def test_upload_missing_local_file(self, service, mock_connection, tmp_path):
        with pytest.raises(FTPFileNotFoundError, match="Local file does not exist"):
            service.upload_file(tmp_path / "nope.txt", "/theme/nope.txt")

        mock_connection.get_connection.assert_not_called()

    def test_upload_creates_missing_directories(self, service, mock_session, tmp_path):
        local = tmp_path / "a.txt"
        local.write_text("hello")
        existing = {"/theme"}

        def cwd(path):
            if path not in existing:
                raise error_perm("550 Failed to change directory.")

        mock_session.cwd.side_effect = cwd

        assert service.upload_file(local, "/theme/sub/a.txt") is True

        mock_session.mkd.assert_called_once_with("/theme/sub")
        assert mock_session.storbinary.call_args.args[0] == "STOR /theme/sub/a.txt"

    def test_download_writes_file(self, service, mock_session, tmp_path):
        def retrbinary(command, callback, blocksize=8192):
            callback(b"hello ")
            callback(b"world")

        mock_session.retrbinary.side_effect = retrbinary
        local = tmp_path / "nested" / "a.txt"

        assert service.download_file("/theme/a.txt", local) is True

        assert local.read_bytes() == b"hello world"
        assert mock_session.retrbinary.call_args.args[0] == "RETR /theme/a.txt"

    def test_download_failure_removes_partial_file(self, service, mock_session, tmp_path):
        def retrbinary(command, callback, blocksize=8192):
            callback(b"partial")
            raise error_perm("550 No such file or directory.")

        mock_session.retrbinary.side_effect = retrbinary
        local = tmp_path / "a.txt"

        with pytest.raises(FTPFileNotFoundError):
            service.download_file("/theme/a.txt", local)

        assert not local.exists()

    def test_delete_file(self, service, mock_session):
        assert service.delete_file("/theme/a.txt") is True
        mock_session.delete.assert_called_once_with("/theme/a.txt")

    def test_create_directory(self, service, mock_session):
        mock_session.cwd.side_effect = error_perm("550 Failed to change directory.")

        assert service.create_directory("/theme/css") is True

        assert mock_session.mkd.call_args_list == [call("/theme"), call("/theme/css")]

    def test_create_relative_directory(self, service, mock_session):
        existing = {"/home"}

        def cwd(path):
            if path not in existing:
                raise error_perm("550 Failed to change directory.")

        mock_session.pwd.return_value = "/home"
        mock_session.cwd.side_effect = cwd
        mock_session.mkd.side_effect = existing.add

        assert service.create_directory("theme/sub") is True

        assert mock_session.mkd.call_args_list == [call("/home/theme"), call("/home/theme/sub")]
        assert mock_session.cwd.call_args_list[-1] == call("/home")

    @patch("theme_sync.ftp.service.list_entries")
    def test_remove_directory_is_recursive(self, mock_list, service, mock_session):
        mock_list.side_effect = lambda ftp, path: {
            "/theme/old": [
                RemoteEntry.from_code("a.txt", "-"),
                RemoteEntry.from_code("sub", "d"),
            ],
            "/theme/old/sub": [RemoteEntry.from_code("b.txt", "-")],
        }[path]

        assert service.remove_directory("/theme/old") is True

        assert mock_session.delete.call_args_list == [
            call("/theme/old/a.txt"),
            call("/theme/old/sub/b.txt"),
        ]
        assert mock_session.rmd.call_args_list == [
            call("/theme/old/sub"),
            call("/theme/old"),
        ]

    @patch("theme_sync.ftp.service.list_entries")
    def test_list_directory(self, mock_list, service, mock_session):
        entries = [RemoteEntry.from_code("a.txt", "-")]
        mock_list.return_value = entries

        assert service.list_directory("/theme") == entries
        mock_list.assert_called_once_with(mock_session, "/theme")


class TestUploadDirectory:
    """Tests for the recursive upload walk."""

    def test_uploads_tree(self, service, tmp_path):
        root = tmp_path / "theme"
        (root / "sub").mkdir(parents=True)
        (root / "a.txt").write_text("a")
        (root / "sub" / "b.txt").write_text("b")

        with patch.object(service, "upload_file") as upload, \
                patch.object(service, "_make_directory", return_value=True) as create:
            summary = service.upload_directory(root, "/theme")

        assert upload.call_args_list == [
            call(root / "a.txt", "/theme/a.txt"),
            call(root / "sub" / "b.txt", "/theme/sub/b.txt"),
        ]
        create.assert_called_once_with("/theme/sub")
        assert summary.files_transferred == 2
        assert summary.directories_created == 1
        assert summary.has_failures is False

    def test_failed_file_is_skipped(self, service, tmp_path):
        root = tmp_path / "theme"
        root.mkdir()
        for name in ("a.txt", "b.txt", "c.txt"):
            (root / name).write_text(name)

        with patch.object(service, "upload_file") as upload:
            upload.side_effect = [True, FTPPermissionError("Permission denied: /theme/b.txt"), True]
            summary = service.upload_directory(root, "/theme")

        assert upload.call_count == 3
        assert summary.files_transferred == 2
        assert summary.failures == [("/theme/b.txt", "Permission denied: /theme/b.txt")]

    def test_failed_subdirectory_is_skipped(self, service, tmp_path):
        root = tmp_path / "theme"
        (root / "bad").mkdir(parents=True)
        (root / "bad" / "x.txt").write_text("x")
        (root / "z.txt").write_text("z")

        with patch.object(service, "upload_file") as upload, \
                patch.object(service, "_make_directory") as create:
            create.side_effect = FTPPermissionError("Permission denied: /theme/bad")
            summary = service.upload_directory(root, "/theme")

        upload.assert_called_once_with(root / "z.txt", "/theme/z.txt")
        assert summary.files_failed == 1

    def test_existing_subdirectory_is_not_counted(self, service, mock_session, tmp_path):
        root = tmp_path / "theme"
        (root / "css").mkdir(parents=True)
        (root / "css" / "style.css").write_text("body {}")

        summary = service.upload_directory(root, "/theme")

        mock_session.mkd.assert_not_called()
        assert summary.directories_created == 0
        assert summary.files_transferred == 1

    def test_empty_directory(self, service, tmp_path):
        root = tmp_path / "empty"
        root.mkdir()

        with patch.object(service, "upload_file") as upload:
            summary = service.upload_directory(root, "/theme")

        upload.assert_not_called()
        assert summary == TransferSummary()


class TestDownloadDirectory:
    """Tests for the recursive download walk."""

    @pytest.mark.parametrize("file_code, dir_code", [
        (1, 2),
        ("-", "d"),
        ("file", "dir"),
    ])
    def test_type_codes_are_equivalent(self, service, tmp_path, file_code, dir_code):
        listings = {
            "/theme": [
                RemoteEntry.from_code("a.txt", file_code),
                RemoteEntry.from_code("sub", dir_code),
                RemoteEntry.from_code("link", 3),
                RemoteEntry.from_code("odd", 0),
            ],
            "/theme/sub": [RemoteEntry.from_code("b.txt", file_code)],
        }
        local = tmp_path / "theme"
        local.mkdir()

        with patch.object(service, "list_directory", side_effect=listings.__getitem__), \
                patch.object(service, "download_file") as download:
            summary = service.download_directory("/theme", local)

        assert download.call_args_list == [
            call("/theme/a.txt", local / "a.txt"),
            call("/theme/sub/b.txt", local / "sub" / "b.txt"),
        ]
        assert (local / "sub").is_dir()
        assert summary.files_transferred == 2
        assert summary.directories_created == 1

    def test_unsafe_names_are_skipped(self, service, tmp_path):
        listing = [
            RemoteEntry.from_code("../evil.txt", "-"),
            RemoteEntry.from_code("..", "d"),
            RemoteEntry.from_code("ok.txt", "-"),
        ]

        with patch.object(service, "download_file") as download:
            service.download_directory("/theme", tmp_path, entries=listing)

        download.assert_called_once_with("/theme/ok.txt", tmp_path / "ok.txt")

    def test_failed_file_is_skipped(self, service, tmp_path):
        listing = [RemoteEntry.from_code(name, "-") for name in ("a", "b", "c")]

        with patch.object(service, "download_file") as download:
            download.side_effect = [True, FTPPermissionError("Permission denied: /theme/b"), True]
            summary = service.download_directory("/theme", tmp_path, entries=listing)

        assert download.call_count == 3
        assert summary.files_transferred == 2
        assert summary.files_failed == 1

    def test_failed_subdirectory_listing_is_skipped(self, service, tmp_path):
        def list_directory(path):
            if path == "/theme/locked":
                raise FTPPermissionError("Permission denied: /theme/locked")
            return [RemoteEntry.from_code("locked", "d"), RemoteEntry.from_code("a.txt", "-")]

        with patch.object(service, "list_directory", side_effect=list_directory), \
                patch.object(service, "download_file") as download:
            summary = service.download_directory("/theme", tmp_path)

        download.assert_called_once_with("/theme/a.txt", tmp_path / "a.txt")
        assert summary.failures[0][0] == "/theme/locked"

    def test_root_listing_failure_raises(self, service, tmp_path):
        with patch.object(service, "list_directory") as list_directory:
            list_directory.side_effect = FTPPermissionError("Permission denied: /theme")
            with pytest.raises(FTPPermissionError):
                service.download_directory("/theme", tmp_path)


class TestBulkOperations:
    """Tests for upload_all() and download_all()."""

    def test_upload_all_missing_local_root(self, service, mock_connection, tmp_path):
        with pytest.raises(FTPFileNotFoundError):
            service.upload_all(tmp_path / "missing", "/theme")

        mock_connection.get_connection.assert_not_called()

    def test_upload_all(self, service, theme_dir):
        with patch.object(service, "create_directory") as create, \
                patch.object(service, "_make_directory", return_value=True) as make, \
                patch.object(service, "upload_file") as upload:
            summary = service.upload_all(theme_dir, "/theme")

        create.assert_called_once_with("/theme")
        assert make.call_args_list == [call("/theme/config"), call("/theme/templates")]
        assert upload.call_count == 3
        assert summary.files_transferred == 3
        assert summary.directories_created == 2
        assert summary.duration_seconds >= 0

    @patch("theme_sync.ftp.service.time.sleep")
    def test_upload_all_continues_after_failed_file(self, mock_sleep, service, mock_session, tmp_path):
        root = tmp_path / "theme"
        root.mkdir()
        for name in ("a.txt", "b.txt", "c.txt"):
            (root / name).write_text(name)

        def store(cmd, fp, blocksize=None):
            if cmd.endswith("b.txt"):
                raise ConnectionResetError("Connection reset by peer")

        mock_session.storbinary.side_effect = store

        summary = service.upload_all(root, "/theme")

        commands = [c.args[0] for c in mock_session.storbinary.call_args_list]
        assert commands.count("STOR /theme/b.txt") == 2
        assert commands[-1] == "STOR /theme/c.txt"
        assert summary.files_transferred == 2
        assert summary.files_failed == 1
        assert summary.failures[0][0] == "/theme/b.txt"

    def test_download_all_lists_root_once(self, service, tmp_path):
        listings = {
            "/theme": [RemoteEntry.from_code("a.txt", "-")],
        }
        local = tmp_path / "new_theme"

        with patch.object(service, "list_directory", side_effect=listings.__getitem__) as lister, \
                patch.object(service, "download_file") as download:
            summary = service.download_all("/theme", local)

        assert local.is_dir()
        lister.assert_called_once_with("/theme")
        download.assert_called_once_with("/theme/a.txt", local / "a.txt")
        assert summary.files_transferred == 1

    def test_download_all_empty_remote(self, service, tmp_path):
        with patch.object(service, "list_directory", return_value=[]), \
                patch.object(service, "download_file") as download:
            summary = service.download_all("/theme", tmp_path)

        download.assert_not_called()
        assert summary.files_transferred == 0


class TestLifecycle:

    def test_test_connection(self, service, mock_connection):
        assert service.test_connection() is True
        mock_connection.get_connection.assert_called_once()
        mock_connection.release_connection.assert_called_once()

    def test_shutdown(self, service, mock_connection):
        service.shutdown()
        mock_connection.shutdown.assert_called_once()
