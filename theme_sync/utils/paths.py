"""Translation between local theme paths and remote FTP paths."""

import os
import posixpath
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


class PathTranslator:
    """
    Maps files under the local theme folder to paths under the FTP base path.

    Remote paths always use forward slashes; local paths use the platform
    separator.
    """

    def __init__(self, theme_folder_path: PathLike, ftp_base_path: str = "/"):
        """
        Args:
            theme_folder_path: Local theme folder
            ftp_base_path: Remote directory the theme folder maps to
        """
        self._theme_folder = Path(theme_folder_path)
        base = self.to_posix(ftp_base_path or "/")
        if not base.startswith("/"):
            base = "/" + base
        if len(base) > 1:
            base = base.rstrip("/")
        self._ftp_base = base

    @property
    def theme_folder_path(self) -> Path:
        return self._theme_folder

    @property
    def ftp_base_path(self) -> str:
        return self._ftp_base

    def get_relative_path(self, full_path: PathLike) -> str:
        """Path relative to the theme folder ("" for the folder itself)."""
        relative = os.path.relpath(os.fspath(full_path), os.fspath(self._theme_folder))
        return "" if relative == os.curdir else relative

    def get_remote_path(self, local_full_path: PathLike) -> str:
        """
        Convert a local path to its remote FTP path.

        Args:
            local_full_path: Path inside the theme folder

        Returns:
            Remote path with POSIX separators
        """
        relative = self.to_posix(self.get_relative_path(local_full_path))
        if not relative:
            return self._ftp_base
        return posixpath.normpath(posixpath.join(self._ftp_base, relative))

    def get_local_path(self, remote_path: str) -> Path:
        """
        Convert a remote FTP path to its local path.

        The base path prefix is removed only when it matches whole path
        segments, so "/themes2/x" is not treated as being under "/themes".
        """
        relative = self.to_posix(remote_path)
        base = self._ftp_base
        if base != "/" and (relative == base or relative.startswith(base + "/")):
            relative = relative[len(base):]
        relative = relative.lstrip("/")

        if not relative:
            return self._theme_folder
        return self._theme_folder.joinpath(*relative.split("/"))

    def normalize_remote_path(self, target_path: str) -> str:
        """Absolute paths are kept; relative ones are placed under the base path."""
        target = self.to_posix(target_path)
        if target.startswith("/"):
            return target
        return posixpath.join(self._ftp_base, target)

    @staticmethod
    def to_posix(file_path: PathLike) -> str:
        """Replace backslashes with forward slashes."""
        return os.fspath(file_path).replace("\\", "/")
