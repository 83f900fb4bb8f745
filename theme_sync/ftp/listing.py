"""Remote directory listing for the theme sync tool.

Turns MLSD facts or raw LIST lines into RemoteEntry objects. Entry types
arrive as single-character codes, small integers or MLSD words depending on
the server reply; they all map onto the same EntryType values.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from ftplib import FTP, error_perm
from typing import List, Optional, Union

logger = logging.getLogger("theme_sync.listing")


class EntryType(Enum):
    """Kind of a remote directory entry."""
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    UNKNOWN = "unknown"


TypeCode = Union[str, int, None]

_TYPE_CODES = {
    "-": EntryType.FILE,
    "1": EntryType.FILE,
    "file": EntryType.FILE,
    "d": EntryType.DIRECTORY,
    "2": EntryType.DIRECTORY,
    "dir": EntryType.DIRECTORY,
    "directory": EntryType.DIRECTORY,
    "l": EntryType.SYMLINK,
    "3": EntryType.SYMLINK,
    "os.unix=symlink": EntryType.SYMLINK,
}

# MLSD entries describing the listed directory itself or its parent
_SELF_TYPES = {"cdir", "pdir"}

# Reply codes meaning "command not implemented / not understood"
_UNSUPPORTED_REPLIES = ("500", "501", "502", "504")

_DOS_LINE = re.compile(
    r"^\d{2}-\d{2}-\d{2,4}\s+\d{1,2}:\d{2}(?:AM|PM)?\s+(<DIR>|\d+)\s+(.+)$",
    re.IGNORECASE,
)


def entry_type_from_code(code: TypeCode) -> EntryType:
    """
    Map a type code to an EntryType.

    Args:
        code: "d", "-", 2, 1, "dir", "file", ... (case-insensitive)

    Returns:
        Matching EntryType, UNKNOWN for anything unrecognized
    """
    if code is None:
        return EntryType.UNKNOWN
    return _TYPE_CODES.get(str(code).strip().lower(), EntryType.UNKNOWN)


@dataclass
class RemoteEntry:
    """One child of a remote directory."""
    name: str
    type: EntryType
    size: Optional[int] = None
    raw_type: TypeCode = None

    @classmethod
    def from_code(
        cls,
        name: str,
        code: TypeCode,
        size: Optional[int] = None,
    ) -> "RemoteEntry":
        return cls(name=name, type=entry_type_from_code(code), size=size, raw_type=code)

    @property
    def is_directory(self) -> bool:
        return self.type == EntryType.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.type == EntryType.FILE


def parse_list_line(line: str) -> Optional[RemoteEntry]:
    """
    Parse one line of LIST output.

    Understands Unix "ls -l" style and DOS/IIS style lines.

    Returns:
        RemoteEntry, or None for blank, "total" and self/parent lines
    """
    line = line.rstrip("\r\n")
    if not line.strip() or line.lower().startswith("total "):
        return None

    dos = _DOS_LINE.match(line)
    if dos:
        size_or_dir, name = dos.groups()
        if size_or_dir.upper() == "<DIR>":
            entry = RemoteEntry.from_code(name, "d")
        else:
            entry = RemoteEntry.from_code(name, "-", int(size_or_dir))
    else:
        parts = line.split(None, 8)
        if len(parts) < 9:
            logger.debug(f"Unparseable LIST line: {line!r}")
            return None
        permissions, size, name = parts[0], parts[4], parts[8]
        code = permissions[0]
        if code == "l" and " -> " in name:
            name = name.split(" -> ", 1)[0]
        entry = RemoteEntry.from_code(
            name, code, int(size) if size.isdigit() else None
        )

    if entry.name in (".", ".."):
        return None
    return entry


def _list_with_mlsd(ftp: FTP, path: str) -> List[RemoteEntry]:
    entries = []
    for name, facts in ftp.mlsd(path, facts=["type", "size"]):
        kind = facts.get("type", "").lower()
        if kind in _SELF_TYPES or name in (".", ".."):
            continue
        size = facts.get("size")
        entries.append(
            RemoteEntry.from_code(name, kind, int(size) if size and size.isdigit() else None)
        )
    return entries


def _list_with_list(ftp: FTP, path: str) -> List[RemoteEntry]:
    lines: List[str] = []
    ftp.retrlines(f"LIST {path}", lines.append)
    entries = []
    for line in lines:
        entry = parse_list_line(line)
        if entry is not None:
            entries.append(entry)
    return entries


def list_entries(ftp: FTP, path: str) -> List[RemoteEntry]:
    """
    List a remote directory.

    Uses MLSD, falling back to LIST when the server does not support it.

    Args:
        ftp: Open FTP session
        path: Remote directory path

    Returns:
        Entries of the directory (self/parent entries excluded)

    Raises:
        error_perm: If the path is missing or not accessible
    """
    try:
        return _list_with_mlsd(ftp, path)
    except error_perm as e:
        if not str(e).startswith(_UNSUPPORTED_REPLIES):
            raise
        logger.debug(f"MLSD not supported ({e}), falling back to LIST")
    return _list_with_list(ftp, path)
