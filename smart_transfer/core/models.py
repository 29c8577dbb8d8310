# smart_transfer/core/models.py

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class EntryKind(Enum):
    """The two kinds of record a directory listing can contain."""
    FILE = "file"
    DIRECTORY = "directory"


class Side(Enum):
    """Which pane of the dual-pane browser a listing belongs to."""
    LOCAL = "local"
    REMOTE = "remote"


class SortKey(Enum):
    NAME = "name"
    MODIFIED_AT = "modified"


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class FileEntry:
    """
    An immutable snapshot of one file or directory returned by a listing.

    Args:
        name: The bare entry name. It must not contain "/"; a backslash is an
            ordinary character on POSIX and SFTP hosts.
        kind: EntryKind.FILE or EntryKind.DIRECTORY.
        size: Size in bytes. Only meaningful for files.
        permissions: Platform-opaque permission string.
        modified_at: Last modification time.
        path: Full path, unique within one side's namespace.
        hidden_flag: Set when the source explicitly marks the entry hidden
            (e.g. the Windows hidden attribute).
    """
    name: str
    kind: EntryKind
    size: int
    permissions: str
    modified_at: datetime
    path: str
    hidden_flag: bool = False

    def __post_init__(self):
        if not self.name or "/" in self.name:
            raise ValueError(f"Entry name must be a bare name without a slash: {self.name!r}")
        if self.size < 0:
            raise ValueError(f"Entry size cannot be negative: {self.size}")

    @property
    def is_hidden(self) -> bool:
        return self.name.startswith(".") or self.hidden_flag

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE


@dataclass(frozen=True)
class ListingOptions:
    """Visibility and ordering preferences applied to one side's listing."""
    show_hidden: bool = False
    sort_key: SortKey = SortKey.NAME
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class DirectorySide:
    """
    The read model of one pane: where it is, what it shows, and whether the
    last listing attempt is still running or failed.

    Instances are replaced wholesale on every change, so a reference handed
    to the UI never changes underneath it.
    """
    current_path: str
    entries: tuple[FileEntry, ...] = field(default_factory=tuple)
    is_loading: bool = False
    last_error: str | None = None
