# smart_transfer/core/filesystem.py

import logging
import os
import shutil
import stat
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, ContextManager, Iterator, List, Protocol, runtime_checkable

from .errors import ListingError
from .models import EntryKind, FileEntry

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

# Windows marks hidden files with an attribute rather than a leading dot.
_FILE_ATTRIBUTE_HIDDEN = getattr(stat, "FILE_ATTRIBUTE_HIDDEN", 0x2)


@runtime_checkable
class RemoteSession(Protocol):
    """
    The filesystem capability the transfer engine consumes for one endpoint.

    Both the remote session and the local filesystem adapter satisfy this
    contract, which lets the queue move bytes in either direction with the
    same code.

    `max_streams` is the number of simultaneous streams the transport can
    carry (None means no limit of its own). The queue never runs more
    executions than this.
    """
    max_streams: int | None

    def connect(self) -> None: ...

    def disconnect(self) -> None: ...

    def list(self, path: str) -> List[FileEntry]: ...

    def stat(self, path: str) -> FileEntry: ...

    def read_chunked(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]: ...

    def write_chunked(self, path: str) -> ContextManager[BinaryIO]: ...

    def mkdir(self, path: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def remove_directory(self, path: str) -> None: ...

    def join(self, *parts: str) -> str: ...

    def parent(self, path: str) -> str: ...


def format_permissions(st_mode: int) -> str:
    """Renders the permission bits of a mode as octal digits, e.g. '755'."""
    return format(stat.S_IMODE(st_mode) & 0o777, "o")


class LocalFileSystem:
    """
    The local machine, seen through the same contract as a remote session.

    Args:
        max_streams: Optional cap on simultaneous streams. The local disk has
            no cap of its own, so the default is None.
    """

    def __init__(self, max_streams: int | None = None):
        self.max_streams = max_streams

    # --- Session lifecycle (nothing to negotiate locally) ---

    def connect(self) -> None:
        logger.debug("Local filesystem adapter ready.")

    def disconnect(self) -> None:
        logger.debug("Local filesystem adapter released.")

    # --- Listing ---

    def _entry_from_stat(self, path: Path, st: os.stat_result) -> FileEntry:
        is_dir = stat.S_ISDIR(st.st_mode)
        attributes = getattr(st, "st_file_attributes", 0)
        return FileEntry(
            name=path.name,
            kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
            size=0 if is_dir else st.st_size,
            permissions=format_permissions(st.st_mode),
            modified_at=datetime.fromtimestamp(st.st_mtime),
            path=str(path),
            hidden_flag=bool(attributes & _FILE_ATTRIBUTE_HIDDEN),
        )

    def list(self, path: str) -> List[FileEntry]:
        """
        Lists the immediate children of a local directory.

        Raises:
            ListingError: If the directory is missing, unreadable or not a directory.
        """
        directory = Path(path)
        entries = []
        try:
            with os.scandir(directory) as scan:
                for child in scan:
                    try:
                        st = child.stat()
                    except OSError as e:
                        # A child that vanishes mid-scan is skipped rather than failing the listing.
                        logger.debug(f"Skipping '{child.path}' during listing: {e}")
                        continue
                    entries.append(self._entry_from_stat(Path(child.path), st))
        except FileNotFoundError:
            raise ListingError(path, "path not found") from None
        except PermissionError:
            raise ListingError(path, "permission denied") from None
        except NotADirectoryError:
            raise ListingError(path, "not a directory") from None
        except OSError as e:
            raise ListingError(path, e.strerror or str(e)) from e

        logger.debug(f"Listed {len(entries)} local entries in '{path}'.")
        return entries

    def stat(self, path: str) -> FileEntry:
        target = Path(path)
        try:
            st = target.stat()
        except FileNotFoundError:
            raise ListingError(path, "path not found") from None
        except OSError as e:
            raise ListingError(path, e.strerror or str(e)) from e
        if not target.name:
            target = target.resolve()
        if not target.name:
            raise ListingError(path, "a filesystem root has no entry of its own")
        return self._entry_from_stat(target, st)

    # --- Byte streams ---

    def read_chunked(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yields the file's content in order, chunk_size bytes at a time."""
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    return
                yield chunk

    def write_chunked(self, path: str) -> ContextManager[BinaryIO]:
        """Opens a sink for path, creating the parent directory if needed."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        return open(path, "wb")

    # --- Mutations ---

    def mkdir(self, path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def remove(self, path: str) -> None:
        Path(path).unlink(missing_ok=True)

    def remove_directory(self, path: str) -> None:
        target = Path(path)
        if not target.exists():
            logger.debug(f"Directory '{path}' already absent.")
            return
        shutil.rmtree(target)

    # --- Path arithmetic ---

    def join(self, *parts: str) -> str:
        return os.path.join(*parts)

    def parent(self, path: str) -> str:
        return os.path.dirname(os.path.abspath(path))
