# smart_transfer/core/sftp_session.py

import errno
import logging
import posixpath
import stat
from datetime import datetime
from typing import BinaryIO, Callable, ContextManager, Iterator, List

import paramiko

from .errors import ListingError, TransferEngineError
from .filesystem import DEFAULT_CHUNK_SIZE, format_permissions
from .models import EntryKind, FileEntry

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
DEFAULT_TIMEOUT = 10.0


def _listing_reason(error: IOError) -> str:
    """Maps an SFTP status error to the short reason shown next to a failed listing."""
    if error.errno == errno.ENOENT:
        return "path not found"
    if error.errno == errno.EACCES:
        return "permission denied"
    return error.strerror or str(error) or type(error).__name__


def _connection_reason(error: paramiko.SSHException) -> str:
    detail = str(error).strip().rstrip(":")
    return f"connection lost ({detail})" if detail else "connection lost"


class SftpSession:
    """
    A remote host reached over SSH, exposed through the RemoteSession contract.

    Every transfer shares the single SFTP channel opened by connect().

    Args:
        host: Host name or address.
        port: SSH port.
        username: Login name.
        password: Password, if password authentication is used.
        key_filename: Path to a private key, if key authentication is used.
        max_streams: How many transfers may use the session at once. None
            lets the configured queue concurrency decide.
        timeout: Connection timeout in seconds.
        client_factory: Builds the SSH client. Tests substitute a fake here.
    """

    def __init__(
            self,
            host: str,
            port: int = DEFAULT_SSH_PORT,
            username: str | None = None,
            password: str | None = None,
            key_filename: str | None = None,
            max_streams: int | None = None,
            timeout: float = DEFAULT_TIMEOUT,
            client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.key_filename = key_filename
        self.max_streams = max_streams
        self.timeout = timeout
        self._client_factory = client_factory
        self._client: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None

    # --- Session lifecycle ---

    def connect(self) -> None:
        if self._sftp is not None:
            return
        client = self._client_factory()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                key_filename=self.key_filename,
                timeout=self.timeout,
            )
            self._sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TransferEngineError(f"Could not connect to {self.host}:{self.port}: {e}") from e
        self._client = client
        logger.info(f"Connected to {self.username or ''}@{self.host}:{self.port}.")

    def disconnect(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info(f"Disconnected from {self.host}.")

    @property
    def connected(self) -> bool:
        return self._sftp is not None

    @property
    def sftp(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise TransferEngineError(f"Not connected to {self.host}.")
        return self._sftp

    # --- Listing ---

    def _entry_from_attr(self, path: str, attr: paramiko.SFTPAttributes) -> FileEntry:
        mode = attr.st_mode or 0
        is_dir = stat.S_ISDIR(mode)
        return FileEntry(
            name=posixpath.basename(path),
            kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
            size=0 if is_dir else (attr.st_size or 0),
            permissions=format_permissions(mode),
            modified_at=datetime.fromtimestamp(attr.st_mtime or 0),
            path=path,
        )

    def list(self, path: str) -> List[FileEntry]:
        """
        Lists the immediate children of a remote directory.

        Raises:
            ListingError: If the directory is missing, unreadable or the session is down.
        """
        try:
            attrs = self.sftp.listdir_attr(path)
        except IOError as e:
            raise ListingError(path, _listing_reason(e)) from e
        except paramiko.SSHException as e:
            raise ListingError(path, _connection_reason(e)) from e
        except TransferEngineError as e:
            raise ListingError(path, str(e)) from e

        entries = [self._entry_from_attr(self.join(path, attr.filename), attr) for attr in attrs
                   if attr.filename not in (".", "..")]
        logger.debug(f"Listed {len(entries)} remote entries in '{path}'.")
        return entries

    def stat(self, path: str) -> FileEntry:
        try:
            attr = self.sftp.stat(path)
        except IOError as e:
            raise ListingError(path, _listing_reason(e)) from e
        except paramiko.SSHException as e:
            raise ListingError(path, _connection_reason(e)) from e
        except TransferEngineError as e:
            raise ListingError(path, str(e)) from e
        normalized = posixpath.normpath(path)
        if normalized == "/":
            raise ListingError(path, "a filesystem root has no entry of its own")
        return self._entry_from_attr(normalized, attr)

    # --- Byte streams ---

    def read_chunked(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        with self.sftp.open(path, "rb") as f:
            # Pipelined reads keep the channel busy instead of one round trip per chunk.
            f.prefetch()
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    return
                yield chunk

    def write_chunked(self, path: str) -> ContextManager[BinaryIO]:
        f = self.sftp.open(path, "wb")
        f.set_pipelined(True)
        return f

    # --- Mutations ---
    # A dropped channel surfaces as paramiko.SSHException, which is not an
    # OSError; callers only have to handle TransferEngineError and OSError.

    def mkdir(self, path: str) -> None:
        """Creates a directory and any missing parents. An existing directory is left alone."""
        try:
            self._mkdir(path)
        except paramiko.SSHException as e:
            raise TransferEngineError(f"Could not create '{path}': {_connection_reason(e)}") from e

    def _mkdir(self, path: str) -> None:
        if self._is_dir(path):
            return
        parent = posixpath.dirname(path.rstrip("/"))
        if parent and parent != path:
            self._mkdir(parent)
        self.sftp.mkdir(path)
        logger.debug(f"Created remote directory '{path}'.")

    def remove(self, path: str) -> None:
        try:
            self.sftp.remove(path)
        except FileNotFoundError:
            logger.debug(f"Remote file '{path}' already absent.")
        except paramiko.SSHException as e:
            raise TransferEngineError(f"Could not delete '{path}': {_connection_reason(e)}") from e

    def remove_directory(self, path: str) -> None:
        """Deletes a remote directory tree, children first."""
        try:
            self._remove_tree(path)
        except paramiko.SSHException as e:
            raise TransferEngineError(f"Could not delete '{path}': {_connection_reason(e)}") from e

    def _remove_tree(self, path: str) -> None:
        try:
            attrs = self.sftp.listdir_attr(path)
        except FileNotFoundError:
            logger.debug(f"Remote directory '{path}' already absent.")
            return
        for attr in attrs:
            if attr.filename in (".", ".."):
                continue
            child = self.join(path, attr.filename)
            if stat.S_ISDIR(attr.st_mode or 0):
                self._remove_tree(child)
            else:
                self.remove(child)
        try:
            self.sftp.rmdir(path)
        except FileNotFoundError:
            logger.debug(f"Remote directory '{path}' already absent.")

    def _is_dir(self, path: str) -> bool:
        try:
            return stat.S_ISDIR(self.sftp.stat(path).st_mode or 0)
        except FileNotFoundError:
            return False

    # --- Path arithmetic (remote paths are always POSIX) ---

    def join(self, *parts: str) -> str:
        return posixpath.join(*parts)

    def parent(self, path: str) -> str:
        return posixpath.dirname(posixpath.normpath(path)) or "/"
