# smart_transfer/core/transfer_manager.py

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Tuple

from .config_manager import TransferSettings
from .directory_view import process_entries
from .errors import ListingError, StateError, TransferEngineError, UnsupportedEntryError
from .filesystem import RemoteSession
from .models import DirectorySide, FileEntry, ListingOptions, Side
from .transfer_queue import TransferQueue
from .transfer_task import TransferDirection, TransferTask

logger = logging.getLogger(__name__)


class TransferManager:
    """
    The entry point a UI layer talks to.

    It owns one DirectorySide per pane and the TransferQueue, and turns UI
    requests (navigate, refresh, queue a transfer, pause/resume/cancel/retry)
    into calls on those components. Listing failures and invalid task
    operations are reported through state and return values, never raised
    at the UI.

    Args:
        local: The local filesystem adapter.
        remote: The remote session.
        settings: Engine settings; defaults are used when omitted.
        transfer_queue: An already-built queue, mainly for tests.
    """

    def __init__(
            self,
            local: RemoteSession,
            remote: RemoteSession,
            settings: TransferSettings | None = None,
            transfer_queue: TransferQueue | None = None,
    ):
        self.settings = settings or TransferSettings()
        self._adapters: Dict[Side, RemoteSession] = {Side.LOCAL: local, Side.REMOTE: remote}
        self.queue = transfer_queue or TransferQueue(
            local,
            remote,
            max_concurrency=self.settings.max_concurrency,
            chunk_size=self.settings.chunk_size,
            tick_interval=self.settings.tick_interval,
            speed_window=self.settings.speed_window,
        )

        # --- Per-side state, never shared between the two panes ---
        self._sides: Dict[Side, DirectorySide] = {
            Side.LOCAL: DirectorySide(current_path=self.settings.local_path),
            Side.REMOTE: DirectorySide(current_path=self.settings.remote_path),
        }
        self._raw_entries: Dict[Side, Tuple[FileEntry, ...]] = {Side.LOCAL: (), Side.REMOTE: ()}
        self._options: Dict[Side, ListingOptions] = {
            Side.LOCAL: self.settings.listing_options(),
            Side.REMOTE: self.settings.listing_options(),
        }
        self._side_locks: Dict[Side, threading.Lock] = {Side.LOCAL: threading.Lock(), Side.REMOTE: threading.Lock()}

    # --- Lifecycle ---

    def open(self):
        """
        Connects the remote session and loads the initial listing of both sides.

        Raises:
            TransferEngineError: If the remote session cannot connect. The
                error is also recorded on the remote side.
        """
        try:
            self._adapters[Side.REMOTE].connect()
        except TransferEngineError as e:
            self._record_error(Side.REMOTE, str(e))
            raise
        self.refresh_all()

    def close(self):
        """Stops all transfers and disconnects the remote session."""
        self.queue.shutdown()
        self._adapters[Side.REMOTE].disconnect()

    def adapter(self, side: Side) -> RemoteSession:
        return self._adapters[side]

    # --- Directory Sides ---

    def side(self, side: Side) -> DirectorySide:
        return self._sides[side]

    def options(self, side: Side) -> ListingOptions:
        return self._options[side]

    def navigate(self, side: Side, path: str) -> bool:
        """
        Lists `path` and makes it the side's current directory.

        On failure the side keeps its previous path and entries and records
        the error message, so the last good listing stays on screen.

        Returns:
            True if the listing succeeded.
        """
        with self._side_locks[side]:
            self._sides[side] = replace(self._sides[side], is_loading=True, last_error=None)
            try:
                raw = tuple(self._adapters[side].list(path))
            except (ListingError, OSError) as e:
                logger.warning(f"Listing {side.value} '{path}' failed: {e}")
                self._sides[side] = replace(self._sides[side], is_loading=False, last_error=str(e))
                return False

            self._raw_entries[side] = raw
            self._sides[side] = DirectorySide(
                current_path=path,
                entries=tuple(process_entries(raw, self._options[side])),
                is_loading=False,
                last_error=None,
            )
        logger.info(f"Showing {len(self._sides[side].entries)} of {len(raw)} {side.value} entries in '{path}'.")
        return True

    def refresh(self, side: Side) -> bool:
        """Re-lists the side's current directory."""
        return self.navigate(side, self._sides[side].current_path)

    def refresh_all(self) -> bool:
        local_ok = self.refresh(Side.LOCAL)
        remote_ok = self.refresh(Side.REMOTE)
        return local_ok and remote_ok

    def navigate_up(self, side: Side) -> bool:
        """Moves the side to the parent of its current directory."""
        current = self._sides[side].current_path
        return self.navigate(side, self._adapters[side].parent(current))

    def set_listing_options(self, side: Side, options: ListingOptions):
        """Changes visibility/ordering and re-processes the last listing without re-reading it."""
        with self._side_locks[side]:
            self._options[side] = options
            self._sides[side] = replace(
                self._sides[side], entries=tuple(process_entries(self._raw_entries[side], options))
            )

    def create_directory(self, side: Side, name: str) -> bool:
        """Creates `name` inside the side's current directory and refreshes the listing."""
        adapter = self._adapters[side]
        target = adapter.join(self._sides[side].current_path, name)
        try:
            adapter.mkdir(target)
        except (TransferEngineError, OSError) as e:
            logger.error(f"Could not create {side.value} directory '{target}': {e}")
            self._record_error(side, f"Create directory failed: {e}")
            return False
        logger.info(f"Created {side.value} directory '{target}'.")
        return self.refresh(side)

    def delete_entry(self, side: Side, entry: FileEntry) -> bool:
        """Deletes a file or a whole directory tree on the given side and refreshes the listing."""
        adapter = self._adapters[side]
        try:
            if entry.is_dir:
                adapter.remove_directory(entry.path)
            else:
                adapter.remove(entry.path)
        except (TransferEngineError, OSError) as e:
            logger.error(f"Could not delete {side.value} '{entry.path}': {e}")
            self._record_error(side, f"Delete failed: {e}")
            return False
        logger.info(f"Deleted {side.value} '{entry.path}'.")
        return self.refresh(side)

    def mark_loading(self, side: Side):
        """Flags the side as loading ahead of a listing that runs elsewhere."""
        with self._side_locks[side]:
            self._sides[side] = replace(self._sides[side], is_loading=True)

    def clear_error(self, side: Side):
        """Dismisses the side's last error without re-listing."""
        with self._side_locks[side]:
            self._sides[side] = replace(self._sides[side], last_error=None)

    def clear_errors(self):
        for side in Side:
            self.clear_error(side)

    def _record_error(self, side: Side, message: str):
        with self._side_locks[side]:
            self._sides[side] = replace(self._sides[side], is_loading=False, last_error=message)

    # --- Queueing Transfers ---

    def _queue_file(self, direction: TransferDirection, entry: FileEntry, destination_path: str) -> str:
        if not entry.is_file:
            raise UnsupportedEntryError(
                f"'{entry.name}' is a directory; queue its files one by one or use a directory transfer.")
        task = TransferTask(
            direction=direction,
            source_path=entry.path,
            destination_path=destination_path,
            file_name=entry.name,
            total_bytes=entry.size,
        )
        task_id = self.queue.enqueue(task)
        self.queue.schedule_tick()
        return task_id

    def queue_upload(self, local_entry: FileEntry, remote_dest_path: str) -> str:
        """Queues an upload of one local file to a full remote destination path. Returns the task id."""
        return self._queue_file(TransferDirection.UPLOAD, local_entry, remote_dest_path)

    def queue_download(self, remote_entry: FileEntry, local_dest_path: str) -> str:
        """Queues a download of one remote file to a full local destination path. Returns the task id."""
        return self._queue_file(TransferDirection.DOWNLOAD, remote_entry, local_dest_path)

    def _queue_tree(self, direction: TransferDirection, directory: FileEntry, dest_parent: str) -> List[str]:
        """
        Expands a directory into one task per contained file.

        Destination directories are created up front, in walk order, so each
        file task only ever has to write a single file.
        """
        if not directory.is_dir:
            raise UnsupportedEntryError(f"'{directory.name}' is not a directory.")
        if direction is TransferDirection.UPLOAD:
            source, destination = self._adapters[Side.LOCAL], self._adapters[Side.REMOTE]
        else:
            source, destination = self._adapters[Side.REMOTE], self._adapters[Side.LOCAL]

        task_ids = []
        pending_dirs = [(directory, destination.join(dest_parent, directory.name))]
        while pending_dirs:
            current, target = pending_dirs.pop(0)
            destination.mkdir(target)
            for child in source.list(current.path):
                child_target = destination.join(target, child.name)
                if child.is_dir:
                    pending_dirs.append((child, child_target))
                else:
                    task_ids.append(self._queue_file(direction, child, child_target))

        logger.info(f"Expanded '{directory.name}' into {len(task_ids)} {direction.value} task(s).")
        return task_ids

    def queue_directory_upload(self, local_directory: FileEntry, remote_parent: str) -> List[str]:
        """Uploads a local directory tree into `remote_parent`. Returns the new task ids."""
        return self._queue_tree(TransferDirection.UPLOAD, local_directory, remote_parent)

    def queue_directory_download(self, remote_directory: FileEntry, local_parent: str) -> List[str]:
        """Downloads a remote directory tree into `local_parent`. Returns the new task ids."""
        return self._queue_tree(TransferDirection.DOWNLOAD, remote_directory, local_parent)

    # --- Task Control ---
    # Invalid-state requests are expected from a UI (double clicks, stale
    # buttons), so they are logged as warnings and reported as False.

    def pause(self, task_id: str) -> bool:
        return self._control(self.queue.pause, "pause", task_id)

    def resume(self, task_id: str) -> bool:
        return self._control(self.queue.resume, "resume", task_id)

    def retry(self, task_id: str) -> bool:
        return self._control(self.queue.retry, "retry", task_id)

    def cancel(self, task_id: str) -> bool:
        return self.queue.cancel(task_id)

    def clear_finished(self) -> int:
        return self.queue.clear_finished()

    def _control(self, operation, name: str, task_id: str) -> bool:
        try:
            operation(task_id)
        except StateError as e:
            logger.warning(f"Ignored {name} request: {e}")
            return False
        return True
