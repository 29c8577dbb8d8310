# smart_transfer/gui/controller.py

import logging
from typing import Callable, List, Tuple

from PySide6.QtCore import QObject, QThread, QTimer, Signal, Slot

from smart_transfer.core.models import FileEntry, ListingOptions, Side
from smart_transfer.core.transfer_manager import TransferManager

logger = logging.getLogger(__name__)


# --- Worker Threads (owned by the Controller) ---

class SideWorker(QObject):
    """
    Runs one blocking manager call (a listing, a mutation or a directory
    expansion) away from the GUI thread.

    The operation may return a (message, is_error) pair to show in the
    status bar; any other result is ignored.
    """
    status_updated = Signal(str, bool)
    finished = Signal()

    def __init__(self, operation: Callable, sides: Tuple[Side, ...]):
        super().__init__()
        self.operation = operation
        self.sides = sides

    @Slot()
    def run(self):
        try:
            outcome = self.operation()
            if isinstance(outcome, tuple):
                self.status_updated.emit(*outcome)
        except Exception as e:
            logger.critical(f"Side worker error: {e}", exc_info=True)
            self.status_updated.emit(f"Error: {e}", True)
        finally:
            self.finished.emit()


class TransferController(QObject):
    """
    Bridges a TransferManager to a Qt user interface.

    The queue reports changes from its dispatcher thread; they are re-emitted
    as Qt signals, which Qt delivers to receivers in the GUI thread. Listings,
    mutations and queueing run on worker threads: `side_changed` fires once
    when the side starts loading and again when the worker is done. Views
    only ever receive snapshots and side copies.
    """
    tasks_changed = Signal(list)
    side_changed = Signal(str)
    status_updated = Signal(str, bool)  # message, is_error

    def __init__(self, manager: TransferManager, parent=None):
        super().__init__(parent)
        self.manager = manager
        self.manager.queue.add_listener(self._on_queue_changed)
        self._operations: List[Tuple[QThread, SideWorker]] = []

        # A periodic tick keeps promotion going even if no execution reports back.
        self.timer = QTimer(self)
        self.timer.setInterval(int(manager.settings.tick_interval * 1000))
        self.timer.timeout.connect(self.tick)

    def is_idle(self) -> bool:
        """A helper for the UI to check if any side operation is running."""
        return not self._operations

    # --- Lifecycle ---

    @Slot()
    def start(self):
        """Connects, lists both sides and starts the periodic scheduler tick."""
        self.timer.start()
        self._run_in_worker(self._open, tuple(Side))

    def _open(self):
        try:
            self.manager.open()
        except Exception as e:
            logger.error(f"Could not open the transfer session: {e}", exc_info=True)
            self.manager.refresh(Side.LOCAL)
            return f"Connection failed: {e}", True
        return None

    @Slot()
    def stop(self):
        self.timer.stop()
        for thread, _ in self._operations:
            thread.quit()
            thread.wait()
        self._operations = []
        self.manager.queue.remove_listener(self._on_queue_changed)
        self.manager.close()

    @Slot()
    def tick(self):
        self.manager.queue.schedule_tick()

    def _on_queue_changed(self, snapshots):
        self.tasks_changed.emit(snapshots)

    def _emit_side(self, side: Side):
        error = self.manager.side(side).last_error
        if error:
            self.status_updated.emit(error, True)
        self.side_changed.emit(side.value)

    # --- Worker plumbing ---

    def _run_in_worker(self, operation: Callable, sides: Tuple[Side, ...]):
        for side in sides:
            self.manager.mark_loading(side)
            self.side_changed.emit(side.value)

        thread = QThread()
        worker = SideWorker(operation, sides)
        worker.moveToThread(thread)
        worker.status_updated.connect(self.status_updated)
        worker.finished.connect(self._on_operation_finished)
        thread.started.connect(worker.run)
        self._operations.append((thread, worker))
        thread.start()

    @Slot()
    def _on_operation_finished(self):
        worker = self.sender()
        for thread, candidate in self._operations:
            if candidate is worker:
                thread.quit()
                thread.wait()
                self._operations.remove((thread, candidate))
                break
        else:
            return
        for side in worker.sides:
            self._emit_side(side)

    # --- Directory Slots ---

    @Slot(str, str)
    def navigate(self, side_name: str, path: str):
        side = Side(side_name)
        self._run_in_worker(lambda: self.manager.navigate(side, path), (side,))

    @Slot(str)
    def navigate_up(self, side_name: str):
        side = Side(side_name)
        self._run_in_worker(lambda: self.manager.navigate_up(side), (side,))

    @Slot(str)
    def refresh(self, side_name: str):
        side = Side(side_name)
        self._run_in_worker(lambda: self.manager.refresh(side), (side,))

    @Slot(str, object)
    def set_listing_options(self, side_name: str, options: ListingOptions):
        side = Side(side_name)
        self.manager.set_listing_options(side, options)
        self.side_changed.emit(side.value)

    @Slot(str)
    def clear_error(self, side_name: str):
        side = Side(side_name)
        self.manager.clear_error(side)
        self.side_changed.emit(side.value)

    @Slot(str, str)
    def create_directory(self, side_name: str, name: str):
        side = Side(side_name)
        self._run_in_worker(lambda: self.manager.create_directory(side, name), (side,))

    @Slot(str, object)
    def delete_entry(self, side_name: str, entry: FileEntry):
        side = Side(side_name)
        self._run_in_worker(lambda: self.manager.delete_entry(side, entry), (side,))

    # --- Transfer Slots ---

    @Slot(str, object)
    def transfer(self, side_name: str, entry: FileEntry):
        """Queues `entry` from the given side into the other side's current directory."""
        side = Side(side_name)
        target_side = Side.REMOTE if side is Side.LOCAL else Side.LOCAL
        target_dir = self.manager.side(target_side).current_path
        self._run_in_worker(lambda: self._queue_entry(side, entry, target_side, target_dir), ())

    def _queue_entry(self, side: Side, entry: FileEntry, target_side: Side, target_dir: str):
        destination = self.manager.adapter(target_side).join(target_dir, entry.name)
        try:
            if side is Side.LOCAL:
                if entry.is_dir:
                    self.manager.queue_directory_upload(entry, target_dir)
                else:
                    self.manager.queue_upload(entry, destination)
            elif entry.is_dir:
                self.manager.queue_directory_download(entry, target_dir)
            else:
                self.manager.queue_download(entry, destination)
        except Exception as e:
            logger.error(f"Could not queue '{entry.name}': {e}", exc_info=True)
            return f"Could not queue '{entry.name}': {e}", True
        return f"Queued '{entry.name}'.", False

    @Slot(str)
    def pause(self, task_id: str):
        self._report(self.manager.pause(task_id), "pause")

    @Slot(str)
    def resume(self, task_id: str):
        self._report(self.manager.resume(task_id), "resume")

    @Slot(str)
    def retry(self, task_id: str):
        self._report(self.manager.retry(task_id), "retry")

    @Slot(str)
    def cancel(self, task_id: str):
        self._report(self.manager.cancel(task_id), "cancel")

    @Slot()
    def clear_finished(self):
        count = self.manager.clear_finished()
        self.status_updated.emit(f"Cleared {count} finished transfer(s).", False)

    def _report(self, accepted: bool, action: str):
        if not accepted:
            self.status_updated.emit(f"Could not {action} that transfer in its current state.", True)
