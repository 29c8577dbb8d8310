# smart_transfer/gui/models.py

from typing import List, Sequence

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from smart_transfer.core.models import FileEntry
from smart_transfer.core.transfer_task import TaskSnapshot, TaskStatus
from smart_transfer.utils.formatting import format_bytes, format_eta, format_speed

# Views read the underlying snapshot or entry of a row through this role.
ItemRole = Qt.UserRole + 1


# --- Transfer Queue Model ---
class TransferTableModel(QAbstractTableModel):
    """
    A table of transfer task snapshots for a queue view.

    The model never touches live tasks. It is refreshed wholesale with the
    snapshots the queue hands to its listeners.
    """

    STATUS_LABELS = {
        TaskStatus.PENDING: "Waiting",
        TaskStatus.TRANSFERRING: "Transferring",
        TaskStatus.COMPLETED: "Completed",
        TaskStatus.ERROR: "Failed",
        TaskStatus.PAUSED: "Paused",
        TaskStatus.REMOVED: "Removed",
    }

    def __init__(self, parent=None):
        super().__init__(parent)
        self._tasks: List[TaskSnapshot] = []
        self._headers = ["Status", "File", "Direction", "Progress", "Speed"]

    # --- Required Methods for QAbstractTableModel ---

    def rowCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self._tasks)

    def columnCount(self, parent=QModelIndex()):
        return len(self._headers)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):
        if not index.isValid():
            return None

        task = self._tasks[index.row()]
        col = index.column()

        if role == Qt.DisplayRole:
            if col == 0:
                return self.STATUS_LABELS[task.status]
            if col == 1:
                return task.file_name
            if col == 2:
                return task.direction.value
            if col == 3:
                return (f"{format_bytes(task.transferred_bytes)} / {format_bytes(task.total_bytes)} "
                        f"({round(task.progress * 100)}%)")
            if col == 4:
                eta = format_eta(task.eta_seconds)
                speed = format_speed(task.instantaneous_speed)
                return f"{speed}, {eta} left" if speed and eta else speed

        if role == Qt.ToolTipRole:
            if task.error:
                return task.error
            return f"{task.source_path} -> {task.destination_path}"

        if role == ItemRole:
            return task

        return None

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.DisplayRole):
        if role == Qt.DisplayRole and orientation == Qt.Horizontal:
            return self._headers[section]
        return None

    # --- Custom Public Methods ---

    def update_tasks(self, snapshots: Sequence[TaskSnapshot]):
        """Replaces the rows with a fresh set of snapshots, in queue order."""
        self.beginResetModel()
        self._tasks = list(snapshots)
        self.endResetModel()

    def task_at(self, row: int) -> TaskSnapshot:
        return self._tasks[row]


# --- Directory Listing Model ---
class DirectoryTableModel(QAbstractTableModel):
    """The processed entries of one directory side, ready for a file list view."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self._entries: List[FileEntry] = []
        self._headers = ["Name", "Size", "Permissions", "Modified"]

    def rowCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self._entries)

    def columnCount(self, parent=QModelIndex()):
        return len(self._headers)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):
        if not index.isValid():
            return None

        entry = self._entries[index.row()]
        col = index.column()

        if role == Qt.DisplayRole:
            if col == 0:
                return entry.name
            if col == 1:
                return "" if entry.is_dir else format_bytes(entry.size)
            if col == 2:
                return entry.permissions
            if col == 3:
                return entry.modified_at.strftime("%Y-%m-%d %H:%M")

        if role == Qt.ToolTipRole:
            return entry.path

        if role == ItemRole:
            return entry

        return None

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.DisplayRole):
        if role == Qt.DisplayRole and orientation == Qt.Horizontal:
            return self._headers[section]
        return None

    def set_entries(self, entries: Sequence[FileEntry]):
        self.beginResetModel()
        self._entries = list(entries)
        self.endResetModel()

    def entry_at(self, row: int) -> FileEntry:
        return self._entries[row]
