# tests/test_gui.py

import time
from datetime import datetime

import pytest
from PySide6.QtCore import QObject, Qt, Signal

from conftest import WAIT_TIMEOUT, make_file
from smart_transfer.core.config_manager import TransferSettings
from smart_transfer.core.models import EntryKind, FileEntry, ListingOptions, Side, SortDirection
from smart_transfer.core.transfer_manager import TransferManager
from smart_transfer.core.transfer_task import TaskSnapshot, TaskStatus, TransferDirection
from smart_transfer.gui.controller import TransferController
from smart_transfer.gui.models import DirectoryTableModel, ItemRole, TransferTableModel


def snapshot(**overrides):
    values = dict(
        id="t1",
        direction=TransferDirection.UPLOAD,
        source_path="/home/me/a.iso",
        destination_path="/srv/a.iso",
        file_name="a.iso",
        total_bytes=2048,
        transferred_bytes=1024,
        status=TaskStatus.TRANSFERRING,
        error=None,
        started_at=datetime(2024, 1, 1),
        ended_at=None,
        instantaneous_speed=512.0,
    )
    values.update(overrides)
    return TaskSnapshot(**values)


class PaneStub(QObject):
    """Emits the requests a directory pane would send to the controller."""
    options_changed = Signal(str, object)
    delete_requested = Signal(str, object)


def process_events_until(qapp, condition, timeout=WAIT_TIMEOUT):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        qapp.processEvents()
        if condition():
            return True
        time.sleep(0.01)
    return False


# --- Table models ---

def test_transfer_model_rows(qapp):
    model = TransferTableModel()
    model.update_tasks([snapshot(), snapshot(id="t2", status=TaskStatus.ERROR, error="Connection lost",
                                             instantaneous_speed=0.0)])
    assert model.rowCount() == 2
    assert model.columnCount() == 5
    assert model.headerData(1, Qt.Horizontal) == "File"

    assert model.data(model.index(0, 0)) == "Transferring"
    assert model.data(model.index(0, 1)) == "a.iso"
    assert model.data(model.index(0, 3)) == "1.0 KB / 2.0 KB (50%)"
    assert model.data(model.index(0, 4)) == "512 B/s, 2s left"
    assert model.data(model.index(1, 0)) == "Failed"
    assert model.data(model.index(1, 0), Qt.ToolTipRole) == "Connection lost"
    assert model.data(model.index(1, 0), ItemRole).id == "t2"


def test_transfer_model_replaces_rows(qapp):
    model = TransferTableModel()
    model.update_tasks([snapshot()])
    model.update_tasks([])
    assert model.rowCount() == 0


def test_directory_model_rows(qapp):
    entries = [
        FileEntry("docs", EntryKind.DIRECTORY, 0, "755", datetime(2024, 3, 1, 9, 30), "/srv/docs"),
        FileEntry("a.txt", EntryKind.FILE, 1536, "644", datetime(2024, 3, 2, 10, 0), "/srv/a.txt"),
    ]
    model = DirectoryTableModel()
    model.set_entries(entries)
    assert model.rowCount() == 2
    assert model.data(model.index(0, 1)) == ""
    assert model.data(model.index(1, 1)) == "1.5 KB"
    assert model.data(model.index(1, 3)) == "2024-03-02 10:00"
    assert model.entry_at(1) is entries[1]


# --- Controller ---

@pytest.fixture
def controller(qapp, local_fs, remote_fs, tmp_path):
    make_file(tmp_path / "local", "movie.mkv", 64)
    (tmp_path / "remote").mkdir()
    settings = TransferSettings(chunk_size=8, tick_interval=0.05,
                                local_path=str(tmp_path / "local"), remote_path=str(tmp_path / "remote"))
    c = TransferController(TransferManager(local_fs, remote_fs, settings))
    yield c
    local_fs.release_all()
    c.stop()


@pytest.fixture
def started(qapp, controller):
    controller.start()
    assert process_events_until(qapp, controller.is_idle)
    return controller


def record_sides(controller):
    """Records (side, is_loading) as each side_changed signal arrives."""
    seen = []
    controller.side_changed.connect(
        lambda name: seen.append((name, controller.manager.side(Side(name)).is_loading)))
    return seen


def test_controller_start_lists_both_sides_off_the_gui_thread(qapp, controller, remote_fs):
    seen = record_sides(controller)
    controller.start()

    assert seen == [("local", True), ("remote", True)]
    assert controller.timer.isActive()
    assert process_events_until(qapp, controller.is_idle)
    assert seen[2:] == [("local", False), ("remote", False)]
    assert remote_fs.connected
    assert [e.name for e in controller.manager.side(Side.LOCAL).entries] == ["movie.mkv"]


def test_controller_navigate_emits_loading_then_result(qapp, started, tmp_path):
    (tmp_path / "local" / "clips").mkdir()
    seen = record_sides(started)

    started.navigate("local", str(tmp_path / "local" / "clips"))

    assert seen == [("local", True)]
    assert process_events_until(qapp, started.is_idle)
    assert seen == [("local", True), ("local", False)]
    assert started.manager.side(Side.LOCAL).current_path == str(tmp_path / "local" / "clips")


def test_controller_reports_listing_errors(qapp, started, tmp_path):
    messages = []
    started.status_updated.connect(lambda message, is_error: messages.append((message, is_error)))
    started.navigate("remote", str(tmp_path / "missing"))
    assert process_events_until(qapp, started.is_idle)
    assert messages and messages[-1][1] is True
    assert "path not found" in messages[-1][0]
    assert not started.manager.side(Side.REMOTE).is_loading


def test_controller_clear_error(qapp, started, tmp_path):
    started.navigate("remote", str(tmp_path / "missing"))
    assert process_events_until(qapp, started.is_idle)
    started.clear_error("remote")
    assert started.manager.side(Side.REMOTE).last_error is None


def test_controller_create_directory_runs_in_worker(qapp, started, tmp_path):
    seen = record_sides(started)
    started.create_directory("remote", "incoming")
    assert seen == [("remote", True)]
    assert process_events_until(qapp, started.is_idle)
    assert (tmp_path / "remote" / "incoming").is_dir()
    assert [e.name for e in started.manager.side(Side.REMOTE).entries] == ["incoming"]


def test_controller_transfer_emits_task_updates(qapp, started, tmp_path):
    updates = []
    messages = []
    started.tasks_changed.connect(updates.append)
    started.status_updated.connect(lambda message, is_error: messages.append((message, is_error)))
    entry = started.manager.side(Side.LOCAL).entries[0]

    started.transfer("local", entry)

    assert process_events_until(
        qapp, lambda: started.is_idle() and updates and updates[-1] and updates[-1][0].status is TaskStatus.COMPLETED)
    assert ("Queued 'movie.mkv'.", False) in messages
    assert (tmp_path / "remote" / "movie.mkv").read_bytes() == (tmp_path / "local" / "movie.mkv").read_bytes()


def test_controller_rejects_invalid_task_action(controller):
    messages = []
    controller.status_updated.connect(lambda message, is_error: messages.append((message, is_error)))
    controller.retry("no-such-task")
    assert messages == [("Could not retry that transfer in its current state.", True)]


def test_controller_slots_take_requests_from_view_signals(qapp, started, tmp_path):
    make_file(tmp_path / "local", "trailer.mkv", 8)
    assert started.manager.refresh(Side.LOCAL)
    pane = PaneStub()
    pane.options_changed.connect(started.set_listing_options)
    pane.delete_requested.connect(started.delete_entry)

    pane.options_changed.emit("local", ListingOptions(direction=SortDirection.DESC))
    assert [e.name for e in started.manager.side(Side.LOCAL).entries] == ["trailer.mkv", "movie.mkv"]

    pane.delete_requested.emit("local", started.manager.side(Side.LOCAL).entries[0])
    assert process_events_until(qapp, started.is_idle)
    assert not (tmp_path / "local" / "trailer.mkv").exists()
    assert [e.name for e in started.manager.side(Side.LOCAL).entries] == ["movie.mkv"]
