# tests/conftest.py

import os
import threading
from pathlib import Path

import pytest

from smart_transfer.core.filesystem import DEFAULT_CHUNK_SIZE, LocalFileSystem
from smart_transfer.core.transfer_queue import TransferQueue
from smart_transfer.core.transfer_task import TransferDirection, TransferTask

# Upper bound for any wait in the tests, so a broken scheduler fails instead of hanging.
WAIT_TIMEOUT = 10


class GatedFileSystem(LocalFileSystem):
    """
    The local adapter with test controls on the read side.

    Reads can be held back per path (or globally), made to fail outright or
    after a number of chunks, and the number of simultaneous reads is tracked.
    """

    def __init__(self, max_streams=None):
        super().__init__(max_streams)
        self.gate = threading.Event()
        self.gate.set()
        self._path_gates = {}
        self.fail_on_open = {}
        self.fail_after_chunks = {}
        self._lock = threading.Lock()
        self.active_reads = 0
        self.peak_reads = 0
        self.connected = False

    def connect(self):
        self.connected = True

    def disconnect(self):
        self.connected = False

    def hold(self, path):
        gate = threading.Event()
        self._path_gates[str(path)] = gate
        return gate

    def release(self, path):
        self._path_gates[str(path)].set()

    def release_all(self):
        self.gate.set()
        for gate in self._path_gates.values():
            gate.set()

    def _wait_for_gates(self, path):
        self.gate.wait(WAIT_TIMEOUT)
        gate = self._path_gates.get(path)
        if gate is not None:
            gate.wait(WAIT_TIMEOUT)

    def read_chunked(self, path, chunk_size=DEFAULT_CHUNK_SIZE):
        path = str(path)
        with self._lock:
            self.active_reads += 1
            self.peak_reads = max(self.peak_reads, self.active_reads)
        try:
            if path in self.fail_on_open:
                raise self.fail_on_open[path]
            sent = 0
            for chunk in super().read_chunked(path, chunk_size):
                self._wait_for_gates(path)
                if path in self.fail_after_chunks and sent >= self.fail_after_chunks[path]:
                    raise OSError("Connection reset by peer")
                sent += 1
                yield chunk
        finally:
            with self._lock:
                self.active_reads -= 1


def make_file(directory: Path, name: str, size: int) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(os.urandom(size))
    return path


def upload_task(source: Path, destination_dir: Path) -> TransferTask:
    return TransferTask(
        direction=TransferDirection.UPLOAD,
        source_path=str(source),
        destination_path=str(destination_dir / source.name),
        file_name=source.name,
        total_bytes=source.stat().st_size,
    )


@pytest.fixture
def local_fs():
    return GatedFileSystem()


@pytest.fixture
def remote_fs():
    return GatedFileSystem()


@pytest.fixture
def source_dir(tmp_path):
    directory = tmp_path / "source"
    directory.mkdir()
    return directory


@pytest.fixture
def dest_dir(tmp_path):
    directory = tmp_path / "destination"
    directory.mkdir()
    return directory


@pytest.fixture
def make_queue(local_fs, remote_fs):
    """Builds queues with small chunks and a fast tick, and shuts them all down afterwards."""
    created = []

    def factory(max_concurrency=2, chunk_size=4, **kwargs):
        q = TransferQueue(local_fs, remote_fs, max_concurrency=max_concurrency, chunk_size=chunk_size,
                          tick_interval=0.05, **kwargs)
        created.append(q)
        return q

    yield factory

    local_fs.release_all()
    remote_fs.release_all()
    for q in created:
        q.shutdown()


@pytest.fixture(scope="session")
def qapp():
    """Creates a QApplication instance for the test session."""
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    from PySide6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app
