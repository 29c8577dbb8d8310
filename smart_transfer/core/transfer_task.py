# smart_transfer/core/transfer_task.py

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar

from .errors import StateError


# Number of recent rate samples averaged into the displayed speed.
DEFAULT_SPEED_WINDOW = 5


class TransferDirection(Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class TaskStatus(Enum):
    PENDING = "pending"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    ERROR = "error"
    PAUSED = "paused"
    REMOVED = "removed"


# --- Task States ---
# Each state is its own small type and carries only the data valid for it.
# Only Failed has a message, so a completed task with an error is unrepresentable.

@dataclass(frozen=True)
class Pending:
    status: ClassVar[TaskStatus] = TaskStatus.PENDING


@dataclass(frozen=True)
class Transferring:
    status: ClassVar[TaskStatus] = TaskStatus.TRANSFERRING


@dataclass(frozen=True)
class Completed:
    status: ClassVar[TaskStatus] = TaskStatus.COMPLETED


@dataclass(frozen=True)
class Failed:
    message: str
    status: ClassVar[TaskStatus] = TaskStatus.ERROR


@dataclass(frozen=True)
class Paused:
    status: ClassVar[TaskStatus] = TaskStatus.PAUSED


@dataclass(frozen=True)
class Removed:
    status: ClassVar[TaskStatus] = TaskStatus.REMOVED


TaskState = Pending | Transferring | Completed | Failed | Paused | Removed


class SpeedMeter:
    """
    Smoothed throughput of one transfer.

    Every sample yields a raw rate (bytes since the previous sample divided by
    the time since it); the reported speed is the mean of the last `window`
    raw rates, which flattens spikes caused by uneven chunk timing.
    """

    def __init__(self, window: int = DEFAULT_SPEED_WINDOW):
        self._rates = deque(maxlen=max(1, window))
        self._last_at: float | None = None
        self._last_bytes = 0

    def reset(self, at: float | None = None, transferred: int = 0):
        self._rates.clear()
        self._last_at = at
        self._last_bytes = transferred

    def sample(self, transferred: int, at: float) -> float:
        if self._last_at is None:
            self._last_at, self._last_bytes = at, transferred
            return self.speed
        elapsed = at - self._last_at
        if elapsed <= 0:
            # Two samples in the same clock tick: fold the bytes into the next one.
            return self.speed
        self._rates.append((transferred - self._last_bytes) / elapsed)
        self._last_at, self._last_bytes = at, transferred
        return self.speed

    @property
    def speed(self) -> float:
        if not self._rates:
            return 0.0
        return sum(self._rates) / len(self._rates)


@dataclass(frozen=True)
class TaskSnapshot:
    """A read-only copy of a task, the only form in which tasks leave the queue."""
    id: str
    direction: TransferDirection
    source_path: str
    destination_path: str
    file_name: str
    total_bytes: int
    transferred_bytes: int
    status: TaskStatus
    error: str | None
    started_at: datetime | None
    ended_at: datetime | None
    instantaneous_speed: float

    @property
    def progress(self) -> float:
        """Fraction transferred, 0.0 to 1.0. A zero-byte task counts as done once completed."""
        if self.total_bytes == 0:
            return 1.0 if self.status is TaskStatus.COMPLETED else 0.0
        return self.transferred_bytes / self.total_bytes

    @property
    def eta_seconds(self) -> float | None:
        """Estimated seconds until completion, or None while the speed is unknown."""
        if self.status is not TaskStatus.TRANSFERRING or self.instantaneous_speed <= 0:
            return None
        return (self.total_bytes - self.transferred_bytes) / self.instantaneous_speed


@dataclass
class TransferTask:
    """
    One single-file upload or download and its lifecycle.

    The transition methods are the only way to change a task; each one checks
    the current state first and raises StateError, leaving the task untouched,
    when the transition is not allowed.
    """
    direction: TransferDirection
    source_path: str
    destination_path: str
    file_name: str
    total_bytes: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    transferred_bytes: int = 0
    state: TaskState = field(default_factory=Pending)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    attempt: int = 0
    speed_window: int = DEFAULT_SPEED_WINDOW

    def __post_init__(self):
        if self.total_bytes < 0:
            raise ValueError(f"total_bytes cannot be negative: {self.total_bytes}")
        self._meter = SpeedMeter(self.speed_window)

    # --- Derived Fields ---

    @property
    def status(self) -> TaskStatus:
        return self.state.status

    @property
    def error(self) -> str | None:
        return self.state.message if isinstance(self.state, Failed) else None

    @property
    def instantaneous_speed(self) -> float:
        if self.status is not TaskStatus.TRANSFERRING:
            return 0.0
        return self._meter.speed

    # --- Transitions ---

    def _require(self, action: str, *allowed: TaskStatus):
        if self.status not in allowed:
            raise StateError(f"Cannot {action} '{self.file_name}' while it is {self.status.value}.")

    def start(self, now: datetime, at: float):
        """pending -> transferring. Every execution restarts the byte count at zero."""
        self._require("start", TaskStatus.PENDING)
        self.attempt += 1
        self.transferred_bytes = 0
        if self.started_at is None:
            self.started_at = now
        self.ended_at = None
        self._meter = SpeedMeter(self.speed_window)
        self._meter.reset(at)
        self.state = Transferring()

    def record_progress(self, transferred: int, at: float):
        """Applies a progress sample. The counter never decreases and never passes total_bytes."""
        self._require("record progress for", TaskStatus.TRANSFERRING)
        self.transferred_bytes = min(max(self.transferred_bytes, transferred), self.total_bytes)
        self._meter.sample(self.transferred_bytes, at)

    def complete(self, now: datetime):
        self._require("complete", TaskStatus.TRANSFERRING)
        if self.transferred_bytes != self.total_bytes:
            raise StateError(
                f"Cannot complete '{self.file_name}' at {self.transferred_bytes} of {self.total_bytes} bytes.")
        self.ended_at = now
        self.state = Completed()

    def fail(self, message: str, now: datetime):
        """transferring -> error. The byte counter keeps its last value."""
        self._require("fail", TaskStatus.TRANSFERRING)
        self.ended_at = now
        self.state = Failed(message)

    def pause(self):
        self._require("pause", TaskStatus.TRANSFERRING)
        self.state = Paused()

    def resume(self):
        """paused -> pending, so the scheduler promotes it again in queue order."""
        self._require("resume", TaskStatus.PAUSED)
        self.state = Pending()

    def reset_for_retry(self):
        self._require("retry", TaskStatus.ERROR)
        self.transferred_bytes = 0
        self.ended_at = None
        self.state = Pending()

    def remove(self):
        self._require("cancel", TaskStatus.PENDING, TaskStatus.TRANSFERRING, TaskStatus.PAUSED, TaskStatus.ERROR)
        self.state = Removed()

    def snapshot(self) -> TaskSnapshot:
        return TaskSnapshot(
            id=self.id,
            direction=self.direction,
            source_path=self.source_path,
            destination_path=self.destination_path,
            file_name=self.file_name,
            total_bytes=self.total_bytes,
            transferred_bytes=self.transferred_bytes,
            status=self.status,
            error=self.error,
            started_at=self.started_at,
            ended_at=self.ended_at,
            instantaneous_speed=self.instantaneous_speed,
        )
