# smart_transfer/core/transfer_queue.py

import itertools
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List

from .errors import CapacityError, StateError, TransferError
from .filesystem import DEFAULT_CHUNK_SIZE, RemoteSession
from .transfer_task import (
    DEFAULT_SPEED_WINDOW,
    TaskSnapshot,
    TaskStatus,
    TransferDirection,
    TransferTask,
)
from smart_transfer.utils.thread_manager import DEFAULT_MAX_CONCURRENCY, resolve_worker_count

logger = logging.getLogger(__name__)

# How often the dispatcher re-runs the scheduler when no messages arrive.
DEFAULT_TICK_INTERVAL = 0.5

QueueListener = Callable[[List[TaskSnapshot]], None]


# --- Execution Messages ---
# Executions never touch a task. They report what happened through these
# messages, and the dispatcher thread applies them to the task they name.

@dataclass(frozen=True)
class _Progress:
    task_id: str
    attempt: int
    transferred: int
    at: float


@dataclass(frozen=True)
class _Finished:
    task_id: str
    attempt: int


@dataclass(frozen=True)
class _Failed:
    task_id: str
    attempt: int
    message: str


@dataclass(frozen=True)
class _Stopped:
    task_id: str
    attempt: int


@dataclass
class _Execution:
    """The bookkeeping for one running attempt of a task."""
    task_id: str
    attempt: int
    stop_event: threading.Event


class TransferQueue:
    """
    Owns the ordered list of transfer tasks and runs them with bounded concurrency.

    Tasks are promoted from pending to transferring strictly in enqueue order
    until the concurrency limit is reached. Each promoted task runs as an
    execution on a thread pool. Executions report back through a message
    channel; a single dispatcher thread applies those messages, so byte
    counters and statuses are only ever written under the queue's lock.

    Args:
        local: The local filesystem adapter.
        remote: The remote session.
        max_concurrency: Maximum number of simultaneously transferring tasks.
        chunk_size: Bytes requested per read from the source.
        tick_interval: Seconds between periodic scheduler runs.
        speed_window: Number of rate samples averaged into a task's speed.

    Raises:
        CapacityError: If max_concurrency is not a positive integer.
    """

    def __init__(
            self,
            local: RemoteSession,
            remote: RemoteSession,
            max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
            chunk_size: int = DEFAULT_CHUNK_SIZE,
            tick_interval: float = DEFAULT_TICK_INTERVAL,
            speed_window: int = DEFAULT_SPEED_WINDOW,
    ):
        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency <= 0:
            raise CapacityError(f"Concurrency limit must be a positive integer, got {max_concurrency!r}.")
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size!r}.")

        self._local = local
        self._remote = remote
        self.max_concurrency = max_concurrency
        self.effective_concurrency = resolve_worker_count(
            max_concurrency, getattr(local, "max_streams", None), getattr(remote, "max_streams", None)
        )
        self.chunk_size = chunk_size
        self.tick_interval = tick_interval
        self.speed_window = speed_window

        # --- State owned by the queue ---
        # Insertion order of the dict is the queue order.
        self._tasks: Dict[str, TransferTask] = {}
        self._executions: Dict[str, _Execution] = {}
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        # Serializes snapshot and delivery so listeners never see an older state after a newer one.
        self._notify_lock = threading.RLock()
        self._listeners: List[QueueListener] = []

        # --- Execution machinery, started on first promotion ---
        self._messages: queue.Queue = queue.Queue()
        self._executor: ThreadPoolExecutor | None = None
        self._dispatcher: threading.Thread | None = None
        self._closed = False

    # --- Observers ---

    def add_listener(self, listener: QueueListener):
        """Registers a callback that receives fresh snapshots after every change."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self):
        """Wakes waiters and hands listeners a snapshot. Must be called without holding the lock."""
        with self._notify_lock:
            with self._lock:
                self._changed.notify_all()
                listeners = list(self._listeners)
                snapshots = [task.snapshot() for task in self._tasks.values()]
            for listener in listeners:
                try:
                    listener(snapshots)
                except Exception as e:
                    logger.error(f"Transfer queue listener failed: {e}", exc_info=True)

    # --- Queue Operations ---

    def enqueue(self, task: TransferTask) -> str:
        """Appends a pending task to the end of the queue without starting it."""
        with self._lock:
            if self._closed:
                raise StateError("The transfer queue has been shut down.")
            if task.status is not TaskStatus.PENDING:
                raise StateError(f"Only pending tasks can be enqueued, '{task.file_name}' is {task.status.value}.")
            if task.id in self._tasks:
                raise StateError(f"Task {task.id} is already queued.")
            task.speed_window = self.speed_window
            self._tasks[task.id] = task
        logger.info(f"Queued {task.direction.value} of '{task.file_name}' ({task.total_bytes} bytes, id={task.id}).")
        self._notify()
        return task.id

    def schedule_tick(self) -> List[str]:
        """
        Promotes pending tasks in queue order while execution slots are free.

        A task whose previous execution is still winding down (after a pause
        or retry) is skipped until that execution has reported back, so two
        executions never write the same destination at once.

        Returns:
            The ids of the tasks promoted by this tick.
        """
        promoted = []
        with self._lock:
            if self._closed:
                return promoted
            free_slots = self.effective_concurrency - len(self._executions)
            for task in self._tasks.values():
                if free_slots <= 0:
                    break
                if task.status is not TaskStatus.PENDING or task.id in self._executions:
                    continue
                task.start(datetime.now(), time.monotonic())
                self._launch(task)
                promoted.append(task.id)
                free_slots -= 1

        if promoted:
            logger.debug(f"Scheduler promoted {len(promoted)} task(s): {', '.join(promoted)}")
            self._notify()
        return promoted

    def cancel(self, task_id: str) -> bool:
        """
        Removes a task from the queue, stopping its transfer if one is running.

        Returns:
            True if the task was removed, False if it was unknown or already completed.
        """
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status is TaskStatus.COMPLETED:
                return False
            execution = self._executions.get(task_id)
            if execution is not None:
                execution.stop_event.set()
            task.remove()
            del self._tasks[task_id]
        logger.info(f"Cancelled '{task.file_name}' (id={task_id}).")
        self._notify()
        return True

    def pause(self, task_id: str):
        """Stops a transferring task at its next chunk boundary and marks it paused."""
        with self._lock:
            task = self._get_task(task_id)
            task.pause()
            execution = self._executions.get(task_id)
            if execution is not None:
                execution.stop_event.set()
        logger.info(f"Paused '{task.file_name}' at {task.transferred_bytes}/{task.total_bytes} bytes.")
        self._notify()

    def resume(self, task_id: str):
        """Puts a paused task back into the scheduling pool."""
        with self._lock:
            task = self._get_task(task_id)
            task.resume()
        logger.info(f"Resumed '{task.file_name}'; it restarts from the first byte when promoted.")
        self._notify()
        self.schedule_tick()

    def retry(self, task_id: str):
        """Resets a failed task to pending with a zeroed byte counter."""
        with self._lock:
            task = self._get_task(task_id)
            task.reset_for_retry()
        logger.info(f"Retrying '{task.file_name}' (id={task_id}).")
        self._notify()
        self.schedule_tick()

    def clear_finished(self) -> int:
        """Drops completed and failed tasks from the queue. Returns how many were dropped."""
        with self._lock:
            finished = [task_id for task_id, task in self._tasks.items()
                        if task.status in (TaskStatus.COMPLETED, TaskStatus.ERROR)]
            for task_id in finished:
                task = self._tasks.pop(task_id)
                if task.status is TaskStatus.ERROR:
                    task.remove()
        if finished:
            logger.info(f"Cleared {len(finished)} finished task(s) from the queue.")
            self._notify()
        return len(finished)

    def _get_task(self, task_id: str) -> TransferTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise StateError(f"No task with id {task_id} is in the queue.")
        return task

    # --- Aggregate Queries ---

    def get(self, task_id: str) -> TaskSnapshot | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.snapshot() if task is not None else None

    def tasks(self) -> List[TaskSnapshot]:
        with self._lock:
            return [task.snapshot() for task in self._tasks.values()]

    def total_progress(self) -> float:
        """
        Overall progress of every task in the queue as a fraction.

        Computed as the sum of transferred bytes over the sum of total bytes.
        When the queue only holds zero-byte tasks, it is 1.0 once they have
        all completed and 0.0 before that.
        """
        with self._lock:
            tasks = list(self._tasks.values())
            total = sum(task.total_bytes for task in tasks)
            if total == 0:
                return 1.0 if tasks and all(t.status is TaskStatus.COMPLETED for t in tasks) else 0.0
            return sum(task.transferred_bytes for task in tasks) / total

    def _count(self, status: TaskStatus) -> int:
        with self._lock:
            return sum(1 for task in self._tasks.values() if task.status is status)

    def active_count(self) -> int:
        return self._count(TaskStatus.TRANSFERRING)

    def pending_count(self) -> int:
        return self._count(TaskStatus.PENDING)

    def has_errors(self) -> bool:
        return self._count(TaskStatus.ERROR) > 0

    def is_idle(self) -> bool:
        """True when nothing is pending, transferring or still winding down."""
        with self._lock:
            return not self._executions and not any(
                task.status in (TaskStatus.PENDING, TaskStatus.TRANSFERRING) for task in self._tasks.values()
            )

    def wait_for(self, predicate: Callable[["TransferQueue"], bool], timeout: float | None = None) -> bool:
        """Blocks until predicate(queue) holds or the timeout expires. Returns the final result."""
        with self._changed:
            return self._changed.wait_for(lambda: predicate(self), timeout)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        return self.wait_for(lambda q: q.is_idle(), timeout)

    # --- Execution ---

    def _ensure_running(self):
        """Starts the thread pool and the dispatcher the first time a task is promoted."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.effective_concurrency, thread_name_prefix="transfer-worker"
            )
        if self._dispatcher is None:
            self._dispatcher = threading.Thread(
                target=self._dispatch_loop, name="transfer-dispatcher", daemon=True
            )
            self._dispatcher.start()

    def _launch(self, task: TransferTask):
        """Submits an execution for a task that has just entered transferring. Lock must be held."""
        self._ensure_running()
        execution = _Execution(task.id, task.attempt, threading.Event())
        self._executions[task.id] = execution
        self._executor.submit(
            self._execute, execution, task.direction, task.source_path, task.destination_path, task.total_bytes
        )

    def _execute(
            self,
            execution: _Execution,
            direction: TransferDirection,
            source_path: str,
            destination_path: str,
            total_bytes: int,
    ):
        """
        Streams one file from source to destination on a worker thread.

        Only immutable copies of the task's fields are used here. Every outcome
        is reported as exactly one final message (_Finished, _Failed or _Stopped).
        """
        if direction is TransferDirection.UPLOAD:
            source, destination = self._local, self._remote
        else:
            source, destination = self._remote, self._local

        post = self._messages.put
        transferred = 0
        try:
            with closing(source.read_chunked(source_path, self.chunk_size)) as chunks:
                # Pulling the first chunk opens the source, so a vanished source
                # fails before anything is created at the destination.
                first = next(chunks, None)
                with destination.write_chunked(destination_path) as sink:
                    for chunk in itertools.chain(() if first is None else (first,), chunks):
                        # Cooperative stop: checked once per chunk, the streams close on leaving the blocks.
                        if execution.stop_event.is_set():
                            break
                        transferred += len(chunk)
                        if transferred > total_bytes:
                            raise TransferError(
                                f"Source '{source_path}' is larger than the expected {total_bytes} bytes.")
                        sink.write(chunk)
                        post(_Progress(execution.task_id, execution.attempt, transferred, time.monotonic()))

            if execution.stop_event.is_set():
                post(_Stopped(execution.task_id, execution.attempt))
                return
            if transferred != total_bytes:
                raise TransferError(
                    f"Source '{source_path}' ended after {transferred} of {total_bytes} bytes.")
            post(_Finished(execution.task_id, execution.attempt))
        except Exception as e:
            if execution.stop_event.is_set():
                post(_Stopped(execution.task_id, execution.attempt))
                return
            logger.error(f"Transfer of '{source_path}' to '{destination_path}' failed: {e}",
                         exc_info=not isinstance(e, (OSError, TransferError)))
            post(_Failed(execution.task_id, execution.attempt, str(e) or type(e).__name__))

    def _dispatch_loop(self):
        """Applies execution messages in arrival order and runs the periodic scheduler tick."""
        while True:
            try:
                message = self._messages.get(timeout=self.tick_interval)
            except queue.Empty:
                self.schedule_tick()
                continue
            if message is None:  # Shutdown sentinel.
                break
            try:
                self._apply(message)
            except Exception as e:
                logger.error(f"Failed to apply transfer message {message}: {e}", exc_info=True)

    def _apply(self, message):
        """Applies one execution message. Messages from superseded attempts are discarded."""
        final = not isinstance(message, _Progress)
        with self._lock:
            if final:
                execution = self._executions.get(message.task_id)
                if execution is not None and execution.attempt == message.attempt:
                    del self._executions[message.task_id]

            task = self._tasks.get(message.task_id)
            current = (task is not None and task.attempt == message.attempt
                       and task.status is TaskStatus.TRANSFERRING)
            if current:
                if isinstance(message, _Progress):
                    task.record_progress(message.transferred, message.at)
                elif isinstance(message, _Finished):
                    task.complete(datetime.now())
                    logger.info(f"Completed {task.direction.value} of '{task.file_name}'.")
                elif isinstance(message, _Failed):
                    task.fail(message.message, datetime.now())
                    logger.warning(f"'{task.file_name}' failed: {message.message}")
                else:
                    # Pause, cancel and shutdown change the status before setting the stop flag.
                    logger.debug(f"Execution for '{task.file_name}' stopped while still transferring.")

        self._notify()
        if final:
            self.schedule_tick()

    # --- Lifecycle ---

    def shutdown(self, wait: bool = True):
        """
        Stops every running execution and the dispatcher. Transferring tasks
        are left paused; no further task is started.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for task in self._tasks.values():
                if task.status is TaskStatus.TRANSFERRING:
                    task.pause()
            for execution in self._executions.values():
                execution.stop_event.set()
            executor, dispatcher = self._executor, self._dispatcher

        if executor is not None:
            executor.shutdown(wait=wait)
        self._messages.put(None)
        if dispatcher is not None and wait:
            dispatcher.join()
        logger.info("Transfer queue shut down.")
        self._notify()
