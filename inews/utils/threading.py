"""Background task helpers for the iNews FTP client.

ThreadedTask runs one callable on a daemon thread and lets the caller
wait for it with a deadline. A task that misses its deadline keeps
running (a blocking ftplib call cannot be interrupted), but once it is
cancelled its outcome is never reported.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar


T = TypeVar("T")


class TaskStatus(Enum):
    """Status of a background task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TaskResult(Generic[T]):
    """Result of a background task."""
    status: TaskStatus
    result: Optional[T] = None
    error: Optional[Exception] = None


class ThreadedTask(Generic[T]):
    """
    Runs a callable in a background thread.

    Usage:
        task = ThreadedTask(fetch_story, args=("SHOW.RUNDOWN", name))
        task.start()
        try:
            outcome = task.get_result(timeout=60)
        except TimeoutError:
            task.cancel()
    """

    def __init__(
        self,
        target: Callable[..., T],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        on_complete: Optional[Callable[[TaskResult[T]], None]] = None,
        name: Optional[str] = None
    ):
        """
        Initialize a threaded task.

        Args:
            target: Callable to run in background
            args: Positional arguments for target
            kwargs: Keyword arguments for target
            on_complete: Callback when task finishes (called from worker
                thread, skipped if the task was cancelled)
            name: Thread name, for logs and debugging
        """
        self._target = target
        self._args = args
        self._kwargs = kwargs or {}
        self._on_complete = on_complete
        self._name = name

        self._thread: Optional[threading.Thread] = None
        self._result: Optional[TaskResult[T]] = None
        self._done = threading.Event()
        self._cancelled = threading.Event()
        self._status = TaskStatus.PENDING

    @property
    def status(self) -> TaskStatus:
        """Current task status."""
        return self._status

    @property
    def is_cancelled(self) -> bool:
        """True if task was cancelled."""
        return self._cancelled.is_set()

    def start(self) -> None:
        """Start the background task."""
        if self._status != TaskStatus.PENDING:
            raise RuntimeError("Task already started")

        self._status = TaskStatus.RUNNING
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Request cancellation; the outcome of the task is dropped."""
        self._cancelled.set()

    def _run(self) -> None:
        """Internal method that runs in the background thread."""
        try:
            result = self._target(*self._args, **self._kwargs)
            outcome: TaskResult[Any] = TaskResult(status=TaskStatus.COMPLETED, result=result)
        except Exception as e:
            outcome = TaskResult(status=TaskStatus.FAILED, error=e)

        if self._cancelled.is_set():
            outcome = TaskResult(status=TaskStatus.CANCELLED)

        self._result = outcome
        self._status = outcome.status
        self._done.set()

        if self._on_complete and outcome.status != TaskStatus.CANCELLED:
            self._on_complete(outcome)

    def get_result(self, timeout: Optional[float] = None) -> TaskResult[T]:
        """
        Wait for task completion and return result.

        Args:
            timeout: Maximum time to wait (None = forever)

        Returns:
            TaskResult with status and result/error

        Raises:
            TimeoutError: If timeout expires before task completes
        """
        if self._thread is None:
            return TaskResult(status=TaskStatus.PENDING)

        if not self._done.wait(timeout=timeout):
            raise TimeoutError("Task did not complete within timeout")

        return self._result
