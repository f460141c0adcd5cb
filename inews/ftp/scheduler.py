"""Operation scheduler for the iNews FTP client.

Every list/fetch operation goes through OperationScheduler, which
bounds how many run at once, gives each attempt a hard deadline and
retries failed attempts.

All operations share one control channel and therefore one working
directory. An operation for the directory that was used most recently
may run alongside others (up to max_operations); an operation for a
different directory runs alone, so no cwd can happen underneath a
transfer in progress.
"""

import logging
import threading
import time
from collections import Counter, deque
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Generic, Optional, TypeVar

from inews.ftp.exceptions import ExhaustedRetriesError, OperationTimeoutError
from inews.utils.threading import TaskStatus, ThreadedTask

logger = logging.getLogger("inews.scheduler")


T = TypeVar("T")


class OperationKind(Enum):
    """What an operation does on the server."""
    LIST = "list"
    FETCH = "fetch"


class JobStatus(Enum):
    """Lifecycle of a scheduled operation."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OperationJob:
    """Bookkeeping for one scheduled operation."""
    kind: OperationKind
    directory: str
    file: Optional[str]
    max_attempts: Optional[int]
    timeout: float
    max_simultaneous: int
    attempts_made: int = 0
    attempt_deadline: Optional[float] = None
    status: JobStatus = JobStatus.QUEUED

    def describe(self) -> str:
        """Short description for logs and error messages."""
        if self.file:
            return f"{self.kind.value} {self.directory}/{self.file}"
        return f"{self.kind.value} {self.directory}"


# Decides whether to retry after a failed attempt: (error, job) -> continue?
ErrorHook = Callable[[Exception, OperationJob], bool]


def always_retry(error: Exception, job: OperationJob) -> bool:
    """Default error hook: retry until attempts run out."""
    return True


class JobController(Generic[T]):
    """Handle on a scheduled operation: wait for it, cancel, complete or restart it."""

    def __init__(
        self,
        job: OperationJob,
        operation: Callable[[], T],
        on_error: ErrorHook,
        scheduler: "OperationScheduler"
    ):
        self._job = job
        self._operation = operation
        self._on_error = on_error
        self._scheduler = scheduler
        self._future: Future = Future()
        self._lock = threading.Lock()
        self._cancelled = False
        # True once cancel() or complete() settled the job ahead of its operation
        self._settled = False
        self._restart_requested = False

    @property
    def job(self) -> OperationJob:
        """The job's bookkeeping record."""
        return self._job

    @property
    def status(self) -> JobStatus:
        """Current job status."""
        return self._job.status

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called."""
        return self._cancelled

    def done(self) -> bool:
        """True if a result, an error or a cancellation has been delivered."""
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> T:
        """
        Wait for the operation's result.

        Args:
            timeout: Maximum time to wait (None = forever)

        Returns:
            The operation's result

        Raises:
            ExhaustedRetriesError: If every attempt failed
            CancelledError: If the job was cancelled
            TimeoutError: If the wait itself timed out
            Exception: Whatever the last attempt raised, if the error
                hook stopped the retries
        """
        return self._future.result(timeout=timeout)

    def add_done_callback(self, callback: Callable[[Future], Any]) -> None:
        """Call back with the underlying future once the job is done."""
        self._future.add_done_callback(callback)

    def cancel(self) -> bool:
        """
        Cancel the job.

        A queued job is removed and never runs. A running job finishes its
        current attempt in the background, but its result is discarded
        and it is not retried.

        Returns:
            True if the job was cancelled, False if it had already finished
        """
        with self._lock:
            if self._future.done():
                return False
            self._cancelled = True
            self._settled = True
            self._job.status = JobStatus.CANCELLED
            self._future.cancel()

        self._scheduler._discard(self)
        logger.debug(f"Cancelled {self._job.describe()}")
        return True

    def complete(self, result: Optional[T] = None) -> bool:
        """
        Mark the job done without waiting for its operation.

        Waiters receive result at once. A queued job leaves the queue
        without running; a running job is not retried and the outcome of
        its current attempt is dropped.

        Args:
            result: Value result() returns

        Returns:
            True if the job was completed, False if it had already finished
        """
        with self._lock:
            if self._future.done():
                return False
            self._settled = True
            self._job.status = JobStatus.COMPLETED
            self._future.set_result(result)

        self._scheduler._discard(self)
        logger.debug(f"Completed {self._job.describe()} early")
        return True

    def restart(self) -> bool:
        """
        Start the job's attempts over.

        A running job discards the outcome of its current attempt once it
        returns and begins again at attempt one. A queued job is already
        at its start and is left as is.

        Returns:
            True unless the job had already finished
        """
        with self._lock:
            if self._future.done():
                return False
            if self._job.status == JobStatus.RUNNING:
                self._restart_requested = True

        logger.debug(f"Restart requested for {self._job.describe()}")
        return True

    def _take_restart(self) -> bool:
        """Consume a pending restart request."""
        with self._lock:
            requested = self._restart_requested
            self._restart_requested = False
            return requested

    def _deliver(self, result: Any = None, error: Optional[BaseException] = None) -> None:
        """Resolve the future unless cancel() or complete() already did."""
        with self._lock:
            if self._settled:
                return
            if error is not None:
                self._job.status = JobStatus.FAILED
                self._future.set_exception(error)
            else:
                self._job.status = JobStatus.COMPLETED
                self._future.set_result(result)


class OperationScheduler:
    """Queues operations, bounds their concurrency and retries them."""

    def __init__(
        self,
        max_operations: int = 5,
        max_attempts: Optional[int] = 5,
        timeout: float = 60.0,
        on_error: Optional[ErrorHook] = None
    ):
        """
        Initialize the scheduler.

        Args:
            max_operations: Simultaneous operations allowed in the warm directory
            max_attempts: Attempts per operation (None = unlimited)
            timeout: Seconds each attempt may take
            on_error: Default hook deciding whether to retry after a failure
        """
        self._max_operations = max_operations
        self._max_attempts = max_attempts
        self._timeout = timeout
        self._on_error = on_error or always_retry

        self._lock = threading.Lock()
        self._pending: Deque[JobController] = deque()
        self._running = 0
        # Directory -> number of running jobs in it
        self._running_directories = Counter()
        self._last_directory: Optional[str] = None
        self._job_counter = 0

    @property
    def queue_length(self) -> int:
        """Number of operations waiting to start."""
        with self._lock:
            return len(self._pending)

    @property
    def running(self) -> int:
        """Number of operations currently running."""
        with self._lock:
            return self._running

    @property
    def last_directory(self) -> Optional[str]:
        """Directory of the most recently enqueued operation."""
        return self._last_directory

    def enqueue(
        self,
        operation: Callable[[], T],
        directory: str,
        kind: OperationKind = OperationKind.FETCH,
        file: Optional[str] = None,
        on_error: Optional[ErrorHook] = None
    ) -> JobController[T]:
        """
        Schedule an operation.

        Args:
            operation: Callable doing one attempt of the work
            directory: Directory the operation works in
            kind: Operation kind, for bookkeeping and logs
            file: File the operation works on, if any
            on_error: Hook overriding the scheduler's default error hook

        Returns:
            JobController for waiting on or cancelling the operation
        """
        with self._lock:
            if directory == self._last_directory:
                max_simultaneous = self._max_operations
            else:
                max_simultaneous = 1
            self._last_directory = directory

            job = OperationJob(
                kind=kind,
                directory=directory,
                file=file,
                max_attempts=self._max_attempts,
                timeout=self._timeout,
                max_simultaneous=max_simultaneous,
            )
            controller: JobController[T] = JobController(job, operation, on_error or self._on_error, self)
            self._pending.append(controller)

        logger.debug(f"Queued {job.describe()} (max simultaneous {max_simultaneous})")
        self._dispatch()
        return controller

    def cancel_pending(self) -> int:
        """
        Cancel every operation that has not started yet.

        Returns:
            Number of operations cancelled
        """
        with self._lock:
            pending = list(self._pending)

        return sum(1 for controller in pending if controller.cancel())

    def _discard(self, controller: JobController) -> None:
        """Drop a cancelled or completed job from the queue."""
        with self._lock:
            try:
                self._pending.remove(controller)
            except ValueError:
                # Already running or finished
                return
        self._dispatch()

    def _can_start(self, job: OperationJob) -> bool:
        """Whether job may start next to the operations already running."""
        if self._running == 0:
            return True
        if self._running >= job.max_simultaneous:
            return False
        # Only join operations that are all in the same directory
        return self._running_directories[job.directory] == self._running

    def _dispatch(self) -> None:
        """Start queued jobs, in order, while their concurrency class allows."""
        to_start = []
        with self._lock:
            while self._pending and self._can_start(self._pending[0].job):
                controller = self._pending.popleft()
                self._running += 1
                self._running_directories[controller.job.directory] += 1
                self._job_counter += 1
                controller.job.status = JobStatus.RUNNING
                to_start.append((controller, self._job_counter))

        for controller, number in to_start:
            thread = threading.Thread(
                target=self._run_job,
                args=(controller,),
                name=f"inews-job-{number}",
                daemon=True,
            )
            thread.start()

    def _run_job(self, controller: JobController) -> None:
        """Run attempts until one succeeds, attempts run out or the hook gives up."""
        job = controller.job
        try:
            while not controller._settled:
                job.attempts_made += 1
                job.attempt_deadline = time.monotonic() + job.timeout

                error: Optional[Exception] = None
                result = None
                try:
                    result = self._attempt(controller)
                except Exception as e:
                    error = e

                if controller._settled:
                    break

                if controller._take_restart():
                    logger.info(f"Restarting {job.describe()}")
                    job.attempts_made = 0
                    continue

                if error is None:
                    controller._deliver(result=result)
                    break

                if job.max_attempts is not None and job.attempts_made >= job.max_attempts:
                    logger.warning(f"{job.describe()} failed on every attempt: {error}")
                    controller._deliver(error=ExhaustedRetriesError(job.describe(), job.attempts_made, error))
                    break

                if not controller._on_error(error, job):
                    logger.warning(f"{job.describe()} aborted: {error}")
                    controller._deliver(error=error)
                    break

                logger.warning(f"{job.describe()} attempt {job.attempts_made} failed, retrying: {error}")
        finally:
            job.attempt_deadline = None
            with self._lock:
                self._running -= 1
                self._running_directories[job.directory] -= 1
                if not self._running_directories[job.directory]:
                    del self._running_directories[job.directory]
            self._dispatch()

    def _attempt(self, controller: JobController) -> Any:
        """Run one attempt on its own thread and wait for it until the deadline."""
        job = controller.job
        task = ThreadedTask(controller._operation, name=f"inews-attempt-{job.describe()}")
        task.start()

        try:
            outcome = task.get_result(timeout=job.timeout)
        except TimeoutError:
            # The attempt keeps running in the background; its outcome is dropped
            task.cancel()
            raise OperationTimeoutError(job.describe(), job.timeout)

        if outcome.status == TaskStatus.FAILED:
            raise outcome.error
        if outcome.status == TaskStatus.CANCELLED:
            raise CancelledError()
        return outcome.result
