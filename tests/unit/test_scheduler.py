"""Unit tests for OperationScheduler.

Tests directory-affinity concurrency, per-attempt deadlines, retries
and cancellation.
"""

import threading
from concurrent.futures import CancelledError

import pytest

from inews.ftp.exceptions import ExhaustedRetriesError, OperationTimeoutError, ProtocolDecodeError, TransportError
from inews.ftp.scheduler import JobStatus, OperationKind, OperationScheduler, always_retry


class Blocker:
    """Operation that blocks until released, counting its calls."""

    def __init__(self, result="done"):
        self.result = result
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def __call__(self):
        self.calls += 1
        self.started.set()
        self.release.wait(5)
        return self.result


@pytest.fixture
def scheduler():
    return OperationScheduler(max_operations=5, max_attempts=3, timeout=2.0)


class TestEnqueue:
    """Tests for scheduling and results."""

    def test_result_is_delivered(self, scheduler):
        controller = scheduler.enqueue(lambda: 42, "SHOW.RUNDOWN", kind=OperationKind.LIST)

        assert controller.result(timeout=2) == 42
        assert controller.status == JobStatus.COMPLETED
        assert controller.job.attempts_made == 1
        assert controller.job.kind == OperationKind.LIST

    def test_first_access_to_directory_runs_alone(self, scheduler):
        first = scheduler.enqueue(lambda: 1, "SHOW.RUNDOWN")
        second = scheduler.enqueue(lambda: 2, "SHOW.RUNDOWN")
        third = scheduler.enqueue(lambda: 3, "SHOW.ARCHIVE")

        assert first.job.max_simultaneous == 1
        assert second.job.max_simultaneous == 5
        assert third.job.max_simultaneous == 1
        assert scheduler.last_directory == "SHOW.ARCHIVE"

    def test_warm_directory_runs_concurrently(self, scheduler):
        """Test that operations in the last-used directory overlap."""
        first = Blocker()
        second = Blocker()

        first_controller = scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        second_controller = scheduler.enqueue(second, "SHOW.RUNDOWN")

        assert second.started.wait(2)
        assert scheduler.running == 2

        first.release.set()
        second.release.set()
        assert first_controller.result(timeout=2) == "done"
        assert second_controller.result(timeout=2) == "done"

    def test_new_directory_waits_for_running_operations(self, scheduler):
        """Test that a directory change is not admitted while others run."""
        first = Blocker()
        other = Blocker("other")

        scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        other_controller = scheduler.enqueue(other, "SHOW.ARCHIVE")

        assert scheduler.queue_length == 1
        assert not other.started.wait(0.1)

        first.release.set()
        other.release.set()
        assert other_controller.result(timeout=2) == "other"
        assert scheduler.queue_length == 0

    def test_queue_is_head_of_line(self, scheduler):
        """Test that a queued cold job holds back warm jobs behind it."""
        first = Blocker()
        cold = Blocker()
        warm = Blocker()

        scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        scheduler.enqueue(cold, "SHOW.ARCHIVE")
        scheduler.enqueue(warm, "SHOW.ARCHIVE")

        assert scheduler.queue_length == 2
        assert not warm.started.wait(0.1)

        for blocker in (first, cold, warm):
            blocker.release.set()

    def test_cancelled_directory_change_keeps_next_job_waiting(self, scheduler):
        """Test that a job queued behind a cancelled directory change still waits for other directories."""
        first = Blocker()
        second = Blocker()
        switch = Blocker()
        follower = Blocker("archive")

        scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        scheduler.enqueue(second, "SHOW.RUNDOWN")
        assert second.started.wait(2)
        switch_controller = scheduler.enqueue(switch, "SHOW.ARCHIVE")
        follower_controller = scheduler.enqueue(follower, "SHOW.ARCHIVE")
        assert follower_controller.job.max_simultaneous == 5

        assert switch_controller.cancel() is True

        assert scheduler.queue_length == 1
        assert not follower.started.wait(0.1)
        assert scheduler.running == 2

        first.release.set()
        second.release.set()
        follower.release.set()
        assert follower_controller.result(timeout=2) == "archive"
        assert switch.calls == 0


class TestRetries:
    """Tests for attempt deadlines and retries."""

    def test_retry_then_success(self, scheduler):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise TransportError("list", "SHOW.RUNDOWN")
            return "ok"

        controller = scheduler.enqueue(flaky, "SHOW.RUNDOWN")

        assert controller.result(timeout=2) == "ok"
        assert controller.job.attempts_made == 2

    def test_every_attempt_times_out(self):
        """Test that timed out attempts end in ExhaustedRetriesError."""
        scheduler = OperationScheduler(max_attempts=2, timeout=0.05)
        hang = threading.Event()
        controller = scheduler.enqueue(lambda: hang.wait(5), "SHOW.RUNDOWN")

        with pytest.raises(ExhaustedRetriesError) as exc_info:
            controller.result(timeout=2)

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_error, OperationTimeoutError)
        assert controller.status == JobStatus.FAILED
        hang.set()

    def test_every_attempt_fails(self, scheduler):
        error = TransportError("retrieve", "AAAAAAAA:BBBBBBBB:CCCCCCCC")

        def failing():
            raise error

        controller = scheduler.enqueue(failing, "SHOW.RUNDOWN")

        with pytest.raises(ExhaustedRetriesError) as exc_info:
            controller.result(timeout=2)
        assert exc_info.value.last_error is error
        assert controller.job.attempts_made == 3

    def test_error_hook_stops_retries(self):
        """Test that an error hook returning False delivers the error itself."""
        seen = []

        def hook(error, job):
            seen.append((error, job.attempts_made))
            return not isinstance(error, ProtocolDecodeError)

        scheduler = OperationScheduler(max_attempts=5, timeout=2.0, on_error=hook)

        def undecodable():
            raise ProtocolDecodeError("directory listing")

        controller = scheduler.enqueue(undecodable, "SHOW.RUNDOWN")

        with pytest.raises(ProtocolDecodeError):
            controller.result(timeout=2)
        assert len(seen) == 1
        assert controller.job.attempts_made == 1

    def test_per_job_error_hook(self, scheduler):
        def failing():
            raise TransportError("list")

        controller = scheduler.enqueue(failing, "SHOW.RUNDOWN", on_error=lambda error, job: False)

        with pytest.raises(TransportError):
            controller.result(timeout=2)

    def test_always_retry(self):
        assert always_retry(Exception(), None) is True


class TestCancel:
    """Tests for job cancellation."""

    def test_cancel_queued_job(self, scheduler):
        first = Blocker()
        queued = Blocker()

        scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        controller = scheduler.enqueue(queued, "SHOW.ARCHIVE")

        assert controller.cancel() is True
        assert scheduler.queue_length == 0
        assert controller.status == JobStatus.CANCELLED
        with pytest.raises(CancelledError):
            controller.result(timeout=1)

        first.release.set()
        assert not queued.started.wait(0.1)
        assert queued.calls == 0

    def test_cancel_running_job(self, scheduler):
        """Test that a running job's result is discarded and not retried."""
        blocker = Blocker()
        controller = scheduler.enqueue(blocker, "SHOW.RUNDOWN")
        assert blocker.started.wait(2)

        assert controller.cancel() is True
        assert controller.cancelled is True
        blocker.release.set()

        with pytest.raises(CancelledError):
            controller.result(timeout=1)
        assert blocker.calls == 1

    def test_cancel_finished_job(self, scheduler):
        controller = scheduler.enqueue(lambda: 1, "SHOW.RUNDOWN")
        controller.result(timeout=2)

        assert controller.cancel() is False
        assert controller.status == JobStatus.COMPLETED

    def test_cancel_pending(self, scheduler):
        first = Blocker()
        scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        scheduler.enqueue(lambda: 1, "SHOW.ARCHIVE")
        scheduler.enqueue(lambda: 2, "SHOW.ARCHIVE")

        assert scheduler.cancel_pending() == 2
        assert scheduler.queue_length == 0
        first.release.set()


class TestCompleteAndRestart:
    """Tests for completing jobs early and restarting them."""

    def test_complete_queued_job(self, scheduler):
        first = Blocker()
        queued = Blocker()

        scheduler.enqueue(first, "SHOW.RUNDOWN")
        assert first.started.wait(2)
        controller = scheduler.enqueue(queued, "SHOW.ARCHIVE")

        assert controller.complete("cached") is True
        assert controller.result(timeout=1) == "cached"
        assert controller.status == JobStatus.COMPLETED
        assert scheduler.queue_length == 0

        first.release.set()
        assert not queued.started.wait(0.1)
        assert queued.calls == 0

    def test_complete_running_job(self, scheduler):
        """Test that waiters get the given result while the attempt is still running."""
        blocker = Blocker("late")
        controller = scheduler.enqueue(blocker, "SHOW.RUNDOWN")
        assert blocker.started.wait(2)

        assert controller.complete() is True
        assert controller.result(timeout=1) is None

        blocker.release.set()
        assert blocker.calls == 1
        assert controller.result(timeout=1) is None

    def test_complete_finished_job(self, scheduler):
        controller = scheduler.enqueue(lambda: 1, "SHOW.RUNDOWN")
        controller.result(timeout=2)

        assert controller.complete(2) is False
        assert controller.result() == 1

    def test_restart_running_job(self, scheduler):
        """Test that a restarted job runs again and counts attempts from one."""
        blocker = Blocker()
        controller = scheduler.enqueue(blocker, "SHOW.RUNDOWN")
        assert blocker.started.wait(2)

        assert controller.restart() is True
        blocker.release.set()

        assert controller.result(timeout=2) == "done"
        assert blocker.calls == 2
        assert controller.job.attempts_made == 1

    def test_restart_resets_failed_attempts(self, scheduler):
        """Test that a restart gives a failing job its full attempt budget again."""
        calls = []
        enqueued = threading.Event()
        controllers = []

        def flaky():
            enqueued.wait(2)
            calls.append(1)
            if len(calls) == 2:
                controllers[0].restart()
            if len(calls) < 5:
                raise TransportError("list", "SHOW.RUNDOWN")
            return "ok"

        controllers.append(scheduler.enqueue(flaky, "SHOW.RUNDOWN"))
        enqueued.set()

        assert controllers[0].result(timeout=5) == "ok"
        assert len(calls) == 5
        assert controllers[0].job.attempts_made == 3

    def test_restart_finished_job(self, scheduler):
        controller = scheduler.enqueue(lambda: 1, "SHOW.RUNDOWN")
        controller.result(timeout=2)

        assert controller.restart() is False
