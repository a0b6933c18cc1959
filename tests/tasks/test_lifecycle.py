"""Worker lifecycle and shutdown tests."""

import signal
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from stormlink.tasks.lifecycle import LifecycleController
from stormlink.tasks.worker import WorkerConfigError
from stormlink.worker import run


class FakeWorker:
    """Worker double whose run() is scripted by the test."""

    def __init__(self, body=None):
        self.should_stop = False
        self.closed = False
        self._body = body

    def run(self) -> None:
        if self._body is not None:
            self._body(self)

    def close(self) -> None:
        self.closed = True


class TestLifecycleController:
    """Tests for signal handling and bounded shutdown."""

    def test_signal_requests_stop(self):
        force_exit = MagicMock()
        worker = FakeWorker()
        controller = LifecycleController(worker, shutdown_timeout=5, force_exit=force_exit)

        controller.handle_signal(signal.SIGTERM)

        assert controller.stopping
        assert worker.should_stop is True
        force_exit.assert_not_called()
        controller._watchdog.cancel()

    def test_second_signal_forces_exit(self):
        force_exit = MagicMock()
        controller = LifecycleController(FakeWorker(), shutdown_timeout=5, force_exit=force_exit)

        controller.handle_signal(signal.SIGINT)
        controller.handle_signal(signal.SIGINT)

        force_exit.assert_called_once_with(1)
        controller._watchdog.cancel()

    def test_clean_shutdown_cancels_watchdog(self):
        force_exit = MagicMock()

        def body(worker):
            signal.raise_signal(signal.SIGTERM)
            assert worker.should_stop is True

        worker = FakeWorker(body)
        controller = LifecycleController(worker, shutdown_timeout=0.05, force_exit=force_exit)

        controller.run()
        time.sleep(0.2)

        assert worker.closed is True
        force_exit.assert_not_called()

    def test_watchdog_forces_exit_when_worker_hangs(self):
        unblock = threading.Event()
        force_exit = MagicMock(side_effect=lambda code: unblock.set())

        def body(worker):
            controller.request_stop()
            # Simulates a mail send that outlives the shutdown deadline
            unblock.wait(5)

        worker = FakeWorker(body)
        controller = LifecycleController(worker, shutdown_timeout=0.05, force_exit=force_exit)

        controller.run()

        force_exit.assert_called_once_with(1)
        assert worker.closed is True

    def test_handlers_restored_after_run(self):
        before = signal.getsignal(signal.SIGTERM)
        seen = {}

        def body(worker):
            seen["handler"] = signal.getsignal(signal.SIGTERM)

        controller = LifecycleController(FakeWorker(body), force_exit=MagicMock())
        controller.run()

        assert seen["handler"] == controller.handle_signal
        assert signal.getsignal(signal.SIGTERM) == before

    def test_worker_closed_when_run_raises(self):
        def body(worker):
            raise ConnectionError("broker went away")

        worker = FakeWorker(body)
        controller = LifecycleController(worker, force_exit=MagicMock())

        with pytest.raises(ConnectionError):
            controller.run()

        assert worker.closed is True


class TestWorkerEntrypoint:
    """Tests for the worker process entrypoint."""

    def test_missing_broker_url_exits_nonzero(self):
        with patch(
            "stormlink.worker.create_worker",
            side_effect=WorkerConfigError("BROKER_URL is not configured"),
        ):
            assert run() == 1

    def test_runs_worker_under_lifecycle_controller(self):
        worker = FakeWorker()
        with (
            patch("stormlink.worker.create_worker", return_value=worker),
            patch("stormlink.worker.LifecycleController") as mock_controller,
        ):
            assert run() == 0

        mock_controller.assert_called_once()
        assert mock_controller.call_args[0][0] is worker
        mock_controller.return_value.run.assert_called_once()
