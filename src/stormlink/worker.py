"""Email verification worker process."""

import logging
import sys

from stormlink.config import settings
from stormlink.logging import setup_logging
from stormlink.tasks.lifecycle import LifecycleController
from stormlink.tasks.worker import WorkerConfigError, create_worker

logger = logging.getLogger(__name__)


def run(verbose: bool = False) -> int:
    """Run the worker until signalled. Returns the process exit code."""
    setup_logging(worker=True, verbose=verbose)

    try:
        worker = create_worker()
    except WorkerConfigError as e:
        logger.critical(f"Cannot start email worker: {e}")
        return 1

    controller = LifecycleController(worker, shutdown_timeout=settings.worker_shutdown_timeout)
    controller.run()
    return 0


def main() -> None:
    """Entry point for the ``stormlink-worker`` script."""
    sys.exit(run())


if __name__ == "__main__":
    main()
