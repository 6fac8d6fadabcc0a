#!/usr/bin/env python3
"""
Memcached harness entry point

Launches a memcached instance for a benchmark run, optionally isolated in a
PID namespace, pinned to CPUs or placed in cgroups, and keeps it serving
until the process exits or the harness is interrupted.

Example Usage:
    # Launch with the default configuration
    python3 memcached_orchestrator.py

    # Print the decorated command without starting anything
    python3 memcached_orchestrator.py command=print isolation.pid_namespace=true

    # Development profile with overrides
    python3 memcached_orchestrator.py --config-name=development memcached.port=11311
"""

import signal
import sys
import threading

from loguru import logger

import hydra
from omegaconf import DictConfig

from config_manager import ConfigManager, memcached_config_from
from exceptions import ConfigurationError, HarnessError
from executor import LocalExecutor, LocalTaskHandle
from isolation import decorate, decorators_from_config
from logging_manager import log_task_operation, setup_logging
from memcached import TEARDOWN_STEPS, MemcachedLauncher, teardown
from readiness import probe_from_config


class MemcachedOrchestrator:
    """Wires configuration, isolation, executor and readiness probe into a launcher.

    Attributes:
        config (DictConfig): Hydra configuration object with all settings
        launcher (MemcachedLauncher): Configured launcher
        task (LocalTaskHandle): Running task after ``start``
    """

    def __init__(self, config: DictConfig, executor=None):
        self.config = config
        config_manager = ConfigManager()
        config_manager.validate_config(config)

        try:
            self.decorators = decorators_from_config(config.isolation)
            probe = probe_from_config(config.readiness)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if executor is None:
            executor = LocalExecutor(config.executor.output_root,
                                     decorators=self.decorators,
                                     host=config.executor.host,
                                     stop_timeout=config.executor.stop_timeout)
        self.executor = executor
        self.launcher = MemcachedLauncher(executor, memcached_config_from(config),
                                          is_memcached_up=probe)
        self.task = None
        self._stop_requested = threading.Event()

        logger.info("Memcached orchestrator initialized",
                    decorators=[repr(d) for d in self.decorators],
                    **config_manager.get_config_summary(config))

    def full_command(self) -> str:
        """Command line as it is handed to the operating system."""
        return decorate(self.launcher.build_command(), self.decorators)

    def start(self):
        self.task = self.launcher.launch()
        if isinstance(self.task, LocalTaskHandle):
            log_task_operation("Memcached task status", self.launcher.name, **self.task.status())
        return self.task

    def request_stop(self, *_):
        logger.info("Stop requested")
        self._stop_requested.set()

    def serve(self, poll_interval: float = 1.0) -> None:
        """Block until the task exits on its own or a stop is requested."""
        while not self._stop_requested.wait(poll_interval):
            if isinstance(self.task, LocalTaskHandle) and not self.task.is_running():
                logger.warning("Memcached exited", exit_code=self.task.exit_code())
                return

    def shutdown(self) -> None:
        """Stop and clean the task; erase output unless configured to keep it.

        Every step runs even if an earlier one fails; failures are raised
        together as ``CleanupError`` after the task has been released.
        """
        if self.task is None:
            return
        steps = ("stop", "clean") if self.config.executor.keep_output else TEARDOWN_STEPS
        task, self.task = self.task, None
        cleanup_error = teardown(task, steps)
        if cleanup_error is not None:
            raise cleanup_error
        log_task_operation("Memcached stopped and cleaned up", self.launcher.name, steps=list(steps))


@hydra.main(version_base=None, config_path="config", config_name="default")
def main(cfg: DictConfig) -> None:
    """Main entry point with Hydra configuration management.

    Args:
        cfg: Hydra configuration loaded from config files
    """
    setup_logging(cfg)

    try:
        orchestrator = MemcachedOrchestrator(cfg)

        if cfg.command == "print":
            print(orchestrator.full_command())
            return

        signal.signal(signal.SIGINT, orchestrator.request_stop)
        signal.signal(signal.SIGTERM, orchestrator.request_stop)

        orchestrator.start()
        try:
            orchestrator.serve()
        finally:
            orchestrator.shutdown()

    except HarnessError as e:
        logger.error("Harness error", error=str(e))
        if cfg.logging.level == "DEBUG":
            logger.exception("Full traceback:")
        sys.exit(1)


if __name__ == "__main__":
    main()
