#!/usr/bin/env python3
"""
Memcached launcher for the benchmarking harness

Builds the memcached command line from a ``MemcachedConfig``, starts it
through an ``Executor`` and waits until the instance accepts connections.

Launch protocol:
- Execution failure: the executor's exception propagates unchanged; no task
  exists, so nothing is cleaned up.
- Readiness success: the task handle is returned to the caller, who owns it
  from then on.
- Readiness failure (a check that returns False or raises): the task is stopped, cleaned and its output erased, in
  that order. Every step runs even if an earlier one failed; the readiness
  failure and all step failures are raised together as ``LaunchError``.
"""

from typing import Iterable, Optional, Sequence

from loguru import logger

from config.schema import MemcachedConfig
from exceptions import CleanupError, LaunchError, ReadinessTimeoutError
from executor import Executor, TaskHandle
from isolation import Decorator, decorate
from readiness import ReadinessProbe, is_endpoint_listening


NAME = "Memcached"

TEARDOWN_STEPS = ("stop", "clean", "erase_output")


def build_command(config: MemcachedConfig, decorators: Iterable[Decorator] = ()) -> str:
    """Build the memcached command line.

    Flags are emitted in a fixed order; ``-T`` is appended only when thread
    affinity is enabled.

    Example:
        build_command(MemcachedConfig(path_to_binary="test", threads_affinity=True))
        # "test -p 11211 -u root -t 4 -m 4096 -c 2048 -T"
    """
    command = (
        f"{config.path_to_binary}"
        f" -p {config.port}"
        f" -u {config.user}"
        f" -t {config.num_threads}"
        f" -m {config.max_memory_mb}"
        f" -c {config.num_connections}"
    )
    if config.threads_affinity:
        command += " -T"
    return decorate(command, decorators)


class MemcachedLauncher:
    """Launches memcached and verifies it is reachable.

    Attributes:
        executor (Executor): Backend that starts the process
        config (MemcachedConfig): Launch parameters
        decorators (Sequence[Decorator]): Isolation applied to the command
        is_memcached_up (ReadinessProbe): Readiness check, replaceable

    Example:
        launcher = MemcachedLauncher(LocalExecutor("results"), default_memcached_config())
        task = launcher.launch()
    """

    def __init__(self, executor: Executor, config: MemcachedConfig,
                 decorators: Sequence[Decorator] = (),
                 is_memcached_up: ReadinessProbe = is_endpoint_listening):
        self.executor = executor
        self.config = config
        self.decorators = tuple(decorators)
        self.is_memcached_up = is_memcached_up

    @property
    def name(self) -> str:
        return NAME

    def build_command(self) -> str:
        return build_command(self.config, self.decorators)

    def launch(self) -> TaskHandle:
        """Start memcached and wait until it accepts connections.

        Returns:
            TaskHandle: Handle of the running, reachable instance

        Raises:
            ExecutionError: (or whatever the executor raises) if the process
                could not be started
            LaunchError: If the instance did not become reachable within
                ``config.listen_timeout`` or the readiness check itself
                failed; the task has been torn down
        """
        command = self.build_command()
        logger.info("Launching memcached", command=command)

        task = self.executor.execute(command)

        address = f"<unknown>:{self.config.port}"
        probe_error = None
        try:
            address = f"{task.address()}:{self.config.port}"
            ready = self.is_memcached_up(address, self.config.listen_timeout)
        except Exception as e:
            logger.error("Readiness check failed", address=address, error=str(e))
            probe_error = e
            ready = False

        if ready:
            logger.success("Memcached is listening", address=address)
            return task

        readiness_error = ReadinessTimeoutError(address, self.config.listen_timeout,
                                                reason=str(probe_error) if probe_error else None)
        readiness_error.__cause__ = probe_error
        logger.error("Memcached did not become reachable, cleaning up",
                     address=address, timeout=self.config.listen_timeout)

        cleanup_error = teardown(task)
        raise LaunchError(readiness_error, cleanup_error) from readiness_error


def teardown(task: TaskHandle, steps: Sequence[str] = TEARDOWN_STEPS) -> Optional[CleanupError]:
    """Run the given handle operations in order, collecting every failure.

    Each step runs even if an earlier one failed.
    """
    errors = {}
    for step in steps:
        try:
            getattr(task, step)()
        except Exception as e:
            logger.warning("Cleanup step failed", step=step, error=str(e))
            errors[step] = e

    if errors:
        return CleanupError(errors)
    return None
