"""Exceptions raised by the memcached harness.

Launch failures come in two shapes: the execution backend could not start
the process at all (``ExecutionError``, surfaced as-is), or the process
started but never became reachable, in which case the launcher tears the
task down and raises a single ``LaunchError`` that aggregates the readiness
failure with every cleanup failure.
"""

from typing import Dict, List, Optional


class HarnessError(Exception):
    """Base exception for all harness errors."""
    pass


class ExecutionError(HarnessError):
    """The execution backend could not start the requested command."""

    def __init__(self, message: str, command: Optional[str] = None):
        super().__init__(message)
        self.command = command


class TaskHandleError(HarnessError):
    """A task handle operation (stop, clean, erase output) failed."""
    pass


class ReadinessTimeoutError(HarnessError):
    """The service did not become reachable before the deadline."""

    def __init__(self, address: str, timeout: float, reason: Optional[str] = None):
        message = f"failed to connect to memcached instance. Timeout on connection to {address!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.address = address
        self.timeout = timeout


class CleanupError(HarnessError):
    """One or more cleanup steps failed.

    Attributes:
        errors (Dict[str, Exception]): Failed step name mapped to its exception,
            in the order the steps ran.
    """

    def __init__(self, errors: Dict[str, Exception]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{step}: {exc}" for step, exc in self.errors.items()))


class LaunchError(HarnessError):
    """Aggregated failure of a launch that reached the cleanup path.

    Attributes:
        readiness_error (ReadinessTimeoutError): Why cleanup was entered
        cleanup_error (CleanupError, optional): Failures of the cleanup steps
    """

    def __init__(self, readiness_error: ReadinessTimeoutError,
                 cleanup_error: Optional[CleanupError] = None):
        self.readiness_error = readiness_error
        self.cleanup_error = cleanup_error
        message = str(readiness_error)
        if cleanup_error is not None:
            message = f"{message}; cleanup failed: {cleanup_error}"
        super().__init__(message)

    @property
    def errors(self) -> List[Exception]:
        """Every collected error: readiness first, then cleanup steps in order."""
        collected: List[Exception] = [self.readiness_error]
        if self.cleanup_error is not None:
            collected.extend(self.cleanup_error.errors.values())
        return collected


class ConfigurationError(HarnessError):
    """Exception raised for configuration-related errors."""
    pass
