"""Execution backends and task handles.

``Executor`` turns a command line into a running task and ``TaskHandle`` is
the caller's reference to it. ``LocalExecutor`` is the subprocess-based
backend: each task gets its own output directory holding ``stdout.log``,
``stderr.log`` and a ``task.pid`` file.
"""
from abc import ABC, abstractmethod
from pathlib import Path
import shlex
import shutil
import subprocess
from typing import Any, Dict, IO, Iterable, Optional
import uuid

import psutil
from loguru import logger

from exceptions import ExecutionError, TaskHandleError
from isolation import Decorator, decorate


class TaskHandle(ABC):
    """Live reference to a spawned task.

    ``stop``, ``clean`` and ``erase_output`` return ``None`` on success and
    raise on failure.
    """

    @abstractmethod
    def address(self) -> str:
        """Host the task is reachable on."""

    @abstractmethod
    def stop(self) -> None:
        """Terminate the task."""

    @abstractmethod
    def clean(self) -> None:
        """Release resources held for a stopped task."""

    @abstractmethod
    def erase_output(self) -> None:
        """Remove everything the task wrote."""


class Executor(ABC):

    @abstractmethod
    def execute(self, command: str) -> TaskHandle:
        """Start ``command`` and return its handle.

        Raises:
            ExecutionError: If the command could not be started.
        """


class LocalTaskHandle(TaskHandle):
    """Handle of a process started by ``LocalExecutor``.

    Attributes:
        process (subprocess.Popen): Running process
        output_dir (Path): Directory holding the task's output and pid file
    """

    def __init__(self, process: subprocess.Popen, output_dir: Path,
                 stdout_file: IO, stderr_file: IO,
                 host: str = "127.0.0.1", stop_timeout: float = 5.0):
        self.process = process
        self.output_dir = output_dir
        self._stdout_file = stdout_file
        self._stderr_file = stderr_file
        self._host = host
        self.stop_timeout = stop_timeout

    @property
    def stdout_path(self) -> Path:
        return self.output_dir / "stdout.log"

    @property
    def stderr_path(self) -> Path:
        return self.output_dir / "stderr.log"

    @property
    def pid_path(self) -> Path:
        return self.output_dir / "task.pid"

    def address(self) -> str:
        return self._host

    def is_running(self) -> bool:
        return self.process.poll() is None

    def exit_code(self) -> Optional[int]:
        return self.process.poll()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the process to exit; returns its exit code or ``None`` on timeout."""
        try:
            return self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def stop(self) -> None:
        """Stop the process: SIGTERM first, SIGKILL after ``stop_timeout``."""
        if not self.is_running():
            logger.debug("Task already stopped", pid=self.process.pid)
            return

        try:
            self.process.terminate()
            try:
                self.process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                logger.warning("Task graceful shutdown timeout, forcing kill", pid=self.process.pid)
                self.process.kill()
                self.process.wait(timeout=self.stop_timeout)
        except ProcessLookupError:
            logger.debug("Task process already terminated", pid=self.process.pid)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TaskHandleError(f"failed to stop task {self.process.pid}: {e}") from e

        logger.debug("Task stopped", pid=self.process.pid, exit_code=self.process.returncode)

    def clean(self) -> None:
        """Close output streams and remove the pid file of a stopped task."""
        if self.is_running():
            raise TaskHandleError(f"cannot clean running task {self.process.pid}")

        for stream in (self._stdout_file, self._stderr_file):
            if not stream.closed:
                stream.close()
        try:
            self.pid_path.unlink(missing_ok=True)
        except OSError as e:
            raise TaskHandleError(f"failed to remove pid file {self.pid_path}: {e}") from e

        logger.debug("Task cleaned", pid=self.process.pid)

    def erase_output(self) -> None:
        """Remove the task's output directory."""
        if not self.output_dir.exists():
            return
        try:
            shutil.rmtree(self.output_dir)
        except OSError as e:
            raise TaskHandleError(f"failed to erase output {self.output_dir}: {e}") from e

        logger.debug("Task output erased", output_dir=str(self.output_dir))

    def status(self) -> Dict[str, Any]:
        """Get current status of the task.

        Returns:
            Dict[str, Any]: pid, running flag, exit code and, while running,
            resident memory (MB) and CPU usage from psutil.
        """
        status = {
            "pid": self.process.pid,
            "running": self.is_running(),
            "exit_code": self.exit_code(),
            "address": self._host,
            "output_dir": str(self.output_dir),
        }

        if status["running"]:
            try:
                process = psutil.Process(self.process.pid)
                status["memory_usage_mb"] = process.memory_info().rss / 1024 / 1024
                status["cpu_percent"] = process.cpu_percent()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                status["running"] = False

        return status


class LocalExecutor(Executor):
    """Runs commands as local subprocesses, optionally wrapped by isolation decorators.

    Example:
        executor = LocalExecutor("results", decorators=[new_namespace(CLONE_NEWPID)])
        task = executor.execute("memcached -p 11211 -u root -t 4 -m 4096 -c 2048")
    """

    def __init__(self, output_root: str, decorators: Iterable[Decorator] = (),
                 host: str = "127.0.0.1", stop_timeout: float = 5.0):
        self.output_root = Path(output_root)
        self.decorators = list(decorators)
        self.host = host
        self.stop_timeout = stop_timeout

    def execute(self, command: str) -> LocalTaskHandle:
        full_command = decorate(command, self.decorators)
        output_dir = self.output_root / uuid.uuid4().hex[:12]

        try:
            argv = shlex.split(full_command)
        except ValueError as e:
            raise ExecutionError(f"cannot parse command {full_command!r}: {e}", full_command) from e
        if not argv:
            raise ExecutionError("empty command", full_command)

        output_dir.mkdir(parents=True, exist_ok=True)
        streams = []
        try:
            streams.append(open(output_dir / "stdout.log", 'w'))
            streams.append(open(output_dir / "stderr.log", 'w'))
            proc = subprocess.Popen(argv, stdout=streams[0], stderr=streams[1], text=True)
        except OSError as e:
            for stream in streams:
                stream.close()
            shutil.rmtree(output_dir, ignore_errors=True)
            raise ExecutionError(f"failed to execute {full_command!r}: {e}", full_command) from e

        out_f, err_f = streams
        try:
            (output_dir / "task.pid").write_text(str(proc.pid))
        except OSError as e:
            proc.kill()
            proc.wait()
            out_f.close()
            err_f.close()
            shutil.rmtree(output_dir, ignore_errors=True)
            raise ExecutionError(f"failed to write pid file for {full_command!r}: {e}", full_command) from e

        logger.info("Task started", command=full_command, pid=proc.pid, output_dir=str(output_dir))
        return LocalTaskHandle(proc, output_dir, out_f, err_f,
                               host=self.host, stop_timeout=self.stop_timeout)
