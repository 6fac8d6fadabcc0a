from pathlib import Path

import pytest

from config_manager import ConfigManager
from exceptions import CleanupError, ConfigurationError, LaunchError
from memcached_orchestrator import MemcachedOrchestrator


CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class DummyTask:
    def __init__(self):
        self.calls = []

    def address(self):
        return "127.0.0.1"

    def stop(self):
        self.calls.append("stop")

    def clean(self):
        self.calls.append("clean")

    def erase_output(self):
        self.calls.append("erase_output")


class DummyExecutor:
    def __init__(self, task):
        self.task = task
        self.commands = []

    def execute(self, command):
        self.commands.append(command)
        return self.task


def _load(*overrides):
    return ConfigManager(CONFIG_DIR).load_config("default", list(overrides))


def test_full_command_includes_isolation():
    cfg = _load("isolation.pid_namespace=true", "isolation.cpuset='0-1'")

    orchestrator = MemcachedOrchestrator(cfg, executor=DummyExecutor(DummyTask()))

    assert orchestrator.full_command() == (
        "taskset -c 0-1 unshare --fork --pid --mount-proc "
        "memcached -p 11211 -u root -t 4 -m 4096 -c 2048"
    )


def test_start_and_shutdown(monkeypatch):
    cfg = _load("executor.keep_output=false")
    task = DummyTask()
    executor = DummyExecutor(task)
    orchestrator = MemcachedOrchestrator(cfg, executor=executor)
    orchestrator.launcher.is_memcached_up = lambda address, timeout: True

    assert orchestrator.start() is task
    # isolation is applied by the executor, not by the launcher
    assert executor.commands == ["memcached -p 11211 -u root -t 4 -m 4096 -c 2048"]

    orchestrator.shutdown()
    assert task.calls == ["stop", "clean", "erase_output"]
    assert orchestrator.task is None


def test_shutdown_keeps_output_by_default():
    cfg = _load()
    task = DummyTask()
    orchestrator = MemcachedOrchestrator(cfg, executor=DummyExecutor(task))
    orchestrator.launcher.is_memcached_up = lambda address, timeout: True

    orchestrator.start()
    orchestrator.shutdown()

    assert task.calls == ["stop", "clean"]


def test_start_failure_tears_down_task():
    cfg = _load()
    task = DummyTask()
    orchestrator = MemcachedOrchestrator(cfg, executor=DummyExecutor(task))
    orchestrator.launcher.is_memcached_up = lambda address, timeout: False

    with pytest.raises(LaunchError):
        orchestrator.start()

    assert task.calls == ["stop", "clean", "erase_output"]
    assert orchestrator.task is None


def test_serve_returns_when_stop_requested():
    orchestrator = MemcachedOrchestrator(_load(), executor=DummyExecutor(DummyTask()))
    orchestrator.request_stop()
    orchestrator.serve(poll_interval=0.01)


def test_invalid_config_is_rejected():
    cfg = _load()
    cfg.memcached.port = 0

    with pytest.raises(ConfigurationError):
        MemcachedOrchestrator(cfg, executor=DummyExecutor(DummyTask()))


def test_shutdown_runs_every_step_when_stop_fails():
    class FailingStopTask(DummyTask):
        def stop(self):
            self.calls.append("stop")
            raise RuntimeError("stop failed")

    cfg = _load("executor.keep_output=false")
    task = FailingStopTask()
    orchestrator = MemcachedOrchestrator(cfg, executor=DummyExecutor(task))
    orchestrator.launcher.is_memcached_up = lambda address, timeout: True
    orchestrator.start()

    with pytest.raises(CleanupError) as excinfo:
        orchestrator.shutdown()

    assert task.calls == ["stop", "clean", "erase_output"]
    assert list(excinfo.value.errors) == ["stop"]
    assert orchestrator.task is None
