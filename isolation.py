"""Isolation decorators wrapping a command line with sandboxing prefixes.

A decorator is a pure transformation of a command string. ``decorate``
applies a sequence of them left to right: the first decorator wraps the
bare command, the next one wraps that result, and so on. The order is the
caller's and is never changed, since the resulting string is compared
verbatim by the execution backend and by tests.
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Sequence

from loguru import logger


class Decorator(ABC):
    """Transforms a command line into an isolated command line."""

    @abstractmethod
    def decorate(self, command: str) -> str:
        raise NotImplementedError


# Linux clone(2) namespace flags.
CLONE_NEWNS = 0x00020000
CLONE_NEWUTS = 0x04000000
CLONE_NEWIPC = 0x08000000
CLONE_NEWPID = 0x20000000
CLONE_NEWNET = 0x40000000

# unshare(1) options per flag, in the order they are emitted.
_NAMESPACE_OPTIONS = (
    (CLONE_NEWPID, "--pid --mount-proc"),
    (CLONE_NEWNS, "--mount"),
    (CLONE_NEWNET, "--net"),
    (CLONE_NEWIPC, "--ipc"),
    (CLONE_NEWUTS, "--uts"),
)
_SUPPORTED_NAMESPACE_FLAGS = 0
for _flag, _ in _NAMESPACE_OPTIONS:
    _SUPPORTED_NAMESPACE_FLAGS |= _flag


class Namespace(Decorator):
    """Runs the command in new Linux namespaces via ``unshare --fork``."""

    def __init__(self, flags: int):
        if flags == 0:
            raise ValueError("at least one namespace flag is required")
        unsupported = flags & ~_SUPPORTED_NAMESPACE_FLAGS
        if unsupported:
            raise ValueError(f"unsupported namespace flags: {unsupported:#x}")
        self.flags = flags

    def decorate(self, command: str) -> str:
        options = [opt for flag, opt in _NAMESPACE_OPTIONS if self.flags & flag]
        return f"unshare --fork {' '.join(options)} {command}"

    def __repr__(self) -> str:
        return f"Namespace(flags={self.flags:#x})"


def new_namespace(flags: int) -> Namespace:
    """Create a namespace decorator for a combination of ``CLONE_NEW*`` flags.

    Raises:
        ValueError: If no flag or an unsupported flag is given.
    """
    return Namespace(flags)


class Taskset(Decorator):
    """Pins the command to a CPU list via ``taskset -c``."""

    def __init__(self, cpus: str):
        if not cpus:
            raise ValueError("cpu list must not be empty")
        self.cpus = cpus

    def decorate(self, command: str) -> str:
        return f"taskset -c {self.cpus} {command}"

    def __repr__(self) -> str:
        return f"Taskset(cpus={self.cpus!r})"


class Cgroup(Decorator):
    """Starts the command inside a cgroup via ``cgexec -g``."""

    def __init__(self, controllers: Sequence[str], path: str):
        if not controllers:
            raise ValueError("at least one cgroup controller is required")
        self.controllers = list(controllers)
        self.path = path

    @classmethod
    def from_spec(cls, spec: str) -> "Cgroup":
        """Parse ``controller[,controller]:path``."""
        controllers, sep, path = spec.partition(":")
        if not sep or not controllers:
            raise ValueError(f"invalid cgroup spec: {spec!r}")
        return cls(controllers.split(","), path or "/")

    def decorate(self, command: str) -> str:
        return f"cgexec -g {','.join(self.controllers)}:{self.path} {command}"

    def __repr__(self) -> str:
        return f"Cgroup(controllers={self.controllers!r}, path={self.path!r})"


def decorate(command: str, decorators: Iterable[Decorator] = ()) -> str:
    """Apply decorators to a command line in the given order."""
    for decorator in decorators:
        command = decorator.decorate(command)
    return command


def decorators_from_config(isolation_cfg) -> List[Decorator]:
    """Build decorators from the ``isolation`` config section.

    Order is fixed: PID namespace innermost, then CPU pinning, then cgroups.
    """
    decorators: List[Decorator] = []
    if isolation_cfg.pid_namespace:
        decorators.append(new_namespace(CLONE_NEWPID))
    if isolation_cfg.cpuset:
        decorators.append(Taskset(isolation_cfg.cpuset))
    for spec in isolation_cfg.cgroups or []:
        decorators.append(Cgroup.from_spec(spec))
    logger.debug("Isolation decorators configured", decorators=[repr(d) for d in decorators])
    return decorators
