"""
Configuration schema validation for the memcached harness.

This module defines dataclasses that provide type safety and validation
for configuration files. Used with Hydra and OmegaConf for robust
configuration management.
"""

from dataclasses import dataclass, field
from typing import Optional, List
import re


DEFAULT_PORT = 11211
DEFAULT_USER = "root"
DEFAULT_NUM_THREADS = 4
DEFAULT_MAX_MEMORY_MB = 4096
DEFAULT_NUM_CONNECTIONS = 2048
DEFAULT_LISTEN_TIMEOUT = 5.0

_CPUSET_RE = re.compile(r"^\d+(-\d+)?(,\d+(-\d+)?)*$")
_CGROUP_RE = re.compile(r"^[a-z_]+(,[a-z_]+)*:/?[\w./-]*$")


@dataclass(frozen=True)
class MemcachedConfig:
    """Memcached launch parameters.

    Immutable: derive variants with ``dataclasses.replace``.
    """
    path_to_binary: str = "memcached"
    port: int = DEFAULT_PORT
    user: str = DEFAULT_USER
    num_threads: int = DEFAULT_NUM_THREADS
    max_memory_mb: int = DEFAULT_MAX_MEMORY_MB
    num_connections: int = DEFAULT_NUM_CONNECTIONS
    threads_affinity: bool = False
    listen_timeout: float = DEFAULT_LISTEN_TIMEOUT

    def __post_init__(self):
        """Validate memcached configuration values."""
        if not self.path_to_binary:
            raise ValueError("Memcached binary path must not be empty")
        if self.port < 1 or self.port > 65535:
            raise ValueError("Memcached port must be between 1 and 65535")
        if not self.user:
            raise ValueError("Memcached user must not be empty")
        if self.num_threads < 1:
            raise ValueError("Memcached thread count must be positive")
        if self.max_memory_mb < 1:
            raise ValueError("Memcached memory limit must be positive")
        if self.num_connections < 1:
            raise ValueError("Memcached connection limit must be positive")
        if self.listen_timeout <= 0:
            raise ValueError("Memcached listen timeout must be positive")


def default_memcached_config() -> MemcachedConfig:
    """Return the documented default memcached configuration."""
    return MemcachedConfig()


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "detailed"  # simple, detailed, json
    file: Optional[str] = None
    rotation: str = "100 MB"
    retention: str = "30 days"
    colorize: bool = True

    def __post_init__(self):
        """Validate logging configuration values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        self.level = self.level.upper()

        valid_formats = ["simple", "detailed", "json"]
        if self.format not in valid_formats:
            raise ValueError(f"Invalid log format. Must be one of: {valid_formats}")


@dataclass
class ExecutorConfig:
    """Local execution backend settings."""
    output_root: str = "results"
    host: str = "127.0.0.1"
    stop_timeout: float = 5.0
    keep_output: bool = True

    def __post_init__(self):
        """Validate executor configuration."""
        if self.stop_timeout <= 0:
            raise ValueError("Executor stop timeout must be positive")
        if not self.host:
            raise ValueError("Executor host must not be empty")


@dataclass
class IsolationConfig:
    """Isolation decorators applied around the memcached command."""
    pid_namespace: bool = False
    cpuset: Optional[str] = None
    cgroups: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate isolation configuration."""
        if self.cpuset is not None and not _CPUSET_RE.match(self.cpuset):
            raise ValueError(f"Invalid cpuset: {self.cpuset}")
        for spec in self.cgroups:
            if not _CGROUP_RE.match(spec):
                raise ValueError(f"Invalid cgroup spec (expected controller:path): {spec}")


@dataclass
class ReadinessConfig:
    """Readiness probe settings."""
    probe: str = "tcp"  # tcp, stats
    interval: float = 0.1

    def __post_init__(self):
        """Validate readiness configuration."""
        valid_probes = ["tcp", "stats"]
        if self.probe not in valid_probes:
            raise ValueError(f"Invalid readiness probe. Must be one of: {valid_probes}")
        if self.interval <= 0:
            raise ValueError("Readiness interval must be positive")


@dataclass
class HarnessConfig:
    """Complete configuration for the memcached harness."""
    memcached: MemcachedConfig = field(default_factory=MemcachedConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    isolation: IsolationConfig = field(default_factory=IsolationConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    command: str = "launch"  # launch, print

    def __post_init__(self):
        """Perform cross-section validation."""
        if self.readiness.interval >= self.memcached.listen_timeout:
            raise ValueError("Readiness interval must be shorter than the listen timeout")
        if self.command not in ("launch", "print"):
            raise ValueError(f"Unknown command: {self.command}")
