#!/usr/bin/env python3
"""
Logging setup for the memcached harness

Configures Loguru from the ``logging`` section of the Hydra configuration:
one console sink and, optionally, a rotating file sink. The ``json`` format
serialises file records so benchmark runs can be post-processed.

Dependencies:
- loguru: logging framework
- omegaconf: configuration objects
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from omegaconf import DictConfig


CONSOLE_FORMATS = {
    "simple": "<level>{level}</level> - {message}",
    "detailed": "{time:HH:mm:ss} | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    "json": "{time:HH:mm:ss} | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message} | {extra}",
}

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message} | {extra}"


class LoggingManager:
    """Owns the Loguru sinks of a harness run.

    Example:
        log_manager = LoggingManager()
        log_manager.setup_logging(config)
        log_manager.log_task_operation("Memcached launched", task="Memcached", address="127.0.0.1:11211")
    """

    def __init__(self):
        self.config: Optional[DictConfig] = None

    def setup_logging(self, cfg: DictConfig):
        """Replace the Loguru sinks according to ``cfg.logging``.

        Recognised keys: level, format (simple, detailed, json), file,
        rotation, retention, colorize.
        """
        self.config = cfg
        settings = cfg.logging
        level = settings.level.upper()

        logger.remove()
        logger.add(sys.stderr,
                   format=CONSOLE_FORMATS.get(settings.format, CONSOLE_FORMATS["detailed"]),
                   level=level,
                   colorize=settings.get("colorize", True),
                   backtrace=True,
                   diagnose=True)

        if settings.file:
            path = Path(settings.file)
            path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(path,
                       format=FILE_FORMAT,
                       level=level,
                       rotation=settings.get("rotation", "100 MB"),
                       retention=settings.get("retention", "30 days"),
                       compression="gz",
                       serialize=settings.format == "json")

        logger.info("Loguru logging configured",
                    level=level,
                    format=settings.format,
                    file=settings.file or "console-only")

    def log_task_operation(self, message: str, task: str, **context):
        """Log a task lifecycle event with the task name bound as context.

        Args:
            message (str): Log message
            task (str): Task name (e.g. "Memcached")
            **context: Additional context data (address, pid, etc.)
        """
        logger.bind(task=task).info(message, **context)


_logging_manager = LoggingManager()

def setup_logging(cfg: DictConfig):
    """Configure logging through the global LoggingManager instance."""
    _logging_manager.setup_logging(cfg)

def log_task_operation(message: str, task: str, **context):
    """Log a task event through the global LoggingManager instance."""
    _logging_manager.log_task_operation(message, task, **context)
