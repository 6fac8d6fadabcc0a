#!/usr/bin/env python3
"""
Configuration Manager for the memcached harness

Loads Hydra configuration profiles from ``config/`` and checks them against
the dataclass schema in ``config/schema.py``.

Features:
- YAML profiles composed by Hydra (``default``, ``development``)
- Command-line style overrides in dot notation
- Type checking by merging onto the structured schema, value checks by the
  dataclasses' ``__post_init__``
- Conversion of the memcached section into the immutable launch configuration

Dependencies:
- hydra-core: configuration composition
- omegaconf: structured configuration objects
"""

from pathlib import Path
from typing import List, Optional, Dict, Any

from hydra import compose, initialize_config_dir
from hydra.core.global_hydra import GlobalHydra
from loguru import logger
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from config.schema import HarnessConfig, MemcachedConfig
from exceptions import ConfigurationError


class ConfigManager:
    """Loads and validates harness configuration.

    Attributes:
        config_dir (Path): Directory containing configuration files
        config (DictConfig): Currently loaded configuration

    Example:
        config_manager = ConfigManager()
        config = config_manager.load_config("default", ["memcached.port=11311"])
        launch_config = memcached_config_from(config)
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the configuration manager.

        Args:
            config_dir (Path, optional): Directory containing config files.
                                       Defaults to ./config/
        """
        if config_dir is None:
            config_dir = Path(__file__).parent / "config"

        self.config_dir = config_dir
        self.config: Optional[DictConfig] = None

    def load_config(self,
                   config_name: str = "default",
                   overrides: Optional[List[str]] = None) -> DictConfig:
        """Compose a configuration profile and validate it.

        Args:
            config_name (str): Profile to load (``default``, ``development``)
            overrides (List[str], optional): Overrides in dot notation
                                           (e.g., "memcached.port=11311")

        Returns:
            DictConfig: Loaded and validated configuration object

        Raises:
            ConfigurationError: If the profile is missing or invalid
        """
        if GlobalHydra().is_initialized():
            GlobalHydra.instance().clear()

        try:
            with initialize_config_dir(config_dir=str(self.config_dir.resolve()),
                                       version_base=None):
                config = compose(config_name=config_name, overrides=overrides or [])
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        self.validate_config(config)
        self.config = config
        logger.debug("Configuration loaded", config_name=config_name, overrides=overrides or [])
        return config

    def validate_config(self, config: DictConfig) -> HarnessConfig:
        """Validate configuration against the structured schema.

        The configuration is merged onto ``OmegaConf.structured(HarnessConfig)``,
        which rejects unknown keys and values of the wrong type, then turned
        into dataclass instances so each section's ``__post_init__`` checks run.

        Returns:
            HarnessConfig: Typed view of the configuration

        Raises:
            ConfigurationError: If configuration validation fails
        """
        try:
            schema = OmegaConf.structured(HarnessConfig)
            # frozen dataclass sections become read-only nodes
            OmegaConf.set_readonly(schema.memcached, False)
            merged = OmegaConf.merge(schema, config)
            return OmegaConf.to_object(merged)
        except (OmegaConfBaseException, ValueError) as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def get_config_summary(self, config: DictConfig) -> Dict[str, Any]:
        """Key settings of a configuration, for logging."""
        return {
            "memcached_binary": config.memcached.path_to_binary,
            "memcached_port": config.memcached.port,
            "memcached_threads": config.memcached.num_threads,
            "memcached_memory_mb": config.memcached.max_memory_mb,
            "listen_timeout": config.memcached.listen_timeout,
            "pid_namespace": config.isolation.pid_namespace,
            "cpuset": config.isolation.cpuset,
            "readiness_probe": config.readiness.probe,
            "logging_level": config.logging.level,
            "output_root": str(config.executor.output_root),
        }


def memcached_config_from(config: DictConfig) -> MemcachedConfig:
    """Build the immutable memcached launch configuration from a loaded config.

    Raises:
        ConfigurationError: If the memcached section is invalid
    """
    section = OmegaConf.to_container(config.memcached, resolve=True)
    try:
        return MemcachedConfig(**section)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid memcached configuration: {e}") from e
