#!/usr/bin/env python3
"""
DBFuzz Configuration Management

This module provides configuration management with:
- Database connection settings
- Generic fuzzing options (workers, seeds, per-session query counts)
- Statement echo and logging options
- YAML loading, validation and default-file generation

Command line flags (see main.py) override values loaded from YAML.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

import psutil
import yaml

# Logging setup
logger = logging.getLogger(__name__)


def _default_thread_count() -> int:
    return psutil.cpu_count(logical=True) or 1


@dataclass
class DatabaseConfig:
    """Connection settings; None means 'use the dialect's default'."""
    host: str = "localhost"
    port: Optional[int] = None
    user: Optional[str] = None
    password: str = ""
    maintenance_db: Optional[str] = None
    connect_timeout: int = 10
    enable_ssl: bool = False
    ssl_mode: str = "prefer"

    def validate(self) -> List[str]:
        """Validate database configuration."""
        errors = []

        if not self.host:
            errors.append("Database host is required")
        if self.port is not None and (self.port < 1 or self.port > 65535):
            errors.append("Invalid database port")
        if self.connect_timeout < 1:
            errors.append("Connection timeout must be positive")

        return errors


@dataclass
class MainOptions:
    """Generic options bundle shared by every session of a run."""
    num_tries: int = 100
    num_threads: int = field(default_factory=_default_thread_count)
    random_seed: Optional[int] = None
    max_num_inserts: int = 30
    num_queries: int = 100000
    max_generated_databases: int = -1
    timeout_seconds: int = -1

    # Statement logging and echo
    log_each_select: bool = True
    log_execution_time: bool = False
    print_all_statements: bool = False
    print_succeeding_statements: bool = False

    # Progress reporting
    print_progress_information: bool = True
    progress_interval: float = 5.0

    error_exit_code: int = 1
    log_directory: str = "logs"

    def __post_init__(self):
        if self.random_seed == -1:
            self.random_seed = None

    def validate(self) -> List[str]:
        """Validate generic options."""
        errors = []

        if self.num_tries < 1:
            errors.append("Number of tries must be positive")
        if self.num_threads < 1:
            errors.append("Number of threads must be positive")
        if self.max_num_inserts < 0:
            errors.append("Max number of inserts must be non-negative")
        if self.num_queries < 0:
            errors.append("Number of queries must be non-negative")
        if self.max_generated_databases < -1 or self.max_generated_databases == 0:
            errors.append("Max generated databases must be -1 (unbounded) or positive")
        if self.timeout_seconds < -1 or self.timeout_seconds == 0:
            errors.append("Timeout must be -1 (none) or positive")
        if self.progress_interval <= 0:
            errors.append("Progress interval must be positive")
        if not self.log_directory:
            errors.append("Log directory is required")

        return errors


@dataclass
class LoggingConfig:
    """Application logging configuration (not the reproduction logs)."""
    log_level: str = "INFO"
    log_file: str = "logs/dbfuzz_comprehensive.log"
    error_log_file: str = "logs/dbfuzz_errors.log"

    def validate(self) -> List[str]:
        """Validate logging configuration."""
        errors = []

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_levels:
            errors.append(f"Log level must be one of: {', '.join(valid_levels)}")

        return errors


@dataclass
class FuzzConfig:
    """Complete DBFuzz configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    options: MainOptions = field(default_factory=MainOptions)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    dialect: Optional[str] = None
    dialect_options: Dict[str, Any] = field(default_factory=dict)
    debug: bool = False

    def validate(self) -> List[str]:
        """Validate complete configuration."""
        errors = []

        errors.extend(self.database.validate())
        errors.extend(self.options.validate())
        errors.extend(self.logging.validate())

        if self.dialect is not None and self.dialect != self.dialect.lower():
            errors.append(f"Dialect name '{self.dialect}' must be lowercase")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not config_data:
            raise ValueError("Configuration file is empty")
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a mapping")

        logger.info(f"Configuration loaded from '{config_path}'")
        return config_data

    except FileNotFoundError:
        logger.error(f"Configuration file not found: {config_path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in configuration file: {e}")
        raise


def _update_dataclass(target: Any, values: Dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(target)}
    for key, value in values.items():
        if key in known:
            setattr(target, key, value)
        else:
            logger.warning(f"Ignoring unknown configuration key '{section}.{key}'")


def build_config(data: Optional[Dict[str, Any]] = None) -> FuzzConfig:
    """
    Map a plain dictionary (e.g. loaded YAML) onto a FuzzConfig.

    Args:
        data: Configuration dictionary; missing sections keep their defaults

    Returns:
        Populated FuzzConfig
    """
    config = FuzzConfig()
    for key, value in (data or {}).items():
        if key == 'database' and isinstance(value, dict):
            _update_dataclass(config.database, value, key)
        elif key == 'options' and isinstance(value, dict):
            _update_dataclass(config.options, value, key)
        elif key == 'logging' and isinstance(value, dict):
            _update_dataclass(config.logging, value, key)
        elif key == 'dialect_options' and isinstance(value, dict):
            config.dialect_options = dict(value)
        elif key in ('dialect', 'debug'):
            setattr(config, key, value)
        else:
            logger.warning(f"Ignoring unknown configuration key '{key}'")
    config.options.__post_init__()
    return config


def validate_config(config: FuzzConfig) -> bool:
    """
    Validate complete configuration.

    Args:
        config: Configuration object

    Returns:
        True if valid, False otherwise
    """
    errors = config.validate()

    if errors:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return False

    logger.info("Configuration validation completed successfully")
    return True


def create_default_config(config_path: str) -> None:
    """
    Create a default configuration file.

    Args:
        config_path: Path where to create the configuration file
    """
    config_dict = FuzzConfig().to_dict()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Default configuration created at: {config_path}")

    except OSError as e:
        logger.error(f"Failed to create default configuration: {e}")
        raise
