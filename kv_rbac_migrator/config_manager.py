import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import colorlog
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .logging_config import configure_logging

# Load environment variables
load_dotenv()

"""
Configuration Management for Key Vault RBAC Migrator

This module provides centralized configuration with environment variable
defaults and validation. Command-line flags override the environment.
"""


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


def _set_azure_http_log_level(log_level: str) -> None:
    """Set log levels for HTTP-related loggers to reduce noise."""
    http_loggers = [
        "azure.core.pipeline.policies.http_logging_policy",
        "azure.core.pipeline.policies.HttpLoggingPolicy",
        "azure.core.pipeline",
        "azure.identity",
        "azure.mgmt",
        "azure",
        "msal",
        "urllib3",
        "urllib3.connectionpool",
        "httpx",
        "httpcore",
        "kiota_http",
    ]
    # HTTP logging should only appear at DEBUG level
    target_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in http_loggers:
        logging.getLogger(name).setLevel(target_level)


logger = logging.getLogger(__name__)


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(log_color)s%(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    json_output: bool = field(default_factory=lambda: _env_flag("LOG_JSON"))

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        self.level = self.level.upper()

    def get_log_level(self) -> int:
        """Convert string log level to logging constant."""
        level_attr = getattr(logging, self.level, None)
        if level_attr is None:
            raise ValueError(f"Invalid log level: {self.level}")
        return int(level_attr)


@dataclass
class RunConfig:
    """Options for one migration run.

    Attributes:
        mapping_csv: Path to the mapping CSV (required)
        output_path: Directory that receives the three log artifacts
        throttle_ms: Delay after each real mutating call, 0 disables it
        include_inherited: Global default for rows without IncludeInherited
        remove_old: Revoke the old assignment after a successful add
        what_if: Dry-run; no create/delete call is made
        confirm: Ask the operator before every mutating call
    """

    mapping_csv: Optional[Path] = None
    output_path: Path = field(
        default_factory=lambda: Path(os.getenv("KVRBAC_OUTPUT_PATH", "."))
    )
    throttle_ms: int = field(
        default_factory=lambda: int(os.getenv("KVRBAC_THROTTLE_MS", "0"))
    )
    include_inherited: bool = field(
        default_factory=lambda: _env_flag("KVRBAC_INCLUDE_INHERITED")
    )
    remove_old: bool = field(default_factory=lambda: _env_flag("KVRBAC_REMOVE_OLD"))
    what_if: bool = field(default_factory=lambda: _env_flag("KVRBAC_WHAT_IF"))
    confirm: bool = field(default_factory=lambda: _env_flag("KVRBAC_CONFIRM"))

    def __post_init__(self) -> None:
        """Coerce path types and validate numeric options."""
        if self.mapping_csv is not None and not isinstance(self.mapping_csv, Path):
            self.mapping_csv = Path(self.mapping_csv)
        if not isinstance(self.output_path, Path):
            self.output_path = Path(self.output_path)
        if self.throttle_ms < 0:
            raise ConfigurationError(
                "Throttle must be non-negative", config_key="throttle_ms"
            )

    @property
    def throttle_seconds(self) -> float:
        return self.throttle_ms / 1000.0

    def validate(self) -> None:
        """Validate options that need the whole config."""
        if self.mapping_csv is None:
            raise ConfigurationError(
                "A mapping CSV path is required", config_key="mapping_csv"
            )
        self.__post_init__()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "mapping_csv": str(self.mapping_csv) if self.mapping_csv else None,
            "output_path": str(self.output_path),
            "throttle_ms": self.throttle_ms,
            "include_inherited": self.include_inherited,
            "remove_old": self.remove_old,
            "what_if": self.what_if,
            "confirm": self.confirm,
        }


@dataclass
class MigratorConfig:
    """Main configuration class that aggregates all configuration sections."""

    run: RunConfig = field(default_factory=RunConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate_all(self) -> None:
        """Validate all configuration sections."""
        try:
            self.run.validate()
            self.logging.__post_init__()
            logger.debug("Configuration validation successful")
        except Exception as e:
            logger.exception(f"Configuration validation failed: {e}")
            raise

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration."""
        logger.info("=" * 60)
        logger.info("KEY VAULT RBAC MIGRATION")
        logger.info("=" * 60)
        logger.info(f"Mapping CSV: {self.run.mapping_csv}")
        logger.info(f"Output Path: {self.run.output_path}")
        logger.info(f"Include Inherited (default): {self.run.include_inherited}")
        logger.info(f"Remove Old: {self.run.remove_old}")
        logger.info(f"WhatIf (dry-run): {self.run.what_if}")
        logger.info(f"Confirm each action: {self.run.confirm}")
        logger.info(f"Throttle: {self.run.throttle_ms} ms")
        logger.info(f"Logging Level: {self.logging.level}")
        if self.logging.file_output:
            logger.info(f"Log File: {self.logging.file_output}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "run": self.run.to_dict(),
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    _set_azure_http_log_level(config.level.upper())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.get_log_level())

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(config.format))
    root_logger.addHandler(console_handler)

    if config.file_output:
        file_handler = logging.FileHandler(config.file_output)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s:%(name)s:%(message)s")
        )
        root_logger.addHandler(file_handler)

    # Azure SDK noise stays at WARNING unless the whole run is at DEBUG
    if config.level.upper() != "DEBUG":
        logging.getLogger("azure").setLevel(logging.WARNING)
        logging.getLogger(
            "azure.core.pipeline.policies.http_logging_policy"
        ).setLevel(logging.WARNING)

    configure_logging(level=config.get_log_level(), json_output=config.json_output)

    logger.debug(
        f"Logging configured: level={config.level}, file={config.file_output or 'console'}"
    )


def create_config_from_env(
    mapping_csv: Optional[str] = None,
    output_path: Optional[str] = None,
    throttle_ms: Optional[int] = None,
    include_inherited: Optional[bool] = None,
    remove_old: Optional[bool] = None,
    what_if: Optional[bool] = None,
    confirm: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> MigratorConfig:
    """
    Factory function to create and validate configuration.

    Explicit arguments override environment defaults; None keeps the default.

    Returns:
        MigratorConfig: Validated configuration instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    config = MigratorConfig()
    run = config.run
    if mapping_csv is not None:
        run.mapping_csv = Path(mapping_csv)
    if output_path is not None:
        run.output_path = Path(output_path)
    if throttle_ms is not None:
        run.throttle_ms = throttle_ms
    if include_inherited is not None:
        run.include_inherited = include_inherited
    if remove_old is not None:
        run.remove_old = remove_old
    if what_if is not None:
        run.what_if = what_if
    if confirm is not None:
        run.confirm = confirm
    if log_level is not None:
        config.logging.level = log_level

    config.validate_all()
    return config
