"""Centralized configuration for the relay.

Configuration is loaded from YAML, overlaid with ``QBXML_RELAY_*``
environment variables and validated at startup. All values are immutable
once loaded.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from qbxml_relay.errors.retry import RetryPolicy
from qbxml_relay.models.types import EntityType
from qbxml_relay.utils.result import ConfigError, Err, Ok, Result

ENV_PREFIX = "QBXML_RELAY_"

SESSION_BACKENDS = ("memory", "file")
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
LOG_FORMATS = ("json", "console")


@dataclass(frozen=True)
class RetryConfig:
    """Retry and backoff settings for response processing."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    max_jitter: float = 1.0
    retryable_codes: tuple[str, ...] = ("NETWORK_ERROR", "TIMEOUT", "QB_BUSY")

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
            retryable_codes=frozenset(self.retryable_codes),
            jitter=self.jitter,
            max_jitter=self.max_jitter,
        )


@dataclass(frozen=True)
class SessionConfig:
    """Session lifetime and storage backend."""

    ttl_hours: float = 24.0
    backend: str = "memory"
    store_dir: Path = Path("./data/sessions")


@dataclass(frozen=True)
class ProcessorConfig:
    """Pipeline stage toggles and request defaults."""

    validation_enabled: bool = True
    transformation_enabled: bool = True
    error_handling_enabled: bool = True
    entity_validation_enabled: bool = False
    default_entity_type: EntityType = EntityType.CUSTOMER
    max_returned: int = 100
    qbxml_version: str = "13.0"
    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass(frozen=True)
class BatchConfig:
    max_concurrent: int = 3
    continue_on_error: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass(frozen=True)
class RelayConfig:
    """
    Complete relay configuration.

    The single source of truth for every tunable value.
    """

    session: SessionConfig = field(default_factory=SessionConfig)
    processor: ProcessorConfig = field(default_factory=ProcessorConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_dir: Optional[Path] = None

    @property
    def retry(self) -> RetryConfig:
        return self.processor.retry

    @classmethod
    def from_yaml(cls, path: Path) -> Result["RelayConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top-level YAML value must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["RelayConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Missing keys take their defaults.

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded config or error
        """
        try:
            retry_data = data.get("retry", {}) or {}
            retry_defaults = RetryConfig()
            retry = RetryConfig(
                max_retries=int(retry_data.get("max_retries", retry_defaults.max_retries)),
                initial_delay=float(retry_data.get("initial_delay", retry_defaults.initial_delay)),
                max_delay=float(retry_data.get("max_delay", retry_defaults.max_delay)),
                backoff_multiplier=float(
                    retry_data.get("backoff_multiplier", retry_defaults.backoff_multiplier)
                ),
                jitter=bool(retry_data.get("jitter", retry_defaults.jitter)),
                max_jitter=float(retry_data.get("max_jitter", retry_defaults.max_jitter)),
                retryable_codes=tuple(
                    retry_data.get("retryable_codes", retry_defaults.retryable_codes)
                ),
            )

            session_data = data.get("session", {}) or {}
            session = SessionConfig(
                ttl_hours=float(session_data.get("ttl_hours", 24.0)),
                backend=str(session_data.get("backend", "memory")),
                store_dir=Path(session_data.get("store_dir", "./data/sessions")),
            )

            processor_data = data.get("processor", {}) or {}
            entity_name = processor_data.get("default_entity_type", EntityType.CUSTOMER.value)
            default_entity_type = EntityType.parse(entity_name)
            if default_entity_type is None:
                return Err(ConfigError(
                    field="processor.default_entity_type",
                    message=f"Unknown entity type: {entity_name}",
                ))
            processor = ProcessorConfig(
                validation_enabled=bool(processor_data.get("validation_enabled", True)),
                transformation_enabled=bool(processor_data.get("transformation_enabled", True)),
                error_handling_enabled=bool(processor_data.get("error_handling_enabled", True)),
                entity_validation_enabled=bool(
                    processor_data.get("entity_validation_enabled", False)
                ),
                default_entity_type=default_entity_type,
                max_returned=int(processor_data.get("max_returned", 100)),
                qbxml_version=str(processor_data.get("qbxml_version", "13.0")),
                retry=retry,
            )

            batch_data = data.get("batch", {}) or {}
            batch = BatchConfig(
                max_concurrent=int(batch_data.get("max_concurrent", 3)),
                continue_on_error=bool(batch_data.get("continue_on_error", True)),
            )

            logging_data = data.get("logging", {}) or {}
            logging_config = LoggingConfig(
                level=str(logging_data.get("level", "info")).lower(),
                format=str(logging_data.get("format", "json")).lower(),
            )

            return Ok(cls(
                session=session,
                processor=processor,
                batch=batch,
                logging=logging_config,
            ))

        except (TypeError, ValueError, AttributeError) as e:
            return Err(ConfigError(
                field="unknown",
                message=f"Failed to parse configuration: {e}",
            ))

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or validation error
        """
        if self.session.ttl_hours <= 0:
            return Err(ConfigError(
                field="session.ttl_hours",
                message=f"Must be positive, got {self.session.ttl_hours}",
            ))
        if self.session.backend not in SESSION_BACKENDS:
            return Err(ConfigError(
                field="session.backend",
                message=f"Must be one of {', '.join(SESSION_BACKENDS)}, got {self.session.backend}",
            ))

        retry = self.processor.retry
        if retry.max_retries < 0:
            return Err(ConfigError(
                field="retry.max_retries",
                message=f"Must be at least 0, got {retry.max_retries}",
            ))
        if retry.backoff_multiplier < 1.0:
            return Err(ConfigError(
                field="retry.backoff_multiplier",
                message=f"Must be at least 1.0, got {retry.backoff_multiplier}",
            ))
        if retry.initial_delay < 0 or retry.max_delay < retry.initial_delay:
            return Err(ConfigError(
                field="retry.max_delay",
                message=(
                    f"Delays must satisfy 0 <= initial_delay <= max_delay, "
                    f"got {retry.initial_delay} / {retry.max_delay}"
                ),
            ))

        if not 1 <= self.processor.max_returned <= 1000:
            return Err(ConfigError(
                field="processor.max_returned",
                message=f"Must be between 1 and 1000, got {self.processor.max_returned}",
            ))

        if self.batch.max_concurrent < 1:
            return Err(ConfigError(
                field="batch.max_concurrent",
                message=f"Must be at least 1, got {self.batch.max_concurrent}",
            ))

        if self.logging.level not in LOG_LEVELS:
            return Err(ConfigError(
                field="logging.level",
                message=f"Must be one of {', '.join(LOG_LEVELS)}, got {self.logging.level}",
            ))
        if self.logging.format not in LOG_FORMATS:
            return Err(ConfigError(
                field="logging.format",
                message=f"Must be one of {', '.join(LOG_FORMATS)}, got {self.logging.format}",
            ))

        return Ok(None)

    def with_env_overrides(self, environ: Optional[dict[str, str]] = None) -> "RelayConfig":
        """
        Return a new config with ``QBXML_RELAY_*`` environment overrides applied.

        Recognised: LOG_LEVEL, LOG_FORMAT, SESSION_BACKEND, STORE_DIR, SESSION_TTL_HOURS.
        """
        env = os.environ if environ is None else environ

        def _get(name: str) -> Optional[str]:
            value = env.get(f"{ENV_PREFIX}{name}")
            return value if value else None

        logging_config = self.logging
        if _get("LOG_LEVEL"):
            logging_config = replace(logging_config, level=_get("LOG_LEVEL").lower())
        if _get("LOG_FORMAT"):
            logging_config = replace(logging_config, format=_get("LOG_FORMAT").lower())

        session = self.session
        if _get("SESSION_BACKEND"):
            session = replace(session, backend=_get("SESSION_BACKEND").lower())
        if _get("STORE_DIR"):
            session = replace(session, store_dir=Path(_get("STORE_DIR")))
        if _get("SESSION_TTL_HOURS"):
            session = replace(session, ttl_hours=float(_get("SESSION_TTL_HOURS")))

        return replace(self, logging=logging_config, session=session)


def load_config(config_dir: Path = None) -> Result[RelayConfig, ConfigError]:
    """
    Load configuration from the standard location.

    Loads ``config/defaults.yaml`` when present, then applies environment
    overrides and validates the result.

    Args:
        config_dir: Configuration directory (defaults to ./config)

    Returns:
        Result with loaded config or error
    """
    if config_dir is None:
        config_dir = Path("./config")

    config_dir = Path(config_dir)

    defaults_path = config_dir / "defaults.yaml"
    if defaults_path.exists():
        result = RelayConfig.from_yaml(defaults_path)
        if result.is_err():
            return result
        config = result.unwrap()
    else:
        config = RelayConfig()

    try:
        config = config.with_env_overrides()
    except ValueError as e:
        return Err(ConfigError(
            field="environment",
            message=f"Invalid environment override: {e}",
        ))

    config = replace(config, config_dir=config_dir)

    validation_result = config.validate()
    if validation_result.is_err():
        return Err(validation_result.unwrap_err())

    return Ok(config)
