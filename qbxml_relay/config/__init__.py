"""Configuration module for qbxml-relay."""

from qbxml_relay.config.settings import (
    BatchConfig,
    LoggingConfig,
    ProcessorConfig,
    RelayConfig,
    RetryConfig,
    SessionConfig,
    load_config,
)

__all__ = [
    "BatchConfig",
    "LoggingConfig",
    "ProcessorConfig",
    "RelayConfig",
    "RetryConfig",
    "SessionConfig",
    "load_config",
]
