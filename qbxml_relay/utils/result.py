"""Result type for configuration loading, plus the CLI exit codes.

Loading config never raises: the loader returns ``Ok(config)`` or
``Err(ConfigError)`` and the CLI turns the error into an exit code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class ResultError(Exception):
    """Raised when a Result is unwrapped on the wrong side."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ResultError(f"expected an error, got value {self.value!r}")


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ResultError(f"expected a value, got error {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class ConfigError:
    """A rejected configuration value; ``field`` is the dotted YAML path."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ExitCode:
    """Process exit codes of ``qbxml-relay``."""

    SUCCESS = 0
    GENERAL_ERROR = 1

    # 10-19: configuration
    CONFIG_INVALID = 10

    # 20-29: documents
    DOCUMENT_INVALID = 20
    PROCESSING_FAILED = 21

    # 30-39: web connector protocol
    SOAP_FAULT = 30
