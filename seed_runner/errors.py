"""
errors.py

Error taxonomy for seed runs. Every fatal condition raised by the runner is a
SeedError subclass so the CLI can report it uniformly; the partial execution
report accumulated before the failure travels on the exception.
"""
from __future__ import annotations

from typing import Any, Optional


class SeedError(Exception):
    def __init__(self, message: str, *, file_name: Optional[str] = None, operation_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.file_name = file_name
        self.operation_index = operation_index
        # Set by the runner once the error unwinds out of a run
        self.report: Any = None

    def with_context(self, file_name: Optional[str] = None, operation_index: Optional[int] = None) -> "SeedError":
        """Fill in file/operation context without overwriting what is already known."""
        if self.file_name is None:
            self.file_name = file_name
        if self.operation_index is None:
            self.operation_index = operation_index
        return self

    def __str__(self) -> str:
        where = []
        if self.file_name:
            where.append(f"file {self.file_name}")
        if self.operation_index is not None:
            where.append(f"operation {self.operation_index}")
        if where:
            return f"{' '.join(where)}: {self.message}"
        return self.message


class ConfigurationError(SeedError):
    """Malformed exclusion rule, invalid descriptor or run settings."""


class FileSystemError(SeedError):
    """Missing or unreadable seed directory, seed file or body file."""


class DecodingError(SeedError):
    """Seed file is not a JSON array."""


class TransportError(SeedError):
    """Network-level failure; never skippable."""


class RequestFailure(SeedError):
    """HTTP response with status >= 400."""

    def __init__(self, message: str, *, status_code: int, body: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body
