"""Structured error types for stateboard."""

from __future__ import annotations


class StateboardError(Exception):
    """Base error for all stateboard errors."""


class StorageBackendError(StateboardError):
    """Raised when a storage target cannot be resolved or opened."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")


class ProviderError(StateboardError):
    """Raised when a state provider cannot produce the requested data."""

    def __init__(self, provider: str, operation: str, detail: str) -> None:
        self.provider = provider
        self.operation = operation
        self.detail = detail
        super().__init__(f"Provider {provider} failed during {operation}: {detail}")


class StateDecodeError(StateboardError, ValueError):
    """Raised when a document is not a readable Terraform state."""


class ConfigError(StateboardError):
    """Raised when a configuration file is missing or malformed."""
