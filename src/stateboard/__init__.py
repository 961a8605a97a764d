"""stateboard: a searchable, versioned index of Terraform remote states."""

__version__ = "0.1.0"

from stateboard.config import StateboardConfig, load_config
from stateboard.errors import (
    ConfigError,
    ProviderError,
    StateboardError,
    StateDecodeError,
    StorageBackendError,
)
from stateboard.filters import SearchFilters
from stateboard.normalize import Attribute, flatten_attributes, render_index_key
from stateboard.provider import LockInfo, Provider, Version
from stateboard.statefile import IntKey, NoKey, StateFile, StringKey, read_state
from stateboard.storage import Repository, open_repository

__all__ = [
    "__version__",
    "Attribute",
    "ConfigError",
    "IntKey",
    "LockInfo",
    "NoKey",
    "Provider",
    "ProviderError",
    "Repository",
    "SearchFilters",
    "StateDecodeError",
    "StateFile",
    "StateboardConfig",
    "StateboardError",
    "StorageBackendError",
    "StringKey",
    "Version",
    "flatten_attributes",
    "load_config",
    "open_repository",
    "read_state",
    "render_index_key",
]
