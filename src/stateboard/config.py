"""Configuration for stateboard."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from stateboard.errors import ConfigError


@dataclass
class S3ProviderConfig:
    """One S3 bucket holding state files, with an optional DynamoDB lock table."""

    bucket: str
    key_prefix: str = ""
    file_extensions: list[str] = field(default_factory=lambda: [".tfstate"])
    region: str | None = None
    endpoint_url: str | None = None
    dynamodb_table: str | None = None
    request_timeout_s: float = 10.0


@dataclass
class DirectoryProviderConfig:
    """A local directory scanned for state files."""

    path: str
    file_extensions: list[str] = field(default_factory=lambda: [".tfstate"])


@dataclass
class StateboardConfig:
    """Configuration for the index, the sync loop and its providers."""

    db_path: str = "stateboard.db"
    page_size: int = 20
    sync_interval_sec: float = 60.0
    sync_max_attempts: int = 3
    log_level: str = "INFO"
    s3: list[S3ProviderConfig] = field(default_factory=list)
    directories: list[DirectoryProviderConfig] = field(default_factory=list)


def _apply_env(config: StateboardConfig) -> StateboardConfig:
    """Fill S3 region/endpoint from the environment where the file leaves them unset."""
    region = os.getenv("STATEBOARD_S3_REGION")
    endpoint = os.getenv("STATEBOARD_S3_ENDPOINT_URL")
    for s3 in config.s3:
        if s3.region is None:
            s3.region = region
        if s3.endpoint_url is None:
            s3.endpoint_url = endpoint
    return config


def _section(raw: dict[str, Any], name: str) -> list[dict[str, Any]]:
    value = raw.get(name) or []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ConfigError(f"'{name}' must be a list of mappings")
    return value


def config_from_dict(raw: dict[str, Any]) -> StateboardConfig:
    """Build a config from a parsed mapping, rejecting unknown keys."""
    raw = dict(raw)
    try:
        s3 = [S3ProviderConfig(**item) for item in _section(raw, "s3")]
        directories = [DirectoryProviderConfig(**item) for item in _section(raw, "directories")]
        raw.pop("s3", None)
        raw.pop("directories", None)
        config = StateboardConfig(**raw, s3=s3, directories=directories)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    if config.page_size < 1:
        raise ConfigError("page_size must be at least 1")
    if config.sync_max_attempts < 1:
        raise ConfigError("sync_max_attempts must be at least 1")
    return _apply_env(config)


def load_config(path: str | None = None) -> StateboardConfig:
    """Load configuration from a YAML file, or defaults when no path is given."""
    if path is None:
        return _apply_env(StateboardConfig())
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file '{path}': {e}") from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping")
    return config_from_dict(raw)
