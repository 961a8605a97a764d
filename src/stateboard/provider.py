"""State provider contract and the local directory provider."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from stateboard.config import DirectoryProviderConfig, StateboardConfig
from stateboard.errors import ProviderError, StateDecodeError
from stateboard.statefile import StateFile, read_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockInfo:
    """Information on a held state lock."""

    id: str
    operation: str = ""
    info: str = ""
    who: str = ""
    version: str = ""
    created: datetime | None = None
    path: str = ""


@dataclass(frozen=True)
class Version:
    """One backend-reported version of a state file."""

    id: str
    last_modified: datetime | None = None


@runtime_checkable
class Provider(Protocol):
    """Uniform contract over state backends.

    ``get_versions`` returns versions oldest first. ``get_state`` raises
    ``ProviderError`` when the state cannot be fetched and ``StateDecodeError``
    when the fetched content is not a readable state.
    """

    name: str

    def get_locks(self) -> dict[str, LockInfo]: ...

    def get_versions(self, path: str) -> list[Version]: ...

    def get_states(self) -> list[str]: ...

    def get_state(self, path: str, version_id: str) -> StateFile: ...


class DirectoryProvider:
    """Serve the state files found under a local directory.

    Each file exposes a single version, ``<path>@<mtime_ns>``, so that a
    rewritten file shows up as a new version on the next sync pass.
    """

    def __init__(self, config: DirectoryProviderConfig) -> None:
        self.root = config.path
        self.file_extensions = tuple(config.file_extensions)
        self.name = f"directory:{self.root}"

    def _full_path(self, path: str) -> str:
        return os.path.join(self.root, path)

    def _version_id(self, path: str) -> tuple[str, datetime]:
        st = os.stat(self._full_path(path))
        modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
        return f"{path}@{st.st_mtime_ns}", modified

    def get_locks(self) -> dict[str, LockInfo]:
        return {}

    def get_states(self) -> list[str]:
        if not os.path.isdir(self.root):
            raise ProviderError(self.name, "get_states", f"Not a directory: {self.root}")
        paths: list[str] = []
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for filename in filenames:
                if filename.endswith(self.file_extensions):
                    full = os.path.join(dirpath, filename)
                    paths.append(os.path.relpath(full, self.root))
        return sorted(paths)

    def get_versions(self, path: str) -> list[Version]:
        try:
            version_id, modified = self._version_id(path)
        except OSError as e:
            raise ProviderError(self.name, "get_versions", str(e)) from e
        return [Version(id=version_id, last_modified=modified)]

    def get_state(self, path: str, version_id: str) -> StateFile:
        try:
            current_id, _modified = self._version_id(path)
            if current_id != version_id:
                raise ProviderError(
                    self.name, "get_state", f"Version {version_id} of {path} is no longer available"
                )
            with open(self._full_path(path), "rb") as f:
                data = f.read()
        except OSError as e:
            raise ProviderError(self.name, "get_state", str(e)) from e
        try:
            return read_state(data)
        except StateDecodeError as e:
            raise StateDecodeError(f"{path}: {e}") from e


def configure_providers(config: StateboardConfig) -> list[Provider]:
    """Build one provider per configured backend section."""
    providers: list[Provider] = []
    if config.s3:
        from stateboard.provider_s3 import S3Provider

        for s3 in config.s3:
            logger.info("Using AWS S3 bucket %s as state/locks provider", s3.bucket)
            providers.append(S3Provider(s3))
    for directory in config.directories:
        logger.info("Using directory %s as state provider", directory.path)
        providers.append(DirectoryProvider(directory))
    return providers
