"""Sync loop: pull unseen state versions from providers into the index."""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Callable

from stateboard.errors import ProviderError, StateDecodeError
from stateboard.provider import Provider, Version
from stateboard.statefile import StateFile
from stateboard.storage import Repository

logger = logging.getLogger(__name__)

# Storage errors worth another attempt: find-or-create races surfacing as
# constraint violations, and "database is locked" under concurrent writers.
RETRYABLE_ERRORS = (sqlite3.IntegrityError, sqlite3.OperationalError)


@dataclass
class SyncReport:
    ingested: int = 0
    skipped: int = 0
    failed: int = 0

    def merge(self, other: SyncReport) -> None:
        self.ingested += other.ingested
        self.skipped += other.skipped
        self.failed += other.failed


def ingest_with_retry(
    repo: Repository,
    path: str,
    version: Version,
    state_file: StateFile,
    *,
    max_attempts: int = 3,
    retry_delay_sec: float = 0.1,
) -> int:
    """Insert one snapshot, retrying retryable storage errors."""
    attempt = 1
    while True:
        try:
            return repo.insert_state(
                path, version.id, state_file, last_modified=version.last_modified
            )
        except RETRYABLE_ERRORS as e:
            if attempt >= max_attempts:
                raise
            logger.warning(
                "Retrying ingestion of %s@%s (attempt %d/%d): %s",
                path,
                version.id,
                attempt,
                max_attempts,
                e,
            )
            time.sleep(retry_delay_sec * attempt)
            attempt += 1


def sync_provider(
    repo: Repository,
    provider: Provider,
    *,
    max_attempts: int = 3,
    retry_delay_sec: float = 0.1,
) -> SyncReport:
    """Run one pass over a provider, ingesting every version not yet indexed.

    Failures on one path or version are logged and counted; the pass moves on
    to the next one. A version whose content cannot be decoded is recorded as
    known so later passes skip it; fetch and storage failures are retried on
    the next pass.
    """
    report = SyncReport()
    known = set(repo.known_versions())

    try:
        paths = provider.get_states()
    except ProviderError as e:
        logger.error("Failed to list states from %s: %s", provider.name, e)
        report.failed += 1
        return report

    for path in paths:
        try:
            versions = provider.get_versions(path)
        except ProviderError as e:
            logger.error("Failed to list versions of %s: %s", path, e)
            report.failed += 1
            continue

        for version in versions:
            if version.id in known:
                report.skipped += 1
                continue
            try:
                state_file = provider.get_state(path, version.id)
            except StateDecodeError as e:
                logger.error("Skipping undecodable state %s@%s: %s", path, version.id, e)
                report.failed += 1
                try:
                    repo.insert_version(version)
                except sqlite3.Error as db_err:
                    logger.error("Failed to record version %s: %s", version.id, db_err)
                    continue
                known.add(version.id)
                continue
            except ProviderError as e:
                logger.error("Failed to fetch %s@%s: %s", path, version.id, e)
                report.failed += 1
                continue
            try:
                ingest_with_retry(
                    repo,
                    path,
                    version,
                    state_file,
                    max_attempts=max_attempts,
                    retry_delay_sec=retry_delay_sec,
                )
            except sqlite3.Error as e:
                logger.error("Failed to ingest %s@%s: %s", path, version.id, e)
                report.failed += 1
                continue
            logger.info("Ingested %s@%s (lineage %s)", path, version.id, state_file.lineage)
            known.add(version.id)
            report.ingested += 1

    return report


def run_sync(
    repo: Repository,
    providers: list[Provider],
    *,
    interval_sec: float = 60.0,
    max_attempts: int = 3,
    once: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncReport:
    """Sync every provider, then repeat every ``interval_sec`` unless ``once``."""
    total = SyncReport()
    while True:
        started = time.monotonic()
        for provider in providers:
            report = sync_provider(repo, provider, max_attempts=max_attempts)
            logger.info(
                "Synced %s: %d ingested, %d already known, %d failed",
                provider.name,
                report.ingested,
                report.skipped,
                report.failed,
            )
            total.merge(report)
        if once:
            return total
        elapsed = time.monotonic() - started
        sleep(max(interval_sec - elapsed, 0.0))
