"""AWS S3 state provider with DynamoDB lock lookup."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from stateboard.config import S3ProviderConfig
from stateboard.errors import ProviderError, StateDecodeError
from stateboard.provider import LockInfo, Version
from stateboard.statefile import StateFile, read_state

logger = logging.getLogger(__name__)


def _parse_created(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class S3Provider:
    """Read state files and their object versions from a versioned S3 bucket."""

    def __init__(self, config: S3ProviderConfig) -> None:
        self.bucket = config.bucket
        self.key_prefix = config.key_prefix.lstrip("/")
        self.file_extensions = tuple(config.file_extensions)
        self.lock_table = config.dynamodb_table
        self.name = f"s3:{self.bucket}"

        self._session = boto3.Session(region_name=config.region)
        boto_config = BotoConfig(
            connect_timeout=config.request_timeout_s,
            read_timeout=config.request_timeout_s,
            retries={"max_attempts": 5, "mode": "standard"},
        )
        self._s3 = self._session.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint_url,
            config=boto_config,
        )
        self._dynamodb = None
        if self.lock_table:
            self._dynamodb = self._session.client(
                "dynamodb", region_name=config.region, config=boto_config
            )

    def _fail(self, operation: str, err: Exception) -> ProviderError:
        return ProviderError(self.name, operation, str(err))

    def get_locks(self) -> dict[str, LockInfo]:
        """Return held locks keyed by state path.

        Terraform's S3 backend writes one item per lock with ``LockID`` set to
        ``<bucket>/<key>`` and the lock details as JSON in ``Info``. Digest
        items (``LockID`` ending in ``-md5``) carry no ``Info`` and are skipped.
        """
        if self._dynamodb is None:
            return {}
        locks: dict[str, LockInfo] = {}
        bucket_prefix = f"{self.bucket}/"
        try:
            paginator = self._dynamodb.get_paginator("scan")
            for page in paginator.paginate(TableName=self.lock_table):
                for item in page.get("Items", []):
                    lock_id = item.get("LockID", {}).get("S", "")
                    info_raw = item.get("Info", {}).get("S")
                    if not info_raw or not lock_id.startswith(bucket_prefix):
                        continue
                    path = lock_id[len(bucket_prefix) :]
                    try:
                        info = json.loads(info_raw)
                    except json.JSONDecodeError:
                        logger.warning("Skipping lock %s with unreadable info", lock_id)
                        continue
                    locks[path] = LockInfo(
                        id=str(info.get("ID", "")),
                        operation=str(info.get("Operation", "")),
                        info=str(info.get("Info", "")),
                        who=str(info.get("Who", "")),
                        version=str(info.get("Version", "")),
                        created=_parse_created(info.get("Created")),
                        path=str(info.get("Path", path)),
                    )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("get_locks", e) from e
        return locks

    def get_states(self) -> list[str]:
        paths: list[str] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.key_prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    if key.endswith(self.file_extensions):
                        paths.append(key)
        except (BotoCoreError, ClientError) as e:
            raise self._fail("get_states", e) from e
        return paths

    def get_versions(self, path: str) -> list[Version]:
        versions: list[Version] = []
        try:
            paginator = self._s3.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=path):
                for obj in page.get("Versions", []):
                    if obj["Key"] != path:
                        continue
                    versions.append(
                        Version(id=obj["VersionId"], last_modified=obj.get("LastModified"))
                    )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("get_versions", e) from e
        # S3 lists newest first
        versions.sort(key=lambda v: (v.last_modified is None, v.last_modified))
        return versions

    def get_state(self, path: str, version_id: str) -> StateFile:
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": path}
        if version_id and version_id != "null":
            kwargs["VersionId"] = version_id
        try:
            resp = self._s3.get_object(**kwargs)
            body = resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise self._fail("get_state", e) from e
        try:
            return read_state(body)
        except StateDecodeError as e:
            raise StateDecodeError(f"{path}@{version_id}: {e}") from e
