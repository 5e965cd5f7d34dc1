"""
DocPublish — S3 bucket sync.

Mirrors a local directory into a bucket prefix, additive only:

  - objects under the prefix are listed once up front
  - a file is skipped when size and single-part ETag (MD5) match
  - everything else is uploaded with the requested canned ACL
  - nothing is ever deleted, so older versions and unrelated prefixes survive

A failure mid-sync leaves whatever was uploaded so far in place. A set
cancel event stops the sync between two files.
"""

from __future__ import annotations

import hashlib
import mimetypes
import threading
from pathlib import Path
from typing import Any

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from docpublish.aws.credentials import AwsCredentials
from docpublish.errors import SyncError
from docpublish.models.run import PublishResult
from docpublish.pipeline.artifact import iter_files
from docpublish.utils.logging import logger, step_timer

DEFAULT_ACL = "public-read"


def _md5(path: Path) -> str:
    digest = hashlib.md5()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def content_type_for(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


class S3Publisher:
    """Thin wrapper around a boto3 S3 client for prefix syncs."""

    def __init__(
        self,
        bucket: str,
        credentials: AwsCredentials,
        region: str,
        endpoint_url: str | None = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url

        if client is None:
            client_kwargs: dict[str, Any] = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(signature_version="s3v4"),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client_kwargs.update(credentials.as_client_kwargs())
            client = boto3.client(**client_kwargs)
        self.client = client

    def remote_objects(self, prefix: str) -> dict[str, tuple[int, str]]:
        """Map key -> (size, etag) for everything under prefix."""
        objects: dict[str, tuple[int, str]] = {}
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                objects[obj["Key"]] = (obj["Size"], obj.get("ETag", "").strip('"'))
        return objects

    def sync(
        self,
        source_dir: Path,
        dest_prefix: str,
        acl: str = DEFAULT_ACL,
        cancel: threading.Event | None = None,
    ) -> PublishResult:
        """
        Upload source_dir under dest_prefix.

        When cancel is set the sync returns after the upload in progress,
        with result.cancelled set and only the keys written so far.
        """
        source_dir = Path(source_dir)
        prefix = dest_prefix.lstrip("/")
        if prefix and not prefix.endswith("/"):
            prefix += "/"

        files = iter_files(source_dir)
        result = PublishResult(bucket=self.bucket, prefix=prefix, acl=acl)

        with step_timer(f"Sync {len(files)} files → s3://{self.bucket}/{prefix}"):
            try:
                remote = self.remote_objects(prefix)
                for path in files:
                    if cancel is not None and cancel.is_set():
                        result.cancelled = True
                        logger.warning(
                            "  Sync cancelled after %d/%d files", len(result.uploaded) + result.skipped, len(files),
                        )
                        return result

                    key = prefix + path.relative_to(source_dir).as_posix()
                    size = path.stat().st_size

                    existing = remote.get(key)
                    if existing and existing[0] == size and existing[1] == _md5(path):
                        result.skipped += 1
                        continue

                    self.client.upload_file(
                        str(path),
                        self.bucket,
                        key,
                        ExtraArgs={"ACL": acl, "ContentType": content_type_for(path)},
                    )
                    result.uploaded.append(key)
                    result.total_bytes += size
            except (ClientError, BotoCoreError, S3UploadFailedError) as exc:
                logger.error("  Sync aborted after %d uploads: %s", len(result.uploaded), exc)
                raise SyncError(self.bucket, len(result.uploaded), len(files), str(exc))

            logger.info(
                "  Uploaded %d, unchanged %d (%.1f MB)",
                len(result.uploaded), result.skipped, result.total_bytes / (1024 * 1024),
            )
        return result
