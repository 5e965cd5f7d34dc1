"""
DocPublish — CloudFront cache invalidation.

Fire-and-forget: the invalidation is created and its id recorded, but
completion is never awaited.
"""

from __future__ import annotations

import uuid
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docpublish.aws.credentials import AwsCredentials
from docpublish.errors import InvalidationError
from docpublish.models.run import InvalidationResult
from docpublish.utils.logging import logger, step_timer


def invalidation_paths(url_dest_dir: str) -> list[str]:
    """Everything under the destination prefix: '/<prefix>*'."""
    return ["/" + url_dest_dir.lstrip("/") + "*"]


class CacheInvalidator:
    def __init__(
        self,
        distribution_id: str,
        credentials: AwsCredentials,
        region: str,
        client: Any = None,
    ):
        self.distribution_id = distribution_id
        if client is None:
            client = boto3.client(
                "cloudfront",
                region_name=region,
                **credentials.as_client_kwargs(),
            )
        self.client = client

    def invalidate(self, paths: list[str]) -> InvalidationResult:
        caller_reference = f"docpublish-{uuid.uuid4().hex}"
        with step_timer(f"Invalidate {', '.join(paths)} on {self.distribution_id}"):
            try:
                resp = self.client.create_invalidation(
                    DistributionId=self.distribution_id,
                    InvalidationBatch={
                        "Paths": {"Quantity": len(paths), "Items": paths},
                        "CallerReference": caller_reference,
                    },
                )
            except (ClientError, BotoCoreError) as exc:
                raise InvalidationError(self.distribution_id, str(exc))

            invalidation = resp.get("Invalidation", {})
            logger.info(
                "  Invalidation %s is %s",
                invalidation.get("Id", "?"), invalidation.get("Status", "?"),
            )
        return InvalidationResult(
            distribution_id=self.distribution_id,
            invalidation_id=invalidation.get("Id", ""),
            status=invalidation.get("Status", "Unknown"),
            paths=paths,
            caller_reference=caller_reference,
        )
