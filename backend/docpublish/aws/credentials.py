"""
DocPublish — AWS credential helpers.

Both the S3 publisher and the CloudFront invalidator authenticate with
the same IAM key pair, passed explicitly to every boto3 client.
"""

from dataclasses import dataclass
from typing import Any

from docpublish.core.config import AwsConfig


@dataclass(frozen=True)
class AwsCredentials:
    access_key_id: str
    secret_access_key: str

    @classmethod
    def from_config(cls, aws: AwsConfig) -> "AwsCredentials":
        return cls(access_key_id=aws.access_key_id, secret_access_key=aws.secret_access_key)

    def as_client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for boto3.client(); empty keys fall back to the default chain."""
        if not (self.access_key_id and self.secret_access_key):
            return {}
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }

    def __repr__(self) -> str:
        return f"AwsCredentials(access_key_id={self.access_key_id[:4]}…)"
