"""Unit tests for the S3 sync and CloudFront invalidation clients (mocked and stubbed boto3)."""

import hashlib
import threading
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from docpublish.aws.cloudfront import CacheInvalidator, invalidation_paths
from docpublish.aws.credentials import AwsCredentials
from docpublish.aws.s3sync import S3Publisher, content_type_for
from docpublish.errors import InvalidationError, SyncError

CREDS = AwsCredentials(access_key_id="AKIATEST", secret_access_key="secret")


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "site"
    (root / "1.4.0").mkdir(parents=True)
    (root / "1.4.0" / "index.html").write_text("<html>1.4.0</html>")
    (root / "versions.json").write_text('["1.4.0"]')
    (root / "index.html").write_text("<html>landing</html>")
    return root


def _client_error(code="AccessDenied"):
    return ClientError({"Error": {"Code": code, "Message": "nope"}}, "PutObject")


@pytest.fixture
def stubbed_s3():
    """A real boto3 S3 client whose responses come from a Stubber."""
    client = boto3.client(
        "s3",
        region_name="eu-west-3",
        aws_access_key_id="AKIATEST",
        aws_secret_access_key="secret",
    )
    with Stubber(client) as stubber:
        stubber.add_response("list_objects_v2", {"IsTruncated": False, "KeyCount": 0})
        yield client, stubber


class TestCredentials:
    def test_client_kwargs(self):
        assert CREDS.as_client_kwargs() == {
            "aws_access_key_id": "AKIATEST",
            "aws_secret_access_key": "secret",
        }

    def test_empty_keys_use_default_chain(self):
        assert AwsCredentials("", "").as_client_kwargs() == {}

    def test_repr_hides_secret(self):
        assert "secret" not in repr(CREDS)


class TestS3Sync:
    def test_uploads_every_file_under_prefix(self, site, s3_client):
        pub = S3Publisher("docs-bucket", CREDS, "eu-west-3", client=s3_client)
        result = pub.sync(site, "concrete/core-lib/")

        keys = [c.args[2] for c in s3_client.upload_file.call_args_list]
        assert keys == [
            "concrete/core-lib/1.4.0/index.html",
            "concrete/core-lib/index.html",
            "concrete/core-lib/versions.json",
        ]
        assert result.uploaded == keys
        assert result.skipped == 0
        for call in s3_client.upload_file.call_args_list:
            assert call.kwargs["ExtraArgs"]["ACL"] == "public-read"

    def test_lists_only_destination_prefix(self, site, s3_client):
        S3Publisher("docs-bucket", CREDS, "eu-west-3", client=s3_client).sync(site, "/concrete/core-lib")
        s3_client.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="docs-bucket", Prefix="concrete/core-lib/",
        )

    def test_never_deletes(self, site, s3_client):
        s3_client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "concrete/core-lib/1.3.0/index.html", "Size": 5, "ETag": '"x"'}]}
        ]
        S3Publisher("docs-bucket", CREDS, "eu-west-3", client=s3_client).sync(site, "concrete/core-lib/")
        s3_client.delete_object.assert_not_called()
        s3_client.delete_objects.assert_not_called()

    def test_unchanged_files_skipped(self, site, s3_client):
        body = (site / "versions.json").read_bytes()
        s3_client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{
                "Key": "concrete/core-lib/versions.json",
                "Size": len(body),
                "ETag": '"%s"' % hashlib.md5(body).hexdigest(),
            }]}
        ]
        result = S3Publisher("docs-bucket", CREDS, "eu-west-3", client=s3_client).sync(site, "concrete/core-lib/")
        assert result.skipped == 1
        assert "concrete/core-lib/versions.json" not in result.uploaded

    def test_content_types(self, site, s3_client):
        S3Publisher("docs-bucket", CREDS, "eu-west-3", client=s3_client).sync(site, "p/")
        types = {c.args[2]: c.kwargs["ExtraArgs"]["ContentType"] for c in s3_client.upload_file.call_args_list}
        assert types["p/index.html"] == "text/html"
        assert types["p/versions.json"] == "application/json"

    def test_unknown_extension(self, tmp_path):
        assert content_type_for(tmp_path / "blob.zzz-unknown") == "application/octet-stream"

    def test_partial_failure_reports_progress(self, site, stubbed_s3):
        client, stubber = stubbed_s3
        stubber.add_response("put_object", {"ETag": '"0cc175b9c0f1b6a831c399e269772661"'})
        stubber.add_client_error(
            "put_object", service_error_code="AccessDenied", service_message="Access Denied", http_status_code=403,
        )
        with pytest.raises(SyncError) as exc:
            S3Publisher("docs-bucket", CREDS, "eu-west-3", client=client).sync(site, "concrete/core-lib/")
        assert exc.value.code == "S3_SYNC_FAILED"
        assert exc.value.detail == {"uploaded": 1, "total": 3}

    def test_denied_upload_becomes_sync_error(self, site, stubbed_s3):
        client, stubber = stubbed_s3
        stubber.add_client_error(
            "put_object", service_error_code="AccessDenied", service_message="Access Denied", http_status_code=403,
        )
        with pytest.raises(SyncError) as exc:
            S3Publisher("docs-bucket", CREDS, "eu-west-3", client=client).sync(site, "p/")
        assert exc.value.detail == {"uploaded": 0, "total": 3}
        assert "AccessDenied" in exc.value.message

    def test_cancel_stops_between_files(self, site, s3_client):
        cancel = threading.Event()
        s3_client.upload_file.side_effect = lambda *args, **kwargs: cancel.set()

        result = S3Publisher("docs-bucket", CREDS, "eu-west-3", client=s3_client).sync(
            site, "concrete/core-lib/", cancel=cancel,
        )
        assert result.cancelled
        assert result.uploaded == ["concrete/core-lib/1.4.0/index.html"]
        assert s3_client.upload_file.call_count == 1


class TestInvalidation:
    def test_paths(self):
        assert invalidation_paths("concrete/core-lib/") == ["/concrete/core-lib/*"]

    def test_create_invalidation(self, cloudfront_client):
        inv = CacheInvalidator("E123TEST", CREDS, "eu-west-3", client=cloudfront_client)
        result = inv.invalidate(["/concrete/core-lib/*"])

        kwargs = cloudfront_client.create_invalidation.call_args.kwargs
        assert kwargs["DistributionId"] == "E123TEST"
        assert kwargs["InvalidationBatch"]["Paths"] == {"Quantity": 1, "Items": ["/concrete/core-lib/*"]}
        assert kwargs["InvalidationBatch"]["CallerReference"] == result.caller_reference
        assert result.invalidation_id == "I2J3K4"
        assert result.status == "InProgress"

    def test_caller_reference_is_unique(self, cloudfront_client):
        inv = CacheInvalidator("E123TEST", CREDS, "eu-west-3", client=cloudfront_client)
        a = inv.invalidate(["/a*"])
        b = inv.invalidate(["/a*"])
        assert a.caller_reference != b.caller_reference

    def test_failure_raises(self):
        client = MagicMock()
        client.create_invalidation.side_effect = _client_error("TooManyInvalidationsInProgress")
        with pytest.raises(InvalidationError):
            CacheInvalidator("E123TEST", CREDS, "eu-west-3", client=client).invalidate(["/a*"])
