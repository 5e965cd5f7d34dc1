"""Shared test configuration and fixtures for DocPublish test suite."""

import json
import stat
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add backend to Python path so imports work
backend_dir = str(Path(__file__).parent.parent / "backend")
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

from docpublish.core.config import AwsConfig, PipelineConfig  # noqa: E402

FAKE_SPHINX = """\
#!{python}
import os, sys
builder, src, out = sys.argv[2], sys.argv[3], sys.argv[4]
if os.environ.get("FAKE_SPHINX_FAIL"):
    print("WARNING: document isn't included in any toctree")
    print("Exception occurred: boom")
    sys.exit(2)
os.makedirs(os.path.join(out, "_static"), exist_ok=True)
with open(os.path.join(out, "index.html"), "w") as fh:
    fh.write("<html>" + builder + "</html>")
with open(os.path.join(out, "_static", "doc_root_url.txt"), "w") as fh:
    fh.write(os.environ.get("DOC_ROOT_URL", ""))
print("build succeeded.")
"""


def _write_executable(path: Path, content: str) -> Path:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_sphinx(tmp_path):
    return _write_executable(tmp_path / "fake-sphinx-build", FAKE_SPHINX.format(python=sys.executable))


@pytest.fixture
def repo(tmp_path):
    """A checkout with a minimal docs directory next to conf.py."""
    root = tmp_path / "repo"
    docs = root / "concrete-core" / "docs"
    docs.mkdir(parents=True)
    (docs / "conf.py").write_text("project = 'concrete-core'\n")
    (docs / "index.rst").write_text("Concrete Core\n=============\n")
    (docs / "requirements.txt").write_text("sphinx\n")
    (docs / "versions.json").write_text(json.dumps({"main": "main/", "1.4.0": "1.4.0/"}))
    (docs / "index.html").write_text('<meta http-equiv="refresh" content="0; url=main/">')
    return root


@pytest.fixture
def aws_config():
    return AwsConfig(
        bucket="docs-bucket",
        access_key_id="AKIATEST",
        secret_access_key="secret",
        region="eu-west-3",
        distribution_id="E123TEST",
    )


@pytest.fixture
def pipeline_config(repo, fake_sphinx, tmp_path, aws_config):
    return PipelineConfig(
        repo_root=str(repo),
        install_dependencies=False,
        sphinx_build=str(fake_sphinx),
        artifact_dir=str(tmp_path / "artifacts"),
        step_timeout=30.0,
        aws=aws_config,
    )


@pytest.fixture
def s3_client():
    """A boto3 S3 client double with an empty bucket."""
    client = MagicMock()
    paginator = MagicMock()
    paginator.paginate.return_value = [{"Contents": []}]
    client.get_paginator.return_value = paginator
    return client


@pytest.fixture
def cloudfront_client():
    client = MagicMock()
    client.create_invalidation.return_value = {
        "Location": "https://cloudfront.amazonaws.com/2020-05-31/distribution/E123TEST/invalidation/I1",
        "Invalidation": {"Id": "I2J3K4", "Status": "InProgress"},
    }
    return client


@pytest.fixture(autouse=True)
def _no_fake_failure(monkeypatch):
    monkeypatch.delenv("FAKE_SPHINX_FAIL", raising=False)


@pytest.fixture
def aws_factories(s3_client, cloudfront_client):
    """(publisher_factory, invalidator_factory) building real clients around the boto3 doubles."""
    from docpublish.aws.cloudfront import CacheInvalidator
    from docpublish.aws.credentials import AwsCredentials
    from docpublish.aws.s3sync import S3Publisher

    creds = AwsCredentials("AKIATEST", "secret")
    publisher_factory = MagicMock(
        side_effect=lambda cfg: S3Publisher(cfg.aws.bucket, creds, cfg.aws.region, client=s3_client)
    )
    invalidator_factory = MagicMock(
        side_effect=lambda cfg: CacheInvalidator(
            cfg.aws.distribution_id, creds, cfg.aws.region, client=cloudfront_client,
        )
    )
    return publisher_factory, invalidator_factory
