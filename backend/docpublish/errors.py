"""
DocPublish — Structured error catalog.

Every error has a code, human message, and suggested fix.
Process failures carry the tail of their output in ``detail``.
"""

from __future__ import annotations

from typing import Any

OUTPUT_TAIL_CHARS = 2000


def _tail(output: str) -> str | None:
    if not output:
        return None
    return output[-OUTPUT_TAIL_CHARS:]


class DocPublishError(Exception):
    """Base error with structured code + suggestion."""

    def __init__(self, code: str, message: str, suggestion: str = "", detail: Any = None):
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "error_code": self.code,
            "message": self.message,
        }
        if self.suggestion:
            d["suggestion"] = self.suggestion
        if self.detail:
            d["detail"] = self.detail
        return d


class ConfigError(DocPublishError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid configuration for {field}: {message}",
            suggestion="Check the DOCS_* environment variables or your .env file.",
        )


class MissingSecretsError(DocPublishError):
    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(
            code="SECRETS_MISSING",
            message=f"Missing publish secrets: {', '.join(names)}",
            suggestion="Provide the bucket, IAM credentials, region and distribution id.",
            detail=names,
        )


class InvalidReleaseVersionError(DocPublishError):
    def __init__(self, version: str):
        super().__init__(
            code="RELEASE_VERSION_INVALID",
            message=f"Release version cannot be used as a bucket path segment: {version!r}",
            suggestion="Tag names must not contain '.' or '..' path segments.",
        )


class WebhookSignatureError(DocPublishError):
    def __init__(self, reason: str):
        super().__init__(
            code="WEBHOOK_SIGNATURE_INVALID",
            message=f"Webhook signature rejected: {reason}",
            suggestion="Check that GITHUB_WEBHOOK_SECRET matches the repository webhook secret.",
        )


class CheckoutError(DocPublishError):
    def __init__(self, ref: str, returncode: int, output: str = ""):
        super().__init__(
            code="CHECKOUT_FAILED",
            message=f"git checkout of {ref} exited with status {returncode}",
            suggestion="Make sure DOCS_REPO_ROOT is a clone with an 'origin' remote.",
            detail=_tail(output),
        )


class DependencyInstallError(DocPublishError):
    def __init__(self, message: str, output: str = ""):
        super().__init__(
            code="DEPENDENCY_INSTALL_FAILED",
            message=f"Documentation dependencies could not be installed: {message}",
            suggestion="Check the requirements file in the docs directory.",
            detail=_tail(output),
        )


class SphinxBuildError(DocPublishError):
    def __init__(self, returncode: int, output: str = ""):
        super().__init__(
            code="SPHINX_BUILD_FAILED",
            message=f"sphinx-build exited with status {returncode}",
            suggestion="Run sphinx-build locally in the docs directory and fix the reported errors.",
            detail=_tail(output),
        )


class StepTimeoutError(DocPublishError):
    def __init__(self, step: str, timeout_s: float):
        super().__init__(
            code="STEP_TIMEOUT",
            message=f"{step} timed out after {timeout_s:g}s",
            suggestion="Raise DOCS_STEP_TIMEOUT or speed up the documentation build.",
        )


class StaticFileMissingError(DocPublishError):
    def __init__(self, path: str):
        super().__init__(
            code="STATIC_FILE_MISSING",
            message=f"Static file not found in docs directory: {path}",
            suggestion="versions.json and index.html must live next to conf.py.",
        )


class VersionsIndexError(DocPublishError):
    def __init__(self, message: str):
        super().__init__(
            code="VERSIONS_INDEX_INVALID",
            message=f"versions.json is not valid JSON: {message}",
            suggestion="Fix the syntax of versions.json before publishing.",
        )


class ArtifactNotFoundError(DocPublishError):
    def __init__(self, name: str):
        super().__init__(
            code="ARTIFACT_NOT_FOUND",
            message=f"Build artifact not found: {name}",
            suggestion="The build stage must package the artifact before publishing.",
        )


class ArtifactIntegrityError(DocPublishError):
    def __init__(self, name: str, path: str):
        super().__init__(
            code="ARTIFACT_CORRUPTED",
            message=f"Artifact {name} does not match its manifest: {path}",
            suggestion="Rebuild the documentation to regenerate the artifact.",
        )


class SyncError(DocPublishError):
    def __init__(self, bucket: str, uploaded: int, total: int, message: str):
        super().__init__(
            code="S3_SYNC_FAILED",
            message=f"Sync to s3://{bucket} failed after {uploaded}/{total} files: {message}",
            suggestion="Push again to re-run the publish. The bucket may hold mixed old and new files.",
            detail={"uploaded": uploaded, "total": total},
        )


class InvalidationError(DocPublishError):
    def __init__(self, distribution_id: str, message: str):
        super().__init__(
            code="CDN_INVALIDATION_FAILED",
            message=f"CloudFront invalidation on {distribution_id} failed: {message}",
            suggestion="Stale pages are served until the cache expires or a later run succeeds.",
        )
