"""
DocPublish — Run result and pipeline output contracts.

Every run returns a RunResult with full traceability:
trigger decision, step timings, artifact manifest, publish and
invalidation outcomes.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from docpublish.models.event import TriggerDecision


class RunState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    EVALUATED = "EVALUATED"
    SKIPPED = "SKIPPED"
    CHECKED_OUT = "CHECKED_OUT"
    DEPENDENCIES_INSTALLED = "DEPENDENCIES_INSTALLED"
    BUILT = "BUILT"
    PACKAGED = "PACKAGED"
    DOWNLOADED = "DOWNLOADED"
    PUBLISHED = "PUBLISHED"
    INVALIDATED = "INVALIDATED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SKIPPED, RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


class StepTiming(BaseModel):
    step: str
    duration_ms: int
    status: str = "ok"  # ok | skipped | failed
    detail: str = ""


class ArtifactFile(BaseModel):
    path: str  # POSIX path relative to the artifact root
    size_bytes: int
    sha256: str


class ArtifactManifest(BaseModel):
    name: str
    release_version: str
    files: list[ArtifactFile] = Field(default_factory=list)
    total_bytes: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PublishResult(BaseModel):
    bucket: str
    prefix: str
    acl: str = "public-read"
    uploaded: list[str] = Field(default_factory=list)
    skipped: int = 0
    total_bytes: int = 0
    cancelled: bool = False


class InvalidationResult(BaseModel):
    distribution_id: str
    invalidation_id: str
    status: str
    paths: list[str]
    caller_reference: str


class RunResult(BaseModel):
    """Complete output contract for every publish run."""

    run_id: str
    concurrency_group: str
    ref: str
    state: RunState
    decision: TriggerDecision | None = None
    artifact: ArtifactManifest | None = None
    publish: PublishResult | None = None
    invalidation: InvalidationResult | None = None
    timings: list[StepTiming] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[dict] = Field(default_factory=list)
