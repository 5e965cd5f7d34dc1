"""DocPublish data models — typed contracts for the entire pipeline."""

from docpublish.models.event import (
    PushEvent,
    TriggerDecision,
)
from docpublish.models.run import (
    RunState,
    StepTiming,
    ArtifactFile,
    ArtifactManifest,
    PublishResult,
    InvalidationResult,
    RunResult,
)

__all__ = [
    "PushEvent",
    "TriggerDecision",
    "RunState",
    "StepTiming",
    "ArtifactFile",
    "ArtifactManifest",
    "PublishResult",
    "InvalidationResult",
    "RunResult",
]
