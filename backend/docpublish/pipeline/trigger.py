"""
DocPublish — Trigger evaluator.

Decides whether an event builds the docs, whether the build is also
published, and which release version label the build is filed under.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable

from docpublish.core.config import PipelineConfig
from docpublish.errors import InvalidReleaseVersionError
from docpublish.models.event import PushEvent, TriggerDecision
from docpublish.utils.logging import logger


def release_version_for_ref(ref: str, config: PipelineConfig) -> str:
    """
    Tag refs lose the tag filter prefix (once); every other ref maps to
    the default release version.
    """
    version = config.default_release_version
    if ref.startswith(config.tag_refs_filter):
        suffix = ref[len(config.tag_refs_filter):]
        if suffix:
            version = suffix
        else:
            logger.warning("  Tag %s has no version suffix, using %s", ref, version)

    if any(segment in ("", ".", "..") for segment in version.split("/")):
        raise InvalidReleaseVersionError(version)
    return version


def matches_watch_paths(paths: Iterable[str], patterns: Iterable[str]) -> list[str]:
    """Return the paths matching any pattern. '*' crosses directory separators."""
    patterns = list(patterns)
    return [p for p in paths if any(fnmatchcase(p.lstrip("/"), pat) for pat in patterns)]


def is_publish_ref(ref: str, config: PipelineConfig) -> bool:
    return ref == config.main_ref or ref.startswith(config.tag_refs_filter)


def evaluate_trigger(event: PushEvent, config: PipelineConfig) -> TriggerDecision:
    release_version = release_version_for_ref(event.ref, config)

    if not event.is_push:
        return TriggerDecision(
            should_build=False,
            should_publish=False,
            release_version=release_version,
            reason=f"event '{event.event_name}' is not a push",
        )

    if event.deleted:
        return TriggerDecision(
            should_build=False,
            should_publish=False,
            release_version=release_version,
            reason=f"{event.ref} was deleted",
        )

    should_publish = is_publish_ref(event.ref, config)

    if event.changed_paths is None:
        # GitHub skips path filters for tag pushes
        should_build = event.is_tag
        return TriggerDecision(
            should_build=should_build,
            should_publish=should_publish,
            release_version=release_version,
            reason="tag push, path filter not evaluated" if should_build else "change set unknown",
        )

    matched = matches_watch_paths(event.changed_paths, config.effective_watch_paths)
    if not matched:
        return TriggerDecision(
            should_build=False,
            should_publish=should_publish,
            release_version=release_version,
            reason="no changed path under " + ", ".join(config.effective_watch_paths),
        )

    return TriggerDecision(
        should_build=True,
        should_publish=should_publish,
        release_version=release_version,
        matched_paths=matched,
        reason=f"{len(matched)} docs path(s) changed",
    )
