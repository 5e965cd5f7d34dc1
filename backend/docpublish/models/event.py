"""
DocPublish — Typed trigger event and decision.

Webhook payloads and CLI arguments are normalised into PushEvent before
the trigger evaluator sees them. No raw dicts leak past this boundary.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PushEvent(BaseModel):
    """
    A single invoking event.

    changed_paths is None when the change set is unknown, which is what
    GitHub sends for a tag push of an existing commit. deleted marks a
    push that removed the ref; there is nothing to build for it.
    """

    event_name: str = "push"
    ref: str = Field(min_length=1, max_length=500)
    changed_paths: list[str] | None = None
    head_sha: str | None = None
    repository: str | None = None
    deleted: bool = False

    @property
    def is_push(self) -> bool:
        return self.event_name == "push"

    @property
    def is_tag(self) -> bool:
        return self.ref.startswith("refs/tags/")

    @classmethod
    def from_github_payload(cls, payload: dict[str, Any], event_name: str = "push") -> PushEvent:
        commits = list(payload.get("commits") or [])
        # without pushed commits, head_commit is only what the ref points at
        if commits and payload.get("head_commit"):
            commits.append(payload["head_commit"])

        changed: list[str] | None = None
        if commits:
            seen: set[str] = set()
            for commit in commits:
                for key in ("added", "modified", "removed"):
                    for path in commit.get(key) or []:
                        seen.add(path)
            changed = sorted(seen)

        head_sha = payload.get("after")
        deleted = bool(payload.get("deleted"))
        if head_sha and set(head_sha) == {"0"}:
            deleted = True
        if deleted:
            head_sha = None

        return cls(
            event_name=event_name,
            ref=payload.get("ref", ""),
            changed_paths=changed,
            head_sha=head_sha,
            repository=(payload.get("repository") or {}).get("full_name"),
            deleted=deleted,
        )


class TriggerDecision(BaseModel):
    should_build: bool
    should_publish: bool
    release_version: str = Field(min_length=1)
    matched_paths: list[str] = Field(default_factory=list)
    reason: str = ""
