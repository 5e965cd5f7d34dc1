"""
DocPublish — Run Orchestrator.

Runs one publish pipeline as a state machine:

  RECEIVED → EVALUATED → CHECKED_OUT → DEPENDENCIES_INSTALLED → BUILT
  → PACKAGED → DOWNLOADED → PUBLISHED → INVALIDATED → COMPLETED

with SKIPPED (no docs change), FAILED and CANCELLED as the other
terminal states. Each step is gated by the success of the previous one.
A failed invalidation is reported but does not fail the run.
"""

from __future__ import annotations

import asyncio
import contextlib
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable

from docpublish.aws.cloudfront import CacheInvalidator, invalidation_paths
from docpublish.aws.credentials import AwsCredentials
from docpublish.aws.s3sync import DEFAULT_ACL, S3Publisher
from docpublish.core.config import PipelineConfig, validate_publish_secrets
from docpublish.errors import DocPublishError, InvalidationError
from docpublish.models.event import PushEvent, TriggerDecision
from docpublish.models.run import (
    ArtifactManifest,
    InvalidationResult,
    PublishResult,
    RunResult,
    RunState,
    StepTiming,
)
from docpublish.pipeline.artifact import LocalArtifactStore, artifact_name
from docpublish.pipeline.build import DocBuilder
from docpublish.pipeline.trigger import evaluate_trigger
from docpublish.utils.logging import logger


def concurrency_group(config: PipelineConfig, ref: str) -> str:
    return f"docs-{config.crate}-{ref}"


def default_publisher(config: PipelineConfig) -> S3Publisher:
    return S3Publisher(
        bucket=config.aws.bucket,
        credentials=AwsCredentials.from_config(config.aws),
        region=config.aws.region,
        endpoint_url=config.aws.endpoint_url,
    )


def default_invalidator(config: PipelineConfig) -> CacheInvalidator:
    return CacheInvalidator(
        distribution_id=config.aws.distribution_id,
        credentials=AwsCredentials.from_config(config.aws),
        region=config.aws.region,
    )


class RunContext:
    """Mutable context passed through pipeline steps."""

    def __init__(self):
        self.decision: TriggerDecision | None = None
        self.build_root: Path | None = None
        self.artifact: ArtifactManifest | None = None
        self.publish: PublishResult | None = None
        self.invalidation: InvalidationResult | None = None
        self.warnings: list[str] = []
        self.errors: list[dict[str, Any]] = []


class PublishOrchestrator:
    """
    State-machine orchestrator for one build-and-publish run.

    Tracks every step's timing and status; snapshot() returns the
    RunResult at any point, including after a failure or cancellation.
    """

    def __init__(
        self,
        event: PushEvent,
        config: PipelineConfig,
        artifact_store: LocalArtifactStore | None = None,
        builder: DocBuilder | None = None,
        publisher_factory: Callable[[PipelineConfig], S3Publisher] | None = None,
        invalidator_factory: Callable[[PipelineConfig], CacheInvalidator] | None = None,
        workspace_lock: asyncio.Lock | None = None,
        run_id: str | None = None,
    ):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.event = event
        self.config = config
        self.group = concurrency_group(config, event.ref)
        # one store per run, so discarding never touches another run's artifact
        self.artifact_store = artifact_store or LocalArtifactStore(config.artifact_path / self.run_id)
        self.builder = builder or DocBuilder(config)
        self.publisher_factory = publisher_factory or default_publisher
        self.invalidator_factory = invalidator_factory or default_invalidator
        self.workspace_lock = workspace_lock
        self.state = RunState.RECEIVED
        self.ctx = RunContext()
        self.timings: list[StepTiming] = []

    def _record_step(self, name: str, start: float, status: str = "ok", detail: str = ""):
        ms = int((time.perf_counter() - start) * 1000)
        self.timings.append(StepTiming(step=name, duration_ms=ms, status=status, detail=detail))
        symbol = "✓" if status == "ok" else ("⊘" if status == "skipped" else "✗")
        logger.info("  %s %s — %dms %s", symbol, name, ms, detail)

    @contextlib.contextmanager
    def _step(self, name: str):
        t = time.perf_counter()
        try:
            yield t
        except DocPublishError as exc:
            self._record_step(name, t, "failed", exc.code)
            raise
        except asyncio.CancelledError:
            self._record_step(name, t, "failed", "cancelled")
            raise
        except Exception:
            self._record_step(name, t, "failed", "INTERNAL_ERROR")
            raise

    def snapshot(self) -> RunResult:
        return RunResult(
            run_id=self.run_id,
            concurrency_group=self.group,
            ref=self.event.ref,
            state=self.state,
            decision=self.ctx.decision,
            artifact=self.ctx.artifact,
            publish=self.ctx.publish,
            invalidation=self.ctx.invalidation,
            timings=list(self.timings),
            warnings=list(self.ctx.warnings),
            errors=list(self.ctx.errors),
        )

    async def run(self) -> RunResult:
        """Execute the full pipeline. Returns the final RunResult."""
        logger.info("=" * 60)
        logger.info("[%s] Run starting (%s, group=%s)", self.run_id, self.event.ref, self.group)
        logger.info("=" * 60)
        run_start = time.perf_counter()

        try:
            decision = await self._step_evaluate()
            if not decision.should_build:
                self.state = RunState.SKIPPED
                return self._finish(run_start)

            lock = self.workspace_lock or contextlib.nullcontext()
            async with lock:
                await self._step_checkout()
                await self._step_install()
                await self._step_render()
                await self._step_package()

            if not decision.should_publish:
                t = time.perf_counter()
                self._record_step("publish", t, "skipped", f"{self.event.ref} is not a publish ref")
                self.state = RunState.COMPLETED
                return self._finish(run_start)

            await self._step_publish()
            await self._step_invalidate()
            self.state = RunState.COMPLETED

        except asyncio.CancelledError:
            self.state = RunState.CANCELLED
            logger.warning("[%s] Run cancelled (superseded by a newer push)", self.run_id)
            raise
        except DocPublishError as exc:
            self.state = RunState.FAILED
            self.ctx.errors.append(exc.to_dict())
            logger.error("[%s] Run failed: %s — %s", self.run_id, exc.code, exc.message)
            raise
        except Exception as exc:
            self.state = RunState.FAILED
            self.ctx.errors.append({"error_code": "INTERNAL_ERROR", "message": str(exc)})
            logger.exception("[%s] Run crashed", self.run_id)
            raise

        return self._finish(run_start)

    def _finish(self, run_start: float) -> RunResult:
        total_ms = int((time.perf_counter() - run_start) * 1000)
        logger.info("=" * 60)
        logger.info("[%s] Run %s — %dms", self.run_id, self.state.value, total_ms)
        logger.info("=" * 60)
        return self.snapshot()

    async def _step_evaluate(self) -> TriggerDecision:
        with self._step("evaluate") as t:
            decision = evaluate_trigger(self.event, self.config)
            self.ctx.decision = decision
            self.state = RunState.EVALUATED
            logger.info(
                "  Release %s | build=%s publish=%s | %s",
                decision.release_version, decision.should_build, decision.should_publish, decision.reason,
            )
            self._record_step("evaluate", t, "ok" if decision.should_build else "skipped", decision.reason)
        return decision

    async def _step_checkout(self):
        with self._step("checkout") as t:
            done = await self.builder.checkout(self.event)
            self.state = RunState.CHECKED_OUT
            self._record_step("checkout", t, "ok" if done else "skipped", self.event.head_sha or "")

    async def _step_install(self):
        with self._step("install_dependencies") as t:
            done = await self.builder.install_dependencies()
            self.state = RunState.DEPENDENCIES_INSTALLED
            self._record_step("install_dependencies", t, "ok" if done else "skipped")

    async def _step_render(self):
        with self._step("render") as t:
            version = self.ctx.decision.release_version
            self.ctx.build_root = await self.builder.render(version)
            self.state = RunState.BUILT
            self._record_step("render", t, detail=f"build/{version}")

    async def _step_package(self):
        with self._step("package") as t:
            name = artifact_name(self.config)
            self.ctx.artifact = self.artifact_store.upload(
                name, self.ctx.build_root, self.ctx.decision.release_version,
            )
            self.state = RunState.PACKAGED
            self._record_step("package", t, detail=f"{name} → {len(self.ctx.artifact.files)} files")

    async def _step_publish(self):
        name = artifact_name(self.config)
        with self._step("publish") as t:
            validate_publish_secrets(self.config)
            with tempfile.TemporaryDirectory(prefix=f"{name}-") as workdir:
                self.artifact_store.download(name, Path(workdir))
                self.state = RunState.DOWNLOADED

                publisher = self.publisher_factory(self.config)
                self.ctx.publish = await self._sync(publisher, Path(workdir))
            self.artifact_store.discard(name)
            self.state = RunState.PUBLISHED
            self._record_step(
                "publish", t,
                detail=f"s3://{self.ctx.publish.bucket}/{self.ctx.publish.prefix} "
                       f"uploaded={len(self.ctx.publish.uploaded)} skipped={self.ctx.publish.skipped}",
            )

    async def _sync(self, publisher: S3Publisher, workdir: Path) -> PublishResult:
        """
        Run the bucket sync in a worker thread.

        Cancelling the run stops the sync between two files and waits for
        the thread to return, so the source tree outlives every upload and
        a superseding run never writes next to this one.
        """
        cancel = threading.Event()
        upload = asyncio.ensure_future(
            asyncio.to_thread(publisher.sync, workdir, self.config.url_dest_dir, DEFAULT_ACL, cancel)
        )
        try:
            return await asyncio.shield(upload)
        except asyncio.CancelledError:
            cancel.set()
            await asyncio.wait({upload})
            if not upload.cancelled():
                if upload.exception() is None:
                    self.ctx.publish = upload.result()
                else:
                    logger.warning("[%s] Sync failed while cancelling: %s", self.run_id, upload.exception())
            raise

    async def _step_invalidate(self):
        t = time.perf_counter()
        paths = invalidation_paths(self.config.url_dest_dir)
        try:
            invalidator = self.invalidator_factory(self.config)
            self.ctx.invalidation = await asyncio.to_thread(invalidator.invalidate, paths)
        except InvalidationError as exc:
            self.ctx.errors.append(exc.to_dict())
            self.ctx.warnings.append(exc.message)
            self._record_step("invalidate", t, "failed", exc.code)
            return
        self.state = RunState.INVALIDATED
        self._record_step("invalidate", t, detail=self.ctx.invalidation.invalidation_id)
