"""
DocPublish — Run coordinator.

At most one in-flight run per concurrency group (one group per ref).
A new push cancels the run still going for the same ref, waits for it
to unwind, then starts. Build stages of all runs share one repository
checkout and are serialised behind a workspace lock.
"""

from __future__ import annotations

import asyncio
from typing import Any

from docpublish.core.config import PipelineConfig
from docpublish.errors import DocPublishError
from docpublish.models.event import PushEvent
from docpublish.models.run import RunResult, RunState
from docpublish.pipeline.orchestrator import PublishOrchestrator, concurrency_group
from docpublish.utils.logging import logger


class RunCoordinator:
    def __init__(self, config: PipelineConfig, **orchestrator_kwargs: Any):
        self.config = config
        self.orchestrator_kwargs = orchestrator_kwargs
        self.workspace_lock = asyncio.Lock()
        self._runs: dict[str, PublishOrchestrator] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._in_flight: dict[str, str] = {}  # group -> run_id

    def submit(self, event: PushEvent) -> PublishOrchestrator:
        orchestrator = PublishOrchestrator(
            event,
            self.config,
            workspace_lock=self.workspace_lock,
            **self.orchestrator_kwargs,
        )
        group = concurrency_group(self.config, event.ref)

        previous: asyncio.Task | None = None
        previous_id = self._in_flight.get(group)
        if previous_id is not None:
            previous = self._tasks.get(previous_id)
            if previous is not None and not previous.done():
                logger.info("[%s] Cancelling in-flight run %s for %s", orchestrator.run_id, previous_id, group)
                previous.cancel()

        self._runs[orchestrator.run_id] = orchestrator
        self._in_flight[group] = orchestrator.run_id
        self._tasks[orchestrator.run_id] = asyncio.create_task(
            self._execute(orchestrator, previous),
            name=f"{group}:{orchestrator.run_id}",
        )
        return orchestrator

    async def _execute(self, orchestrator: PublishOrchestrator, previous: asyncio.Task | None) -> RunResult:
        try:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            return await orchestrator.run()
        except asyncio.CancelledError:
            # cancelled before run() got going
            if not orchestrator.state.is_terminal:
                orchestrator.state = RunState.CANCELLED
            raise
        except DocPublishError:
            # already recorded on the orchestrator; the run record is the report
            return orchestrator.snapshot()
        finally:
            if self._in_flight.get(orchestrator.group) == orchestrator.run_id:
                del self._in_flight[orchestrator.group]

    def get(self, run_id: str) -> PublishOrchestrator | None:
        return self._runs.get(run_id)

    def list_runs(self) -> list[RunResult]:
        return [o.snapshot() for o in self._runs.values()]

    async def wait(self, run_id: str) -> RunResult:
        task = self._tasks[run_id]
        await asyncio.gather(task, return_exceptions=True)
        return self._runs[run_id].snapshot()

    async def shutdown(self) -> None:
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
