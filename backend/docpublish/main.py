"""
DocPublish — FastAPI webhook service

Endpoints:
  POST /v1/events/push    — GitHub push webhook → trigger evaluation → run
  GET  /v1/runs           — All runs known to this process
  GET  /v1/runs/{run_id}  — One run's state, timings and results
  GET  /v1/config         — Non-secret pipeline constants
  GET  /health            — Health check
"""

import json
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from docpublish.core.config import AppConfig, settings
from docpublish.errors import DocPublishError, WebhookSignatureError
from docpublish.models.event import PushEvent
from docpublish.pipeline.artifact import artifact_name
from docpublish.pipeline.concurrency import RunCoordinator
from docpublish.pipeline.orchestrator import concurrency_group
from docpublish.pipeline.trigger import evaluate_trigger
from docpublish.utils.logging import logger
from docpublish.utils.validate import verify_github_signature

VERSION = "1.0.0"

app = FastAPI(
    title="DocPublish API",
    description=(
        "Build versioned Sphinx documentation on push and publish it to "
        "S3 behind CloudFront."
    ),
    version=VERSION,
)


def get_settings() -> AppConfig:
    return settings


@lru_cache(maxsize=1)
def get_coordinator() -> RunCoordinator:
    return RunCoordinator(settings.pipeline)


@app.on_event("startup")
async def _startup_banner():
    cfg = settings.pipeline
    logger.info("")
    logger.info("╔══════════════════════════════════════════════════╗")
    logger.info("║            DocPublish  ·  Webhook Server         ║")
    logger.info("╠══════════════════════════════════════════════════╣")
    logger.info("║  POST /v1/events/push  → build & publish docs    ║")
    logger.info("║  GET  /v1/runs         → run history             ║")
    logger.info("║  GET  /health          → health check            ║")
    logger.info("╠══════════════════════════════════════════════════╣")
    logger.info("║  Docs dir    : %-34s║", cfg.docs_dir)
    logger.info("║  Destination : %-34s║", cfg.url_dest_dir)
    logger.info("║  Tag filter  : %-34s║", cfg.tag_refs_filter)
    logger.info("║  Signatures  : %-34s║", "✓ enforced" if settings.webhook_secret else "✗ disabled")
    logger.info("╚══════════════════════════════════════════════════╝")
    logger.info("")


@app.on_event("shutdown")
async def _cancel_runs():
    await get_coordinator().shutdown()


@app.get("/health")
async def health():
    return {"status": "ok", "service": "docpublish-api", "version": VERSION}


@app.get("/v1/config")
async def get_config(cfg: AppConfig = Depends(get_settings)):
    p = cfg.pipeline
    return {
        "crate": p.crate,
        "artifact_name": artifact_name(p),
        "docs_dir": p.docs_dir,
        "url_dest_dir": p.url_dest_dir,
        "default_release_version": p.default_release_version,
        "tag_refs_filter": p.tag_refs_filter,
        "main_ref": p.main_ref,
        "watch_paths": list(p.effective_watch_paths),
    }


@app.post("/v1/events/push")
async def push_event(
    request: Request,
    cfg: AppConfig = Depends(get_settings),
    coordinator: RunCoordinator = Depends(get_coordinator),
):
    """
    Accept a GitHub webhook delivery.

    Returns 202 with the run id when a build starts, 200 with the
    trigger decision when the event is ignored.
    """
    body = await request.body()
    event_name = request.headers.get("X-GitHub-Event", "push")
    delivery = request.headers.get("X-GitHub-Delivery", "-")

    try:
        verify_github_signature(cfg.webhook_secret, body, request.headers.get("X-Hub-Signature-256"))
    except WebhookSignatureError as exc:
        logger.warning("[%s] Rejected delivery: %s", delivery, exc.message)
        raise HTTPException(status_code=401, detail=exc.to_dict())

    if event_name == "ping":
        return {"status": "pong"}

    try:
        payload = json.loads(body or b"{}")
        event = PushEvent.from_github_payload(payload, event_name=event_name)
        decision = evaluate_trigger(event, cfg.pipeline)
    except (json.JSONDecodeError, AttributeError, TypeError, PydanticValidationError) as exc:
        raise HTTPException(status_code=422, detail={"error_code": "PAYLOAD_INVALID", "message": str(exc)})
    except DocPublishError as exc:
        raise HTTPException(status_code=422, detail=exc.to_dict())

    logger.info(
        "[%s] %s %s — build=%s publish=%s (%s)",
        delivery, event_name, event.ref, decision.should_build, decision.should_publish, decision.reason,
    )

    if not decision.should_build:
        return {"status": "skipped", "decision": decision.model_dump()}

    orchestrator = coordinator.submit(event)
    return JSONResponse(
        status_code=202,
        content={
            "status": "accepted",
            "run_id": orchestrator.run_id,
            "concurrency_group": concurrency_group(cfg.pipeline, event.ref),
            "decision": decision.model_dump(),
        },
    )


@app.get("/v1/runs")
async def list_runs(coordinator: RunCoordinator = Depends(get_coordinator)):
    return [r.model_dump(mode="json") for r in coordinator.list_runs()]


@app.get("/v1/runs/{run_id}")
async def get_run(run_id: str, coordinator: RunCoordinator = Depends(get_coordinator)):
    orchestrator = coordinator.get(run_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail={"error_code": "RUN_NOT_FOUND", "message": run_id})
    return orchestrator.snapshot().model_dump(mode="json")
