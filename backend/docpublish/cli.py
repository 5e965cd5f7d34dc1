"""
DocPublish — command line entry point for CI runners.

  docpublish evaluate --ref refs/heads/main --changed concrete-core/docs/index.rst
  docpublish version --ref refs/tags/concrete-core-1.4.0
  docpublish run                      # reads GITHUB_REF / GITHUB_EVENT_NAME / GITHUB_EVENT_PATH
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from docpublish.core.config import PipelineConfig, load_pipeline_config
from docpublish.errors import DocPublishError
from docpublish.models.event import PushEvent
from docpublish.models.run import RunState
from docpublish.pipeline.orchestrator import PublishOrchestrator
from docpublish.pipeline.trigger import evaluate_trigger, release_version_for_ref

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docpublish", description="Build and publish versioned docs")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_event_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--ref", default=os.getenv("GITHUB_REF"), help="Git ref (default: $GITHUB_REF)")
        p.add_argument(
            "--event",
            default=os.getenv("GITHUB_EVENT_NAME", "push"),
            help="Event name (default: $GITHUB_EVENT_NAME or 'push')",
        )
        p.add_argument("--changed", nargs="*", default=None, metavar="PATH", help="Changed paths")
        p.add_argument(
            "--event-path",
            default=os.getenv("GITHUB_EVENT_PATH"),
            help="Webhook payload JSON used for the change set (default: $GITHUB_EVENT_PATH)",
        )

    add_event_args(sub.add_parser("evaluate", help="Print the trigger decision as JSON"))
    add_event_args(sub.add_parser("run", help="Run the full pipeline and print the run result"))

    version = sub.add_parser("version", help="Print the release version for a ref")
    version.add_argument("--ref", default=os.getenv("GITHUB_REF"))
    return parser


def event_from_args(args: argparse.Namespace) -> PushEvent:
    if not args.ref:
        raise SystemExit("error: --ref is required when GITHUB_REF is not set")

    if args.changed is not None:
        return PushEvent(event_name=args.event, ref=args.ref, changed_paths=args.changed)

    if args.event_path and Path(args.event_path).is_file():
        payload = json.loads(Path(args.event_path).read_text(encoding="utf-8"))
        event = PushEvent.from_github_payload(payload, event_name=args.event)
        return event.model_copy(update={"ref": args.ref})

    return PushEvent(event_name=args.event, ref=args.ref)


def _run(event: PushEvent, config: PipelineConfig) -> int:
    orchestrator = PublishOrchestrator(event, config)
    try:
        asyncio.run(orchestrator.run())
    except Exception:
        pass  # logged and recorded in the snapshot below
    except (KeyboardInterrupt, asyncio.CancelledError):
        orchestrator.state = RunState.CANCELLED
    result = orchestrator.snapshot()
    print(result.model_dump_json(indent=2))

    if result.state == RunState.CANCELLED:
        return EXIT_CANCELLED
    if result.state == RunState.FAILED:
        return EXIT_FAILED
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = load_pipeline_config()
        if args.command == "version":
            if not args.ref:
                raise SystemExit("error: --ref is required when GITHUB_REF is not set")
            print(release_version_for_ref(args.ref, config))
            return EXIT_OK

        event = event_from_args(args)
        if args.command == "evaluate":
            print(evaluate_trigger(event, config).model_dump_json(indent=2))
            return EXIT_OK
        return _run(event, config)
    except DocPublishError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
