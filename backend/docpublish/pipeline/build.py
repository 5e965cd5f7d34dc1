"""
DocPublish — Documentation builder.

Checkout → install dependencies → sphinx-build → copy static files.

Every external command runs as an asyncio subprocess with combined
stdout/stderr captured, bounded by the configured step timeout, and
killed if the run is cancelled by a newer push for the same ref.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import sys
from pathlib import Path

from docpublish.core.config import PipelineConfig
from docpublish.errors import (
    CheckoutError,
    DependencyInstallError,
    SphinxBuildError,
    StaticFileMissingError,
    StepTimeoutError,
    VersionsIndexError,
)
from docpublish.models.event import PushEvent
from docpublish.utils.logging import log_output_tail, logger, step_timer

BUILD_DIRNAME = "build"
VERSIONS_INDEX = "versions.json"


async def run_command(
    args: list[str],
    cwd: Path,
    step: str,
    timeout: float,
    env: dict[str, str] | None = None,
) -> tuple[int, str]:
    """Run a command and return (returncode, combined output)."""
    logger.info("  $ %s", " ".join(args))
    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd),
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        raise StepTimeoutError(step, timeout)
    except asyncio.CancelledError:
        await _kill(proc)
        raise
    return proc.returncode, stdout.decode("utf-8", errors="replace")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()


class DocBuilder:
    """Renders one release version of the docs into <docs_dir>/build/."""

    def __init__(self, config: PipelineConfig, python: str | None = None):
        self.config = config
        self.python = python or sys.executable

    @property
    def docs_path(self) -> Path:
        return self.config.docs_path

    @property
    def build_root(self) -> Path:
        return self.docs_path / BUILD_DIRNAME

    async def checkout(self, event: PushEvent) -> bool:
        """Fetch and check out the event's ref. Returns False when checkout is disabled."""
        if not self.config.git_checkout:
            return False

        repo = Path(self.config.repo_root)
        with step_timer(f"Checkout {event.ref}"):
            for args in (
                ["git", "fetch", "--depth", "1", "origin", event.ref],
                ["git", "checkout", "--force", "FETCH_HEAD"],
            ):
                code, output = await run_command(args, repo, "git checkout", self.config.step_timeout)
                if code != 0:
                    log_output_tail(output)
                    raise CheckoutError(event.ref, code, output)
        return True

    async def install_dependencies(self) -> bool:
        """pip-install the docs requirements. Returns False when installation is disabled."""
        if not self.config.install_dependencies:
            return False

        manifest = self.docs_path / self.config.requirements_file
        if not manifest.is_file():
            raise DependencyInstallError(f"{manifest} does not exist")

        with step_timer("Install documentation dependencies"):
            code, output = await run_command(
                [self.python, "-m", "pip", "install", "-r", self.config.requirements_file],
                self.docs_path,
                "pip install",
                self.config.step_timeout,
            )
            if code != 0:
                log_output_tail(output)
                raise DependencyInstallError(f"pip exited with status {code}", output)
        return True

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["DOC_ROOT_URL"] = "/" + self.config.url_dest_dir
        return env

    async def render(self, release_version: str) -> Path:
        """
        Render the docs under build/<release_version>/ and copy the static
        files into build/. Returns the build root.
        """
        if not self.docs_path.is_dir():
            raise SphinxBuildError(-1, f"docs directory not found: {self.docs_path}")

        if self.build_root.exists():
            shutil.rmtree(self.build_root)

        with step_timer(f"sphinx-build {release_version}"):
            code, output = await run_command(
                [
                    self.config.sphinx_build,
                    "-b",
                    self.config.sphinx_builder,
                    ".",
                    f"{BUILD_DIRNAME}/{release_version}",
                ],
                self.docs_path,
                "sphinx-build",
                self.config.step_timeout,
                env=self._build_env(),
            )
            if code != 0:
                log_output_tail(output)
                raise SphinxBuildError(code, output)

        self.copy_static_files()
        return self.build_root

    def copy_static_files(self) -> list[Path]:
        copied: list[Path] = []
        self.build_root.mkdir(parents=True, exist_ok=True)
        for name in self.config.static_files:
            source = self.docs_path / name
            if not source.is_file():
                raise StaticFileMissingError(name)
            if name == VERSIONS_INDEX:
                _check_versions_index(source)
            target = self.build_root / name
            shutil.copy2(source, target)
            copied.append(target)
            logger.info("  Copied %s → %s", name, target)
        return copied


def _check_versions_index(path: Path) -> None:
    try:
        versions = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise VersionsIndexError(str(exc))
    count = len(versions) if isinstance(versions, (list, dict)) else 1
    logger.info("  versions.json lists %d entries", count)
