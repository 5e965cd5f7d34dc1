"""
DocPublish — Build artifact packaging.

A filesystem stand-in for CI artifact storage. The build stage uploads
the rendered tree under a fixed name; the publish stage downloads it,
verifies every file against the manifest, and discards it once the
bucket sync succeeded.

Layout under the store root:
  <name>/...               — the build tree, byte-for-byte
  <name>.manifest.json     — relative paths, sizes and SHA-256 hashes
"""

from __future__ import annotations

import hashlib
import shutil
from pathlib import Path

from docpublish.core.config import PipelineConfig
from docpublish.errors import ArtifactIntegrityError, ArtifactNotFoundError, ConfigError
from docpublish.models.run import ArtifactFile, ArtifactManifest
from docpublish.utils.logging import logger, step_timer

ARTIFACT_PREFIX = "docs-"


def artifact_name(config: PipelineConfig) -> str:
    return ARTIFACT_PREFIX + config.crate


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def iter_files(root: Path) -> list[Path]:
    """All regular files under root, sorted for stable manifests and uploads."""
    return sorted(p for p in root.rglob("*") if p.is_file())


class LocalArtifactStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _tree(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ConfigError("artifact name", f"not a plain name: {name!r}")
        return self.root / name

    def _manifest_path(self, name: str) -> Path:
        return self.root / f"{name}.manifest.json"

    def exists(self, name: str) -> bool:
        return self._tree(name).is_dir() and self._manifest_path(name).is_file()

    def upload(self, name: str, source_dir: Path, release_version: str) -> ArtifactManifest:
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            raise ArtifactNotFoundError(str(source_dir))

        with step_timer(f"Upload artifact {name}"):
            tree = self._tree(name)
            if tree.exists():
                shutil.rmtree(tree)
            self.root.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source_dir, tree)

            files: list[ArtifactFile] = []
            for path in iter_files(tree):
                files.append(
                    ArtifactFile(
                        path=path.relative_to(tree).as_posix(),
                        size_bytes=path.stat().st_size,
                        sha256=_sha256(path),
                    )
                )

            manifest = ArtifactManifest(
                name=name,
                release_version=release_version,
                files=files,
                total_bytes=sum(f.size_bytes for f in files),
            )
            self._manifest_path(name).write_text(manifest.model_dump_json(indent=2), encoding="utf-8")
            logger.info(
                "  Packaged %d files (%.1f MB) as %s",
                len(files), manifest.total_bytes / (1024 * 1024), name,
            )
        return manifest

    def load_manifest(self, name: str) -> ArtifactManifest:
        if not self.exists(name):
            raise ArtifactNotFoundError(name)
        return ArtifactManifest.model_validate_json(self._manifest_path(name).read_text(encoding="utf-8"))

    def download(self, name: str, dest_dir: Path) -> ArtifactManifest:
        """Copy the artifact tree into dest_dir and verify it against the manifest."""
        manifest = self.load_manifest(name)
        dest_dir = Path(dest_dir)

        with step_timer(f"Download artifact {name}"):
            shutil.copytree(self._tree(name), dest_dir, dirs_exist_ok=True)

            expected = {f.path for f in manifest.files}
            for entry in manifest.files:
                target = dest_dir / entry.path
                if not target.is_file() or _sha256(target) != entry.sha256:
                    raise ArtifactIntegrityError(name, entry.path)
            for path in iter_files(dest_dir):
                if path.relative_to(dest_dir).as_posix() not in expected:
                    raise ArtifactIntegrityError(name, path.relative_to(dest_dir).as_posix())

            logger.info("  Verified %d files against manifest", len(manifest.files))
        return manifest

    def discard(self, name: str) -> None:
        tree = self._tree(name)
        if tree.exists():
            shutil.rmtree(tree)
        self._manifest_path(name).unlink(missing_ok=True)
        logger.info("  Discarded artifact %s", name)
