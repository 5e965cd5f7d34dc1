"""
DocPublish — Pipeline configuration
Loads .env automatically, then reads all settings from environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from docpublish.errors import ConfigError, MissingSecretsError

_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)


@dataclass(frozen=True)
class AwsConfig:
    """Publish secrets. Only required when a run actually publishes."""
    bucket: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = ""
    distribution_id: str = ""
    endpoint_url: str | None = None


@dataclass(frozen=True)
class PipelineConfig:
    """Fixed constants for one documentation set."""
    crate: str = "core"
    docs_dir: str = "concrete-core/docs"
    url_dest_dir: str = "concrete/core-lib/"
    default_release_version: str = "main"
    tag_refs_filter: str = "refs/tags/concrete-core-"
    main_ref: str = "refs/heads/main"
    watch_paths: tuple[str, ...] = ()
    repo_root: str = "."
    requirements_file: str = "requirements.txt"
    install_dependencies: bool = True
    sphinx_build: str = "sphinx-build"
    sphinx_builder: str = "html"
    static_files: tuple[str, ...] = ("versions.json", "index.html")
    step_timeout: float = 900.0
    artifact_dir: str = ""
    git_checkout: bool = False
    aws: AwsConfig = field(default_factory=AwsConfig)

    @property
    def docs_path(self) -> Path:
        return Path(self.repo_root) / self.docs_dir

    @property
    def artifact_path(self) -> Path:
        if self.artifact_dir:
            return Path(self.artifact_dir)
        return Path(self.repo_root) / ".docpublish" / "artifacts"

    @property
    def effective_watch_paths(self) -> tuple[str, ...]:
        return self.watch_paths or (f"{self.docs_dir.rstrip('/')}/**",)


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""
    host: str
    port: int
    debug: bool
    webhook_secret: str
    pipeline: PipelineConfig


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def normalize_dest_dir(url_dest_dir: str) -> str:
    """Strip the leading slash and force exactly one trailing slash."""
    cleaned = url_dest_dir.strip().strip("/")
    if not cleaned:
        raise ConfigError("url_dest_dir", "destination prefix must not be empty")
    return cleaned + "/"


def validate_pipeline_config(cfg: PipelineConfig) -> PipelineConfig:
    """Fail fast on constants that would make the pipeline unsafe."""
    for name in ("crate", "docs_dir", "default_release_version", "tag_refs_filter", "main_ref"):
        if not getattr(cfg, name).strip():
            raise ConfigError(name, "must not be empty")
    if cfg.step_timeout <= 0:
        raise ConfigError("step_timeout", "must be positive")
    if not cfg.static_files:
        raise ConfigError("static_files", "at least versions.json and index.html are expected")
    return cfg


def validate_publish_secrets(cfg: PipelineConfig) -> None:
    """Raise MissingSecretsError listing every secret a publish needs but lacks."""
    required = {
        "AWS_REPO_DOCUMENTATION_BUCKET_NAME": cfg.aws.bucket,
        "AWS_IAM_ID": cfg.aws.access_key_id,
        "AWS_IAM_KEY": cfg.aws.secret_access_key,
        "AWS_REGION": cfg.aws.region,
        "AWS_REPO_DOCUMENTATION_DISTRIBUTION_ID": cfg.aws.distribution_id,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise MissingSecretsError(missing)


def load_pipeline_config() -> PipelineConfig:
    repo_root = os.getenv("DOCS_REPO_ROOT", os.getcwd())
    cfg = PipelineConfig(
        crate=os.getenv("DOCS_CRATE", "core"),
        docs_dir=os.getenv("DOCS_DIR", "concrete-core/docs"),
        url_dest_dir=normalize_dest_dir(os.getenv("DOCS_URL_DEST_DIR", "concrete/core-lib/")),
        default_release_version=os.getenv("DOCS_DEFAULT_RELEASE_VERSION", "main"),
        tag_refs_filter=os.getenv("DOCS_TAG_REFS_FILTER", "refs/tags/concrete-core-"),
        main_ref=os.getenv("DOCS_MAIN_REF", "refs/heads/main"),
        watch_paths=_split_list(os.getenv("DOCS_WATCH_PATHS", "")),
        repo_root=repo_root,
        requirements_file=os.getenv("DOCS_REQUIREMENTS_FILE", "requirements.txt"),
        install_dependencies=_flag("DOCS_INSTALL_DEPENDENCIES", "true"),
        sphinx_build=os.getenv("DOCS_SPHINX_BUILD", "sphinx-build"),
        sphinx_builder=os.getenv("DOCS_SPHINX_BUILDER", "html"),
        static_files=_split_list(os.getenv("DOCS_STATIC_FILES", "versions.json,index.html")),
        step_timeout=float(os.getenv("DOCS_STEP_TIMEOUT", "900")),
        artifact_dir=os.getenv("DOCS_ARTIFACT_DIR", ""),
        git_checkout=_flag("DOCS_GIT_CHECKOUT", "false"),
        aws=AwsConfig(
            bucket=os.getenv("AWS_REPO_DOCUMENTATION_BUCKET_NAME", ""),
            access_key_id=os.getenv("AWS_IAM_ID", ""),
            secret_access_key=os.getenv("AWS_IAM_KEY", ""),
            region=os.getenv("AWS_REGION", ""),
            distribution_id=os.getenv("AWS_REPO_DOCUMENTATION_DISTRIBUTION_ID", ""),
            endpoint_url=os.getenv("AWS_S3_ENDPOINT_URL") or None,
        ),
    )
    return validate_pipeline_config(cfg)


def load_config() -> AppConfig:
    return AppConfig(
        host=os.getenv("APP_HOST", "0.0.0.0"),
        port=int(os.getenv("APP_PORT", "8000")),
        debug=os.getenv("APP_DEBUG", "false").lower() == "true",
        webhook_secret=os.getenv("GITHUB_WEBHOOK_SECRET", ""),
        pipeline=load_pipeline_config(),
    )


settings = load_config()
