"""Application configuration contract."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from treadmill.errors import ConfigError

_REPO_FULL_NAME = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = Field(alias="LOG_LEVEL", default="WARNING")
    log_json: int = Field(alias="LOG_JSON", default=0)

    upstream_repo: str = Field(alias="TREADMILL_UPSTREAM_REPO", default="containers/podman")
    integration_branch: str = Field(alias="TREADMILL_INTEGRATION_BRANCH", default="main")
    dependency: str = Field(alias="TREADMILL_DEPENDENCY", default="github.com/containers/buildah")
    dependency_ref: str = Field(alias="TREADMILL_DEPENDENCY_REF", default="main")
    pr_title: str = Field(
        alias="TREADMILL_PR_TITLE", default="DO NOT MERGE: buildah vendor treadmill"
    )
    commit_subject: str = Field(
        alias="TREADMILL_COMMIT_SUBJECT", default="Buildah vendor treadmill"
    )
    patch_file: str = Field(alias="TREADMILL_PATCH_FILE", default="~/.vendor-treadmill-patches")

    manifest: str = Field(alias="TREADMILL_MANIFEST", default="go.mod")
    checksum: str = Field(alias="TREADMILL_CHECKSUM", default="go.sum")
    vendor_dir: str = Field(alias="TREADMILL_VENDOR_DIR", default="vendor")
    vendor_metadata: str = Field(alias="TREADMILL_VENDOR_METADATA", default="vendor/modules.txt")

    ci_config: str = Field(alias="TREADMILL_CI_CONFIG", default=".cirrus.yml")
    ci_validate_task: str = Field(alias="TREADMILL_CI_VALIDATE_TASK", default="validate")
    ci_dependency_task: str = Field(
        alias="TREADMILL_CI_DEPENDENCY_TASK", default="buildah_bud_test"
    )
    ci_aggregate_task: str = Field(alias="TREADMILL_CI_AGGREGATE_TASK", default="success")

    repin_command: str = Field(alias="TREADMILL_REPIN_COMMAND", default="go get {module}@{ref}")
    vendor_command: str = Field(alias="TREADMILL_VENDOR_COMMAND", default="make vendor")
    resolve_command: str = Field(
        alias="TREADMILL_RESOLVE_COMMAND", default="go list -m {module}@{ref}"
    )
    build_command: str = Field(alias="TREADMILL_BUILD_COMMAND", default="make")
    xref_command: str = Field(
        alias="TREADMILL_XREF_COMMAND", default="hack/xref-helpmsgs-manpages"
    )
    integration_dry_run_command: str = Field(
        alias="TREADMILL_INTEGRATION_DRY_RUN_COMMAND",
        default="test/buildah-bud/run-buildah-bud-tests --no-test",
    )

    github_token: str = Field(alias="GITHUB_TOKEN", default="")
    github_graphql_url: str = Field(
        alias="TREADMILL_GITHUB_GRAPHQL_URL", default="https://api.github.com/graphql"
    )
    http_timeout_seconds: float = Field(alias="TREADMILL_HTTP_TIMEOUT_SECONDS", default=30.0)

    def patch_path(self) -> Path:
        return Path(self.patch_file).expanduser()

    def vendored_dependency_path(self) -> str:
        """Path of the dependency's copy inside the vendor tree, with trailing slash."""
        return f"{self.vendor_dir.rstrip('/')}/{self.dependency}/"

    def command(self, name: str) -> list[str]:
        """Split a command setting and fill in ``{module}`` / ``{ref}`` per argument."""
        raw = str(getattr(self, f"{name}_command"))
        return [
            arg.replace("{module}", self.dependency).replace("{ref}", self.dependency_ref)
            for arg in shlex.split(raw)
        ]


def validate_settings(settings: Settings) -> None:
    missing: list[str] = []
    required_non_empty = {
        "TREADMILL_UPSTREAM_REPO": settings.upstream_repo,
        "TREADMILL_INTEGRATION_BRANCH": settings.integration_branch,
        "TREADMILL_DEPENDENCY": settings.dependency,
        "TREADMILL_DEPENDENCY_REF": settings.dependency_ref,
        "TREADMILL_PR_TITLE": settings.pr_title,
        "TREADMILL_COMMIT_SUBJECT": settings.commit_subject,
        "TREADMILL_PATCH_FILE": settings.patch_file,
        "TREADMILL_MANIFEST": settings.manifest,
        "TREADMILL_CHECKSUM": settings.checksum,
        "TREADMILL_VENDOR_DIR": settings.vendor_dir,
        "TREADMILL_VENDOR_METADATA": settings.vendor_metadata,
        "TREADMILL_REPIN_COMMAND": settings.repin_command,
        "TREADMILL_VENDOR_COMMAND": settings.vendor_command,
        "TREADMILL_BUILD_COMMAND": settings.build_command,
    }
    for key, value in required_non_empty.items():
        if not value.strip():
            missing.append(key)
    if settings.upstream_repo.strip() and not _REPO_FULL_NAME.match(settings.upstream_repo):
        missing.append("TREADMILL_UPSTREAM_REPO(owner/name required)")

    if missing:
        keys = ", ".join(sorted(set(missing)))
        raise ConfigError(f"invalid configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Command-line toggles; never mutated after parsing."""

    dry_run: bool = False
    verbose: bool = False
    debug: bool = False
    force_retry: bool = False
    force_old_main: bool = False


@dataclass(frozen=True)
class Context:
    """Everything a treadmill operation needs, threaded through every call."""

    repo: Path
    settings: Settings
    options: RunOptions = RunOptions()
