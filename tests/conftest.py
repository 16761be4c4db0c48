import logging
import subprocess
from pathlib import Path

import pytest

from treadmill.config import Context, RunOptions, get_settings

DEPENDENCY = "github.com/containers/buildah"

CIRRUS_YML = """\
---
env:
    GOPATH: "/var/tmp/go"

validate_task:
    name: "Validate source code changes"
    depends_on:
        - ext_svc_check
    script: make validate

build_task:
    name: "Build for $DISTRO_NV"
    depends_on:
        - validate
    script: make

unit_test_task:
    depends_on:
        - validate
        - build
    script: make localunit

buildah_bud_test_task:
    depends_on:
        - build
        - unit_test
    script: test/buildah-bud/run-buildah-bud-tests

success_task:
    depends_on:
        - validate
        - build
        - buildah_bud_test
    script: /bin/true
"""

# Stand-in for `go get` / `make vendor` / `go list -m`, driven by $FAKE_BUILDAH_VERSION.
FAKE_GO = r"""#!/bin/sh
set -e
case "$1" in
  get)
    printf 'module github.com/containers/podman/v4\n\ngo 1.18\n\nrequire (\n\tgithub.com/containers/buildah %s\n\tgithub.com/containers/common v0.49.1\n)\n' "$FAKE_BUILDAH_VERSION" > go.mod
    printf 'github.com/containers/buildah %s h1:fake=\n' "$FAKE_BUILDAH_VERSION" > go.sum
    ;;
  vendor)
    mkdir -p vendor/github.com/containers/buildah
    printf 'package buildah // %s\n' "$FAKE_BUILDAH_VERSION" > vendor/github.com/containers/buildah/buildah.go
    printf 'package buildah // new in %s\n' "$FAKE_BUILDAH_VERSION" > vendor/github.com/containers/buildah/imagebuildah.go
    printf '# github.com/containers/buildah %s\n' "$FAKE_BUILDAH_VERSION" > vendor/modules.txt
    ;;
  list)
    echo "github.com/containers/buildah $FAKE_BUILDAH_VERSION"
    ;;
  *)
    exit 2
    ;;
esac
"""


def go_mod(version: str) -> str:
    return (
        "module github.com/containers/podman/v4\n\n"
        "go 1.18\n\n"
        "require (\n"
        f"\t{DEPENDENCY} {version}\n"
        "\tgithub.com/containers/common v0.49.1\n"
        ")\n"
    )


def vendor_files(version: str) -> dict[str, str]:
    """Files a real vendor commit of ``version`` would touch."""
    return {
        "go.mod": go_mod(version),
        "go.sum": f"{DEPENDENCY} {version} h1:fake=\n",
        "vendor/modules.txt": f"# {DEPENDENCY} {version}\n",
        f"vendor/{DEPENDENCY}/buildah.go": f"package buildah // {version}\n",
    }


class GitSandbox:
    """Throw-away git repositories under a pytest tmp dir."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def git(self, repo: Path, *args: str, input_text: str | None = None) -> str:
        return subprocess.run(
            ["git", "-C", str(repo), *args],
            check=True,
            capture_output=True,
            text=True,
            input=input_text,
        ).stdout

    def _identity(self, repo: Path) -> None:
        self.git(repo, "config", "user.email", "treadmill@example.com")
        self.git(repo, "config", "user.name", "Treadmill Test")
        self.git(repo, "config", "commit.gpgsign", "false")

    def init(self, name: str) -> Path:
        repo = self.root / name
        repo.mkdir(parents=True)
        subprocess.run(["git", "init", "-q", "-b", "main", str(repo)], check=True)
        self._identity(repo)
        return repo

    def clone(self, source: Path, name: str) -> Path:
        dest = self.root / name
        subprocess.run(["git", "clone", "-q", str(source), str(dest)], check=True)
        self._identity(dest)
        return dest

    def write(self, repo: Path, files: dict[str, str]) -> None:
        for rel, text in files.items():
            path = repo / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)

    def commit(self, repo: Path, message: str, files: dict[str, str] | None = None) -> str:
        if files:
            self.write(repo, files)
        self.git(repo, "add", "-A")
        self.git(repo, "commit", "-q", "--allow-empty", "-F", "-", input_text=message)
        return self.head(repo)

    def head(self, repo: Path, ref: str = "HEAD") -> str:
        return self.git(repo, "rev-parse", ref).strip()

    def subject(self, repo: Path, ref: str = "HEAD") -> str:
        return self.git(repo, "log", "-1", "--format=%s", ref).strip()

    def message(self, repo: Path, ref: str = "HEAD") -> str:
        return self.git(repo, "log", "-1", "--format=%B", ref)

    def upstream(self) -> Path:
        """A podman-like project whose path ends in containers/podman."""
        repo = self.init("github.com/containers/podman")
        self.commit(
            repo,
            "Initial import",
            {
                **vendor_files("v1.27.0"),
                ".cirrus.yml": CIRRUS_YML,
                "README.md": "podman\n",
                "test/system/000-TEMPLATE.bats": "#!/usr/bin/env bats\n",
            },
        )
        return repo


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TREADMILL_PATCH_FILE", str(tmp_path / "treadmill-patches"))
    monkeypatch.setenv("LOGNAME", "tester")
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("LOG_JSON", raising=False)
    get_settings.cache_clear()
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    get_settings.cache_clear()


@pytest.fixture
def sandbox(tmp_path: Path) -> GitSandbox:
    return GitSandbox(tmp_path / "git")


@pytest.fixture
def fake_go(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the module-tooling commands at a shell script instead of go."""
    script = tmp_path / "fake-go.sh"
    script.write_text(FAKE_GO)
    monkeypatch.setenv("TREADMILL_REPIN_COMMAND", f"sh {script} get {{module}}@{{ref}}")
    monkeypatch.setenv("TREADMILL_VENDOR_COMMAND", f"sh {script} vendor")
    monkeypatch.setenv("TREADMILL_RESOLVE_COMMAND", f"sh {script} list -m {{module}}@{{ref}}")
    monkeypatch.setenv("TREADMILL_BUILD_COMMAND", "true")
    monkeypatch.setenv("TREADMILL_XREF_COMMAND", "true")
    monkeypatch.setenv("TREADMILL_INTEGRATION_DRY_RUN_COMMAND", "true")
    get_settings.cache_clear()
    return script


def make_context(repo: Path, **options: bool) -> Context:
    return Context(repo=repo, settings=get_settings(), options=RunOptions(**options))
