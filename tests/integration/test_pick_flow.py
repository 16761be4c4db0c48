"""Harvesting the treadmill PR onto a real vendor commit."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import GitSandbox, make_context, vendor_files

from treadmill.commits import junk_commit_message
from treadmill.config import Settings
from treadmill.errors import NotAVendorCommitError, PreconditionError, StaleBaseError
from treadmill.github import TreadmillPR
from treadmill.manifest import PinnedVersion
from treadmill.pick import ForkRelation, compare_fork_points, run_pick

BUILDAH = "github.com/containers/buildah"
PR_PIN = "v1.28.1-0.20221019090000-bbbbbbbbbbbb"
PR_NUMBER = 13808
TITLE = "DO NOT MERGE: buildah vendor treadmill"
DELTAS = "test/buildah-bud/apply-podman-deltas"

TREADMILL_MESSAGE = """\
Buildah vendor treadmill

This is a special commit that keeps buildah main vendored into
podman main. Please do not squash it.

Changes as of 2022-10-19:

 - skip 'bud with --cpu-shares' until the cgroups v2 fix lands
"""


def _locate(settings: Settings) -> TreadmillPR:
    return TreadmillPR(number=PR_NUMBER, title=TITLE, state="OPEN", head_ref="treadmill")


def _open_treadmill_pr(sandbox: GitSandbox, upstream: Path, message: str = TREADMILL_MESSAGE):
    """Push a treadmill branch to ``upstream`` and expose it as refs/pull/N/head."""
    sandbox.git(upstream, "checkout", "-q", "-b", "treadmill")
    junk = junk_commit_message(Settings(), PinnedVersion(BUILDAH, PR_PIN), provenance="a test")
    sandbox.commit(upstream, junk, vendor_files(PR_PIN))
    head = sandbox.commit(upstream, message, {DELTAS: "skip 'bud with --cpu-shares'\n"})
    sandbox.git(upstream, "update-ref", f"refs/pull/{PR_NUMBER}/head", head)
    sandbox.git(upstream, "checkout", "-q", "main")
    return head


def _advance_main(sandbox: GitSandbox, upstream: Path) -> str:
    return sandbox.commit(upstream, "Bump to v4.4.0-dev", {"version/version.go": "4.4.0\n"})


def _vendor_branch(sandbox: GitSandbox, upstream: Path, pin: str = PR_PIN) -> Path:
    repo = sandbox.clone(upstream, "podman")
    sandbox.git(repo, "checkout", "-q", "-b", "vendor-buildah")
    sandbox.commit(repo, f"vendor in buildah {pin}", vendor_files(pin))
    return repo


def _temp_branches(sandbox: GitSandbox, repo: Path) -> str:
    return sandbox.git(repo, "branch", "--list", "treadmill-pr-*").strip()


def test_pick_same_base(sandbox: GitSandbox) -> None:
    upstream = sandbox.upstream()
    _open_treadmill_pr(sandbox, upstream)
    repo = _vendor_branch(sandbox, upstream)
    vendor_commit = sandbox.head(repo)

    result = run_pick(make_context(repo), locate=_locate)

    assert result.pr_number == PR_NUMBER
    assert result.relation is ForkRelation.SAME
    assert result.local == result.remote
    assert sandbox.head(repo, "HEAD^") == vendor_commit
    message = sandbox.message(repo)
    assert message.startswith("Buildah vendor treadmill\n\nHarvested from treadmill PR #13808 by ")
    assert "Changes as of 2022-10-19:" in message
    assert "Please do not squash it" not in message
    assert (repo / DELTAS).exists()
    assert _temp_branches(sandbox, repo) == ""


def test_pick_refuses_newer_remote_base(sandbox: GitSandbox) -> None:
    upstream = sandbox.upstream()
    repo = _vendor_branch(sandbox, upstream)
    _advance_main(sandbox, upstream)
    _open_treadmill_pr(sandbox, upstream)
    head = sandbox.head(repo)

    with pytest.raises(StaleBaseError, match="based on a newer main"):
        run_pick(make_context(repo), locate=_locate)

    assert sandbox.head(repo) == head
    assert _temp_branches(sandbox, repo) == ""


def test_pick_newer_remote_base_with_force(sandbox: GitSandbox) -> None:
    upstream = sandbox.upstream()
    repo = _vendor_branch(sandbox, upstream)
    _advance_main(sandbox, upstream)
    _open_treadmill_pr(sandbox, upstream)

    result = run_pick(make_context(repo, force_old_main=True), locate=_locate)

    assert result.relation is ForkRelation.REMOTE_NEWER
    assert sandbox.subject(repo) == "Buildah vendor treadmill"


def test_pick_newer_local_base(sandbox: GitSandbox, capsys: pytest.CaptureFixture) -> None:
    upstream = sandbox.upstream()
    _open_treadmill_pr(sandbox, upstream)
    _advance_main(sandbox, upstream)
    repo = _vendor_branch(sandbox, upstream)

    result = run_pick(make_context(repo), locate=_locate)

    assert result.relation is ForkRelation.LOCAL_NEWER
    assert "based on a newer main than the treadmill PR" in capsys.readouterr().out
    assert sandbox.subject(repo) == "Buildah vendor treadmill"


def test_compare_fork_points(sandbox: GitSandbox) -> None:
    upstream = sandbox.upstream()
    old = sandbox.head(upstream)
    new = _advance_main(sandbox, upstream)
    ctx = make_context(upstream)
    assert compare_fork_points(ctx, old, old) is ForkRelation.SAME
    assert compare_fork_points(ctx, old, new) is ForkRelation.REMOTE_NEWER
    assert compare_fork_points(ctx, new, old) is ForkRelation.LOCAL_NEWER


def test_pin_mismatch_only_warns(sandbox: GitSandbox, capsys: pytest.CaptureFixture) -> None:
    upstream = sandbox.upstream()
    _open_treadmill_pr(sandbox, upstream)
    repo = _vendor_branch(sandbox, upstream, pin="v1.28.0")

    result = run_pick(make_context(repo), locate=_locate)

    assert result.local.version == "v1.28.0"
    assert result.remote.version == PR_PIN
    assert "WARNING: treadmill PR vendors" in capsys.readouterr().err


def test_pick_requires_vendor_commit_at_head(sandbox: GitSandbox) -> None:
    upstream = sandbox.upstream()
    repo = sandbox.clone(upstream, "podman")
    sandbox.git(repo, "checkout", "-q", "-b", "vendor-buildah")
    sandbox.commit(repo, "update go.mod", {"go.mod": "module x\n"})

    with pytest.raises(NotAVendorCommitError):
        run_pick(make_context(repo), locate=_locate)


def test_pick_without_changes_section_cleans_up(sandbox: GitSandbox) -> None:
    upstream = sandbox.upstream()
    _open_treadmill_pr(sandbox, upstream, message="Buildah vendor treadmill\n\nno changes\n")
    repo = _vendor_branch(sandbox, upstream)
    head = sandbox.head(repo)

    with pytest.raises(PreconditionError, match="no 'Changes as of' section"):
        run_pick(make_context(repo), locate=_locate)

    assert sandbox.head(repo) == head
    assert _temp_branches(sandbox, repo) == ""


def test_pick_dry_run(sandbox: GitSandbox, capsys: pytest.CaptureFixture) -> None:
    upstream = sandbox.upstream()
    _open_treadmill_pr(sandbox, upstream)
    repo = _vendor_branch(sandbox, upstream)
    head = sandbox.head(repo)

    run_pick(make_context(repo, dry_run=True), locate=_locate)

    assert sandbox.head(repo) == head
    assert "would run: git cherry-pick --allow-empty treadmill-pr-13808-" in capsys.readouterr().err
    assert _temp_branches(sandbox, repo) == ""
