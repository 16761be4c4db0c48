"""Advance the treadmill: rebase it onto the integration branch and re-vendor.

The treadmill branch ends in two commits: a junk vendor snapshot (HEAD^)
and the hand-maintained treadmill commit (HEAD). A sync throws the junk
commit away, rebases, vendors the dependency's latest development ref into
a fresh junk commit, and replays the treadmill commit on top.

The treadmill commit is exported to the patch file before anything
destructive happens. From then until it has been re-applied, every failure
is reported as a GuardedPhaseError pointing at that file, and nothing is
rolled back automatically.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import click

from treadmill.cirrus import reorder_ci_tasks
from treadmill.commits import assert_treadmill_pair, junk_commit_message, run_provenance
from treadmill.config import Context
from treadmill.errors import CommandError, GuardedPhaseError, PreconditionError
from treadmill.logging import bind_context
from treadmill.manifest import PinnedVersion, read_pinned_version, resolve_latest_version
from treadmill.probe import current_branch, fork_point, rev_parse, untracked_paths, upstream_remote
from treadmill.runner import git, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SyncResult:
    old: PinnedVersion
    new: PinnedVersion
    rebased: bool

    @property
    def changed(self) -> bool:
        return self.rebased or self.old != self.new


@dataclass(frozen=True, slots=True)
class GuardedStep:
    name: str
    action: Callable[[], None]


def run_guarded(steps: list[GuardedStep], ctx: Context) -> None:
    """Run ``steps`` in order; the first failure aborts the whole sequence."""
    patch_file = ctx.settings.patch_path()
    for step in steps:
        logger.info("sync step: %s", step.name)
        try:
            step.action()
        except Exception as exc:
            logger.error("sync step '%s' failed: %s", step.name, exc)
            raise GuardedPhaseError(step.name, patch_file, exc) from exc


class _TreadmillRun:
    """State shared by the guarded steps of one sync."""

    def __init__(self, ctx: Context, old: PinnedVersion) -> None:
        self.ctx = ctx
        self.new = old
        self.rebased = False

    def reset(self) -> None:
        git(self.ctx, "reset", "-q", "--hard", "HEAD^^", mutates=True)

    def rebase(self) -> None:
        integration = self.ctx.settings.integration_branch
        if fork_point(self.ctx, "HEAD") == rev_parse(self.ctx, integration):
            click.echo(f"Already based on the tip of {integration}; not rebasing.")
            return
        click.echo(f"Rebasing onto {integration}...")
        git(self.ctx, "rebase", "-q", "--empty=keep", integration, mutates=True)
        self.rebased = True

    def repin(self) -> None:
        settings = self.ctx.settings
        click.echo(f"Pinning {settings.dependency}@{settings.dependency_ref}...")
        run_command(self.ctx, settings.command("repin"), mutates=True)

    def revendor(self) -> None:
        click.echo("Regenerating the vendor tree...")
        run_command(self.ctx, self.ctx.settings.command("vendor"), mutates=True)
        self.new = read_pinned_version(self.ctx)

    def reorder_ci(self) -> None:
        reorder_ci_tasks(self.ctx)

    def stage_vendor_files(self) -> None:
        stray = untracked_paths(self.ctx, self.ctx.settings.vendor_dir)
        if stray:
            git(self.ctx, "add", "--", *stray, mutates=True)

    def commit_snapshot(self) -> None:
        message = junk_commit_message(self.ctx.settings, self.new, provenance=run_provenance())
        git(self.ctx, "commit", "-q", "-a", "-F", "-", input_text=message, mutates=True)

    def reapply(self) -> None:
        patch_file = self.ctx.settings.patch_path()
        git(self.ctx, "am", "-q", "--empty=keep", str(patch_file), mutates=True)

    def steps(self) -> list[GuardedStep]:
        return [
            GuardedStep("reset treadmill commits", self.reset),
            GuardedStep("rebase", self.rebase),
            GuardedStep("re-pin dependency", self.repin),
            GuardedStep("re-vendor", self.revendor),
            GuardedStep("reorder CI tasks", self.reorder_ci),
            GuardedStep("stage new vendor files", self.stage_vendor_files),
            GuardedStep("commit vendor snapshot", self.commit_snapshot),
            GuardedStep("re-apply treadmill patches", self.reapply),
        ]


def _pull_integration(ctx: Context, branch: str) -> None:
    integration = ctx.settings.integration_branch
    remote = upstream_remote(ctx)
    click.echo(f"Pulling {integration} from {remote}...")
    git(ctx, "checkout", "-q", integration, mutates=True)
    try:
        git(ctx, "pull", "-q", "--ff-only", remote, integration, mutates=True)
    except CommandError as exc:
        back = run_command(ctx, ["git", "checkout", "-q", branch], mutates=True, check=False)
        if not back.ok:
            exc.hint = (
                f"Could not switch back to {branch} either: {back.stderr.strip()}\n"
                f"You are still on {integration}; run 'git checkout {branch}' "
                "once the pull problem is fixed."
            )
        raise
    git(ctx, "checkout", "-q", branch, mutates=True)


def _nothing_to_do(ctx: Context, old: PinnedVersion) -> bool:
    """True when no rebase is needed and the dependency has not moved."""
    settings = ctx.settings
    if not settings.resolve_command.strip():
        return False
    if fork_point(ctx, "HEAD") != rev_parse(ctx, settings.integration_branch):
        return False
    latest = resolve_latest_version(ctx)
    logger.info("latest %s resolves to %s", settings.dependency, latest)
    return latest == old


def _export_patches(ctx: Context) -> None:
    patch_file = ctx.settings.patch_path()
    patches = git(ctx, "format-patch", "--stdout", "HEAD^..HEAD")
    if not patches.strip():
        raise PreconditionError("git format-patch produced nothing for HEAD^..HEAD")
    if ctx.options.dry_run:
        click.secho(f"would save treadmill patches to {patch_file}", fg="cyan", err=True)
        return
    patch_file.parent.mkdir(parents=True, exist_ok=True)
    patch_file.write_text(patches, encoding="utf-8")
    logger.info("saved treadmill patches to %s", patch_file)


def run_sync(ctx: Context) -> SyncResult:
    branch = current_branch(ctx)
    assert_treadmill_pair(ctx)
    old = read_pinned_version(ctx)
    bind_context(operation="sync", branch=branch)
    click.echo(f"Treadmill branch {branch}, currently at {old}")

    _pull_integration(ctx, branch)

    if _nothing_to_do(ctx, old):
        return SyncResult(old=old, new=old, rebased=False)

    _export_patches(ctx)
    run = _TreadmillRun(ctx, old)
    run_guarded(run.steps(), ctx)

    patch_file = ctx.settings.patch_path()
    if patch_file.exists() and not ctx.options.dry_run:
        patch_file.unlink()

    result = SyncResult(old=old, new=run.new, rebased=run.rebased)
    if result.old != result.new:
        click.echo(f"Vendored {result.new} (was {result.old.version})")
    return result
