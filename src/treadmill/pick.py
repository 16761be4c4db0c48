"""Harvest the treadmill PR's changes onto a real vendor commit."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import click

from treadmill.commits import assert_vendor_commit, harvest_commit_message, run_provenance
from treadmill.config import Context, Settings
from treadmill.errors import StaleBaseError
from treadmill.github import TreadmillPR, find_treadmill_pr
from treadmill.logging import bind_context
from treadmill.manifest import PinnedVersion, read_pinned_version
from treadmill.probe import commit_message, current_branch, fork_point, is_ancestor, upstream_remote
from treadmill.runner import git, run_command

logger = logging.getLogger(__name__)


class ForkRelation(Enum):
    SAME = "same"
    REMOTE_NEWER = "remote-newer"
    LOCAL_NEWER = "local-newer"


@dataclass(frozen=True, slots=True)
class PickResult:
    pr_number: int
    relation: ForkRelation
    local: PinnedVersion
    remote: PinnedVersion


def compare_fork_points(ctx: Context, local_fork: str, remote_fork: str) -> ForkRelation:
    if local_fork == remote_fork:
        return ForkRelation.SAME
    if is_ancestor(ctx, local_fork, remote_fork):
        return ForkRelation.REMOTE_NEWER
    return ForkRelation.LOCAL_NEWER


def _check_fork_points(ctx: Context, remote: str, temp_branch: str) -> ForkRelation:
    integration = ctx.settings.integration_branch
    tracking = f"{remote}/{integration}"
    git(ctx, "fetch", "-q", remote, f"+refs/heads/{integration}:refs/remotes/{tracking}")
    local_fork = fork_point(ctx, "HEAD", base=tracking)
    remote_fork = fork_point(ctx, temp_branch, base=tracking)
    relation = compare_fork_points(ctx, local_fork, remote_fork)

    if relation is ForkRelation.REMOTE_NEWER:
        message = (
            f"the treadmill PR is based on a newer {integration} ({remote_fork[:12]}) "
            f"than this branch ({local_fork[:12]})"
        )
        if not ctx.options.force_old_main:
            raise StaleBaseError(
                message,
                hint=(
                    f"Rebase this branch onto {tracking} and retry, "
                    "or rerun with --force-old-main to pick anyway."
                ),
            )
        click.secho(f"WARNING: {message}; continuing (--force-old-main)", fg="yellow", err=True)
    elif relation is ForkRelation.LOCAL_NEWER:
        click.echo(
            f"Note: this branch is based on a newer {integration} than the treadmill PR; "
            "that is fine."
        )
    return relation


def run_pick(
    ctx: Context,
    locate: Callable[[Settings], TreadmillPR] = find_treadmill_pr,
) -> PickResult:
    branch = current_branch(ctx)
    assert_vendor_commit(ctx, "HEAD")
    bind_context(operation="pick", branch=branch)
    remote = upstream_remote(ctx)

    pr = locate(ctx.settings)
    click.echo(f"Treadmill PR is #{pr.number} ({pr.head_ref or 'unknown branch'})")

    temp_branch = f"treadmill-pr-{pr.number}-{secrets.token_hex(4)}"
    git(ctx, "fetch", "-q", remote, f"pull/{pr.number}/head:{temp_branch}")
    try:
        relation = _check_fork_points(ctx, remote, temp_branch)

        remote_pin = read_pinned_version(ctx, ref=temp_branch)
        local_pin = read_pinned_version(ctx)
        if remote_pin != local_pin:
            click.secho(
                f"WARNING: treadmill PR vendors {remote_pin}, this branch vendors {local_pin}. "
                "Continuing; the upstream pin is normally the one you want.",
                fg="yellow",
                err=True,
            )

        message = harvest_commit_message(
            commit_message(ctx, temp_branch),
            subject=ctx.settings.commit_subject,
            pr_number=pr.number,
            provenance=run_provenance(),
        )
        click.echo(f"Cherry-picking treadmill PR #{pr.number}...")
        git(ctx, "cherry-pick", "--allow-empty", temp_branch, mutates=True)
        git(
            ctx,
            "commit", "-q", "--amend", "--allow-empty", "-F", "-",
            input_text=message,
            mutates=True,
        )
    finally:
        cleanup = run_command(ctx, ["git", "branch", "-q", "-D", temp_branch], check=False)
        if not cleanup.ok:
            logger.warning("could not delete %s: %s", temp_branch, cleanup.stderr.strip())

    return PickResult(pr_number=pr.number, relation=relation, local=local_pin, remote=remote_pin)
