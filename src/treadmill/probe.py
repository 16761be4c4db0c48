"""Read-only queries of local and remote git state.

Nothing here mutates the repository and nothing is cached: every answer is
re-queried. A failing query means misconfiguration (missing remote, bad ref),
so errors propagate immediately instead of being retried.
"""

from __future__ import annotations

from treadmill.config import Context
from treadmill.errors import PreconditionError
from treadmill.runner import git, run_command


def current_branch(ctx: Context) -> str:
    branch = git(ctx, "rev-parse", "--abbrev-ref", "HEAD").strip()
    if branch == "HEAD":
        raise PreconditionError(
            "detached HEAD; run from a named branch",
            hint="git checkout -b <branch>",
        )
    if branch == ctx.settings.integration_branch:
        raise PreconditionError(
            f"refusing to run on the integration branch '{branch}'",
            hint="Work on a separate treadmill branch, e.g. 'git checkout -b vendor-treadmill'.",
        )
    return branch


def rev_parse(ctx: Context, ref: str) -> str:
    return git(ctx, "rev-parse", "--verify", f"{ref}^{{commit}}").strip()


def fork_point(ctx: Context, ref: str = "HEAD", base: str | None = None) -> str:
    """Commit where ``ref`` diverged from ``base`` (the integration branch by default)."""
    return git(ctx, "merge-base", base or ctx.settings.integration_branch, ref).strip()


def is_ancestor(ctx: Context, ancestor: str, descendant: str) -> bool:
    result = run_command(
        ctx,
        ["git", "merge-base", "--is-ancestor", ancestor, descendant],
        check=False,
    )
    if result.exit_code not in (0, 1):
        raise PreconditionError(
            f"cannot compare {ancestor} and {descendant}: {result.stderr.strip()}"
        )
    return result.ok


def parse_repo_full_name(url: str) -> str:
    url = url.strip()
    if not url:
        return ""
    if url.endswith(".git"):
        url = url[:-4]
    if url.startswith("git@") and ":" in url:
        return url.split(":", 1)[1]
    if "/" in url:
        return "/".join(url.rstrip("/").split("/")[-2:])
    return ""


def upstream_remote(ctx: Context) -> str:
    """Local alias of the remote pointing at the canonical upstream project."""
    wanted = ctx.settings.upstream_repo.lower()
    for line in git(ctx, "remote", "-v").splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        name, url = parts[0], parts[1]
        if parse_repo_full_name(url).lower() == wanted:
            return name
    raise PreconditionError(
        f"no git remote points at {ctx.settings.upstream_repo}",
        hint=f"git remote add upstream https://github.com/{ctx.settings.upstream_repo}.git",
    )


def commit_subject(ctx: Context, ref: str) -> str:
    return git(ctx, "log", "-1", "--format=%s", ref).strip()


def commit_body(ctx: Context, ref: str) -> str:
    return git(ctx, "log", "-1", "--format=%b", ref)


def commit_message(ctx: Context, ref: str) -> str:
    return git(ctx, "log", "-1", "--format=%B", ref)


def changed_paths(ctx: Context, ref: str) -> list[str]:
    """Paths changed by ``ref`` relative to its first parent."""
    out = git(ctx, "diff", "--name-only", f"{ref}^", ref)
    return [line.strip() for line in out.splitlines() if line.strip()]


def modified_tracked_paths(ctx: Context) -> list[str]:
    out = git(ctx, "status", "--porcelain", "--untracked-files=no")
    return [line[3:] for line in out.splitlines() if line.strip()]


def untracked_paths(ctx: Context, path: str) -> list[str]:
    out = git(ctx, "ls-files", "--others", "--exclude-standard", "--", path)
    return [line.strip() for line in out.splitlines() if line.strip()]
