"""Pinned dependency version lookup in the Go module manifest."""

from __future__ import annotations

import re
from dataclasses import dataclass

from treadmill.config import Context
from treadmill.errors import PreconditionError
from treadmill.runner import git, run_command


@dataclass(frozen=True, slots=True)
class PinnedVersion:
    module: str
    version: str

    def __str__(self) -> str:
        return f"{self.module}@{self.version}"


def parse_pinned_version(text: str, module: str) -> PinnedVersion:
    """Find ``module``'s require entry, in single-line or block form."""
    pattern = re.compile(
        rf"^\s*(?:require\s+)?{re.escape(module)}\s+(\S+)",
        re.MULTILINE,
    )
    for match in pattern.finditer(text):
        version = match.group(1)
        # `replace foo => ...` lines carry the module path too
        if version == "=>":
            continue
        return PinnedVersion(module=module, version=version)
    raise PreconditionError(f"no '{module}' requirement found in manifest")


def read_pinned_version(ctx: Context, ref: str | None = None) -> PinnedVersion:
    """Pinned version from the working tree, or from ``ref`` without checking it out."""
    settings = ctx.settings
    if ref is None:
        path = ctx.repo / settings.manifest
        if not path.is_file():
            raise PreconditionError(f"{settings.manifest} not found in {ctx.repo}")
        text = path.read_text(encoding="utf-8")
    else:
        text = git(ctx, "show", f"{ref}:{settings.manifest}")
    try:
        return parse_pinned_version(text, settings.dependency)
    except PreconditionError as exc:
        where = ref or "the working tree"
        raise PreconditionError(f"{exc} ({settings.manifest} at {where})") from exc


def resolve_latest_version(ctx: Context) -> PinnedVersion:
    """Ask the module tooling what the dependency's development ref resolves to.

    Does not touch the manifest; the output is ``<module> <version>``.
    """
    out = run_command(ctx, ctx.settings.command("resolve")).stdout.split()
    if len(out) < 2:
        raise PreconditionError(
            f"cannot resolve latest {ctx.settings.dependency}: unexpected output {out!r}"
        )
    return PinnedVersion(module=ctx.settings.dependency, version=out[-1])
