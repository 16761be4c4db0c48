"""Refuse to start from a contaminated repository."""

from __future__ import annotations

from treadmill.config import Context
from treadmill.errors import DirtyRepositoryError
from treadmill.probe import modified_tracked_paths, untracked_paths


def assert_clean(ctx: Context) -> None:
    """Fail on a leftover patch file, modified tracked files or stray vendor files."""
    patch_file = ctx.settings.patch_path()
    if patch_file.exists():
        raise DirtyRepositoryError(
            f"{patch_file} exists; a previous sync run did not finish",
            hint=(
                "A crashed sync leaves its treadmill patches in that file.\n"
                "Check 'git log' and 'git reflog', restore the treadmill commit with\n"
                f"'git am --empty=keep {patch_file}' if it is missing, then remove the file."
            ),
        )

    modified = modified_tracked_paths(ctx)
    if modified:
        raise DirtyRepositoryError(
            "uncommitted changes in tracked files: " + ", ".join(modified),
            hint="Commit or stash them first ('git stash').",
        )

    vendor_dir = ctx.settings.vendor_dir
    stray = untracked_paths(ctx, vendor_dir)
    if stray:
        raise DirtyRepositoryError(
            f"untracked files under {vendor_dir}/: " + ", ".join(stray),
            hint=f"Remove them ('git clean -fd {vendor_dir}') or commit them.",
        )
