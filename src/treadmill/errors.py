"""Treadmill exception hierarchy.

All treadmill-specific exceptions inherit from TreadmillError, so the CLI can
report every expected failure the same way: message, optional hint, exit 1.
"""

from __future__ import annotations

from pathlib import Path


class TreadmillError(Exception):
    """Base exception for all treadmill errors."""

    def __init__(self, message: str = "", *, hint: str = "") -> None:
        super().__init__(message)
        self.hint = hint


class ConfigError(TreadmillError):
    """Invalid or missing configuration."""


class CommandError(TreadmillError):
    """An external command exited non-zero."""

    def __init__(self, argv: list[str], exit_code: int, stderr: str = "") -> None:
        command = " ".join(argv)
        detail = stderr.strip()
        message = f"command failed (exit {exit_code}): {command}"
        if detail:
            message = f"{message}\n{detail}"
        super().__init__(message)
        self.argv = argv
        self.exit_code = exit_code
        self.stderr = stderr


class PreconditionError(TreadmillError):
    """The repository is not in a state this operation can start from."""


class DirtyRepositoryError(PreconditionError):
    """Uncommitted changes, stray vendor files, or a leftover patch file."""


class NotAVendorCommitError(PreconditionError):
    """A commit does not look like a dependency vendor commit."""

    def __init__(self, ref: str, missing: list[str], *, hint: str = "") -> None:
        super().__init__(
            f"{ref} does not look like a vendor commit; it does not touch: "
            + ", ".join(missing),
            hint=hint,
        )
        self.ref = ref
        self.missing = missing


class TreadmillShapeError(PreconditionError):
    """HEAD and HEAD^ are not the expected treadmill commit pair."""


class StaleBaseError(PreconditionError):
    """The treadmill PR is based on newer integration history than this branch."""


class PullRequestLookupError(PreconditionError):
    """Zero or more than one treadmill pull request matched."""


class RemoteError(TreadmillError):
    """The search API failed or returned an unexpected document."""

    def __init__(self, message: str = "", *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class GuardedPhaseError(TreadmillError):
    """A step of the sync guarded phase failed; recovery is manual."""

    def __init__(self, step: str, patch_file: Path, cause: Exception) -> None:
        super().__init__(
            f"sync failed during '{step}': {cause}",
            hint=(
                "The repository is in a PARTIAL state. Nothing has been rolled back.\n"
                f"Your treadmill patches are preserved in {patch_file}\n"
                "To recover:\n"
                "  1) Inspect 'git status' and 'git reflog' to see how far the run got.\n"
                "  2) Abort any rebase or am in progress "
                "('git rebase --abort', 'git am --abort').\n"
                "  3) Re-create the treadmill commit with "
                f"'git am --empty=keep {patch_file}' once the tree is sane.\n"
                f"  4) Remove {patch_file} only after the patches are safe again."
            ),
        )
        self.step = step
        self.patch_file = patch_file
        self.cause = cause


class VerificationError(TreadmillError):
    """Post-change verification failed."""

    def __init__(self, failures: list[str], *, hint: str = "") -> None:
        super().__init__(f"verification failed: {', '.join(failures)}", hint=hint)
        self.failures = failures
