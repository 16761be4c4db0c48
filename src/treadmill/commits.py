"""Commit-shape checks and commit-message synthesis for treadmill commits."""

from __future__ import annotations

import getpass
import re
from datetime import UTC, datetime

from treadmill import __version__
from treadmill.config import Context, Settings
from treadmill.errors import NotAVendorCommitError, PreconditionError, TreadmillShapeError
from treadmill.manifest import PinnedVersion
from treadmill.probe import changed_paths, commit_body, commit_subject

JUNK_COMMIT_PATTERN = re.compile(r"DO NOT MERGE.*JUNK COMMIT", re.DOTALL)
CHANGES_MARKER = re.compile(r"^Changes as of", re.MULTILINE)


def missing_vendor_conditions(paths: list[str], settings: Settings) -> list[str]:
    """Which of the four vendor-commit conditions ``paths`` fails.

    A vendor commit changes the manifest, its checksum file, the vendor
    metadata file, and at least one file in the dependency's vendored copy.
    Path matching only; nothing inspects file contents.
    """
    changed = set(paths)
    missing = [
        name
        for name in (settings.manifest, settings.checksum, settings.vendor_metadata)
        if name not in changed
    ]
    vendored = settings.vendored_dependency_path()
    if not any(path.startswith(vendored) for path in paths):
        missing.append(vendored)
    return missing


def assert_vendor_commit(ctx: Context, ref: str) -> None:
    missing = missing_vendor_conditions(changed_paths(ctx, ref), ctx.settings)
    if missing:
        raise NotAVendorCommitError(
            ref,
            missing,
            hint=(
                f"Expected {ref} to vendor in {ctx.settings.dependency}: "
                f"'go get {ctx.settings.dependency}@<version>', 'make vendor', commit."
            ),
        )


def assert_treadmill_pair(ctx: Context) -> None:
    """HEAD must be the treadmill commit and HEAD^ the junk vendor commit."""
    settings = ctx.settings
    subject = commit_subject(ctx, "HEAD")
    if not subject.startswith(settings.commit_subject):
        raise TreadmillShapeError(
            f"HEAD is not a treadmill commit: '{subject}'",
            hint=(
                f"Sync expects HEAD's subject to start with '{settings.commit_subject}'. "
                "Check out the treadmill branch first."
            ),
        )
    if not JUNK_COMMIT_PATTERN.search(commit_body(ctx, "HEAD^")):
        raise TreadmillShapeError(
            "HEAD^ is not a treadmill junk commit (no 'DO NOT MERGE ... JUNK COMMIT' in its body)",
            hint="Sync expects HEAD^ to be the auto-generated vendor snapshot.",
        )
    assert_vendor_commit(ctx, "HEAD^")


def run_provenance() -> str:
    today = datetime.now(UTC).strftime("%Y-%m-%d")
    return f"vendor-treadmill {__version__}, run by {getpass.getuser()} on {today}"


def junk_commit_message(settings: Settings, new: PinnedVersion, *, provenance: str) -> str:
    return (
        f"[DO NOT MERGE] vendor in {new}\n"
        "\n"
        f"Generated by {provenance}.\n"
        "\n"
        "DO NOT MERGE. This is a JUNK COMMIT. It only exists so the treadmill can\n"
        f"test {settings.dependency} {settings.dependency_ref} against "
        f"{settings.upstream_repo} {settings.integration_branch}.\n"
        "It is thrown away and regenerated on every sync.\n"
    )


def harvest_commit_message(
    message: str,
    *,
    subject: str,
    pr_number: int,
    provenance: str,
) -> str:
    """Replace the treadmill PR preamble with a provenance note.

    Everything before the first ``Changes as of`` line is dropped.
    """
    match = CHANGES_MARKER.search(message)
    if match is None:
        raise PreconditionError(
            f"treadmill PR #{pr_number} commit message has no 'Changes as of' section",
            hint="Edit the treadmill commit message on the PR, then retry.",
        )
    changes = message[match.start():].rstrip()
    return (
        f"{subject}\n"
        "\n"
        f"Harvested from treadmill PR #{pr_number} by {provenance}.\n"
        "\n"
        f"{changes}\n"
    )
