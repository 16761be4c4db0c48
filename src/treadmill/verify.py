"""Post-change verification: build, then the project's own cheap checks."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import click

from treadmill.config import Context
from treadmill.errors import VerificationError
from treadmill.runner import run_command

logger = logging.getLogger(__name__)

# (label, command setting, fatal)
CHECKS: list[tuple[str, str, bool]] = [
    ("Build", "build", True),
    ("Help/man page cross-reference", "xref", False),
    ("Dependency integration tests (dry run)", "integration_dry_run", False),
]


@dataclass(frozen=True, slots=True)
class CheckResult:
    name: str
    passed: bool
    message: str
    fatal: bool = False
    skipped: bool = False


def run_check(ctx: Context, name: str, argv: list[str], *, fatal: bool = False) -> CheckResult:
    click.secho(f"\n{name}", bold=True)
    click.echo(f"  $ {' '.join(argv)}")
    t0 = time.monotonic()
    result = run_command(ctx, argv, mutates=True, check=False, capture=False)
    if ctx.options.dry_run:
        click.echo(f"  - {name}: skipped (dry run)")
        return CheckResult(
            name=name, passed=True, message="skipped (dry run)", fatal=fatal, skipped=True
        )
    elapsed = round(time.monotonic() - t0, 1)
    if result.ok:
        click.echo(f"  {click.style('✓', fg='green')} {name} ({elapsed}s)")
    else:
        click.echo(f"  {click.style('✗', fg='red')} {name} (exit {result.exit_code}, {elapsed}s)")
    return CheckResult(
        name=name,
        passed=result.ok,
        message="ok" if result.ok else f"exit {result.exit_code}",
        fatal=fatal,
    )


def remediation(operation: str, branch: str) -> str:
    if operation == "sync":
        return (
            "Please fix the problem(s) above, then fold the fix into the treadmill commit:\n"
            "  1) Make your changes (tests, skips, code) on this branch.\n"
            "  2) git commit --amend -a   # HEAD is the treadmill commit.\n"
            "     Never touch HEAD^: the junk vendor commit is regenerated on every sync.\n"
            "  3) vendor-treadmill --sync --force-retry   # re-verify\n"
            f"  4) git push --force-with-lease <your-fork> {branch}"
        )
    return (
        "Please fix the problem(s) above, then fold the fix into the harvested commit:\n"
        "  1) Make your changes on this branch.\n"
        "  2) git commit --amend -a   # HEAD is the harvested treadmill commit.\n"
        "     Leave HEAD^ (your vendor commit) alone unless the fix belongs there.\n"
        "  3) Rerun the failed check(s) shown above.\n"
        f"  4) git push <your-fork> {branch} and open the pull request."
    )


def run_verification(ctx: Context, operation: str, branch: str) -> list[CheckResult]:
    """Run all checks; raise VerificationError if any failed."""
    results: list[CheckResult] = []
    for name, setting, fatal in CHECKS:
        argv = ctx.settings.command(setting)
        if not argv:
            logger.info("no command configured for %s; skipping", name)
            continue
        result = run_check(ctx, name, argv, fatal=fatal)
        results.append(result)
        if fatal and not result.passed:
            raise VerificationError([name], hint=remediation(operation, branch))

    click.echo()
    if ctx.options.dry_run:
        click.secho(f"Dry run: {len(results)} check(s) not run.", fg="cyan")
        return results

    failures = [result.name for result in results if not result.passed]
    if failures:
        click.secho(f"{len(failures)}/{len(results)} check(s) failed", fg="red", err=True)
        raise VerificationError(failures, hint=remediation(operation, branch))

    click.secho(f"All {len(results)} checks passed.", fg="green")
    if operation == "sync":
        click.echo(f"Review the result, then: git push --force-with-lease <your-fork> {branch}")
    else:
        click.echo(f"Review the result, then push {branch} and open a pull request.")
    return results
