"""External command execution.

Every git, module-tooling, build and check invocation goes through
``run_command`` so that exit status checking, debug logging and dry-run
behaviour live in one place.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

import click

from treadmill.config import Context
from treadmill.errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CommandResult:
    command: str
    exit_code: int
    ok: bool
    stdout: str
    stderr: str


def run_command(
    ctx: Context,
    argv: list[str],
    *,
    mutates: bool = False,
    check: bool = True,
    capture: bool = True,
    input_text: str | None = None,
) -> CommandResult:
    """Run ``argv`` in the repository.

    Commands flagged ``mutates`` are only echoed under ``--dry-run``. Reads
    always run, so a dry run still sees real repository state.
    """
    command = " ".join(argv)
    if mutates and ctx.options.dry_run:
        logger.info("dry-run: skipping %s", command)
        click.secho(f"would run: {command}", fg="cyan", err=True)
        return CommandResult(command=command, exit_code=0, ok=True, stdout="", stderr="")

    logger.debug("running %s", command)
    proc = subprocess.run(
        argv,
        cwd=ctx.repo,
        input=input_text,
        capture_output=capture,
        text=True,
        check=False,
    )
    result = CommandResult(
        command=command,
        exit_code=proc.returncode,
        ok=proc.returncode == 0,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )
    if check and not result.ok:
        raise CommandError(argv, proc.returncode, result.stderr)
    return result


def git(
    ctx: Context,
    *args: str,
    mutates: bool = False,
    check: bool = True,
    input_text: str | None = None,
) -> str:
    """Run a git subcommand and return its stdout."""
    return run_command(
        ctx,
        ["git", *args],
        mutates=mutates,
        check=check,
        input_text=input_text,
    ).stdout
