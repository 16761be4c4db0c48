"""Click entrypoint: ``vendor-treadmill --sync`` / ``vendor-treadmill --pick``."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from treadmill import __version__
from treadmill.config import Context, RunOptions, get_settings, validate_settings
from treadmill.errors import TreadmillError
from treadmill.guard import assert_clean
from treadmill.logging import clear_context, configure_logging
from treadmill.pick import run_pick
from treadmill.probe import current_branch
from treadmill.sync import run_sync
from treadmill.verify import run_verification

logger = logging.getLogger(__name__)


def _report(exc: TreadmillError) -> None:
    click.secho(f"error: {exc}", fg="red", bold=True, err=True)
    if exc.hint:
        click.secho(exc.hint, fg="yellow", err=True)


def _log_level(options: RunOptions, default: str) -> str:
    if options.debug:
        return "DEBUG"
    if options.verbose:
        return "INFO"
    return default


def _sync(ctx: Context) -> None:
    result = run_sync(ctx)
    if not result.changed:
        click.echo(
            f"Nothing has changed: still at {result.new}, and no rebase was needed."
        )
        if not ctx.options.force_retry:
            click.echo("Skipping verification (use --force-retry to verify anyway).")
            return
    run_verification(ctx, "sync", current_branch(ctx))


def _pick(ctx: Context) -> None:
    result = run_pick(ctx)
    click.echo(f"Harvested treadmill PR #{result.pr_number} onto {result.local}.")
    run_verification(ctx, "pick", current_branch(ctx))


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--sync", "do_sync", is_flag=True,
    help="Advance the treadmill: rebase and re-vendor.",
)
@click.option(
    "--pick", "do_pick", is_flag=True,
    help="Harvest the treadmill PR onto the vendor commit at HEAD.",
)
@click.option(
    "--force-old-main", is_flag=True,
    help="With --pick: proceed even if the treadmill PR is based on a newer integration branch.",
)
@click.option(
    "--force-retry", is_flag=True,
    help="With --sync: run verification even when nothing changed.",
)
@click.option("-n", "--dry-run", is_flag=True, help="Show what would be done; change nothing.")
@click.option("-v", "--verbose", is_flag=True, help="Log progress details.")
@click.option("--debug", is_flag=True, help="Log every external command.")
@click.option(
    "--repo",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Repository to operate on.",
)
@click.version_option(__version__, prog_name="vendor-treadmill")
def cli(
    do_sync: bool,
    do_pick: bool,
    force_old_main: bool,
    force_retry: bool,
    dry_run: bool,
    verbose: bool,
    debug: bool,
    repo: Path,
) -> None:
    """Keep a vendored dependency rolling on a never-merged treadmill branch.

    --sync rebases the treadmill branch onto the integration branch and
    vendors the dependency's latest development state. --pick brings the
    treadmill PR's fixes into a real vendor commit. Exactly one is required.
    """
    if do_sync == do_pick:
        raise click.UsageError("exactly one of --sync or --pick is required")
    if force_old_main and not do_pick:
        raise click.UsageError("--force-old-main only applies to --pick")
    if force_retry and not do_sync:
        raise click.UsageError("--force-retry only applies to --sync")

    options = RunOptions(
        dry_run=dry_run,
        verbose=verbose,
        debug=debug,
        force_retry=force_retry,
        force_old_main=force_old_main,
    )
    settings = get_settings()
    configure_logging(
        _log_level(options, settings.log_level),
        json_output=bool(settings.log_json),
    )
    ctx = Context(repo=repo.resolve(), settings=settings, options=options)
    logger.debug("options: %s", options)

    try:
        validate_settings(settings)
        assert_clean(ctx)
        if do_sync:
            _sync(ctx)
        else:
            _pick(ctx)
    except TreadmillError as exc:
        _report(exc)
        raise SystemExit(1) from exc
    finally:
        clear_context()
