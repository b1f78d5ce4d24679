"""Click-based command line entry point for e2dupes."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import click

from . import __version__
from .config import AppConfig, load_config
from .errors import DuplicatesError
from .labels import render_tree, result_to_dict
from .logging_conf import configure_logging
from .session import DuplicateSession, RemovalResult

log = logging.getLogger(__name__)

settings_path = click.Path(path_type=Path, exists=True)
output_path = click.Path(path_type=Path, file_okay=False)


@click.group(help="Find and remove duplicate channels in Enigma2 settings")
@click.version_option(__version__)
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="YAML config file (defaults to $E2DUPES_CONFIG).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Optional[Path]) -> None:
    """
    Root CLI group configuring logging before subcommands execute.
    """

    try:
        config = load_config(config_path)
    except DuplicatesError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(config.log_level or "INFO", "DEBUG" if verbose else None)
    log.debug("using config %s", config_path or "defaults")
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("scan")
@click.argument("path", required=False, type=settings_path)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the duplicate tree as JSON.")
@click.pass_obj
def cli_scan(obj: dict, path: Optional[Path], as_json: bool) -> None:
    """List duplicate services grouped by satellite and transponder."""

    config: AppConfig = obj["config"]
    with DuplicateSession(config=config) as session:
        result = _wait(session.load(_settings_dir(path, config)))
    if as_json:
        click.echo(json.dumps(result_to_dict(result), indent=2, ensure_ascii=False))
    else:
        for line in render_tree(result):
            click.echo(line)


@cli.command("remove-selected")
@click.argument("path", required=False, type=settings_path)
@click.option("--id", "service_ids", multiple=True, required=True, help="Service id to remove (repeatable).")
@click.option("--output", "out", default=None, type=output_path, help="Target folder for the cleaned settings.")
@click.pass_obj
def cli_remove_selected(obj: dict, path: Optional[Path], service_ids: Tuple[str, ...], out: Optional[Path]) -> None:
    """Remove the given services and write the result."""

    config: AppConfig = obj["config"]
    with DuplicateSession(config=config) as session:
        _wait(session.load(_settings_dir(path, config)))
        removal = _wait(session.remove_selected(service_ids))
        _report_and_save(session, removal, _output_dir(out, config))


@cli.command("remove-unbouqueted")
@click.argument("path", required=False, type=settings_path)
@click.option("--output", "out", default=None, type=output_path, help="Target folder for the cleaned settings.")
@click.option("--yes", "assume_yes", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_obj
def cli_remove_unbouqueted(obj: dict, path: Optional[Path], out: Optional[Path], assume_yes: bool) -> None:
    """Remove ALL services that are not in any bouquet, not only duplicates."""

    config: AppConfig = obj["config"]
    with DuplicateSession(config=config) as session:
        _wait(session.load(_settings_dir(path, config)))
        confirmed = assume_yes or not config.require_confirmation
        if not session.repository.bouquets:
            click.echo("There are no bouquets, nothing to compare against.")
            confirmed = False
        elif not confirmed:
            confirmed = click.confirm(
                "This action removes not only duplicates but ALL services not in any bouquet.\n"
                "Are you sure you want to continue?",
                default=False,
            )
        removal = _wait(session.remove_unbouqueted(confirmed))
        _report_and_save(session, removal, _output_dir(out, config))


@cli.command("remove-unbouqueted-duplicates")
@click.argument("path", required=False, type=settings_path)
@click.option("--output", "out", default=None, type=output_path, help="Target folder for the cleaned settings.")
@click.pass_obj
def cli_remove_unbouqueted_duplicates(obj: dict, path: Optional[Path], out: Optional[Path]) -> None:
    """Remove duplicate services that are in no bouquet."""

    config: AppConfig = obj["config"]
    with DuplicateSession(config=config) as session:
        _wait(session.load(_settings_dir(path, config)))
        removal = _wait(session.remove_unbouqueted_duplicates())
        _report_and_save(session, removal, _output_dir(out, config))


def _report_and_save(session: DuplicateSession, removal: RemovalResult, out: Optional[Path]) -> None:
    click.echo(f"Successfully removed {removal.removed} services.")
    if removal.scan is not None:
        click.echo(render_tree(removal.scan)[0])
    if removal.removed == 0:
        return
    if out is None:
        raise click.ClickException("no output folder given (use --output or output_dir in the config)")
    target = _wait(session.save(out))
    click.echo(f"Settings saved to {target}")


def _wait(future: Any) -> Any:
    try:
        return future.result()
    except DuplicatesError as exc:
        raise click.ClickException(str(exc)) from exc


def _settings_dir(path: Optional[Path], config: AppConfig) -> Path:
    if path is not None:
        return path
    if config.settings_dir is not None:
        return config.settings_dir
    raise click.UsageError("no settings folder given (argument PATH or settings_dir in the config)")


def _output_dir(out: Optional[Path], config: AppConfig) -> Optional[Path]:
    return out if out is not None else config.output_dir


def main(argv: Optional[Iterable[str]] = None) -> int:
    """
    Entry point returning an exit code for console scripts.
    """

    argv_list = list(argv if argv is not None else sys.argv[1:])
    try:
        cli.main(args=argv_list, prog_name="e2dupes", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return 1
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except SystemExit as exc:
        return int(exc.code or 0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
