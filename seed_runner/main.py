import sys
from pathlib import Path
import click
from pydantic import ValidationError

from . import __version__
from .errors import ConfigurationError, SeedError
from .report import ExecutionReport
from .runner import SeedRunner
from .seed_schema import Backend, Direction, RunSettings, format_validation_error
from .utility import write_yaml_file


@click.group(help="SeedRunner CLI")
@click.version_option(__version__, prog_name="SeedRunner")
def main():
    """SeedRunner top-level command group."""
    pass


def seed_options(f):
    """Options shared by the up and down commands; each also reads a SEED_* environment variable."""
    options = [
        click.option("--database", required=True, envvar="SEED_DATABASE", help="Base URL of the target server, e.g. http://localhost:9200."),
        click.option("--path", "seed_path", required=True, envvar="SEED_PATH", type=click.Path(exists=True, file_okay=False, path_type=Path), help="Directory holding the *.up.json / *.down.json seed files."),
        click.option("--backend", type=click.Choice([b.value for b in Backend]), default=Backend.http.value, show_default=True, envvar="SEED_BACKEND", help="Seed file schema: generic REST or Elasticsearch-style."),
        click.option("--index", envvar="SEED_INDEX", default=None, help="Value substituted for ${index} in paths, headers and bodies."),
        click.option("--exclude-header", envvar="SEED_EXCLUDE_HEADER", default="", help="Extra headers added to every request, as key:value,key:value."),
        click.option("--skip-error", is_flag=True, envvar="SEED_SKIP_ERROR", help="Log HTTP error responses (status >= 400) and continue instead of aborting."),
        click.option("--debug", is_flag=True, envvar="SEED_DEBUG", help="Print every request and response."),
        click.option("--dry-run", is_flag=True, help="Parse and resolve seed files and log requests, but do not send them."),
        click.option("--timeout", type=float, default=None, envvar="SEED_TIMEOUT", help="Per-request timeout in seconds."),
        click.option("--report", "report_path", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write the execution report as YAML to this file."),
        click.option("--log", "log_path", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Append a run log to this file."),
    ]
    for opt in reversed(options):
        f = opt(f)
    return f


def _run(direction: Direction, **kwargs) -> None:
    try:
        settings = RunSettings(
            database=kwargs["database"],
            path=kwargs["seed_path"],
            backend=kwargs["backend"],
            index=kwargs["index"],
            exclude_header=kwargs["exclude_header"] or "",
            skip_error=kwargs["skip_error"],
            debug=kwargs["debug"],
            dry_run=kwargs["dry_run"],
            timeout=kwargs["timeout"],
            report=kwargs["report_path"],
            log=kwargs["log_path"],
        )
    except ValidationError as e:
        click.echo(format_validation_error(e), err=True)
        sys.exit(9)

    if settings.dry_run:
        click.echo("Mode: DRY-RUN (no HTTP calls)")

    runner = SeedRunner(
        backend=settings.backend,
        timeout_s=settings.timeout,
        dry_run=settings.dry_run,
        log_path=settings.log,
    )
    report: ExecutionReport | None = None
    exit_code = 0
    try:
        report = runner.run(
            direction,
            settings.path,
            settings.database,
            index_token=settings.index,
            exclude_header=settings.exclude_header,
            skip_on_error=settings.skip_error,
            debug=settings.debug,
        )
    except ConfigurationError as e:
        report = e.report
        exit_code = 9
    except SeedError as e:
        report = e.report
        exit_code = 1

    if settings.report is not None and report is not None:
        try:
            write_yaml_file(settings.report, report.to_dict())
            click.echo(f"Wrote report: {settings.report}")
        except OSError as we:
            click.echo(f"Failed to write report: {we}", err=True)
            exit_code = exit_code or 1

    if report is not None and exit_code == 0 and report.skipped_count:
        click.echo(f"Completed with {report.skipped_count} skipped request(s)")
    sys.exit(exit_code)


@main.command(help="Apply *.up.json seed files in ascending file order.")
@seed_options
def up(**kwargs):
    _run(Direction.up, **kwargs)


@main.command(help="Apply *.down.json seed files in descending file order.")
@seed_options
def down(**kwargs):
    _run(Direction.down, **kwargs)
