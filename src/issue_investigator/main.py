"""CLI entrypoint for issue-investigator."""

from pathlib import Path

import rich_click as click
import uvicorn

from issue_investigator import __version__
from issue_investigator.config import Settings
from issue_investigator.errors import InvalidTriggerError, StateStoreError
from issue_investigator.gateway.app import create_app
from issue_investigator.logging_config import configure_logging
from issue_investigator.orchestrator.controllers import (
    ForgetCommand,
    InvestigatorCliController,
    ReleaseWorkerCommand,
    StatusCommand,
    TriggerCommand,
    WorkerCommand,
)
from issue_investigator.orchestrator.models import WorkerStopReason

click.rich_click.USE_MARKDOWN = True
CONTROLLER = InvestigatorCliController()

DATA_DIR_OPTION = click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="State directory (default: $ISSUE_INVESTIGATOR_DATA_DIR or /data).",
)


@click.group()
@click.version_option(version=__version__, prog_name="issue-investigator")
def issue_investigator() -> None:
    """Serialized investigation queue for GitHub issues."""


@issue_investigator.command("serve")
@click.option("--host", default=None, help="Bind address (default: $ISSUE_INVESTIGATOR_HOST).")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65_535),
    default=None,
    help="Bind port (default: $ISSUE_INVESTIGATOR_PORT or 8099).",
)
@DATA_DIR_OPTION
def serve(host: str | None, port: int | None, data_dir: Path | None) -> None:
    """Run the HTTP trigger endpoint."""

    settings = _load_settings(data_dir)
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_config=None,
    )


@issue_investigator.command("trigger")
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--issue", type=int, required=True, help="Issue number.")
@DATA_DIR_OPTION
def trigger(repo: str, issue: int, data_dir: Path | None) -> None:
    """Queue one issue, catch up with open issues and make sure a worker runs.

    Same flow as `POST /investigate`.
    """

    try:
        lines = CONTROLLER.trigger(TriggerCommand(data_dir=data_dir, repo=repo, issue=issue))
    except InvalidTriggerError as error:
        raise click.BadParameter(str(error)) from error
    except (ValueError, StateStoreError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@issue_investigator.command("worker")
@DATA_DIR_OPTION
def worker(data_dir: Path | None) -> None:
    """Drain the queue in the foreground until it is empty or the worker gives up."""

    configure_logging(_load_settings(data_dir).log_level)
    try:
        result = CONTROLLER.run_worker(WorkerCommand(data_dir=data_dir))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if result.summary.stop_reason == WorkerStopReason.NOT_OWNER:
        raise click.ClickException("Another worker owns the queue.")


@issue_investigator.command("status")
@DATA_DIR_OPTION
@click.option("--json", "as_json", is_flag=True, help="Print the snapshot as JSON.")
def status(data_dir: Path | None, as_json: bool) -> None:
    """Show pending items, investigated issues and worker liveness."""

    output_format = "json" if as_json else "table"
    try:
        lines = CONTROLLER.status(StatusCommand(data_dir=data_dir, output_format=output_format))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@issue_investigator.command("forget")
@click.option("--repo", required=True, help="Repository as owner/name.")
@click.option("--issue", type=int, required=True, help="Issue number.")
@DATA_DIR_OPTION
def forget(repo: str, issue: int, data_dir: Path | None) -> None:
    """Remove one issue from the investigated set so it can be queued again."""

    try:
        lines = CONTROLLER.forget(ForgetCommand(data_dir=data_dir, repo=repo, issue=issue))
    except InvalidTriggerError as error:
        raise click.BadParameter(str(error)) from error
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@issue_investigator.command("release-worker")
@DATA_DIR_OPTION
def release_worker(data_dir: Path | None) -> None:
    """Clear a worker marker left behind by a dead process."""

    try:
        lines = CONTROLLER.release_worker(ReleaseWorkerCommand(data_dir=data_dir))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _load_settings(data_dir: Path | None) -> Settings:
    try:
        settings = Settings.from_env(data_dir=data_dir)
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    return settings


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    issue_investigator()
