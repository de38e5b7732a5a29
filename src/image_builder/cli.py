"""CLI for image-builder."""

from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import ops
from .config import BuilderConfig, load_config
from .core import PipelineState, RunReport
from .errors import ConfigError, ImageBuilderError
from .logging_config import configure_logging


app = typer.Typer(help="""\
Build and push Docker images for the sub-projects of a repository that the
latest commit on a branch touched. A sub-project is any directory holding a
Dockerfile.""")

console = Console()


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]✗[/red] {error}")
    raise typer.Exit(1)


def _flag(value: bool) -> Optional[bool]:
    # Unset flags must not override the config file or environment
    return True if value else None


def _load_config(ctx: typer.Context, **extra: Any) -> BuilderConfig:
    """Merge file, environment and CLI values, then set up logging."""
    settings: Dict[str, Any] = ctx.obj or {}
    overrides = dict(settings.get("overrides", {}))
    overrides.update(extra)
    try:
        config = load_config(settings.get("config_path"), overrides)
    except ConfigError as e:
        _fail(e)
    configure_logging(debug=config.debug, json_logs=config.json_logs)
    return config


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file (default is $HOME/.image-builder.yaml)"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Debug mode"),
    json_logs: bool = typer.Option(False, "--json", "-j", help="Log in json format"),
    git_url: Optional[str] = typer.Option(None, "--git-url", "-g", help="Git repo to build"),
    git_branch: Optional[str] = typer.Option(None, "--git-branch", "-b", help="Git branch to build (default: master)"),
    key_path: Optional[Path] = typer.Option(None, "--key-path", "-k", help="Path to private key"),
):
    """Options shared by every command; each may also be set as IB_<NAME> or in the config file."""
    ctx.obj = {
        "config_path": config_path,
        "overrides": {
            "debug": _flag(debug),
            "json_logs": _flag(json_logs),
            "git_url": git_url,
            "git_branch": git_branch,
            "key_path": key_path,
        },
    }


@app.command()
def roots(ctx: typer.Context):
    """Print the build roots touched by the latest commit."""
    config = _load_config(ctx)
    try:
        _, found = ops.resolve(config)
    except ImageBuilderError as e:
        _fail(e)

    for root in found:
        typer.echo(root)


@app.command()
def build(
    ctx: typer.Context,
    docker_host: Optional[str] = typer.Option(
        None, "--docker-host", "-H", help="Docker engine endpoint (default: unix:///var/run/docker.sock)"
    ),
    registry_auth: Optional[str] = typer.Option(
        None, "--registry-auth", help="Base64 encoded registry credentials (X-Registry-Auth format)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve build roots and tags without building"),
):
    """Build and push an image for every build root touched by the latest commit."""
    config = _load_config(
        ctx,
        docker_host=docker_host,
        registry_auth=registry_auth,
        dry_run=_flag(dry_run),
    )
    try:
        report = ops.run(config)
    except ImageBuilderError as e:
        _fail(e)

    _print_report(report)


_STATE_STYLES = {
    PipelineState.DONE: "green",
    PipelineState.FAILED: "red",
    PipelineState.IDLE: "dim",
}


def _print_report(report: RunReport) -> None:
    if not report.results:
        console.print(f"[dim]No build roots touched by {report.commit_id[:7]}[/dim]")
        return

    title = f"{report.ref_name} @ {report.commit_id[:7]}"
    if report.dry_run:
        title += " (dry run)"
    table = Table(title=title)
    table.add_column("Build root", style="cyan")
    table.add_column("Tags")
    table.add_column("State")
    for result in report.results:
        style = _STATE_STYLES.get(result.state, "yellow")
        table.add_row(
            result.build_root,
            "\n".join(result.tags),
            f"[{style}]{result.state.value}[/{style}]",
        )
    console.print(table)
