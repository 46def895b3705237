"""gitreload CLI Entry Point.

Commands:
    run     Run the reference agent with git-driven reloads.
    status  Print the staging state of a state directory as JSON.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import structlog
import typer

from gitreload.core.config import Settings, StatusSettings, create_settings
from gitreload.core.exceptions import ConfigurationError, GitReloadError
from gitreload.core.logging import configure_logging, sanitize_repo_url
from gitreload.host.agent import run_agent
from gitreload.staging.store import StagingStore, classify


log = structlog.get_logger()

app = typer.Typer(
    name="gitreload",
    help="Git-driven configuration hot reload for log agents",
    no_args_is_help=True,
)


def _build_overrides(
    repository_url: Optional[str] = None,
    ref: Optional[str] = None,
    file_path: Optional[str] = None,
    state_directory: Optional[Path] = None,
    poll_interval: Optional[int] = None,
    log_level: Optional[str] = None,
) -> dict[str, Any]:
    watch: dict[str, Any] = {}
    if repository_url is not None:
        watch["repository_url"] = repository_url
    if ref is not None:
        watch["ref"] = ref
    if file_path is not None:
        watch["file_path"] = file_path
    if state_directory is not None:
        watch["state_directory"] = str(state_directory)
    if poll_interval is not None:
        watch["poll_interval_seconds"] = poll_interval

    overrides: dict[str, Any] = {}
    if watch:
        overrides["watch"] = watch
    if log_level is not None:
        overrides["logging"] = {"level": log_level}
    return overrides


def _load_settings(
    config: Optional[Path],
    overrides: dict[str, Any],
    settings_cls: type = Settings,
) -> Any:
    """Load settings or exit with an error message."""
    if config is not None and not config.exists():
        typer.echo(f"Error: Config file '{config}' not found", err=True)
        raise typer.Exit(code=1)
    try:
        return create_settings(
            config_path=config, overrides=overrides, settings_cls=settings_cls
        )
    except ConfigurationError as e:
        typer.echo(f"Error loading config: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def run(
    bootstrap: Path = typer.Option(
        ..., "--bootstrap", "-b", help="Agent document the process is launched with"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to settings file"
    ),
    repository_url: Optional[str] = typer.Option(None, "--repository-url", help="Git repository URL"),
    ref: Optional[str] = typer.Option(None, "--ref", help="Branch, tag or commit to track"),
    file_path: Optional[str] = typer.Option(None, "--file-path", help="Watched file inside the repository"),
    state_directory: Optional[Path] = typer.Option(None, "--state-directory", help="Clone and staging directory"),
    poll_interval: Optional[int] = typer.Option(None, "--poll-interval", help="Seconds between checks"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
) -> None:
    """Run the agent until SIGINT/SIGTERM, reloading on new revisions."""
    overrides = _build_overrides(
        repository_url, ref, file_path, state_directory, poll_interval, log_level
    )
    settings = _load_settings(config, overrides)
    configure_logging(settings.logging)

    if not bootstrap.is_file():
        typer.echo(f"Error: Bootstrap document '{bootstrap}' not found", err=True)
        raise typer.Exit(code=1)

    log.info(
        "agent_starting",
        bootstrap=str(bootstrap),
        repository=sanitize_repo_url(settings.watch.repository_url),
        ref=settings.watch.ref,
    )
    try:
        asyncio.run(run_agent(settings, bootstrap))
    except GitReloadError as e:
        log.error("agent_start_failed", error=str(e), **e.context)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def status(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to settings file"
    ),
    state_directory: Optional[Path] = typer.Option(None, "--state-directory", help="Clone and staging directory"),
) -> None:
    """Show pointers, staging state and header presence as JSON.

    Only the state directory is required; repository options are reported
    when configured.
    """
    settings = _load_settings(
        config, _build_overrides(state_directory=state_directory), StatusSettings
    )
    watch = settings.watch
    store = StagingStore(watch.configs_path, watch.document_suffix)

    try:
        snapshot = store.snapshot()
    except GitReloadError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    report = {
        "repository": sanitize_repo_url(watch.repository_url) if watch.repository_url else None,
        "ref": watch.ref,
        "configs_path": str(store.configs_path),
        "state": str(classify(snapshot)),
        "current_revision": store.revision_of(snapshot.current),
        "staged_revision": store.revision_of(snapshot.staged),
        "pointers": snapshot.as_dict(),
        "header_present": store.header_path.is_file(),
    }
    typer.echo(json.dumps(report, indent=2))


if __name__ == "__main__":
    app()
