"""CLI entry point for the capture service."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from snapdiff.baseline.manager import BaselineManager
from snapdiff.capture.acquirer import RenderAcquirer
from snapdiff.capture.session import PlaywrightSessionFactory
from snapdiff.errors import CaptureJobError, InvalidInputError
from snapdiff.models.capture import CaptureRequest, CaptureResponse
from snapdiff.models.config import SECRET_ENV_VAR, ServiceConfig, StorageConfig
from snapdiff.pipeline import JobPipeline
from snapdiff.storage.local import LocalArtifactStore
from snapdiff.url_utils import identity_from_url, validate_target_url

console = Console()

DEFAULT_CONFIG = "snapdiff-config.json"
SECRET_REF = f"env:{SECRET_ENV_VAR}"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> ServiceConfig:
    if not Path(path).exists():
        logging.getLogger(__name__).debug("No config at %s, using defaults", path)
        return ServiceConfig()
    try:
        return ServiceConfig.load(path)
    except ValidationError as e:
        raise click.ClickException(f"Invalid config {path}:\n{e}") from e


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual-regression capture service"""
    setup_logging(verbose)


@cli.command()
@click.option("--public-url", default="http://localhost:10000", help="Base URL used in signed artifact links")
@click.option("--artifacts-dir", default="./artifacts", help="Where artifacts are stored")
def init(public_url: str, artifacts_dir: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG} already exists. Overwrite?"):
            return

    data = ServiceConfig(
        storage=StorageConfig(root_dir=artifacts_dir, public_base_url=public_url, signing_secret="unset")
    ).model_dump()
    # Only the reference to the secret is written to disk
    data["storage"]["signing_secret"] = SECRET_REF
    with open(config_path, "w") as f:
        json.dump(data, f, indent=2)
    console.print(f"[green]Created {config_path}[/green]")
    console.print(f"\nExport {SECRET_ENV_VAR} with a long random value, then run:")
    console.print("  [blue]snapdiff serve[/blue]")


@cli.command()
@click.argument("url")
@click.option("--ignore", default=None, help='JSON list of regions, e.g. \'[{"x":0,"y":0,"width":10,"height":10}]\'')
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def capture(url: str, ignore: str | None, config: str) -> None:
    """Capture URL once and diff it against its baseline."""
    cfg = _load_config(config)
    try:
        request = CaptureRequest.from_query(url, ignore)
    except InvalidInputError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)

    try:
        response = asyncio.run(_capture_once(cfg, request))
    except CaptureJobError as e:
        console.print(f"[red]Capture failed ({type(e).__name__}):[/red] {e}")
        sys.exit(1)

    table = Table(title=response.message)
    table.add_column("Artifact", style="bold")
    table.add_column("URL")
    table.add_row("Baseline", response.baseline_url)
    if response.capture_url:
        table.add_row("Capture", response.capture_url)
        table.add_row("Diff", response.diff_url or "")
    console.print(table)
    if response.changed_pixels:
        console.print(f"[yellow]{response.changed_pixels} pixels changed[/yellow]")


async def _capture_once(cfg: ServiceConfig, request: CaptureRequest) -> CaptureResponse:
    store = LocalArtifactStore.from_config(cfg.storage)
    pipeline = JobPipeline(
        acquirer=RenderAcquirer(PlaywrightSessionFactory(cfg), cfg),
        baseline_manager=BaselineManager(store),
        store=store,
        config=cfg,
    )
    async with pipeline:
        return await pipeline.submit(request)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=10000, type=int, help="Bind port")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def serve(host: str, port: int, config: str) -> None:
    """Run the HTTP capture service."""
    import uvicorn

    from snapdiff.api import create_app

    cfg = _load_config(config)
    uvicorn.run(create_app(cfg), host=host, port=port, log_config=None)


@cli.group()
def baseline() -> None:
    """Inspect or reset stored baselines."""
    pass


def _baseline_manager(config: str) -> BaselineManager:
    cfg = _load_config(config)
    return BaselineManager(LocalArtifactStore.from_config(cfg.storage))


@baseline.command("show")
@click.argument("url")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def baseline_show(url: str, config: str) -> None:
    """Show whether URL has a baseline."""
    try:
        validate_target_url(url)
    except InvalidInputError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    info = asyncio.run(_baseline_manager(config).describe(identity_from_url(url)))
    if not info.exists:
        console.print(f"[yellow]No baseline for {url}[/yellow] (identity {info.identity})")
        return
    console.print(f"[green]Baseline:[/green] {info.key}")
    console.print(f"  [blue]{info.url}[/blue]")


@baseline.command("reset")
@click.argument("url")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def baseline_reset(url: str, yes: bool, config: str) -> None:
    """Delete URL's baseline so the next capture establishes a new one."""
    try:
        validate_target_url(url)
    except InvalidInputError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    if not yes and not click.confirm(f"Reset the baseline for {url}?"):
        return
    removed = asyncio.run(_baseline_manager(config).reset(identity_from_url(url)))
    if removed:
        console.print("[green]Baseline reset[/green]")
    else:
        console.print(f"[yellow]No baseline for {url}[/yellow]")


if __name__ == "__main__":
    cli()
