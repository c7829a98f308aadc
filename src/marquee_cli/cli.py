from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import ConfigError, MarqueeConfig, find_config, load_config
from .offsets import OffsetStore
from .resolve.resolver import AssetResolver
from .scrape.manager import ScraperManager
from .store import AssetStore
from .types import AssetRequest, MediaKind

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", dir_okay=False, help="Path to marquee.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )
    ctx.obj = config


def _load(ctx: typer.Context) -> MarqueeConfig:
    path = ctx.obj or find_config()
    try:
        return load_config(path)
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        raise typer.Exit(code=2) from e


@app.command()
def resolve(
    ctx: typer.Context,
    event: str = typer.Argument(..., help="system-selected, game-selected or game-start"),
    system: str = typer.Argument(...),
    game: str = typer.Argument(...),
    rom: Optional[str] = typer.Option(None, "--rom", help="Full ROM path"),
    dmd: bool = typer.Option(False, "--dmd", help="Resolve for the DMD panel"),
    wait: float = typer.Option(0.0, "--wait", min=0.0, help="Seconds to wait for a background scrape"),
):
    """Print the media file the panel should show for an event."""
    config = _load(ctx)
    resolver = AssetResolver(config)
    request = AssetRequest(
        event=event,
        system=system,
        game=game,
        rom_path=rom,
        media_kind=MediaKind.DMD if dmd else MediaKind.MARQUEE,
    )

    refreshed: list[Path] = []
    done = threading.Event()

    def on_resolved(req: AssetRequest, path: Path) -> None:
        refreshed.append(path)
        done.set()

    resolver.subscribe(on_resolved)
    try:
        path = resolver.resolve(request)
        console.print(str(path))
        scraping = done.is_set() or resolver.scrapers.is_scraping(resolver.scrape_identity(request))
        if wait > 0 and scraping:
            console.print(f"[dim]Waiting up to {wait:g}s for scrape...[/dim]")
            if done.wait(wait):
                console.print(str(refreshed[-1]))
            else:
                console.print("[yellow]Scrape still running[/yellow]")
    finally:
        resolver.close()


@app.command("clear-failures")
def clear_failures(
    ctx: typer.Context,
    scraper: Optional[str] = typer.Option(None, "--scraper", help="Only this scraper"),
):
    """Forget remembered lookup failures so they are tried again."""
    config = _load(ctx)
    manager = ScraperManager(config)
    try:
        cleared = manager.clear_failures(scraper)
    except ConfigError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=2) from e
    finally:
        manager.shutdown(wait=False)
    console.print(f"[bold green]Cleared[/bold green] {', '.join(cleared)}")


@app.command()
def offsets(
    ctx: typer.Context,
    system: str = typer.Argument(...),
    game: str = typer.Argument(...),
    dx: int = typer.Option(0, "--dx"),
    dy: int = typer.Option(0, "--dy"),
    scale: float = typer.Option(0.0, "--scale", help="Scale delta"),
    logo: bool = typer.Option(True, "--logo/--fanart", help="Adjust the logo or the background"),
):
    """Adjust and print the stored composition offsets for a game."""
    config = _load(ctx)
    store = OffsetStore(config.paths.cache_root / "offsets.json")
    if dx or dy:
        store.update_offset(system, game, dx, dy, logo)
    if scale:
        store.update_scale(system, game, scale, logo)

    params = store.get(system, game)
    table = Table(title=f"{system} / {game}")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    for key, value in params.to_dict().items():
        table.add_row(key, f"{value:g}" if isinstance(value, float) else str(value))
    console.print(table)


@app.command()
def placeholders(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force"),
):
    """Create the default and scraping placeholder images."""
    config = _load(ctx)
    store = AssetStore(config)
    created: list[Path] = []
    for kind in MediaKind:
        created.append(store.default_placeholder(kind, force=force))
        created.append(store.scraping_placeholder(kind, force=force))
    for path in created:
        console.print(f"Wrote {path}")


@app.command()
def status(ctx: typer.Context):
    """Show scraper order, remembered failures and concurrency limits."""
    config = _load(ctx)
    manager = ScraperManager(config)
    table = Table(title="Scrapers")
    table.add_column("Scraper")
    table.add_column("Pending", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Ceiling", justify="right")
    try:
        for coordinator in manager.coordinators():
            table.add_row(
                coordinator.source.display_name,
                str(coordinator.pending_count),
                str(len(coordinator.negative_cache)),
                str(coordinator.budget.ceiling),
            )
    finally:
        manager.shutdown(wait=False)
    console.print(table)
    state = "[green]on[/green]" if manager.enabled else "[yellow]off[/yellow]"
    console.print(f"Auto-scrape: {state}")
