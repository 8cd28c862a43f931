"""CLI application for vaultgate using Rich and Typer."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import List, Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from vaultgate.core.args import decode_tokens
from vaultgate.core.config import setup_logging
from vaultgate.core.errors import VaultGateError
from vaultgate.core.router import Router
from vaultgate.core.settings import load_config
from vaultgate.core.tools import GRAPH_SECTIONS, VaultTools
from vaultgate.core.types import TRANSPORT_PRIORITY

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="vaultgate",
    help="vaultgate - query and edit a notes vault over any reachable transport",
    no_args_is_help=True,
)

console = Console()

_state: dict[str, Optional[str]] = {"config": None, "transport": None}


def _build_router() -> Router:
    config = load_config(_state["config"], transport=_state["transport"])
    return Router.from_config(config)


def _run(work: Callable[[Router], Awaitable[str]], markdown: bool = False) -> None:
    """Build a router, run one unit of work, print the result, close the router."""

    async def _go() -> str:
        router = _build_router()
        try:
            return await work(router)
        finally:
            await router.aclose()

    try:
        output = asyncio.run(_go())
    except VaultGateError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    if not output:
        return
    if markdown:
        console.print(Markdown(output))
    else:
        console.print(output, markup=False, highlight=False)


@app.command()
def run(
    command: str = typer.Argument(..., help="Logical command, e.g. read or property:set"),
    tokens: Optional[List[str]] = typer.Argument(None, help="key=value arguments or bare flags"),
    vault: Optional[str] = typer.Option(None, "--vault", help="Vault name for the CLI transport"),
):
    """Run one logical command and print its raw result."""
    bag = decode_tokens(tokens or [])
    _run(lambda router: router.dispatch(command, bag, vault=vault))


@app.command()
def read(file: str = typer.Argument(..., help="Note path or name")):
    """Print a note."""
    _run(lambda router: VaultTools(router).read(file))


@app.command()
def search(
    query: str = typer.Argument(..., help="Text to look for"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum results"),
):
    """Keyword search across the vault."""
    _run(lambda router: VaultTools(router).search(query, limit), markdown=True)


@app.command()
def info(file: str = typer.Argument(..., help="Note path or name")):
    """Everything known about one note."""
    _run(lambda router: VaultTools(router).info(file), markdown=True)


@app.command()
def graph(
    include: Optional[List[str]] = typer.Option(
        None,
        "--include",
        "-i",
        help=f"Sections to include (any of: {', '.join(GRAPH_SECTIONS)})",
    ),
):
    """Vault graph health report."""
    _run(lambda router: VaultTools(router).graph(include or None), markdown=True)


@app.command()
def files(
    folder: Optional[str] = typer.Option(None, "--folder", help="Only files under this folder"),
    ext: Optional[str] = typer.Option(None, "--ext", help="Only files with this extension"),
    total: bool = typer.Option(False, "--total", help="Print the count only"),
):
    """List vault files."""
    _run(lambda router: VaultTools(router).list(folder, ext, total))


@app.command()
def transport():
    """Probe every transport and show which one would be used."""

    async def _probe(router: Router) -> tuple[dict, Optional[str]]:
        reachable = {}
        for t in TRANSPORT_PRIORITY:
            reachable[t] = await router.backend(t).probe()
        try:
            chosen = (await router.resolve()).transport.value
        except VaultGateError as e:
            logger.debug(f"Resolution failed: {e}")
            chosen = None
        return reachable, chosen

    async def _go():
        router = _build_router()
        try:
            return router.mode, await _probe(router)
        finally:
            await router.aclose()

    try:
        mode, (reachable, chosen) = asyncio.run(_go())
    except VaultGateError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title=f"Transports (mode: {mode.value})", show_header=True)
    table.add_column("Transport", style="cyan")
    table.add_column("Status")
    table.add_column("Selected")
    for t, ok in reachable.items():
        status = "[green]OK[/green]" if ok else "[red]UNREACHABLE[/red]"
        table.add_row(t.value, status, "[green]*[/green]" if t.value == chosen else "")
    console.print(table)

    if chosen is None:
        console.print("[red]Error: no transport available[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="YAML config file (default: $VAULTGATE_CONFIG_FILE)"
    ),
    transport: Optional[str] = typer.Option(
        None, "--transport", "-t", help="auto, process, http or filesystem"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """vaultgate - query and edit a notes vault."""
    setup_logging("DEBUG" if debug else None)
    _state["config"] = config
    _state["transport"] = transport


def run_cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run_cli()
