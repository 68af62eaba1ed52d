"""Typer CLI for theorem-shop."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="theorem", help="theorem-shop: verified checkout and note delivery")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the theorem-shop API server."""
    import uvicorn
    from theorem_shop.app import create_app

    console.print(f"[bold green]Starting theorem-shop on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check theorem-shop server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def catalog():
    """List the storage catalog with the prices checkout will charge."""
    from theorem_shop.common.config import get_settings
    from theorem_shop.common.exceptions import StorageError
    from theorem_shop.storage.r2 import R2Storage

    storage = R2Storage(get_settings())
    try:
        entries = asyncio.run(storage.list_catalog())
    except StorageError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)

    table = Table(title="Catalog")
    table.add_column("Key")
    table.add_column("Title")
    table.add_column("Price", justify="right")
    for entry in entries:
        price = entry.unit_price
        table.add_row(
            entry.key,
            entry.title or entry.name,
            f"${price:.2f}" if price is not None else "[dim]not for sale[/dim]",
        )
    console.print(table)


@app.command()
def fingerprint(
    cart_file: Path = typer.Argument(..., help="JSON file holding a list of cart items"),
):
    """Print the fingerprint of a cart, as checkout computes it."""
    from pydantic import TypeAdapter
    from pydantic import ValidationError as PydanticValidationError

    from theorem_shop.catalog.fingerprint import fingerprint as cart_fingerprint
    from theorem_shop.catalog.schemas import CartItem

    try:
        items = TypeAdapter(list[CartItem]).validate_python(json.loads(cart_file.read_text()))
    except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
        console.print(f"[bold red]Invalid cart:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[bold]{cart_fingerprint(items)}[/bold]")


if __name__ == "__main__":
    app()
