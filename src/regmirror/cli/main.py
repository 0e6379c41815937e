"""
CLI for the registry mirror.

Commands:
    regmirror query PATH - Show the values and known sub-keys of a key
    regmirror set PATH NAME TYPE DATA - Set a value
    regmirror delete PATH - Delete a key, one value, or all values
    regmirror export PATH FILE - Export a key to a .reg file
    regmirror import FILE - Import a .reg file
    regmirror config - Show current configuration
    regmirror version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Any, Coroutine, Optional, TypeVar

import typer
from pydantic import ValidationError as SettingsValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from regmirror import __version__
from regmirror.bulk import import_file
from regmirror.config import Settings, clear_settings_cache, get_settings
from regmirror.exceptions import ConfigurationError, RegError
from regmirror.logging import setup_logging
from regmirror.namespace import Registry, get_registry
from regmirror.values import format_value

app = typer.Typer(
    name="regmirror",
    help="Registry mirror - cached access to the Windows registry through reg.exe",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")

ViewOption = Annotated[
    Optional[str],
    typer.Option("--view", "-w", help="Registry view (32 or 64)"),
]


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except SettingsValidationError:
        return None


def _registry() -> Registry:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'regmirror config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    try:
        return get_registry()
    except ConfigurationError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning registry errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except RegError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _finish(ok: bool, message: str) -> None:
    if not ok:
        error_console.print(f"[red]Failed:[/red] {message}")
        raise typer.Exit(1)
    console.print(f"[green]OK[/green] {message}")


@app.command()
def query(
    path: Annotated[str, typer.Argument(help="Key path, e.g. HKCU\\Software\\Vendor")],
    view: ViewOption = None,
) -> None:
    """Show the values and sub-keys of a key."""
    registry = _registry()

    async def _query() -> None:
        key = registry.resolve(path, view)
        values = await key.read_values()

        table = Table(title=key.path, show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Data", style="green")
        for name, value in sorted(values.items()):
            table.add_row(escape(name or "(Default)"), value.reg_type, escape(format_value(value)))
        console.print(table)

        for child in key.children():
            console.print(f"[dim]{escape(child.path)}[/dim]")

    _run(_query())


@app.command("set")
def set_value(
    path: Annotated[str, typer.Argument(help="Key path")],
    name: Annotated[str, typer.Argument(help="Value name ('' for the default value)")],
    type_name: Annotated[str, typer.Argument(metavar="TYPE", help="Value type, e.g. REG_SZ")],
    data: Annotated[str, typer.Argument(help="Value data in reg.exe syntax")],
    view: ViewOption = None,
) -> None:
    """Set a value, creating the key if needed."""
    registry = _registry()

    async def _set() -> bool:
        return await registry.resolve(path, view).set_value_string(name, type_name, data)

    _finish(_run(_set()), f"{path} {name or '(Default)'}")


@app.command()
def delete(
    path: Annotated[str, typer.Argument(help="Key path")],
    value: Annotated[
        Optional[str],
        typer.Option("--value", "-v", help="Delete only this value"),
    ] = None,
    all_values: Annotated[
        bool,
        typer.Option("--all-values", "-a", help="Delete every value but keep the key"),
    ] = False,
    view: ViewOption = None,
) -> None:
    """Delete a key with its sub-keys, one of its values, or all of its values."""
    registry = _registry()

    async def _delete() -> bool:
        key = registry.resolve(path, view)
        if value is not None:
            return await key.delete_value(value)
        if all_values:
            return await key.clear()
        return await key.destroy()

    _finish(_run(_delete()), path)


@app.command()
def export(
    path: Annotated[str, typer.Argument(help="Key path")],
    file: Annotated[str, typer.Argument(help="Destination .reg file")],
    view: ViewOption = None,
) -> None:
    """Export a key and its sub-keys to a .reg file."""
    registry = _registry()

    async def _export() -> bool:
        return await registry.resolve(path, view).export(file)

    _finish(_run(_export()), f"{path} -> {file}")


@app.command("import")
def import_(
    file: Annotated[str, typer.Argument(help="Source .reg file")],
    view: ViewOption = None,
) -> None:
    """Import a .reg file."""
    registry = _registry()
    _finish(_run(import_file(file, view, registry=registry)), file)


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Registry Mirror Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print()
        error_console.print("Check these environment variables:")
        error_console.print("  - REG_DEFAULT_VIEW (32 or 64)")
        error_console.print("  - REG_MULTI_SZ_SEPARATOR (a single character)")
        error_console.print("  - REG_MAX_CONCURRENT_COMMANDS (1-64)")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    try:
        display = settings.redacted_display()
    except ConfigurationError as e:
        error_console.print(f"[red]Configuration is invalid:[/red] {e}")
        raise typer.Exit(1)

    for key, value in display.items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"regmirror version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
