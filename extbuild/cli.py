"""extbuild CLI — Typer entry point with Rich formatting."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from extbuild.config import Settings, load_settings, search_directories
from extbuild.events import InvocationEvent, read_events, write_event
from extbuild.registry import PluginError, Registry
from extbuild.runner import PluginClient
from extbuild.targets import BuildUnit, bin_target, lib_target

app = typer.Typer(
    name="extbuild",
    help="extbuild — discover and drive external build-system plugins.",
    no_args_is_help=True,
)
console = Console()

_DEFAULT_CONFIG = Path("extbuild.yaml")

ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to extbuild.yaml"),
]


def _settings(path: Path) -> Settings:
    """Load settings, falling back to defaults when the default file is absent."""
    if path == _DEFAULT_CONFIG and not path.exists():
        return Settings()
    try:
        return load_settings(path)
    except (FileNotFoundError, ValueError) as exc:
        _fail("config", exc)


def _client(path: Path) -> PluginClient:
    settings = _settings(path)
    return PluginClient(Registry.from_settings(settings), settings)


def _fail(title: str, exc: Exception) -> NoReturn:
    console.print(Panel(Text(str(exc).strip()), title=f"[red]{title}[/red]", border_style="red"))
    raise typer.Exit(code=1) from exc


@app.command(name="list")
def list_plugins(config: ConfigOption = _DEFAULT_CONFIG) -> None:
    """List discovered plugins."""
    client = _client(config)
    registry = client.registry

    if not len(registry):
        console.print(f"[dim]No {registry.kind.noun} plugins found.[/dim]")
        return

    table = Table(title=f"{registry.kind.noun.capitalize()} plugins")
    table.add_column("Identifier", style="magenta")
    table.add_column("Path")
    table.add_column("Toolchain hash", style="cyan", no_wrap=True)

    for handle in registry:
        table.add_row(escape(handle.identifier), escape(str(handle.path)), f"{handle.toolchain_hash:016x}")
    for handle in registry.shadowed:
        table.add_row(f"[dim]{escape(handle.identifier)}[/dim]", f"[dim]{escape(str(handle.path))} (shadowed)[/dim]", "")

    console.print(table)


@app.command()
def targets(
    plugin: Annotated[str, typer.Argument(help="Plugin identifier")],
    package_name: Annotated[str, typer.Argument(help="Package name")],
    package_root: Annotated[Path, typer.Argument(help="Package root directory")] = Path("."),
    config: ConfigOption = _DEFAULT_CONFIG,
) -> None:
    """Resolve a package's targets through a plugin."""
    client = _client(config)
    warnings: list[str] = []
    errors: list[str] = []
    try:
        found = client.targets(plugin, package_name, package_root.resolve(), warnings, errors)
    except PluginError as exc:
        _fail(plugin, exc)

    table = Table(title=f"Targets of {escape(package_name)}")
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Source")
    table.add_column("Edition")
    for tgt in found:
        table.add_row(tgt.kind, escape(tgt.name), escape(str(tgt.src_path)), tgt.edition)
    console.print(table)

    for msg in warnings:
        console.print(f"  [yellow]warning:[/yellow] {escape(msg)}")
    for msg in errors:
        console.print(f"  [red]error:[/red] {escape(msg)}")


@app.command(name="hash")
def toolchain_hash(
    plugin: Annotated[str, typer.Argument(help="Plugin identifier")],
    config: ConfigOption = _DEFAULT_CONFIG,
) -> None:
    """Print a plugin's toolchain hash."""
    client = _client(config)
    try:
        value = client.toolchain_hash(plugin)
    except PluginError as exc:
        _fail(plugin, exc)
    console.print(f"{value:016x}")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def build(
    plugin: Annotated[str, typer.Argument(help="Plugin identifier")],
    args: Annotated[list[str] | None, typer.Argument(help="Arguments passed to the plugin")] = None,
    config: ConfigOption = _DEFAULT_CONFIG,
) -> None:
    """Run a plugin's build command with inherited stdio."""
    settings = _settings(config)
    client = PluginClient(Registry.from_settings(settings), settings)
    try:
        cmd = client.compiler(plugin).args_extend(args or [])
    except PluginError as exc:
        _fail(plugin, exc)

    try:
        code = subprocess.run(cmd.argv(), check=False).returncode
    except OSError as exc:
        _fail(plugin, exc)

    if settings.record_events:
        event = InvocationEvent(
            action="build",
            plugin=plugin,
            status="ok" if code == 0 else "error",
            detail=str(cmd),
        )
        try:
            write_event(settings.log_path(), event)
        except OSError as exc:
            console.print(f"[yellow]Could not record build event: {escape(str(exc))}[/yellow]")
    if code != 0:
        raise typer.Exit(code=code)


@app.command()
def outputs(
    plugin: Annotated[str, typer.Argument(help="Plugin identifier")],
    package_name: Annotated[str, typer.Argument(help="Package name")],
    target_name: Annotated[str, typer.Argument(help="Target name")],
    src: Annotated[Path, typer.Option("--src", help="Target source path")],
    out_dir: Annotated[Path, typer.Option("--out-dir", help="Build output directory")],
    package_root: Annotated[Path, typer.Option("--root", help="Package root")] = Path("."),
    lib: Annotated[bool, typer.Option("--lib", help="Target is a library")] = False,
    config: ConfigOption = _DEFAULT_CONFIG,
) -> None:
    """List the files a plugin produced for a built target."""
    client = _client(config)
    target = lib_target(target_name, src) if lib else bin_target(target_name, src)
    unit = BuildUnit(package_name, package_root.resolve(), target, out_dir)
    try:
        paths = client.outputs(plugin, unit)
    except PluginError as exc:
        _fail(plugin, exc)
    for path in paths:
        console.print(str(path))


@app.command()
def events(
    config: ConfigOption = _DEFAULT_CONFIG,
    count: Annotated[int, typer.Option("--count", "-n", help="Number of entries")] = 20,
) -> None:
    """Show recent plugin invocations."""
    settings = _settings(config)
    entries = read_events(settings.log_path(), last_n=count)

    if not entries:
        console.print("[dim]No invocation events found.[/dim]")
        return

    table = Table(title="Invocations (most recent first)")
    table.add_column("Timestamp", style="cyan", no_wrap=True)
    table.add_column("Verb", style="magenta")
    table.add_column("Plugin")
    table.add_column("Status")
    table.add_column("Detail", max_width=60)

    for entry in entries:
        status = entry.get("status", "?")
        style = "green" if status == "ok" else "red"
        table.add_row(
            entry.get("timestamp", "?")[:19],
            entry.get("action", "?"),
            escape(entry.get("plugin", "?")),
            f"[{style}]{status}[/{style}]",
            escape(entry.get("detail", "")[:60]),
        )

    console.print(table)


@app.command(name="config")
def show_config(config: ConfigOption = _DEFAULT_CONFIG) -> None:
    """Display the effective settings."""
    settings = _settings(config)

    table = Table(title="extbuild settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Plugin kind", settings.kind)
    table.add_row("Search directories", "\n".join(str(d) for d in search_directories(settings)) or "(none)")
    table.add_row("Suggestion distance", str(settings.suggestion_max_distance))
    table.add_row(
        "Timeout",
        f"{settings.timeout_seconds:g}s" if settings.timeout_seconds else "[dim]none[/dim]",
    )
    table.add_row(
        "Event log",
        str(settings.log_path()) if settings.record_events else "[dim]disabled[/dim]",
    )

    console.print(table)
