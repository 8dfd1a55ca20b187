"""
zinstall.cli — Typer-based CLI entry-point.

Sub-commands:

    zinstall install                   → full Zabbix Agent 2 provisioning run
    zinstall identity                  → print detected hostname / primary IP
    zinstall probe HOST [PORT]         → one bounded TCP reachability check
    zinstall set KEY VALUE --file F    → idempotent key=value edit of a config file
    zinstall info                      → print current settings summary
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from zinstall import __version__
from zinstall.config import InstallSettings, get_settings, load_settings

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="zinstall",
    help="zinstall — Zabbix Agent 2 installer and baseline configurator.",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold cyan]zinstall[/bold cyan] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """zinstall — provision a monitoring agent on this host."""


def _fail(exc: BaseException) -> NoReturn:
    console.print(f"[red]✗ Error: {type(exc).__name__}: {exc}[/red]")
    raise typer.Exit(code=1)


def _current_settings() -> InstallSettings:
    """``get_settings()``, reporting a broken config file as a CLI error."""
    try:
        return get_settings()
    except (ValidationError, OSError, yaml.YAMLError) as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# zinstall install
# ---------------------------------------------------------------------------

@app.command()
def install(
    server: Optional[str] = typer.Option(  # noqa: UP007
        None, "--server", "-s", help="Zabbix server address (env: ZBX_SERVER)."
    ),
    repo_version: Optional[str] = typer.Option(  # noqa: UP007
        None, "--repo-version", help="Zabbix repository series, e.g. 7.4 (env: ZBX_VERSION)."
    ),
    log_dir: Optional[Path] = typer.Option(  # noqa: UP007
        None, "--log-dir", help="Directory for the evidence log (env: LOG_DIR)."
    ),
    config: Optional[Path] = typer.Option(  # noqa: UP007
        None, "--config", "-c", help="YAML settings file."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Log what would be done without changing the system."
    ),
) -> None:
    """Install, configure and start Zabbix Agent 2, recording evidence."""
    from zinstall.installer import InstallError, run_install
    from zinstall.tools.shell_exec import CommandError

    try:
        settings = load_settings(
            config,
            {"server": server, "version": repo_version, "log_dir": log_dir},
        )
        report = run_install(settings, dry_run=dry_run)
    except (InstallError, CommandError, ValidationError, OSError, yaml.YAMLError) as exc:
        _fail(exc)
        return

    if report.log_path is not None:
        console.print(f"[green]✓[/green] Evidence log: [bold]{report.log_path}[/bold]")


# ---------------------------------------------------------------------------
# zinstall identity
# ---------------------------------------------------------------------------

@app.command()
def identity() -> None:
    """Print the hostname and primary IPv4 this host would register with."""
    from zinstall.system.identity import resolve_host_identity

    ident = resolve_host_identity(target=_current_settings().route_probe_target)
    console.print(f"Host: {ident.hostname}")
    console.print(f"IP:   {ident.ip_label}")


# ---------------------------------------------------------------------------
# zinstall probe
# ---------------------------------------------------------------------------

@app.command()
def probe(
    host: str = typer.Argument(..., help="Remote host or IP."),
    port: int = typer.Argument(10051, help="TCP port (10051 = active checks)."),
    timeout: float = typer.Option(3.0, "--timeout", "-t", help="Seconds to wait."),
) -> None:
    """Check whether HOST:PORT accepts TCP connections (exit 1 if not)."""
    from zinstall.net.probe import probe_tcp

    result = probe_tcp(host, port, timeout)
    if result.reachable:
        console.print(f"[green]✓[/green] {result.target} reachable ({result.elapsed_ms} ms)")
        return
    console.print(f"[yellow]✗ {result.target} unreachable: {result.error}[/yellow]")
    raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# zinstall set
# ---------------------------------------------------------------------------

@app.command(name="set")
def set_value(
    key: str = typer.Argument(..., help="Config key, e.g. Server."),
    value: str = typer.Argument(..., help="New value."),
    file: Path = typer.Option(..., "--file", "-f", help="Config file to edit."),
    backup: bool = typer.Option(True, "--backup/--no-backup", help="Copy the file first."),
) -> None:
    """Set KEY=VALUE in a config file, activating a commented-out key if present."""
    from zinstall.conf.upsert import backup_file, upsert_file
    from zinstall.evidence import run_stamp

    try:
        if backup:
            copy = backup_file(file, run_stamp())
            console.print(f"[dim]Backup: {copy}[/dim]")
        changed = upsert_file(file, [(key, value)])
    except (OSError, ValueError) as exc:
        _fail(exc)
        return

    if changed:
        console.print(f"[green]✓[/green] {key}={value} written to [bold]{file}[/bold]")
    else:
        console.print(f"[dim]{key}={value} already set in {file}[/dim]")


# ---------------------------------------------------------------------------
# zinstall info
# ---------------------------------------------------------------------------

@app.command()
def info() -> None:
    """Print the current configuration summary."""
    settings = _current_settings()

    body = Text.assemble(
        ("Server:   ", "bold"),
        (settings.server, "green"),
        "\n",
        ("Repo:     ", "bold"),
        (f"Zabbix {settings.version} / Debian {settings.debian_release}", "cyan"),
        "\n",
        ("Config:   ", "bold"),
        (str(settings.conf_path), "cyan"),
        "\n",
        ("Log dir:  ", "bold"),
        (str(settings.log_dir), "cyan"),
        "\n",
        ("Ports:    ", "bold"),
        (f"active {settings.active_port} / passive {settings.passive_port}", "cyan"),
    )

    console.print(
        Panel(body, title=f"[bold]zinstall v{__version__}[/bold]", border_style="bright_blue")
    )


if __name__ == "__main__":
    app()
