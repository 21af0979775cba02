"""CLI commands for the wemp bridge."""

from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from wemp import __logo__, __version__

app = typer.Typer(
    name="wemp",
    help=f"{__logo__} wemp - official account channel bridge",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} wemp v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wemp - official account channel bridge."""
    pass


# ============================================================================
# Serve
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show wemp runtime logs"),
):
    """Serve the pairing verification API."""
    import uvicorn
    from loguru import logger

    from wemp.api.app import create_app
    from wemp.settings import get_settings

    if logs:
        logger.enable("wemp")
    else:
        logger.disable("wemp")

    settings = get_settings()
    bind_host = host or settings.host
    bind_port = port or settings.port
    console.print(f"{__logo__} Serving pairing API on {bind_host}:{bind_port}...")
    uvicorn.run(create_app(), host=bind_host, port=bind_port, log_level="warning")


# ============================================================================
# Accounts
# ============================================================================


@app.command("accounts")
def accounts_status(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show configured official accounts."""
    from wemp.config.loader import load_config

    config = load_config(config_path)

    table = Table(title="Official Accounts")
    table.add_column("Account", style="cyan")
    table.add_column("Enabled", style="green")
    table.add_column("DM policy", style="yellow")
    table.add_column("Configuration")

    for account_id, account in config.accounts.items():
        app_config = f"app_id: {account.app_id[:10]}..." if account.app_id else "[dim]not configured[/dim]"
        table.add_row(
            account_id,
            "✓" if account.enabled else "✗",
            account.dm_policy,
            app_config,
        )

    console.print(table)


# ============================================================================
# Pairing
# ============================================================================


pairs_app = typer.Typer(help="Manage paired users")
app.add_typer(pairs_app, name="pairs")


def _registry(data_dir: Path | None):
    from loguru import logger

    from wemp.pairing import PairingRegistry, get_pairing_registry

    logger.disable("wemp")
    return PairingRegistry(data_dir=data_dir) if data_dir else get_pairing_registry()


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@pairs_app.command("list")
def pairs_list(
    data_dir: Path = typer.Option(None, "--data-dir", help="Override the data directory"),
):
    """List paired users."""
    registry = _registry(data_dir)
    users = registry.list_paired_users()

    if not users:
        console.print("No paired users.")
        return

    table = Table(title="Paired Users")
    table.add_column("Account", style="cyan")
    table.add_column("Open ID", style="cyan")
    table.add_column("Paired by", style="green")
    table.add_column("Channel", style="yellow")
    table.add_column("Paired at")

    for key, user in users.items():
        account_id, _, open_id = key.partition(":")
        by = user.paired_by + (f" ({user.paired_by_name})" if user.paired_by_name else "")
        table.add_row(account_id, open_id, by, user.paired_by_channel or "-", _format_ms(user.paired_at))

    console.print(table)


@pairs_app.command("unpair")
def pairs_unpair(
    account_id: str = typer.Argument(..., help="Account id"),
    open_id: str = typer.Argument(..., help="User open id"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Override the data directory"),
):
    """Remove a pairing."""
    registry = _registry(data_dir)
    if registry.unpair(account_id, open_id):
        console.print(f"[green]✓[/green] Unpaired {account_id}:{open_id}")
    else:
        console.print(f"[yellow]{account_id}:{open_id} is not paired[/yellow]")
        raise typer.Exit(1)


@pairs_app.command("code")
def pairs_code(
    account_id: str = typer.Argument(..., help="Account id"),
    open_id: str = typer.Argument(..., help="User open id"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Override the data directory"),
):
    """Issue (or show the live) pairing code for a user."""
    registry = _registry(data_dir)
    code = registry.generate_pairing_code(account_id, open_id)
    minutes = registry.ttl_ms // 60_000
    console.print(f"Pairing code for {account_id}:{open_id}: [bold]{code}[/bold] (valid {minutes} min)")


@pairs_app.command("verify")
def pairs_verify(
    code: str = typer.Argument(..., help="Pairing code"),
    verifier: str = typer.Option("cli", "--by", help="Verifier id"),
    name: str = typer.Option(None, "--name", help="Verifier display name"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Override the data directory"),
):
    """Consume a pairing code and pair its owner.

    Local admin command: no pairing API token is checked, access to the
    data directory is the only gate.
    """
    registry = _registry(data_dir)
    owner = registry.verify_pairing_code(code.strip(), verifier, name, "cli")
    if owner is None:
        console.print("[red]Pairing code not found or expired[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Paired {owner.account_id}:{owner.open_id}")
