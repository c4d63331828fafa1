"""CLI commands for paychan.

serve       run a receiver that answers data requests and logs payments
send-data   connect to a peer, send one payload, print the reply
send-money  connect to a peer and pay it
demo        two peers in one process: data round-trip then one payment
"""

import asyncio
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from paychan import __logo__, __version__
from paychan.chain import JsonRpcChainClient
from paychan.cli.logging_utils import configure_console_logging, ensure_rotating_log_file
from paychan.config.loader import load_config
from paychan.config.schema import DEFAULT_PROVIDER_URI, PluginConfig
from paychan.plugin import PaychanPlugin
from paychan.utils.exceptions import PaychanError

app = typer.Typer(
    name="paychan",
    help=f"{__logo__} paychan - pay-per-use peer transport over payment channels",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} paychan v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
):
    """paychan - pay-per-use peer transport over payment channels."""
    pass


def _setup_logging(command: str, verbose: bool) -> Path:
    configure_console_logging(verbose)
    return ensure_rotating_log_file(command, level="DEBUG" if verbose else "INFO")


def _load(config_path: Path | None, **overrides) -> PluginConfig:
    try:
        return load_config(config_path, **overrides)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _parse_hex(payload: str) -> bytes:
    text = payload.strip()
    if text.startswith("0x"):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise typer.BadParameter(f"not a hex string: {payload}")


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
    except PaychanError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1)


@app.command()
def serve(
    port: int = typer.Option(3000, "--port", "-p", help="Listen port"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
    account: str = typer.Option(None, "--account", "-a", help="Local account (default: provider's first)"),
    provider: str = typer.Option(None, "--provider", help=f"Chain RPC URL (default {DEFAULT_PROVIDER_URI})"),
    db: str = typer.Option(None, "--db", help="Channel state file"),
    reply_hex: str = typer.Option(None, "--reply", help="Fixed hex reply for data requests (default: echo)"),
    config_path: Path = typer.Option(None, "--config", "-c", help="JSON config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Run a receiver: answer /data requests and log incoming payments."""
    log_path = _setup_logging("serve", verbose)
    config = _load(config_path, port=port, host=host, account=account, provider=provider, db=db)
    reply = _parse_hex(reply_hex) if reply_hex else None

    async def run() -> None:
        plugin = PaychanPlugin(config)
        plugin.register_data_handler(lambda data: reply if reply is not None else data)
        plugin.register_money_handler(
            lambda amount: console.print(f"[green]+[/green] received {amount} unit(s) of money")
        )
        await plugin.connect()
        console.print(f"{__logo__} Serving account [cyan]{plugin.account}[/cyan] on {host}:{plugin.inbound.port}")
        console.print(f"[dim]Logs: {log_path}[/dim]")
        try:
            await plugin.inbound.wait_closed()
        finally:
            results = await plugin.disconnect()
            failed = [r for r in results if not r.ok]
            if failed:
                console.print(f"[yellow]{len(failed)} channel(s) failed to close[/yellow]")

    _run(run())


@app.command("send-data")
def send_data(
    payload: str = typer.Argument(..., help="Hex payload"),
    server: str = typer.Option("http://localhost:3000", "--server", "-s", help="Peer base URL"),
    account: str = typer.Option(None, "--account", "-a", help="Local account (default: provider's first)"),
    provider: str = typer.Option(None, "--provider", help="Chain RPC URL"),
    db: str = typer.Option(None, "--db", help="Channel state file"),
    config_path: Path = typer.Option(None, "--config", "-c", help="JSON config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Send one data payload to a peer and print the reply as hex."""
    _setup_logging("send-data", verbose)
    config = _load(config_path, server=server, account=account, provider=provider, db=db)
    data = _parse_hex(payload)

    async def run() -> None:
        async with PaychanPlugin(config) as plugin:
            response = await plugin.send_data(data)
            console.print(f"peer responded: [cyan]{response.hex()}[/cyan]")

    _run(run())


@app.command("send-money")
def send_money(
    amount: str = typer.Argument(..., help="Amount to pay"),
    server: str = typer.Option("http://localhost:3000", "--server", "-s", help="Peer base URL"),
    account: str = typer.Option(None, "--account", "-a", help="Local account (default: provider's first)"),
    provider: str = typer.Option(None, "--provider", help="Chain RPC URL"),
    db: str = typer.Option(None, "--db", help="Channel state file"),
    config_path: Path = typer.Option(None, "--config", "-c", help="JSON config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Pay a peer through the warm payment channel."""
    _setup_logging("send-money", verbose)
    config = _load(config_path, server=server, account=account, provider=provider, db=db)
    try:
        value = Decimal(amount)
    except ArithmeticError:
        raise typer.BadParameter(f"not a number: {amount}")
    if value <= 0:
        raise typer.BadParameter("amount must be positive")

    async def run() -> None:
        async with PaychanPlugin(config) as plugin:
            token = await plugin.send_money(value)
            console.print(f"[green]✓[/green] paid {value}, token [dim]{token}[/dim]")

    _run(run())


@app.command()
def demo(
    port: int = typer.Option(3000, "--port", "-p", help="Receiver listen port"),
    provider: str = typer.Option(DEFAULT_PROVIDER_URI, "--provider", help="Chain RPC URL"),
    workdir: Path = typer.Option(Path("."), "--workdir", help="Where sender_db and receiver_db are created"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Two peers in one process: sender gets 32 bytes of 0xff back, then pays 1 unit."""
    _setup_logging("demo", verbose)

    async def run() -> None:
        chain = JsonRpcChainClient(provider)
        try:
            accounts = await chain.get_accounts()
        finally:
            await chain.aclose()
        if len(accounts) < 2:
            console.print("[red]The demo needs a provider with at least two accounts[/red]")
            raise typer.Exit(1)

        sender = PaychanPlugin(
            account=accounts[0],
            server=f"http://localhost:{port}",
            provider=provider,
            db=str(workdir / "sender_db"),
        )
        receiver = PaychanPlugin(
            account=accounts[1],
            port=port,
            host="127.0.0.1",
            provider=provider,
            db=str(workdir / "receiver_db"),
        )
        receiver.register_data_handler(lambda data: b"\xff" * 32)
        receiver.register_money_handler(
            lambda amount: console.print(f"receiver got: {amount} unit of money")
        )

        await receiver.connect()
        await sender.connect()
        try:
            response = await sender.send_data(b"\x00" * 32)
            console.print(f"receiver responded: {response.hex()}")
            await sender.send_money(Decimal(1))
        finally:
            await receiver.disconnect()
            await sender.disconnect()

    _run(run())


if __name__ == "__main__":
    app()
