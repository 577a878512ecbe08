"""Command-line interface for running and inspecting nodes.

Commands:
    serve   Run a node until interrupted
    status  Show a node's status
    emit    Emit one event on a node
    events  List the events a node listens for
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from webemitter import __version__
from webemitter.config import load_config
from webemitter.events.codec import Token
from webemitter.models import EmitterConfig, LogLevel
from webemitter.node import WebEventEmitter
from webemitter.peer.client import PeerClient
from webemitter.protocol import Envelope, NetworkState, NodeState
from webemitter.utils.exceptions import WebEmitterError
from webemitter.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

console = Console()

_STATE_STYLES = {
    NodeState.RUNNING: "green",
    NodeState.STARTING: "yellow",
    NodeState.CLOSING: "yellow",
    NodeState.ERROR: "red",
    NetworkState.HEALTHY: "green",
    NetworkState.PARTIAL: "yellow",
    NetworkState.DOWN: "red",
}


def _styled(state: NodeState | NetworkState) -> str:
    return f"[{_STATE_STYLES[state]}]{state.value}[/{_STATE_STYLES[state]}]"


def _parse_args(raw_args: tuple[str, ...]) -> list[Any]:
    """Parse each ARGS_JSON value as JSON."""
    parsed = []
    for raw in raw_args:
        try:
            parsed.append(json.loads(raw))
        except ValueError as e:
            msg = f"{raw!r} is not valid JSON: {e}"
            raise click.BadParameter(msg, param_hint="ARGS_JSON") from e
    return parsed


@click.group()
@click.version_option(__version__, prog_name="webemitter")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.pass_context
def cli(ctx, config, verbose):
    """Webemitter - event emitter shared by several processes over HTTP."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--host", help="Host or address to bind to")
@click.option("--port", type=int, help="Port to listen on (0 picks a free port)")
@click.option("--base-url", help="Externally reachable URL announced to peers")
@click.option("--connect-to", help="Address of a node to join")
@click.option("--secret", help="Shared secret required between nodes")
@click.option("--keepalive", type=float, help="Seconds between peer sync cycles")
@click.option("--name", help="Display name of this node")
@click.option(
    "--listen",
    "listen_events",
    multiple=True,
    help="Print every occurrence of this event (repeatable)",
)
@click.pass_context
def serve(ctx, host, port, base_url, connect_to, secret, keepalive, name, listen_events):
    """Run a node until interrupted."""
    overrides: dict[str, Any] = {
        "host": host,
        "port": port,
        "base_url": base_url,
        "connect_to": connect_to,
        "secret": secret,
        "keepalive_interval": keepalive,
        "name": name,
    }
    verbose = ctx.obj.get("verbose", 0)
    if verbose >= 2:
        overrides["observability"] = {"log_level": LogLevel.DEBUG.value}
    elif verbose == 1:
        overrides["observability"] = {"log_level": LogLevel.INFO.value}

    try:
        config = load_config(ctx.obj.get("config"), **overrides)
    except WebEmitterError as e:
        raise click.ClickException(str(e)) from e

    setup_logging(config.observability)
    try:
        asyncio.run(_serve(config, listen_events))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
    except WebEmitterError as e:
        raise click.ClickException(str(e)) from e


async def _serve(config: EmitterConfig, listen_events: tuple[str, ...]) -> None:
    node = WebEventEmitter(config)
    for event in listen_events:

        def _print_event(*args: Any, _event: str = event) -> None:
            console.print(f"[cyan]{_event}[/cyan] {json.dumps(list(args))}")

        node.on(event, _print_event)

    async with node:
        console.print(f"[green]Listening at {node.address()}[/green]")
        await asyncio.Event().wait()


@cli.command()
@click.argument("url")
@click.option("--secret", help="Shared secret of the node")
def status(url, secret):
    """Show the status of the node at URL."""
    try:
        snapshot = asyncio.run(_fetch_status(url, secret))
    except WebEmitterError as e:
        raise click.ClickException(str(e)) from e

    table = Table(title=f"Node {url}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Node", _styled(snapshot.node_state))
    table.add_row("Network", _styled(snapshot.network_state))
    table.add_row("Peers", "\n".join(snapshot.peers) or "-")
    table.add_row(
        "Events",
        "\n".join(
            f"{name} (symbol)" if is_symbol else name
            for name, is_symbol in snapshot.listened_events
        )
        or "-",
    )
    console.print(table)


async def _fetch_status(url: str, secret: str | None):
    async with PeerClient(url, secret=secret) as client:
        return await client.status()


@cli.command()
@click.argument("url")
@click.argument("event")
@click.argument("args_json", nargs=-1)
@click.option("--symbol", is_flag=True, help="Send EVENT as a shared token")
@click.option("--secret", help="Shared secret of the node")
def emit(url, event, args_json, symbol, secret):
    """Emit EVENT with ARGS_JSON on the node at URL."""
    args = _parse_args(args_json)
    identifier = Token.shared(event) if symbol else event
    try:
        envelope = Envelope.build(identifier, args)
        had_listeners = asyncio.run(_remote_emit(url, secret, envelope))
    except WebEmitterError as e:
        raise click.ClickException(str(e)) from e

    if had_listeners:
        console.print(f"[green]{event} delivered to listeners on {url}[/green]")
    else:
        console.print(f"[yellow]{url} has no listeners for {event}[/yellow]")


async def _remote_emit(url: str, secret: str | None, envelope: Envelope) -> bool:
    async with PeerClient(url, secret=secret) as client:
        return await client.remote_emit(envelope)


@cli.command()
@click.argument("url")
@click.option("--secret", help="Shared secret of the node")
def events(url, secret):
    """List the events the node at URL listens for."""
    try:
        names = asyncio.run(_remote_event_names(url, secret))
    except WebEmitterError as e:
        raise click.ClickException(str(e)) from e

    if not names:
        console.print(f"[yellow]{url} has no listeners[/yellow]")
        return
    for name in names:
        if isinstance(name, Token):
            console.print(f"{name.description} [dim](symbol)[/dim]")
        else:
            console.print(name)


async def _remote_event_names(url: str, secret: str | None) -> list[Any]:
    async with PeerClient(url, secret=secret) as client:
        return await client.remote_event_names()


def main():
    """Console script entry point."""
    cli(obj={})
