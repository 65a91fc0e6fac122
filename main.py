"""sinkroute command line."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click

from backend import PipeWireGraphBackend
from errors import (
    ConfigError,
    DeviceNotReady,
    GraphQueryFailed,
    GraphTimeout,
    SubscriptionError,
    TargetPortsUnavailable,
)
from logging_cfg import configure_logging
from models import ROLE_MAIN_LEFT, ROLE_MAIN_RIGHT
from pw_graph import find_device, list_streams, resolve_roles
from reconciler import Outcome, Reconciler
from routing import decide
from store_config import ConfigStore, Settings

VERSION = "0.3.0"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2

logger = logging.getLogger(__name__)


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: $XDG_CONFIG_HOME/sinkroute/sinkroute.cfg)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Override [Logging] level",
)
@click.option("--log-json", is_flag=True, help="Log JSON lines instead of text")
@click.version_option(VERSION, prog_name="sinkroute")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: Optional[str], log_json: bool) -> None:
    """Route new stereo streams to the configured ports of a multi-port sink."""
    store = ConfigStore(path=config_path)
    try:
        created = store.ensure_exists()
        settings = store.load_settings()
    except (ConfigError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_CONFIG)

    ls = settings.logging
    configure_logging(
        level=log_level or ls.level,
        log_file=ls.file or None,
        fmt="json" if log_json else ls.format,
    )
    if created:
        logger.info("wrote default config to %s", store.file_path)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command("run")
@click.option("--dry-run", is_flag=True, help="Log link changes instead of making them")
@click.pass_context
def run_command(ctx: click.Context, dry_run: bool) -> None:
    """Run the routing daemon until interrupted."""
    from PySide6.QtCore import QCoreApplication

    from daemon import RoutingDaemon

    settings = _settings(ctx)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    daemon = RoutingDaemon(settings, dry_run=dry_run)

    try:
        daemon.start()
    except SubscriptionError as e:
        logger.critical("startup failed: %s", e)
        ctx.exit(EXIT_ERROR)

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    signal.signal(signal.SIGTERM, lambda *_: app.quit())
    try:
        app.exec()
    finally:
        daemon.stop()
        logger.info("stopped after %d reconciliation pass(es)", daemon.watcher.passes)


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show the target device, its port roles and the streams linked to it."""
    routing = _settings(ctx).routing
    backend = PipeWireGraphBackend(timeout=_settings(ctx).daemon.command_timeout)
    try:
        graph = backend.capture()
    except (GraphTimeout, GraphQueryFailed) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_ERROR)

    device = find_device(graph, routing.target_device_name)
    if device is None:
        click.echo(f"Device {routing.target_device_name}: not present")
        return

    click.echo(f"Device {routing.target_device_name}: present [id {device.id}] {device.description}")
    ports = resolve_roles(graph, routing)
    names = routing.port_roles()
    for role, port in ports.roles.items():
        state = f"port {port.id}" if port is not None else "not found"
        click.echo(f"  {role:<14} {names[role]:<14} {state}")
    click.echo(f"  duplicate to monitor: {'yes' if routing.duplicate_to_monitor else 'no'}")

    device_ports = {p.id for p in ports.roles.values() if p is not None}
    for stream in list_streams(graph):
        hits = [(s, d) for s, d in stream.links if d in device_ports]
        if hits:
            targets = ", ".join(graph.ports[d].port_name for _, d in sorted(hits))
            click.echo(f"  {stream.name} -> {targets}")


@cli.command("route-existing")
@click.option("--dry-run", is_flag=True, help="Log link changes instead of making them")
@click.pass_context
def route_existing_command(ctx: click.Context, dry_run: bool) -> None:
    """Route stereo streams that are currently not linked anywhere (one shot)."""
    settings = _settings(ctx)
    backend = PipeWireGraphBackend(timeout=settings.daemon.command_timeout)
    reconciler = Reconciler(backend, dry_run=dry_run)
    try:
        graph = backend.capture()
        ports = resolve_roles(graph, settings.routing)
        ports.require(ROLE_MAIN_LEFT, ROLE_MAIN_RIGHT)

        routed = 0
        for stream in list_streams(graph):
            result = reconciler.apply(decide(stream, ports, settings.routing))
            made = [r for r in result.created if r.outcome in (Outcome.CREATED, Outcome.PLANNED)]
            if made:
                routed += 1
                click.echo(f"{stream.name}: {len(made)} link(s)")
    except (DeviceNotReady, TargetPortsUnavailable) as e:
        click.echo(f"Nothing routed: {e}", err=True)
        ctx.exit(EXIT_ERROR)
    except (GraphTimeout, GraphQueryFailed) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_ERROR)

    click.echo(f"Routed {routed} stream(s).")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
