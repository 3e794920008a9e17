"""
Command-Line Interface for Chromacore.

Provides commands for inspecting adapters, encoding frames, watching
effects run and serving the control surface over JSON lines.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional, TextIO

import click
import structlog

from chromacore import __version__

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, config: Optional[str]) -> None:
    """
    Chromacore - DMX512 lighting-control engine

    Tracks per-universe channel state, runs fades, chases and strobes
    against it and produces DMX512 frames on demand.
    """
    ctx.ensure_object(dict)

    # Logs go to stderr so stdout stays clean for frames and responses.
    log_level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )

    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config) if config else None


def _load_settings(ctx: click.Context):
    from chromacore.core.config import Settings
    from chromacore.core.exceptions import ConfigError

    if ctx.obj["config_path"]:
        try:
            settings = Settings.from_yaml(ctx.obj["config_path"])
        except ConfigError as e:
            click.echo(f"Configuration error: {e.message}", err=True)
            sys.exit(1)
    else:
        settings = Settings()
    settings.debug = ctx.obj["debug"]
    return settings


def _parse_assignment(raw: str) -> tuple[int, int]:
    channel, sep, value = raw.partition("=")
    if not sep:
        raise click.BadParameter(f"expected CHANNEL=VALUE, got {raw!r}")
    try:
        return int(channel), int(value)
    except ValueError:
        raise click.BadParameter(f"expected integers, got {raw!r}") from None


@cli.command()
@click.pass_context
def adapters(ctx: click.Context) -> None:
    """List the adapters universes can connect through."""
    from chromacore.engine.registry import UniverseRegistry

    with UniverseRegistry(_load_settings(ctx)) as registry:
        click.echo("Known DMX adapters:")
        click.echo("-" * 60)
        for adapter in registry.list_adapters():
            marker = " *" if adapter.available else "  "
            click.echo(f"{marker} {adapter.id:14s} {adapter.name} ({adapter.kind})")


@cli.command()
@click.option("--adapter", "-a", default="enttec-1", help="Adapter id to connect through")
@click.option("--set", "-s", "assignments", multiple=True, help="CHANNEL=VALUE, repeatable")
@click.option("--raw", is_flag=True, help="Write the 513 raw bytes to stdout")
@click.pass_context
def frame(ctx: click.Context, adapter: str, assignments: tuple[str, ...], raw: bool) -> None:
    """Encode a frame for a universe with the given channel values."""
    from chromacore.core.exceptions import ChromaError
    from chromacore.engine.registry import UniverseRegistry

    with UniverseRegistry(_load_settings(ctx)) as registry:
        try:
            universe = registry.connect("cli", adapter)
            for assignment in assignments:
                universe.set_channel(*_parse_assignment(assignment))
        except ChromaError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)

        data = registry.encode("cli")
        if raw:
            sys.stdout.buffer.write(data)
            sys.stdout.buffer.flush()
        else:
            click.echo(data.hex())


@cli.command()
@click.option(
    "--effect",
    "-e",
    type=click.Choice(["fade", "chase", "strobe"]),
    default="chase",
    help="Effect to run",
)
@click.option("--channels", "-c", default="1,2,3,4", help="Comma-separated channels")
@click.option("--seconds", "-d", default=3.0, help="How long to watch")
@click.option("--sample-hz", default=10.0, help="Frame sampling rate")
@click.pass_context
def demo(ctx: click.Context, effect: str, channels: str, seconds: float, sample_hz: float) -> None:
    """Run one effect on a scratch universe and print sampled channel values."""
    from chromacore.core.exceptions import ChromaError
    from chromacore.engine.registry import UniverseRegistry

    try:
        channel_list = [int(c) for c in channels.split(",") if c.strip()]
    except ValueError:
        click.echo("Error: channels must be integers", err=True)
        sys.exit(1)

    with UniverseRegistry(_load_settings(ctx)) as registry:
        try:
            registry.connect("demo", registry.list_adapters()[0].id)
            if effect == "fade":
                effect_id = registry.effects.start_fade("demo", channel_list, 255, seconds)
            elif effect == "chase":
                groups = [[c] for c in channel_list]
                effect_id = registry.effects.start_chase("demo", groups)
            else:
                effect_id = registry.effects.start_strobe("demo", channel_list)
        except (ChromaError, IndexError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        click.echo(f"Running {effect} ({effect_id}) for {seconds}s. Ctrl+C to stop.")
        deadline = time.monotonic() + seconds
        try:
            while time.monotonic() < deadline:
                data = registry.encode("demo")
                values = " ".join(f"{data[c]:3d}" for c in channel_list)
                state = registry.effects.status(effect_id)["state"]
                click.echo(f"\r{values}  [{state}]", nl=False)
                time.sleep(1.0 / sample_hz)
        except KeyboardInterrupt:
            pass
        finally:
            registry.effects.stop(effect_id)
            click.echo()


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Serve the control surface as JSON lines on stdin/stdout."""
    from chromacore.engine.registry import UniverseRegistry
    from chromacore.ui.control import ControlSurface

    with UniverseRegistry(_load_settings(ctx)) as registry:
        serve_lines(ControlSurface(registry), sys.stdin, sys.stdout)


def serve_lines(surface, source: TextIO, sink: TextIO) -> int:
    """Answer one JSON request per input line. Returns the number handled."""
    handled = 0
    for line in source:
        line = line.strip()
        if not line:
            continue
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            response = {
                "id": None,
                "ok": False,
                "error": {"kind": "InvalidRequest", "message": f"Invalid JSON: {e.msg}"},
            }
        else:
            response = surface.handle(request)
        sink.write(json.dumps(response) + "\n")
        sink.flush()
        handled += 1
    return handled


def main() -> None:
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
