"""Command-line interface for wksl."""

import logging
import sys
from typing import NoReturn, Optional

import click

from wksl import __version__
from wksl.config.loader import (
    DEFAULT_CONFIG,
    ConfigError,
    ConfigValidationError,
    machine_from_config,
    machines_from_config,
    read_config,
)
from wksl.core.machine import Machine


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def _fail(message: str) -> NoReturn:
    click.echo(f"ERROR: {message}", err=True)
    sys.exit(1)


def _load_machines(config: str, name: Optional[str] = None) -> list[Machine]:
    try:
        raw = read_config(config)
        if name is None:
            return machines_from_config(raw)
        return [machine_from_config(raw, name)]
    except ConfigValidationError as exc:
        click.echo("Config validation errors:", err=True)
        for e in exc.errors:
            click.echo(f"  • {e}", err=True)
        sys.exit(1)
    except ConfigError as exc:
        _fail(str(exc))


def _load_machine(config: str, name: str) -> Machine:
    return _load_machines(config, name)[0]


class PrefixGroup(click.Group):
    """Group that also accepts any unambiguous prefix of a command name."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        matches = [name for name in self.list_commands(ctx) if name.startswith(cmd_name)]
        if not matches:
            return None
        if len(matches) > 1:
            ctx.fail(f"Ambiguous command '{cmd_name}': {', '.join(sorted(matches))}")
        return super().get_command(ctx, matches[0])

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[Optional[str], Optional[click.Command], list[str]]:
        _, command, args = super().resolve_command(ctx, args)
        return (command.name if command else None), command, args


# ── Root group ────────────────────────────────────────────────────────────────


@click.group(cls=PrefixGroup)
@click.version_option(version=__version__, prog_name="wksl")
@click.option(
    "--config",
    "-c",
    "config",
    default=DEFAULT_CONFIG,
    envvar="WKSL_CONFIG",
    show_default=True,
    help="Path to config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config: str, verbose: bool) -> None:
    """wksl: wake up or suspend a machine by name."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ── wake command ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("machine")
@click.option("--wait", "-w", is_flag=True, help="Wait until the machine's SSH port answers")
@click.option("--timeout", default=120, show_default=True, help="Seconds to wait with --wait")
@click.pass_context
def wake(ctx: click.Context, machine: str, wait: bool, timeout: int) -> None:
    """Broadcast a Wake-on-LAN packet to the machine's MAC address."""
    m = _load_machine(ctx.obj["config"], machine)
    host = m.host
    if wait and not host:
        _fail(f"--wait needs a 'host' for '{machine}' in the config")

    from wksl.core.wol import DEFAULT_BROADCAST, DEFAULT_PORT, TransmissionError
    from wksl.core.wol import wake as do_wake

    ip_address = m.broadcast_address or DEFAULT_BROADCAST
    port = m.port if m.port is not None else DEFAULT_PORT

    click.echo(f"Waking '{machine}' up ... ", nl=False)
    try:
        do_wake(m.mac_address, ip_address=ip_address, port=port)
    except TransmissionError as exc:
        click.echo("failed.", err=True)
        _fail(str(exc))
    click.echo("done.")

    if wait and host:
        from wksl.core.ssh import wait_for_ssh

        click.echo(f"Waiting for {host}:{m.ssh_port} ... ", nl=False)
        if not wait_for_ssh(host, port=m.ssh_port, timeout=timeout):
            click.echo("timed out.", err=True)
            sys.exit(1)
        click.echo("up.")


# ── sleep command ─────────────────────────────────────────────────────────────


@main.command("sleep")
@click.argument("machine")
@click.pass_context
def sleep_cmd(ctx: click.Context, machine: str) -> None:
    """Suspend the machine using its configured sleep command."""
    m = _load_machine(ctx.obj["config"], machine)

    from wksl.core.sleep import SleepCommandFailed, SleepError, suspend

    if m.sleep is None:
        _fail(f"no sleep command configured for '{machine}'")

    click.echo(f"Putting '{machine}' to sleep ... ", nl=False)
    try:
        suspend(m)
    except SleepCommandFailed as exc:
        click.echo("failed.", err=True)
        if exc.stderr:
            click.echo(exc.stderr.rstrip("\n"), err=True)
        _fail(f"sleep command exited with status {exc.returncode}")
    except SleepError as exc:
        click.echo("failed.", err=True)
        _fail(str(exc))
    click.echo("done.")


# ── list command ──────────────────────────────────────────────────────────────


@main.command("list")
@click.pass_context
def list_machines(ctx: click.Context) -> None:
    """List all configured machines."""
    from wksl.core.wol import DEFAULT_BROADCAST, DEFAULT_PORT

    machines = _load_machines(ctx.obj["config"])
    click.echo(f"{'NAME':<20} {'MAC ADDRESS':<19} {'DESTINATION':<28} {'SLEEP'}")
    click.echo("─" * 75)
    for m in machines:
        port = m.port if m.port is not None else DEFAULT_PORT
        dest = f"{m.broadcast_address or DEFAULT_BROADCAST}:{port}"
        click.echo(f"{m.name:<20} {m.mac_address:<19} {dest:<28} {m.sleep_method}")


if __name__ == "__main__":
    main()
