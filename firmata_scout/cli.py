"""CLI entry point for firmata-scout."""

import json as jsonmod
import logging
from pathlib import Path

import click

from firmata_scout.client import FirmataClient, RetryPolicy
from firmata_scout.config import (
    load_project_config_or_default, get_config_value, set_config_value, list_config,
)
from firmata_scout.connection import ConnectionManager
from firmata_scout.errors import FirmataError
from firmata_scout.profiles import Close, Open, SetControlLine, Wait, list_profiles
from firmata_scout.scan import scan_ports
from firmata_scout.serial.identity import describe_port
from firmata_scout.serial.port import (
    SerialTransport, list_port_names, list_serial_ports, resolve_port_and_baud,
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show connection details.")
def main(verbose):
    """Find Firmata boards on serial ports and drive their pins."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_client(project_dir: Path, baud: int) -> FirmataClient:
    config = load_project_config_or_default(project_dir)
    manager = ConnectionManager(
        SerialTransport(),
        baud_rate=baud,
        list_ports=list_port_names,
    )
    policy = RetryPolicy.from_config(config.retry, rounds=config.scan.rounds)
    return FirmataClient(manager, policy=policy)


def _fail(error: FirmataError, use_json: bool = False):
    if use_json:
        click.echo(jsonmod.dumps(error.to_dict()), err=True)
    else:
        click.echo(f"Error: {error.message}", err=True)
    raise SystemExit(error.exit_code)


def _open_session(port, baud, profile, use_json=False):
    """Resolve the port, connect, and return an open DeviceSession."""
    project_dir = Path.cwd()
    try:
        port, baud = resolve_port_and_baud(port, baud, project_dir)
    except Exception as e:
        if use_json:
            click.echo(jsonmod.dumps({"error": str(e)}), err=True)
        else:
            click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    client = _build_client(project_dir, baud)
    try:
        if profile:
            client.remember(port, profile)
            result = client.connect(port)
        else:
            result = client.connect_with_device_type(port, describe_port(port))
    except FirmataError as e:
        _fail(e, use_json)

    if not result.succeeded:
        _fail(result.error, use_json)
    return result.session


def _session_options(func):
    func = click.option("--json", "use_json", is_flag=True, help="Output JSON.")(func)
    func = click.option("--profile", type=str, help="Reset profile to use (skips probing).")(func)
    func = click.option("--baud", type=int, help="Baud rate.")(func)
    func = click.option("--port", type=str, help="Serial port.")(func)
    return func


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

@main.command("ports")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def ports_cmd(use_json):
    """List available serial ports."""
    ports = list_serial_ports()
    if use_json:
        data = [{"device": p.device, "description": p.description, "hwid": p.hwid, "board_label": p.board_label} for p in ports]
        click.echo(jsonmod.dumps(data, indent=2))
    else:
        if not ports:
            click.echo("No serial ports found.")
            return
        for p in ports:
            label = f" ({p.board_label})" if p.board_label else ""
            click.echo(f"  {p.device:<25} {p.description}{label}")


def _describe_step(step) -> str:
    if isinstance(step, Open):
        return "open"
    if isinstance(step, Close):
        return "close"
    if isinstance(step, Wait):
        return f"wait {step.ms}ms"
    if isinstance(step, SetControlLine):
        return f"{step.name} {'on' if step.value else 'off'}"
    return repr(step)


@main.command("profiles")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def profiles_cmd(use_json):
    """List reset profiles in the order they are tried."""
    profiles = list_profiles()
    if use_json:
        data = [{
            "name": p.name,
            "handshake_attempts": p.handshake_attempts,
            "handshake_delay_ms": p.handshake_delay_ms,
            "reset_steps": [_describe_step(s) for s in p.reset_steps],
            "description": p.description,
        } for p in profiles]
        click.echo(jsonmod.dumps(data, indent=2))
        return
    for p in profiles:
        click.echo(f"{p.name}: {p.description}")
        click.echo(f"  reset: {', '.join(_describe_step(s) for s in p.reset_steps)}")
        click.echo(f"  handshake: {p.handshake_attempts} x {p.handshake_delay_ms}ms")


@main.command("scan")
@click.option("--rounds", type=click.IntRange(min=1), help="Round-robin rounds per port.")
@click.option("--include-console", is_flag=True, help="Also probe console ports such as COM1.")
@click.option("--no-identify", is_flag=True, help="Skip board identification; always round-robin.")
@click.option("--baud", type=int, help="Baud rate.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def scan_cmd(rounds, include_console, no_identify, baud, use_json):
    """Probe every serial port for a Firmata device."""
    project_dir = Path.cwd()
    config = load_project_config_or_default(project_dir)
    client = _build_client(project_dir, baud or config.serial.baud_rate)

    ports = list_port_names()
    if not ports:
        if use_json:
            click.echo(jsonmod.dumps({"results": [], "skipped": []}, indent=2))
        else:
            click.echo("No serial ports found.")
        return

    report = scan_ports(
        client,
        ports,
        describe=None if no_identify else describe_port,
        include_console_port=include_console or config.scan.include_console_port,
        console_ports=config.scan.console_ports,
        rounds=rounds or config.scan.rounds,
        output_callback=None if use_json else click.echo,
    )

    if use_json:
        click.echo(jsonmod.dumps(report.to_dict(), indent=2))
        return

    devices = report.firmata_devices()
    click.echo("\nScan complete.")
    if not devices:
        click.echo("No Firmata devices found.")
        return
    click.echo("Firmata devices found:")
    for r in devices:
        click.echo(f"  {r.port:<25} v{r.version}  {r.profile} profile")


# ---------------------------------------------------------------------------
# Device commands
# ---------------------------------------------------------------------------

@main.command("version")
@_session_options
def version_cmd(port, baud, profile, use_json):
    """Connect and report the Firmata firmware version."""
    session = _open_session(port, baud, profile, use_json)
    try:
        version = session.read_version()
    except FirmataError as e:
        session.close()
        _fail(e, use_json)
    session.close()

    if use_json:
        click.echo(jsonmod.dumps({
            "port": session.port,
            "profile": session.profile,
            "version": str(version) if version else None,
        }, indent=2))
    else:
        click.echo(f"Firmata v{version} on {session.port} ({session.profile} profile)")


@main.command("digital")
@click.argument("pin", type=click.IntRange(0, 127))
@click.argument("level", type=click.IntRange(0, 1))
@_session_options
def digital_cmd(pin, level, port, baud, profile, use_json):
    """Set a digital output pin to 0 or 1."""
    session = _open_session(port, baud, profile, use_json)
    try:
        session.set_digital(pin, bool(level))
    except FirmataError as e:
        _fail(e, use_json)
    finally:
        session.close()
    click.echo(f"Set digital pin {pin} to {level}")


@main.command("pwm")
@click.argument("pin", type=click.IntRange(0, 15))
@click.argument("value", type=click.IntRange(0, 255))
@_session_options
def pwm_cmd(pin, value, port, baud, profile, use_json):
    """Write a PWM duty cycle (0-255)."""
    session = _open_session(port, baud, profile, use_json)
    try:
        session.set_pwm(pin, value)
    except FirmataError as e:
        _fail(e, use_json)
    finally:
        session.close()
    click.echo(f"Set PWM pin {pin} to {value}")


@main.command("servo")
@click.argument("pin", type=click.IntRange(0, 15))
@click.argument("angle", type=click.IntRange(0, 180))
@_session_options
def servo_cmd(pin, angle, port, baud, profile, use_json):
    """Move a servo to an angle (0-180 degrees)."""
    session = _open_session(port, baud, profile, use_json)
    try:
        session.set_servo(pin, angle)
    except FirmataError as e:
        _fail(e, use_json)
    finally:
        session.close()
    click.echo(f"Set servo pin {pin} to {angle} degrees")


@main.command("selftest")
@_session_options
def selftest_cmd(port, baud, profile, use_json):
    """Blink pin 13, sweep PWM on pin 9 and a servo on pin 5."""
    session = _open_session(port, baud, profile, use_json)
    try:
        session.run_self_test(output_callback=click.echo)
    except FirmataError as e:
        click.echo(f"Test failed: {e.message}", err=True)
        raise SystemExit(e.exit_code)
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Config command
# ---------------------------------------------------------------------------

@main.command("config")
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--list", "show_list", is_flag=True, help="Show all config values.")
def config_cmd(key, value, show_list):
    """Get or set firmata.toml configuration values."""
    project_dir = Path.cwd()

    if show_list:
        values = list_config(project_dir)
        if not values:
            click.echo("No configuration found.")
            return
        for k, v in sorted(values.items()):
            click.echo(f"  {k} = {v}")
        return

    if key and value:
        try:
            set_config_value(project_dir, key, value)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)
        click.echo(f"Set {key} = {value}")
        return

    if key:
        val = get_config_value(project_dir, key)
        if val is None:
            click.echo(f"{key} is not set.")
        else:
            click.echo(f"{key} = {val}")
        return

    click.echo("Usage: firmata-scout config <KEY> [VALUE] or firmata-scout config --list")
