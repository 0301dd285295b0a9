import threading
from typing import Optional

import click
from loguru import logger

from picolog_udp.device import connect_device, find_devices, find_first_unlocked
from picolog_udp.types import CommsError, SessionConfig, Variant
from picolog_udp.util import (
    DEFAULT_LOGLEVEL,
    DISCOVERY_WINDOW,
    format_error_response,
    get_log_filename,
    shutdown_log,
    start_log,
)
from picolog_udp.util.sysconfig import (
    list_session_configs,
    load_session_config,
    save_session_config,
)

VARIANT_CHOICE = click.Choice(["cm3", "pt104"], case_sensitive=False)


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    # Only print root name if no parent
    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


def parse_byte(ctx, param, value):
    if value is None:
        return None
    try:
        number = int(value, 0)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an integer (e.g. 3 or 0x13)")
    if not 0 <= number <= 0xFF:
        raise click.BadParameter(f"{value} does not fit in one byte")
    return number


def build_config(
    config_name: Optional[str],
    mains: Optional[int] = None,
    channels: Optional[int] = None,
    host_ip: Optional[str] = None,
    window: Optional[float] = None,
) -> SessionConfig:
    """Start from a stored (or default) config and apply command line overrides."""
    config = SessionConfig() if config_name is None else load_session_config(config_name)
    if mains is not None:
        config.mains_frequency = mains
    if channels is not None:
        config.channel_config = channels
    if host_ip is not None:
        config.host_ip = host_ip
    if window is not None:
        config.discovery_window = window
    config.validate()
    return config


@click.group()
@tree_option
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=False,
    help="Enable/disable logging to file (default: disabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=True,
    help="Enable/disable console logging (default: enabled)",
)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: ~/.picolog_udp/session.log)",
)
@click.option(
    "--log-level",
    "-ll",
    default=DEFAULT_LOGLEVEL,
    help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR) (default: INFO)",
)
@click.pass_context
def cli(ctx, log_to_file, log_to_stdout, log_path, log_level):
    """picolog-udp - ethernet client for PicoLog CM3 and USB PT-104 loggers.

    - Discover loggers on the local network

    - Stream calibrated readings to the console

    - Manage stored session configurations
    """
    start_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        log_level=log_level.upper(),
    )
    if log_to_file:
        click.echo(f"Logging to {get_log_filename()}", err=True)
    ctx.call_on_close(shutdown_log)


@cli.command()
@click.option("--variant", "-v", type=VARIANT_CHOICE, required=True)
@click.option("--host-ip", "-hi", default="", help="Adapter address to broadcast from")
@click.option(
    "--window",
    "-w",
    default=DISCOVERY_WINDOW,
    type=click.FloatRange(min=0, min_open=True),
    help=f"Seconds to wait for replies (default: {DISCOVERY_WINDOW})",
)
def find(variant, host_ip, window):
    """List loggers replying to the discovery broadcast."""
    try:
        descriptors = find_devices(
            Variant.from_name(variant), host_ip=host_ip, wait_window=window
        )
    except OSError as e:
        raise click.ClickException(f"Discovery failed: {e}")
    if not descriptors:
        click.echo("No devices found")
        return
    for descriptor in descriptors:
        state = "locked" if descriptor.locked else "unlocked"
        click.echo(f"{descriptor}\tMAC:{descriptor.mac_address}\t{state}")


@cli.command()
@click.option("--variant", "-v", type=VARIANT_CHOICE, required=True)
@click.option("--address", "-a", help="Device address, skips discovery")
@click.option("--port", "-p", type=int, help="Device command port (with --address)")
@click.option("--config", "-c", "config_name", help="Stored configuration name")
@click.option("--mains", "-m", type=click.Choice(["50", "60"]), help="Mains frequency")
@click.option(
    "--channels", "-ch", callback=parse_byte, help="Channel config byte, e.g. 0x03"
)
@click.option("--host-ip", "-hi", default=None, help="Adapter address to broadcast from")
@click.option("--count", "-n", default=0, type=int, help="Stop after N samples (0: run)")
def stream(variant, address, port, config_name, mains, channels, host_ip, count):
    """Open a logger and print every sample until Ctrl-C."""
    if (address is None) != (port is None):
        raise click.UsageError("Must define both --address and --port, or neither")
    variant = Variant.from_name(variant)
    try:
        config = build_config(
            config_name,
            mains=None if mains is None else int(mains),
            channels=channels,
            host_ip=host_ip,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    try:
        if address is None:
            session = find_first_unlocked(variant, config)
        else:
            session = connect_device(variant, address, port, config)
    except (CommsError, OSError):
        logger.error("Could not open {}: {}", variant.value, format_error_response())
        raise click.ClickException(f"Could not open {variant.value}")
    if session is None:
        click.echo("No devices found")
        return

    done = threading.Event()
    received = 0

    def on_sample(dev, sample):
        nonlocal received
        received += 1
        click.echo(
            f"{dev.serial}:\tCh{sample.channel} {sample.raw:.6g}\t"
            + f"{sample.value:.6g} {sample.unit}"
        )
        if count and received >= count:
            done.set()

    def on_failure(dev, error):
        done.set()

    with session:
        click.echo(f"Found Device: {session}")
        session.add_listener(on_sample)
        session.add_failure_listener(on_failure)
        try:
            while not done.wait(0.2):
                pass
        except KeyboardInterrupt:
            click.echo("Stopping.")
    if session.failure is not None:
        raise click.ClickException(str(session.failure))


@cli.group()
def config():
    """Manage stored session configurations."""
    pass


@config.command("list")
def config_list():
    """List stored configuration names."""
    names = list_session_configs()
    if not names:
        click.echo("No stored configurations")
    for name in names:
        click.echo(name)


@config.command("show")
@click.argument("name")
def config_show(name):
    """Print a stored configuration."""
    try:
        stored = load_session_config(name)
    except ValueError as e:
        raise click.ClickException(str(e))
    for key, value in stored.to_dict().items():
        click.echo(f"{key} = {value}")


@config.command("save")
@click.argument("name")
@click.option("--mains", "-m", type=click.Choice(["50", "60"]), default="50")
@click.option("--channels", "-ch", callback=parse_byte, default="0x03")
@click.option("--host-ip", "-hi", default="")
@click.option(
    "--window",
    "-w",
    default=DISCOVERY_WINDOW,
    type=click.FloatRange(min=0, min_open=True),
)
@click.option("--mac-check", type=click.Choice(["strict", "warn"]), default="strict")
@click.option(
    "--byte-order",
    type=click.Choice(["big", "little"]),
    default="big",
    help="Byte order of the EEPROM calibration words",
)
def config_save(name, mains, channels, host_ip, window, mac_check, byte_order):
    """Store a configuration under NAME."""
    new = SessionConfig(
        mains_frequency=int(mains),
        channel_config=channels,
        host_ip=host_ip,
        discovery_window=window,
        mac_check=mac_check,
        calibration_byte_order=byte_order,
    )
    try:
        path = save_session_config(name, new)
    except ValueError as e:
        raise click.BadParameter(str(e))
    click.echo(f"Saved '{name}' to {path}")
