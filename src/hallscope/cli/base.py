import asyncio

import click

from hallscope.gui.main_gui import main_gui
from hallscope.host.mock_host import start_host
from hallscope.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    get_hw_ports,
)


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


def log_options(f):
    """Logging options shared by the GUI and the mock host."""
    options = [
        click.option(
            "--log-to-file/--no-log-to-file",
            "-ltf/",
            default=True,
            help="Enable/disable logging to file (default: enabled)",
        ),
        click.option(
            "--log-to-stdout/--no-log-to-stdout",
            "-lts/",
            default=True,
            help="Enable/disable console logging (default: enabled)",
        ),
        click.option(
            "--log-path",
            "-lp",
            default="",
            help="Custom path for log file (default: ~/.hallscope/*.log)",
        ),
        click.option(
            "--clear-prev-log/--no-clear-prev-log",
            "-c/",
            default=True,
            help="Clear previous log file on startup (default: enabled)",
        ),
        click.option(
            "--log-level",
            "-ll",
            default=DEFAULT_LOGLEVEL,
            help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR) (default: INFO)",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


@click.group()
@tree_option
def cli():
    """hallscope - rotating hall sensor / laser acquisition front end.

    - GUI for device connection, motor control and live acquisition

    - A mock host simulating the rig, for development and testing
    """
    pass


@cli.command()
@click.option(
    "--host-address",
    "-ha",
    default="",
    help="Host address to connect to (default: from settings)",
)
@click.option(
    "--msg-port",
    "-mp",
    default=None,
    type=int,
    help="Host message port to connect to (default: from settings)",
)
@click.option(
    "--mock/--no-mock",
    default=False,
    help="Start a local mock host first (default: disabled)",
)
@click.option(
    "--drop-rate",
    "-dr",
    default=0.0,
    type=click.FloatRange(0.0, 1.0, max_open=True),
    help="Fraction of hall_recv pushes the mock host drops (default: 0)",
)
@click.option(
    "--settings",
    "settings_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Settings file (default: ~/.hallscope/settings.ini)",
)
@log_options
def gui(**kwargs):
    """Start the hallscope GUI.

    Connects to the host, then offers device connection, motor control and
    acquisition with live and polar charts.
    """
    if kwargs["drop_rate"] and not kwargs["mock"]:
        raise click.UsageError("--drop-rate only applies with --mock.")
    kwargs["host"] = kwargs.pop("host_address")
    main_gui(**kwargs)


@cli.command("mock-host")
@click.option(
    "--host-address",
    "-ha",
    default=DEFAULT_HOST_ADDR,
    help="Network address to bind the host to (default: localhost)",
)
@click.option(
    "--msg-port",
    "-mp",
    default=DEFAULT_PORT,
    type=int,
    help=f"Port for command/response messages (default: {DEFAULT_PORT})",
)
@click.option(
    "--notif-port",
    "-np",
    default=lambda: DEFAULT_PORT + 1,
    type=int,
    help=f"Port for host notifications (default: {DEFAULT_PORT + 1})",
)
@click.option(
    "--drop-rate",
    "-dr",
    default=0.0,
    type=click.FloatRange(0.0, 1.0, max_open=True),
    help="Fraction of hall_recv pushes to drop (default: 0)",
)
@log_options
def mock_host(**kwargs):
    """Run the mock host in the foreground.

    Simulates the hall sensor head, the stepper motor and the serial port
    enumeration, and serves the full command set.
    """
    kwargs["host"] = kwargs.pop("host_address")
    asyncio.run(start_host(**kwargs))


@cli.command()
def ports():
    """List serial ports with hardware behind them."""
    ports = get_hw_ports()

    click.echo("\nAvailable serial ports:")
    click.echo("-----------------------")

    if not ports:
        click.echo("No serial ports found")
        click.echo("")
        return

    for port, description in ports.items():
        click.echo(f"\nPort: {port}")
        click.echo(f"Description: {description}")

    click.echo("")
