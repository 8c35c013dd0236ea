import asyncio
import logging
from typing import Optional

import daemon
import typer

from wlanpi_dhcp_agent import __version__
from wlanpi_dhcp_agent.lib.configuration.agent_config_file import AgentConfigFile
from wlanpi_dhcp_agent.lib.errors import FatalLoopError
from wlanpi_dhcp_agent.lib.logging_utils import setup_logging

app = typer.Typer(
    name="wlanpi-dhcp-agent",
    help="DHCPv4 lease agent driven over a local control socket",
    rich_markup_mode=None,
)


def _serve(
    config_path: Optional[str],
    socket_path: Optional[str],
    fd: Optional[int],
    debug: bool,
) -> int:
    config_file = AgentConfigFile(config_path)
    config = config_file.load_or_create_defaults(allow_empty=True)
    setup_logging(level="debug" if debug else config.General.log_level)

    logger = logging.getLogger(__name__)
    logger.info(f"Starting {__version__.__title__} {__version__.__version__}")

    # Imported after logging is set up so module level loggers pick up the config
    from wlanpi_dhcp_agent.dhcp_agent import DhcpAgent

    agent = DhcpAgent(config)
    try:
        if fd is not None:
            return asyncio.run(agent.serve_fd(fd))
        return asyncio.run(agent.serve(socket_path))
    except FatalLoopError as e:
        logger.critical(f"Aborting: {e}")
        return 1
    except OSError as e:
        logger.error(f"Unable to reach supervisor: {e}")
        return 1


@app.command()
def run(
    socket_path: Optional[str] = typer.Option(
        None, "--socket", "-s", help="Supervisor control socket to connect to."
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path of the agent's TOML config file."
    ),
    fd: Optional[int] = typer.Option(
        None, "--fd", help="Use an already connected control socket on this descriptor."
    ),
    daemonize: bool = typer.Option(
        False, "--daemonize", "-d", help="Detach from the terminal before serving."
    ),
    debug: bool = typer.Option(False, "--debug", help="Log at debug level."),
):
    """
    Connect to the supervisor and serve until told to stop.
    """
    if daemonize:
        files_preserve = [fd] if fd is not None else None
        with daemon.DaemonContext(files_preserve=files_preserve):
            status = _serve(config_path, socket_path, fd, debug)
    else:
        status = _serve(config_path, socket_path, fd, debug)
    raise typer.Exit(code=status)


@app.command()
def version():
    """Print the agent version."""
    typer.echo(f"{__version__.__title__} {__version__.__version__}")


def main():
    app()
