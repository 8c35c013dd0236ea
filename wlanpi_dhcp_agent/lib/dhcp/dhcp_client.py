import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

from wlanpi_dhcp_agent import constants
from wlanpi_dhcp_agent.models.command_result import CommandResult

from .dhcp_lease_parser import DHCPLeaseParser
from .domain import DhcpConfig, Lease


class DHCPClient:
    """Handles dhclient invocations for network interfaces"""

    def __init__(
        self,
        dhclient: str = "dhclient",
        lease_dir: Union[str, Path] = constants.LEASE_DIR,
        run_dir: Union[str, Path] = constants.RUN_DIR,
        command_timeout: float = 10,
        hostname: Optional[str] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.dhclient = dhclient
        self.lease_dir = Path(lease_dir)
        self.run_dir = Path(run_dir)
        self.command_timeout = command_timeout
        self.hostname = hostname
        self.lease_parsers: dict[str, DHCPLeaseParser] = {}

    def pid_file(self, interface_name: str) -> Path:
        return self.run_dir / f"dhclient.{interface_name}.pid"

    def lease_parser(self, interface_name: str) -> DHCPLeaseParser:
        parser = self.lease_parsers.get(interface_name)
        if parser is None:
            parser = DHCPLeaseParser(interface_name, self.lease_dir)
            self.lease_parsers[interface_name] = parser
        return parser

    def _files(self, interface_name: str) -> list[str]:
        return [
            "-pf",
            str(self.pid_file(interface_name)),
            "-lf",
            str(self.lease_parser(interface_name).lease_path),
        ]

    def acquire_command(
        self, interface_name: str, config: Optional[DhcpConfig] = None
    ) -> list[str]:
        cmd = [
            self.dhclient,
            "-4",
            "-v",  # verbose
            "-1",  # try once
            *self._files(interface_name),
        ]
        # Debian's dhclient takes these on the command line
        hostname = config.hostname if config is not None else None
        if hostname or self.hostname:
            cmd += ["-H", hostname or self.hostname]
        if config is not None:
            if config.vendor_class:
                cmd += ["-V", config.vendor_class]
            if config.client_id:
                cmd += ["-C", config.client_id]
        cmd.append(interface_name)
        return cmd

    async def _run(self, cmd: list[str], timeout: float) -> CommandResult:
        self.logger.debug(f"Running command: {cmd}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            self.logger.error(f"Unable to run {cmd[0]}: {e}")
            return CommandResult("", str(e), None)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult("", f"timed out after {timeout}s", None)
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise
        return CommandResult(
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
            process.returncode,
        )

    async def acquire(
        self,
        interface_name: str,
        config: Optional[DhcpConfig] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run dhclient once for an interface; it stays behind to maintain the lease."""
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Starting DHCP client for {interface_name}")
        result = await self._run(
            self.acquire_command(interface_name, config),
            timeout or self.command_timeout,
        )
        if result.success:
            self.logger.info(f"DHCP client successful for {interface_name}")
        else:
            self.logger.error(f"DHCP client failed for {interface_name}: {result.error}")
        return result

    async def stop(self, interface_name: str) -> CommandResult:
        """Stop the dhclient maintaining an interface, without releasing its lease"""
        result = await self._run(
            [self.dhclient, "-x", *self._files(interface_name), interface_name],
            self.command_timeout,
        )
        self.lease_parsers.pop(interface_name, None)
        self.logger.info(f"Stopped DHCP client for {interface_name}")
        return result

    async def release(self, interface_name: str) -> CommandResult:
        """Release DHCP lease for an interface"""
        result = await self._run(
            [self.dhclient, "-r", *self._files(interface_name), interface_name],
            self.command_timeout,
        )
        if result.success:
            self.logger.info(f"Released DHCP lease for {interface_name}")
        else:
            self.logger.warning(
                f"Failed to release DHCP lease for {interface_name}: {result.error}"
            )
        return result

    def read_lease(self, interface_name: str) -> Optional[Lease]:
        """Get the current lease recorded by dhclient for an interface"""
        record = self.lease_parser(interface_name).latest_lease()
        if record is None:
            return None
        try:
            return DHCPLeaseParser.to_lease(record)
        except ValueError as e:
            self.logger.error(f"Error reading lease for {interface_name}: {e}")
            return None
