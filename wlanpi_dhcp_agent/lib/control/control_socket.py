import asyncio
import logging
import socket
from typing import Optional

from wlanpi_dhcp_agent.constants import MAX_MESSAGE_SIZE
from wlanpi_dhcp_agent.lib.errors import ControlSocketClosed, ProtocolError

from .protocol import Request, build_request, content_length, parse_header_block


class ControlSocket:
    """The connection to the supervisor: requests in, responses and events out"""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        max_size: int = MAX_MESSAGE_SIZE,
    ):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")

        self.reader = reader
        self.writer = writer
        self.max_size = max_size

    @classmethod
    async def connect(cls, path: str) -> "ControlSocket":
        reader, writer = await asyncio.open_unix_connection(path)
        return cls(reader, writer)

    @classmethod
    async def from_socket(cls, sock: socket.socket) -> "ControlSocket":
        reader, writer = await asyncio.open_unix_connection(sock=sock)
        return cls(reader, writer)

    async def _read_line(self) -> Optional[str]:
        try:
            raw = await self.reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            if e.partial:
                raise ControlSocketClosed("connection closed mid-message")
            return None
        except asyncio.LimitOverrunError as e:
            await self._skip_line(e.consumed)
            raise ProtocolError("line exceeds the read limit")
        except ConnectionError as e:
            raise ControlSocketClosed(f"read failed: {e}")
        return raw.decode(errors="replace").rstrip("\r\n")

    async def _skip_line(self, consumed: int):
        """Drop the rest of an over-long line, newline included"""
        try:
            while True:
                await self.reader.readexactly(consumed)
                try:
                    await self.reader.readuntil(b"\n")
                    return
                except asyncio.LimitOverrunError as e:
                    consumed = e.consumed
        except (asyncio.IncompleteReadError, ConnectionError) as e:
            raise ControlSocketClosed(f"connection closed mid-message: {e}")

    async def _discard(self, count: int):
        while count > 0:
            try:
                chunk = await self.reader.read(min(count, 4096))
            except ConnectionError as e:
                raise ControlSocketClosed(f"read failed: {e}")
            if not chunk:
                raise ControlSocketClosed("connection closed mid-message")
            count -= len(chunk)

    async def _discard_declared_body(self, lines: list[str]):
        for line in lines:
            name, sep, value = line.partition(":")
            value = value.strip()
            if sep and name.strip().lower() == "content-length" and value.isdigit():
                await self._discard(int(value))
                return

    async def receive(self) -> Request:
        """
        Read the next request.
        :raises ControlSocketClosed: The peer hung up.
        :raises ProtocolError: The message was unusable. It has been consumed.
        """
        lines = []
        too_long: Optional[ProtocolError] = None
        while True:
            try:
                line = await self._read_line()
            except ProtocolError as e:
                too_long = e
                continue
            if line is None:
                if lines or too_long is not None:
                    raise ControlSocketClosed("connection closed mid-message")
                raise ControlSocketClosed("connection closed by peer")
            if line == "":
                if not lines and too_long is None:
                    # Tolerate stray blank lines between messages
                    continue
                break
            lines.append(line)

        if too_long is not None:
            await self._discard_declared_body(lines)
            raise too_long

        first, headers = parse_header_block(lines)
        try:
            length = content_length(headers, self.max_size)
        except ProtocolError:
            raw = headers.get("content-length", "")
            if raw.isdigit():
                await self._discard(int(raw))
            raise

        body = None
        if length:
            try:
                payload = await self.reader.readexactly(length)
            except (asyncio.IncompleteReadError, ConnectionError):
                raise ControlSocketClosed("connection closed mid-message")
            body = payload.decode(errors="replace")
        self.logger.debug(f"Received {first} ({length} byte body)")
        return build_request(lines, body)

    async def send(self, data: bytes):
        if self.writer.is_closing():
            raise ControlSocketClosed("control socket is closed")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except ConnectionError as e:
            raise ControlSocketClosed(f"write failed: {e}")

    async def close(self):
        if self.writer.is_closing():
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except ConnectionError:
            pass
