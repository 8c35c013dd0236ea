import asyncio
import signal
import socket
import xml.etree.ElementTree as ET

import pytest
import pytest_asyncio

from wlanpi_dhcp_agent.lib.control import (
    AgentLoop,
    ControlSocket,
    EventPublisher,
    LoopState,
    ShutdownCoordinator,
    TerminationFlag,
)
from wlanpi_dhcp_agent.lib.dhcp import DeviceState
from wlanpi_dhcp_agent.lib.errors import FatalLoopError

from .conftest import bound_lease, interface_xml


class Supervisor:
    """The other end of the control socket"""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer

    async def send(self, first_line: str, body: str = None):
        if body:
            payload = body.encode()
            self.writer.write(f"{first_line}\nContent-Length: {len(payload)}\n\n".encode() + payload)
        else:
            self.writer.write(f"{first_line}\n\n".encode())
        await self.writer.drain()

    async def read_message(self) -> tuple[str, str]:
        first = (await self.reader.readline()).decode().rstrip("\n")
        length = 0
        while True:
            line = (await self.reader.readline()).decode().rstrip("\n")
            if not line:
                break
            name, _, value = line.partition(":")
            if name.strip().lower() == "content-length":
                length = int(value)
        body = (await self.reader.readexactly(length)).decode() if length else ""
        return first, body

    def close(self):
        self.writer.close()


@pytest_asyncio.fixture
async def wired(registry, fsm, renderer, router, bus):
    agent_end, supervisor_end = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    sock = await ControlSocket.from_socket(agent_end)
    reader, writer = await asyncio.open_unix_connection(sock=supervisor_end)

    flag = TerminationFlag()
    loop = AgentLoop(
        sock,
        router,
        registry,
        fsm,
        EventPublisher(sock, renderer, bus),
        ShutdownCoordinator(registry, fsm, timeout=1, bus=bus),
        flag,
    )
    supervisor = Supervisor(reader, writer)
    yield loop, supervisor, flag
    supervisor.close()
    await sock.close()


async def run_until_done(task: asyncio.Task) -> int:
    return await asyncio.wait_for(task, timeout=5)


@pytest.mark.asyncio
async def test_requests_are_answered_in_order(wired, registry):
    loop, supervisor, _ = wired
    task = asyncio.create_task(loop.run())

    await supervisor.send("GET /device/eth0")
    await supervisor.send("PUT /interface/eth0", interface_xml())
    await supervisor.send("GET /device/eth0")

    first, _ = await supervisor.read_message()
    second, _ = await supervisor.read_message()
    third, body = await supervisor.read_message()

    assert first == "ERROR interface eth0 not known"
    assert second == "OK"
    assert third == "OK"
    assert ET.fromstring(body).get("state") == "released"
    assert "eth0" in registry

    supervisor.close()
    assert await run_until_done(task) == 0


@pytest.mark.asyncio
async def test_changed_device_produces_one_event_after_the_response(wired, registry):
    loop, supervisor, _ = wired
    device = registry.create("eth0")
    device.lease = bound_lease()
    device.set_state(DeviceState.BOUND)
    task = asyncio.create_task(loop.run())

    await supervisor.send("PUT /interface/eth0", interface_xml(up=False))

    response, _ = await supervisor.read_message()
    event, body = await supervisor.read_message()

    assert response == "OK"
    assert event == "POST /system/event/eth0"
    assert ET.fromstring(body).get("state") == "released"

    supervisor.close()
    assert await run_until_done(task) == 0


@pytest.mark.asyncio
async def test_unusable_message_gets_no_response(wired):
    loop, supervisor, _ = wired
    task = asyncio.create_task(loop.run())

    await supervisor.send("FETCH /device/eth0")
    await supervisor.send("GET /device/eth0")

    first, _ = await supervisor.read_message()
    assert first == "ERROR interface eth0 not known"

    supervisor.close()
    await run_until_done(task)


@pytest.mark.asyncio
async def test_termination_signal_releases_and_reports(wired, registry, fsm):
    loop, supervisor, flag = wired
    device = registry.create("eth0")
    device.lease = bound_lease()
    device.set_state(DeviceState.BOUND)
    task = asyncio.create_task(loop.run())
    await asyncio.sleep(0)

    flag.record(signal.SIGTERM)
    status = await run_until_done(task)

    assert status == 0
    assert loop.state == LoopState.TERMINATED
    assert fsm.names("release") == ["eth0"]
    assert fsm.names("stop") == ["eth0"]

    event, body = await asyncio.wait_for(supervisor.read_message(), timeout=5)
    assert event == "POST /system/event/eth0"
    assert ET.fromstring(body).get("state") == "released"


@pytest.mark.asyncio
async def test_hangup_shuts_down(wired, registry, fsm):
    loop, supervisor, flag = wired
    registry.create("eth0")
    task = asyncio.create_task(loop.run())

    supervisor.close()

    assert await run_until_done(task) == 0
    assert flag.hangup
    assert fsm.names("stop") == ["eth0"]


@pytest.mark.asyncio
async def test_timers_are_processed_each_pass(wired, fsm):
    loop, supervisor, _ = wired
    fsm.timeout = 0.01
    task = asyncio.create_task(loop.run())

    await asyncio.sleep(0.1)
    supervisor.close()
    await run_until_done(task)

    assert fsm.expirations > 2


@pytest.mark.asyncio
async def test_failed_wait_is_fatal_and_skips_shutdown(wired, fsm, monkeypatch):
    loop, _, _ = wired

    async def broken_wait(timeout):
        raise OSError("poll failed")

    monkeypatch.setattr(loop, "_wait", broken_wait)

    with pytest.raises(FatalLoopError):
        await asyncio.wait_for(loop.run(), timeout=5)

    assert fsm.idle_waits == []
    assert loop.state == LoopState.TERMINATED


@pytest.mark.asyncio
async def test_lease_follows_the_device_through_bind_and_restart(wired, registry):
    loop, supervisor, _ = wired
    task = asyncio.create_task(loop.run())

    await supervisor.send("PUT /interface/eth0", interface_xml())
    assert (await supervisor.read_message())[0] == "OK"
    await supervisor.send("GET /device/eth0")
    response, body = await supervisor.read_message()
    assert response == "OK"
    assert ET.fromstring(body).get("state") == "released"

    # The engine binds the device
    device = registry.find("eth0")
    device.lease = bound_lease()
    device.set_state(DeviceState.BOUND)
    device.mark_changed()
    loop.wakeup()

    event, body = await supervisor.read_message()
    assert event == "POST /system/event/eth0"
    assert ET.fromstring(body).get("state") == "granted"

    await supervisor.send("GET /device/eth0")
    response, body = await supervisor.read_message()
    lease = ET.fromstring(body)
    assert response == "OK"
    assert lease.get("state") == "granted"
    assert lease.findtext("address") == "192.0.2.10/24"

    # A changed config restarts acquisition and drops the old lease
    await supervisor.send("PUT /interface/eth0", interface_xml(hostname="pi"))
    assert (await supervisor.read_message())[0] == "OK"
    await supervisor.send("GET /device/eth0")
    response, body = await supervisor.read_message()
    assert response == "OK"
    assert ET.fromstring(body).get("state") == "released"
    assert device.lease is None

    supervisor.close()
    assert await run_until_done(task) == 0


@pytest.mark.asyncio
async def test_over_long_request_line_is_dropped_and_serving_continues(wired):
    loop, supervisor, flag = wired
    task = asyncio.create_task(loop.run())

    await supervisor.send("GET /device/" + "x" * 70000)
    await supervisor.send("GET /device/eth0")

    first, _ = await asyncio.wait_for(supervisor.read_message(), timeout=5)
    assert first == "ERROR interface eth0 not known"
    assert not flag.hangup
    assert not task.done()

    supervisor.close()
    assert await run_until_done(task) == 0


@pytest.mark.asyncio
async def test_reset_mid_body_is_an_orderly_hangup(registry, fsm, renderer, router, bus):
    reader = asyncio.StreamReader()
    sock = ControlSocket(reader, None)
    flag = TerminationFlag()
    loop = AgentLoop(
        sock,
        router,
        registry,
        fsm,
        EventPublisher(sock, renderer, bus),
        ShutdownCoordinator(registry, fsm, timeout=1, bus=bus),
        flag,
    )
    registry.create("eth0")
    task = asyncio.create_task(loop.run())

    reader.feed_data(b"PUT /interface/eth0\nContent-Length: 50\n\npartial")
    for _ in range(5):
        await asyncio.sleep(0)
    reader.set_exception(ConnectionResetError("connection reset by peer"))

    assert await run_until_done(task) == 0
    assert flag.hangup
    assert fsm.names("stop") == ["eth0"]
    assert fsm.idle_waits == [1]
