import asyncio

import pytest

from wlanpi_dhcp_agent.lib.control import ControlSocket, Method, Response
from wlanpi_dhcp_agent.lib.control.protocol import (
    build_request,
    encode_event,
    encode_message,
)
from wlanpi_dhcp_agent.lib.errors import ControlSocketClosed, ProtocolError


def feed(data: bytes, max_size: int = 65536) -> ControlSocket:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return ControlSocket(reader, None, max_size=max_size)


def test_ok_response_with_body():
    encoded = Response(ok=True, body="<lease/>").encode()

    assert encoded == b"OK\nContent-Length: 8\n\n<lease/>"


def test_error_response_has_no_body():
    encoded = Response(ok=False, body="ignored", error="interface eth0 not known").encode()

    assert encoded == b"ERROR interface eth0 not known\n\n"


def test_event_names_the_interface():
    encoded = encode_event("wlan0", "<lease/>")

    assert encoded.startswith(b"POST /system/event/wlan0\n")
    assert encoded.endswith(b"\n\n<lease/>")


def test_header_lines_cannot_contain_newlines():
    with pytest.raises(ProtocolError):
        encode_message("ERROR bad\nthing")


def test_content_length_counts_bytes():
    encoded = encode_message("OK", "hé")

    assert b"Content-Length: 3\n" in encoded


def test_build_request_rejects_event_method():
    with pytest.raises(ProtocolError):
        build_request(["POST /system/event/eth0"], None)


def test_build_request_rejects_relative_path():
    with pytest.raises(ProtocolError):
        build_request(["GET device/eth0"], None)


@pytest.mark.asyncio
async def test_receive_request_with_body():
    sock = feed(b"PUT /interface/eth0\ncontent-length: 5\n\nhello")

    request = await sock.receive()

    assert request.method == Method.PUT
    assert request.path == "/interface/eth0"
    assert request.body == "hello"
    assert request.headers == {"content-length": "5"}


@pytest.mark.asyncio
async def test_receive_skips_blank_lines_between_messages():
    sock = feed(b"\n\nGET /device/eth0\n\nDELETE /interface/eth0\n\n")

    first = await sock.receive()
    second = await sock.receive()

    assert (first.method, first.path) == (Method.GET, "/device/eth0")
    assert (second.method, second.path) == (Method.DELETE, "/interface/eth0")


@pytest.mark.asyncio
async def test_oversized_message_is_consumed_and_rejected():
    sock = feed(b"PUT /interface/eth0\nContent-Length: 20\n\n" + b"x" * 20 + b"GET /device/eth0\n\n", max_size=10)

    with pytest.raises(ProtocolError):
        await sock.receive()

    request = await sock.receive()
    assert request.path == "/device/eth0"


@pytest.mark.asyncio
async def test_malformed_request_line_is_rejected_after_body():
    sock = feed(b"FETCH /device/eth0\nContent-Length: 2\n\nxxGET /device/eth1\n\n")

    with pytest.raises(ProtocolError):
        await sock.receive()

    request = await sock.receive()
    assert request.path == "/device/eth1"


@pytest.mark.asyncio
async def test_end_of_stream_is_a_hangup():
    sock = feed(b"")

    with pytest.raises(ControlSocketClosed):
        await sock.receive()


@pytest.mark.asyncio
async def test_truncated_body_is_a_hangup():
    sock = feed(b"PUT /interface/eth0\nContent-Length: 50\n\nshort")

    with pytest.raises(ControlSocketClosed):
        await sock.receive()


@pytest.mark.asyncio
async def test_over_long_request_line_is_dropped_and_stream_continues():
    sock = feed(b"GET /device/" + b"x" * 70000 + b"\n\nGET /device/eth0\n\n")

    with pytest.raises(ProtocolError):
        await sock.receive()

    request = await sock.receive()
    assert request.method == Method.GET
    assert request.path == "/device/eth0"


@pytest.mark.asyncio
async def test_over_long_header_line_drops_the_whole_message():
    sock = feed(
        b"PUT /interface/eth0\nX-Note: "
        + b"x" * 70000
        + b"\nContent-Length: 4\n\nabcdGET /device/eth1\n\n"
    )

    with pytest.raises(ProtocolError):
        await sock.receive()

    request = await sock.receive()
    assert request.path == "/device/eth1"


@pytest.mark.asyncio
async def test_over_long_line_arriving_in_pieces_is_skipped():
    reader = asyncio.StreamReader()
    sock = ControlSocket(reader, None)
    reader.feed_data(b"GET /device/" + b"x" * 70000)
    pending = asyncio.ensure_future(sock.receive())
    await asyncio.sleep(0)
    reader.feed_data(b"x" * 10 + b"\n\nGET /device/eth0\n\n")
    reader.feed_eof()

    with pytest.raises(ProtocolError):
        await pending

    request = await sock.receive()
    assert request.path == "/device/eth0"


async def reset_while_waiting(data: bytes, max_size: int = 65536):
    reader = asyncio.StreamReader()
    sock = ControlSocket(reader, None, max_size=max_size)
    reader.feed_data(data)
    pending = asyncio.ensure_future(sock.receive())
    for _ in range(3):
        await asyncio.sleep(0)
    reader.set_exception(ConnectionResetError("connection reset by peer"))
    return pending


@pytest.mark.asyncio
async def test_reset_while_reading_body_is_a_hangup():
    pending = await reset_while_waiting(b"PUT /interface/eth0\nContent-Length: 50\n\nshort")

    with pytest.raises(ControlSocketClosed):
        await pending


@pytest.mark.asyncio
async def test_reset_while_discarding_oversized_body_is_a_hangup():
    pending = await reset_while_waiting(
        b"PUT /interface/eth0\nContent-Length: 20\n\nxxxxx", max_size=10
    )

    with pytest.raises(ControlSocketClosed):
        await pending


@pytest.mark.asyncio
async def test_reset_between_messages_is_a_hangup():
    pending = await reset_while_waiting(b"")

    with pytest.raises(ControlSocketClosed):
        await pending
