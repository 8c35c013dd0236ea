from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from wlanpi_dhcp_agent.constants import EVENT_PATH_PREFIX
from wlanpi_dhcp_agent.lib.errors import ProtocolError

# Wire format, all text:
#   <first line>\n
#   [Header: value\n ...]
#   \n
#   <Content-Length bytes of body>


class Method(Enum):
    GET = "GET"
    PUT = "PUT"
    DELETE = "DELETE"
    POST = "POST"


REQUEST_METHODS = (Method.GET, Method.PUT, Method.DELETE)


@dataclass
class Request:
    """One control call. Handlers fill response_body or error."""

    method: Method
    path: str
    body: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    response_body: Optional[str] = None
    error: Optional[str] = None

    def fail(self, message: str) -> int:
        self.error = message
        return -1


@dataclass
class Response:
    ok: bool
    body: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, status: int) -> "Response":
        if status < 0:
            return cls(ok=False, error=request.error or "unable to process request")
        return cls(ok=True, body=request.response_body)

    @classmethod
    def failure(cls, message: str) -> "Response":
        return cls(ok=False, error=message)

    def encode(self) -> bytes:
        first = "OK" if self.ok else f"ERROR {self.error}"
        return encode_message(first, self.body if self.ok else None)


def encode_message(first_line: str, body: Optional[str] = None) -> bytes:
    if "\n" in first_line:
        raise ProtocolError("header line contains a newline")
    if not body:
        return f"{first_line}\n\n".encode()
    payload = body.encode()
    return f"{first_line}\nContent-Length: {len(payload)}\n\n".encode() + payload


def encode_event(ifname: str, body: str) -> bytes:
    return encode_message(f"{Method.POST.value} {EVENT_PATH_PREFIX}/{ifname}", body)


def parse_header_block(lines: list[str]) -> tuple[str, dict[str, str]]:
    """Split a header block into its first line and its headers"""
    if not lines or not lines[0].strip():
        raise ProtocolError("empty message")
    headers = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            raise ProtocolError(f"malformed header line {line!r}")
        headers[name.strip().lower()] = value.strip()
    return lines[0].strip(), headers


def content_length(headers: dict[str, str], limit: int) -> int:
    raw = headers.get("content-length")
    if raw is None:
        return 0
    try:
        length = int(raw)
    except ValueError:
        raise ProtocolError(f"bad Content-Length {raw!r}")
    if length < 0:
        raise ProtocolError(f"bad Content-Length {raw!r}")
    if length > limit:
        raise ProtocolError(f"message of {length} bytes exceeds limit of {limit}")
    return length


def parse_request_line(line: str) -> tuple[Method, str]:
    parts = line.split()
    if len(parts) != 2:
        raise ProtocolError(f"malformed request line {line!r}")
    method_name, path = parts
    try:
        method = Method(method_name.upper())
    except ValueError:
        raise ProtocolError(f"unknown method {method_name!r}")
    if method not in REQUEST_METHODS:
        raise ProtocolError(f"method {method.value} not accepted in requests")
    if not path.startswith("/"):
        raise ProtocolError(f"path {path!r} is not absolute")
    return method, path


def build_request(lines: list[str], body: Optional[str]) -> Request:
    first, headers = parse_header_block(lines)
    method, path = parse_request_line(first)
    return Request(method=method, path=path, body=body or None, headers=headers)
