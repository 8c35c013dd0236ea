import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from .protocol import Method, Request, Response

# handler(param, request) -> status; negative status means request.error is set
Handler = Callable[[Optional[str], Request], int]


@dataclass(frozen=True)
class RouteNode:
    name: str
    children: tuple["RouteNode", ...] = ()
    handlers: Mapping[Method, Handler] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "children", tuple(self.children))
        object.__setattr__(self, "handlers", MappingProxyType(dict(self.handlers)))

    def child(self, name: str) -> Optional["RouteNode"]:
        for node in self.children:
            if node.name == name:
                return node
        return None

    def handler_for(self, method: Method) -> Optional[Handler]:
        return self.handlers.get(method)


class RequestRouter:
    """Resolves /<node>[/<param>] paths against a fixed tree and calls the handler"""

    def __init__(self, root: RouteNode):
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initializing {__name__}")
        self.root = root

    def resolve(self, path: str) -> tuple[Optional[RouteNode], Optional[str]]:
        """
        Walk the tree one segment at a time. The first segment that names no child
        is the parameter; anything after it makes the path unresolvable.
        """
        segments = [segment for segment in path.split("/") if segment]
        node = self.root
        while segments:
            child = node.child(segments[0])
            if child is None:
                break
            node = child
            segments.pop(0)

        if not segments:
            return node, None
        if node is self.root or len(segments) > 1:
            return None, None
        return node, segments[0]

    def dispatch(self, request: Request) -> Response:
        node, param = self.resolve(request.path)
        if node is None:
            return self._fail(request, f"no such path {request.path}")

        handler = node.handler_for(request.method)
        if handler is None:
            return self._fail(
                request, f"{request.method.value} not supported for {request.path}"
            )

        try:
            status = handler(param, request)
        except Exception as e:
            self.logger.exception(f"{request.method.value} {request.path} raised {e}")
            status = request.fail("unable to process request")

        response = Response.from_request(request, status)
        if not response.ok:
            self.logger.error(
                f"{request.method.value} {request.path} failed: {response.error}"
            )
        return response

    def _fail(self, request: Request, message: str) -> Response:
        request.fail(message)
        self.logger.error(f"{request.method.value} {request.path} failed: {message}")
        return Response.failure(message)
