"""
Control Module

This module connects the agent to its supervisor over a local stream socket.
It handles:
- Framing requests, responses and events
- Routing GET/PUT/DELETE requests to handlers
- Pushing one event per changed device
- The event loop and orderly shutdown on SIGTERM/SIGINT

Main components:
- ControlSocket: Framed reads and writes on the connection
- RequestRouter: Path tree lookup and dispatch
- DhcpRestApi: /interface and /device handlers
- EventPublisher: Device events to the supervisor
- AgentLoop: Timers, requests, events and termination in one thread
- ShutdownCoordinator: Lease release and device teardown on exit
"""

from .control_socket import ControlSocket
from .event_loop import AgentLoop, LoopState
from .handlers import DhcpRestApi, build_route_tree
from .protocol import Method, Request, Response
from .publisher import EventPublisher
from .router import RequestRouter, RouteNode
from .shutdown import ShutdownCoordinator, TerminationFlag

__all__ = [
    "AgentLoop",
    "ControlSocket",
    "DhcpRestApi",
    "EventPublisher",
    "LoopState",
    "Method",
    "Request",
    "RequestRouter",
    "Response",
    "RouteNode",
    "ShutdownCoordinator",
    "TerminationFlag",
    "build_route_tree",
]
