"""
Shared types: data model, wire messages, command names, exceptions and the
protocols the session's collaborators satisfy.

Client-Host Communication
-------------------------
Requests and responses are mashumaro dataclasses serialised with MessagePack
over ZeroMQ. The `type` field on `Response` and `Notification` is the
discriminator, so a receiver can call `Response.from_msgpack(raw)` and get the
concrete subclass back.

Examples
--------
Handling responses:
```python
from hallscope.types import ErrorResponse
if isinstance(response, ErrorResponse):
    print(f"Error: {response.value}")
```

See Also
--------
hallscope.host : zmq client, event bus and the mock host
hallscope.session : the acquisition session built on these types
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import zmq
import zmq.asyncio

from .commands import CONSTS, DEVICE_CONFIG_COMMANDS, MOTOR_COMMANDS
from .config import (
    AcquisitionRun,
    DeviceConfig,
    OutputPaths,
    PortDescriptor,
    Sample,
    StreamConfig,
    adc_to_mv,
    mv_to_adc,
)
from .exceptions import (
    CommandError,
    CommsError,
    MalformedSampleError,
    SessionStateError,
)
from .messages import (
    ErrorResponse,
    HallRecv,
    HostMessage,
    Message,
    MsgResponse,
    Notification,
    PortsResponse,
    Request,
    Response,
    SamplesResponse,
    SerialChange,
    ValueResponse,
    get_all_subclasses_map,
)
from .protocols import SEVERITY, ChartSurface, HostInvoker, Notice, Notifier
from .validation import (
    HANDLER_REGISTRY,
    PENDING_COMMAND_VALIDATIONS,
    HandlerInfo,
    ValidationError,
    assert_valid_handler_client_correspondence,
    validate_handler_client_correspondence,
)


@dataclass
class HostConnection:
    """Client-side connection information."""

    context: zmq.asyncio.Context
    msg_socket: zmq.asyncio.Socket  # REQ socket
    notif_socket: zmq.asyncio.Socket  # SUB socket for notifications
    host: str
    msg_port: int
    notif_port: int


@dataclass
class ServerConnection:
    """Host-side connection information."""

    context: zmq.asyncio.Context
    msg_socket: zmq.asyncio.Socket  # ROUTER socket
    notif_socket: zmq.asyncio.Socket  # PUB socket for notifications
    host: str
    msg_port: int
    notif_port: int
    notif_queue: asyncio.Queue
    shutdown_requested: bool = False


__all__ = [
    "HostConnection",
    "ServerConnection",
    "CONSTS",
    "MOTOR_COMMANDS",
    "DEVICE_CONFIG_COMMANDS",
    "Sample",
    "PortDescriptor",
    "OutputPaths",
    "AcquisitionRun",
    "DeviceConfig",
    "StreamConfig",
    "adc_to_mv",
    "mv_to_adc",
    "CommsError",
    "CommandError",
    "SessionStateError",
    "MalformedSampleError",
    "Message",
    "Request",
    "Response",
    "MsgResponse",
    "ValueResponse",
    "PortsResponse",
    "SamplesResponse",
    "ErrorResponse",
    "Notification",
    "HallRecv",
    "SerialChange",
    "HostMessage",
    "get_all_subclasses_map",
    "SEVERITY",
    "Notice",
    "HostInvoker",
    "ChartSurface",
    "Notifier",
    "HANDLER_REGISTRY",
    "PENDING_COMMAND_VALIDATIONS",
    "HandlerInfo",
    "ValidationError",
    "validate_handler_client_correspondence",
    "assert_valid_handler_client_correspondence",
]
