"""Message types for client-host communication."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mashumaro.mixins.msgpack import DataClassMessagePackMixin
from mashumaro.types import Discriminator

from .config import PortDescriptor, Sample


def get_all_subclasses_map(cls: type) -> dict[str, type]:
    """Get all subclasses of a class recursively."""

    def _get_all(clas: type, subclasses: dict[str, type]):
        if not clas.__subclasses__():
            return subclasses
        for subcls in clas.__subclasses__():
            subclasses[subcls.__name__] = subcls
            subclasses |= _get_all(subcls, subclasses)
        return subclasses

    return _get_all(cls, dict())


@dataclass
class Message(DataClassMessagePackMixin):
    """Base class for all messages."""

    def __repr__(self):
        msg = self.__class__.__name__ + "("
        for i, (name, val) in enumerate(self.__dict__.items()):
            if i not in (0, len(self.__dict__)):
                msg += ", "
            if isinstance(val, (list, tuple)) and len(val) > 10:
                msg += f"{name}=<{len(val)} items>"
            else:
                msg += f"{name}={val}"
        return msg + ")"


@dataclass(repr=False)
class Request(Message):
    """A request from client to host.

    Request needs to be general (client->host) as the host has no info on what
    type of message it's getting. Requester does know what type of response to
    expect, so that object can be specialised.
    """

    command: str
    params: dict[str, bool | str | float | int | None] = field(default_factory=dict)


@dataclass(kw_only=True, repr=False)
class Response(Message):
    """A response from host to client's request."""

    type: str  # subclass to define
    value: Any  # subclass to define

    class Config:
        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass(kw_only=True, repr=False)
class MsgResponse(Response):
    type: str = "msg"
    value: str = ""


@dataclass(kw_only=True, repr=False)
class ValueResponse(Response):
    type: str = "value"
    value: int | float | str | bool = False


@dataclass(kw_only=True, repr=False)
class PortsResponse(Response):
    type: str = "ports"
    value: list[PortDescriptor] = field(default_factory=list)


@dataclass(kw_only=True, repr=False)
class SamplesResponse(Response):
    type: str = "samples"
    value: list[Sample] = field(default_factory=list)


@dataclass(kw_only=True, repr=False)
class ErrorResponse(Response):
    type: str = "error"
    value: str = ""


@dataclass(kw_only=True, repr=False)
class Notification(Message):
    type: str

    class Config:
        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass(kw_only=True, repr=False)
class HallRecv(Notification):
    """One sample, pushed as soon as the host reads it."""

    type: str = "hall_recv"
    sample: Sample


@dataclass(kw_only=True, repr=False)
class SerialChange(Notification):
    """Port topology changed (device plugged/unplugged)."""

    type: str = "serial_change"
    ports: list[PortDescriptor] = field(default_factory=list)


@dataclass(kw_only=True, repr=False)
class HostMessage(Notification):
    """Free-form user message from the host, forwarded verbatim."""

    type: str = "message"
    severity: str = "info"  # info | success | warning | error
    title: str = ""
    body: str = ""
