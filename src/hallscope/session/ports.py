"""Last known set of hardware ports the host can see."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from loguru import logger

from hallscope.types import CONSTS, CommandError, PortDescriptor, SerialChange
from hallscope.util import Signal

from .gateway import CommandGateway


class PortRegistry:
    """Holds the port set; replaced wholesale on every update, never diffed.

    Readers connect to `ports_changed` (called with the new tuple) and must
    re-render fully each time.
    """

    def __init__(self, gateway: CommandGateway):
        self._gateway = gateway
        self._ports: tuple[PortDescriptor, ...] = ()
        self.ports_changed = Signal("ports_changed")
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def ports(self) -> tuple[PortDescriptor, ...]:
        return self._ports

    def _replace(self, ports: Iterable[PortDescriptor]) -> None:
        self._ports = tuple(ports)
        logger.info("Ports: {}", [p.id for p in self._ports])
        self.ports_changed.emit(self._ports)

    async def refresh(self) -> tuple[PortDescriptor, ...]:
        """Query the host. On failure the user is told (by the gateway) and
        the last-known-good set is kept."""
        try:
            ports = await self._gateway.invoke(
                CONSTS.DEVICE.GET_PORT, quiet=True, error_title="Port scan failed"
            )
        except CommandError:
            return self._ports
        self._replace(ports)
        return self._ports

    def on_enumeration_pushed(self, ports: Iterable[PortDescriptor]) -> None:
        self._replace(ports)

    def attach(self, bus) -> None:
        """Follow `serial_change` pushes from the host."""
        self.detach()
        self._unsubscribe = bus.subscribe(
            SerialChange, lambda notif: self.on_enumeration_pushed(notif.ports)
        )

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
