"""The live acquisition view and the session object that wires it all up.

`RealTimeView` scopes the two sample sources to the lifetime of the view: the
push subscription and the poll task exist between `mount()` and `unmount()`,
and are torn down before any chart surface is released.

`AcquisitionSession` builds the components around one host invoker and one
event bus:

```python
manager = HostConnectionManager()
await manager.connect()
session = AcquisitionSession(manager, manager.bus, notifier=QtNotifier(win))
session.chart_sync.bind("live", make_live_surface, visible=True)
await session.mount()
await session.ports.refresh()
await session.state.connect(DeviceConfig("COM3", "COM4"))
```
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from loguru import logger

from hallscope.types import (
    HallRecv,
    HostInvoker,
    HostMessage,
    Notice,
    Notifier,
    StreamConfig,
)

from .chart_sync import ChartSync
from .gateway import CommandGateway
from .ports import PortRegistry
from .state import SessionStateMachine
from .stream import BUFFER_MODE, SOURCE, SampleStream


class RealTimeView:
    def __init__(
        self,
        bus,
        stream: SampleStream,
        gateway: CommandGateway,
        chart_sync: ChartSync,
        should_poll: Callable[[], bool] = lambda: True,
    ):
        self._bus = bus
        self._stream = stream
        self._gateway = gateway
        self._chart_sync = chart_sync
        self._should_poll = should_poll
        self._poll_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def mounted(self) -> bool:
        return self._poll_task is not None

    def mount(self) -> None:
        if self.mounted:
            return
        self._unsubscribe = self._bus.subscribe(
            HallRecv, lambda notif: self._stream.ingest(notif.sample, SOURCE.PUSH)
        )
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.debug("Real-time view mounted.")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._stream.config.poll_interval)
            if not self._should_poll():
                continue
            try:
                await self._stream.poll(self._gateway)
            except Exception:
                logger.exception("Poll tick failed, retrying next tick.")

    async def unmount(self) -> None:
        """Cancel polling and unsubscribe, then release the chart surfaces."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._chart_sync.release_all()
        logger.debug("Real-time view unmounted.")


class AcquisitionSession:
    def __init__(
        self,
        invoker: HostInvoker,
        bus,
        notifier: Optional[Notifier] = None,
        config: Optional[StreamConfig] = None,
        mode: str = BUFFER_MODE.RING,
    ):
        self.bus = bus
        self.gateway = CommandGateway(invoker, notifier)
        self.stream = SampleStream(config, mode)
        self.ports = PortRegistry(self.gateway)
        self.state = SessionStateMachine(self.gateway, self.stream)
        self.chart_sync = ChartSync(self.stream)
        self.view = RealTimeView(
            bus,
            self.stream,
            self.gateway,
            self.chart_sync,
            should_poll=lambda: self.state.is_streaming,
        )
        self._unsubscribe_messages: Optional[Callable[[], None]] = None

    def _forward_host_message(self, notif: HostMessage) -> None:
        self.gateway.forward(Notice(notif.severity, notif.title, notif.body))

    async def mount(self) -> None:
        self.ports.attach(self.bus)
        if self._unsubscribe_messages is None:
            self._unsubscribe_messages = self.bus.subscribe(
                HostMessage, self._forward_host_message
            )
        self.view.mount()

    async def unmount(self) -> None:
        await self.view.unmount()
        self.ports.detach()
        if self._unsubscribe_messages is not None:
            self._unsubscribe_messages()
            self._unsubscribe_messages = None
