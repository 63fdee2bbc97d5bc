# -*- coding: utf-8 -*-
"""# hallscope

Front end for a rotating hall sensor / laser acquisition rig.

A host process owns the serial hardware (hall sensor head, stepper motor) and
the laser link; hallscope talks to it over ZeroMQ and runs the acquisition
session on the client side:

- `hallscope.types`: data model, wire messages, command names, exceptions
- `hallscope.host`: zmq client, connection manager, event bus, mock host
- `hallscope.session`: port registry, command gateway, sample stream,
  session state machine and chart synchronisation
- `hallscope.gui`: PyQt6 front end
- `hallscope.cli`: the `hallscope` command

The session can be scripted without the GUI:

```python
import asyncio
from hallscope.host import HostConnectionManager
from hallscope.session import AcquisitionSession
from hallscope.types import DeviceConfig

async def main():
    manager = HostConnectionManager()
    manager.start_local_host()
    await manager.connect()
    session = AcquisitionSession(manager, manager.bus)
    await session.mount()
    await session.state.connect(DeviceConfig("MOCK-HALL", "MOCK-MOTOR"))
    ...
    await session.unmount()
    await manager.stop_host()

asyncio.run(main())
```
"""

from ._version import __version__
