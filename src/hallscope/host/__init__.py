"""
Host communication: the zmq client, the notification bus, a connection
manager and a mock host process for running without hardware.

See Also
--------
hallscope.host.client : one coroutine per host command
hallscope.host.mock_host : the simulated host
"""

from .bus import EventBus
from .connection_manager import HostConnectionManager

__all__ = ["EventBus", "HostConnectionManager"]
