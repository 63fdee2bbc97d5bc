"""
Connection manager for the client side of the host connection.

Owns the zmq connection, the notification listener task and the event bus, and
exposes `invoke`, which satisfies `hallscope.types.HostInvoker`: the session
is handed the manager and never sees a socket.
"""

from __future__ import annotations

import asyncio
import subprocess
from typing import Any, Optional, Type, TypeVar

from loguru import logger

import hallscope.host.client as client
from hallscope.types import HostConnection, Notification
from hallscope.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
)

from .bus import EventBus

N = TypeVar("N", bound=Notification)


class HostConnectionManager:
    """
    Manages the client-side connection to the host.

    This class handles connection lifecycle and state management, while
    delegating protocol operations to the client module functions.
    """

    def __init__(self, bus: Optional[EventBus] = None):
        self.bus = bus if bus is not None else EventBus()
        self._connection: Optional[HostConnection] = None
        self._host_proc: Optional[subprocess.Popen] = None
        self._notif_task: Optional[asyncio.Task] = None
        self._notif_queue: Optional[asyncio.Queue] = None
        self._request_retries = DEFAULT_RETRIES

    @property
    def connection(self) -> Optional[HostConnection]:
        return self._connection

    def is_connected(self) -> bool:
        """Check if currently connected to the host."""
        return self._connection is not None

    @property
    def owns_local_host(self) -> bool:
        """Whether the host process was started (and must be stopped) by us."""
        return self._host_proc is not None

    def start_local_host(
        self,
        host: str = DEFAULT_HOST_ADDR,
        msg_port: int = DEFAULT_PORT,
        notif_port: int = DEFAULT_PORT + 1,
        drop_rate: float = 0.0,
        log_path: Optional[str] = None,
        log_to_stdout: bool = False,
        log_level: str = DEFAULT_LOGLEVEL,
    ) -> None:
        """Start a mock host process."""
        if self._host_proc:
            logger.warning("Host already running, stopping first")
            self.kill_local_host()
        self._host_proc = client.start_bg_host(
            host,
            msg_port,
            notif_port,
            drop_rate=drop_rate,
            log_path=log_path,
            log_to_stdout=log_to_stdout,
            log_level=log_level,
        )
        logger.info(f"Host process started: {self._host_proc}")

    def kill_local_host(self) -> None:
        if self._host_proc:
            client.kill_bg_host(self._host_proc)
            self._host_proc = None

    async def stop_host(self) -> None:
        """Ask the host to shut down, then clean up the local process (if ours)."""
        if self._connection:
            await self.stop_notification_listener()
            await client.shutdown_host(self._connection)  # also closes sockets
            self._connection = None
        else:
            logger.warning("No connection, can't ask host to shut down.")
        if self._host_proc:
            try:
                self._host_proc.wait(timeout=DEFAULT_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("Host did not exit in time, killing it.")
            self.kill_local_host()

    async def connect(
        self,
        host: str = DEFAULT_HOST_ADDR,
        msg_port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        request_retries: int = DEFAULT_RETRIES,
        listen: bool = True,
    ) -> None:
        """Connect to a running host, then (by default) start forwarding its
        notifications onto the bus."""
        if self._connection:
            logger.warning("Already connected, disconnecting first")
            await self.disconnect()
        try:
            self._connection = await client.open_connection(
                host, msg_port, timeout, request_retries
            )
        except Exception as e:
            # ensure this isn't set if connection fails
            self._connection = None
            raise e
        self._request_retries = request_retries
        if listen:
            self.start_notification_listener()
        logger.info("Connected to host on {}:{}", host, msg_port)

    async def disconnect(self) -> None:
        """Disconnect from the host."""
        if self._connection:
            await self.stop_notification_listener()
            client.close_connection(self._connection)
            self._connection = None

    def start_notification_listener(self) -> None:
        """Start the notification listener task."""
        if not self._connection:
            raise RuntimeError("Not connected to host")
        if self._notif_task and not self._notif_task.done():
            return
        self._notif_task, self._notif_queue = client.start_bg_notif_listener(
            self._connection, self.bus
        )

    async def stop_notification_listener(self) -> None:
        if self._notif_task:
            self._notif_task.cancel()
            try:
                await self._notif_task
            except asyncio.CancelledError:
                pass
            self._notif_task = None

    async def wait_for_notification(
        self, notif_type: Type[N], timeout: float = DEFAULT_TIMEOUT
    ) -> N:
        """Wait for a specific type of notification."""
        if not self._notif_queue:
            raise RuntimeError("Notification listener not started")
        return await client.wait_for_notif(self._notif_queue, notif_type, timeout)

    def clean_notification_queue(self) -> None:
        """Clear all pending notifications."""
        if self._notif_queue:
            client.clean_queue(self._notif_queue)

    async def invoke(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Run host command `name`; resolves with its payload.

        Raises
        ------
        RuntimeError
            If not connected
        CommsError
            If the host reports a failure (or is unreachable)
        """
        if not self._connection:
            raise RuntimeError("Not connected to host")
        return await client.invoke(
            self._connection, name, params, request_retries=self._request_retries
        )

    # `HostInvoker` is a plain async callable
    __call__ = invoke
