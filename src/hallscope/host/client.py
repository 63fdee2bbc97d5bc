# -*- coding: utf-8 -*-
"""
Client side of the client-host interface.

The client uses a decorator-based framework to maintain correspondence with
the host's handlers:

1. Each client function is decorated with @command to specify which handler it calls
2. The command decorator records the mapping for later validation and registers
   the function in `COMMAND_REGISTRY`, so it can also be reached by name
   through `invoke`
3. Client functions use _send_request to communicate with the host

The correspondence can be validated using
`hallscope.types.assert_valid_handler_client_correspondence()`.

All functions are coroutines on a `zmq.asyncio` context, so they can be
awaited from the session (and from the Qt event loop via qasync).
"""

# ============================================================================

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Optional, Type, TypeVar, cast

import zmq
import zmq.asyncio
from loguru import logger

from hallscope.types import (
    CONSTS,
    PENDING_COMMAND_VALIDATIONS,
    CommsError,
    ErrorResponse,
    HostConnection,
    MsgResponse,
    Notification,
    PortDescriptor,
    PortsResponse,
    Request,
    Response,
    Sample,
    SamplesResponse,
    ValueResponse,
)
from hallscope.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    format_error_response,
    log_default_path_host,
)

if TYPE_CHECKING:
    from .bus import EventBus

# ============================================================================


def start_bg_host(
    host: str = DEFAULT_HOST_ADDR,
    msg_port: int = DEFAULT_PORT,
    notif_port: int = DEFAULT_PORT + 1,
    drop_rate: float = 0.0,
    log_path: Optional[str] = None,
    clear_prev_log: bool = True,
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_level: str = DEFAULT_LOGLEVEL,
) -> subprocess.Popen:
    """Start the mock host in a background process.

    Parameters
    ----------
    host : str, optional
        Host address to bind to, by default DEFAULT_HOST_ADDR
    msg_port : int, optional
        Port for the request socket, by default DEFAULT_PORT
    notif_port : int, optional
        Port for the notification socket, by default DEFAULT_PORT + 1
    drop_rate : float, optional
        Fraction of `hall_recv` pushes the mock host silently drops, by default 0
    log_path : str | None, optional
        Path to log file (None/empty for default), by default None

    Returns
    -------
    subprocess.Popen
        The host process handle
    """
    if log_path is None or log_path == "":
        log_path = log_default_path_host()

    current_python_exec_path = sys.executable
    this_dir = os.path.dirname(os.path.realpath(__file__))
    proc = subprocess.Popen(
        [
            current_python_exec_path,
            this_dir + "/host_script.py",
            host,
            str(msg_port),
            str(notif_port),
            str(drop_rate),
            log_path,
            str(clear_prev_log),
            str(log_to_file),
            str(log_to_stdout),
            str(log_level),
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    return proc


# ============================================================================


def kill_bg_host(proc: subprocess.Popen):
    """Kill a background host process, logging whatever it printed."""
    logger.info("Killing host process.")
    pid = proc.pid
    proc.kill()
    outs, errs = proc.communicate()
    outs = outs.decode("utf-8")
    errs = errs.decode("utf-8")
    if outs:
        logger.info("#======= Host killed, outs: =======#")
        logger.info(outs)
    if errs:
        logger.error("#======= Host killed, errs: =======#")
        logger.error(errs)
        logger.error("PID = {}", pid)


# ====================================================================================


def _reopen_msg_socket(host_connection: HostConnection) -> None:
    host_connection.msg_socket.setsockopt(zmq.LINGER, 0)
    host_connection.msg_socket.close()
    host_connection.msg_socket = host_connection.context.socket(zmq.REQ)
    host_connection.msg_socket.connect(
        f"tcp://{host_connection.host}:{host_connection.msg_port}"
    )


async def _get_response(
    host_connection: HostConnection,
    request: Request,
    request_retries: int = DEFAULT_RETRIES,
    timeout: float = DEFAULT_TIMEOUT,
) -> Response:
    """Read a single response from the host (ZMQ lazy pirate).

    - Poll the REQ socket and receive only when a reply has arrived
    - Resend the request on a fresh socket if no reply arrives within timeout
    - Abandon the transaction after `request_retries` failed retries

    Returns
    -------
    Response
        The response object from the host. ErrorResponse if the host appears
        offline.
    """
    retries_left = request_retries + 1  # (+1 to account for the first attempt)
    is_shutdown_request = request.command == CONSTS.COMMS.SHUTDOWN

    logger.debug("*REQUEST* (client->): {}", request)
    await host_connection.msg_socket.send(request.to_msgpack())
    while True:
        try:
            if await host_connection.msg_socket.poll(1000 * timeout, zmq.POLLIN):
                resp = Response.from_msgpack(await host_connection.msg_socket.recv())
                logger.debug("*RESPONSE* (client<-): {}", resp)
                return resp
        except zmq.ZMQError as e:
            if is_shutdown_request:
                logger.info("Expected ZMQ error after shutdown command")
                return MsgResponse(value="Host shutting down")
            logger.warning(f"ZMQ error: {e}")

        retries_left -= 1
        logger.warning("No response from host...")
        if retries_left == 0:
            # Socket is confused, leave a fresh one behind for the next request
            _reopen_msg_socket(host_connection)
            logger.error("Host seems to be offline, abandoning.")
            return ErrorResponse(value="Host seems to be offline.")
        logger.info("Reconnecting to host...")
        _reopen_msg_socket(host_connection)
        logger.debug("*REQUEST* (client->): {}", request)
        await host_connection.msg_socket.send(request.to_msgpack())


# ============================================================================


async def open_connection(
    host: str = DEFAULT_HOST_ADDR,
    msg_port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_TIMEOUT,
    request_retries: int = DEFAULT_RETRIES,
) -> HostConnection:
    """Connect to a running host, confirm it answers, then subscribe to its
    notifications.

    Raises
    ------
    CommsError
        If the host does not answer the ping, or sockets cannot be opened
    """
    logger.info("Attempting connection to host on {}:{}.", host, msg_port)
    try:
        context = zmq.asyncio.Context()
        msg_socket = context.socket(zmq.REQ)
        msg_socket.connect(f"tcp://{host}:{msg_port}")
    except Exception:
        logger.exception("Error during connection.")
        raise CommsError(f"Error during connection: {format_error_response()}")

    # notif port is filled in once the host tells us
    host_connection = HostConnection(context, msg_socket, None, host, msg_port, -1)

    try:
        pong = await ping(host_connection, request_retries, timeout)
        if pong != CONSTS.COMMS.PONG:
            raise CommsError("Bad connection - no response from host.")
        notif_port = await get_notif_port(host_connection, request_retries)
    except Exception:
        logger.error("Bad connection - no response from host.")
        close_connection(host_connection)
        raise

    try:
        notif_socket = context.socket(zmq.SUB)
        notif_socket.setsockopt(zmq.SUBSCRIBE, b"")  # subscribe to all
        notif_socket.connect(f"tcp://{host}:{notif_port}")
    except Exception:
        logger.exception("Error opening notification socket.")
        close_connection(host_connection)
        raise CommsError(f"Error during connection: {format_error_response()}")
    host_connection.notif_socket = notif_socket
    host_connection.notif_port = notif_port
    logger.info("Connection established on {}", host)
    return host_connection


# ============================================================================


def close_connection(host_connection: HostConnection):
    """Close the connection to the host."""
    logger.info("Closing connection.")
    for socket in [host_connection.msg_socket, host_connection.notif_socket]:
        if isinstance(socket, zmq.Socket):
            try:
                socket.setsockopt(zmq.LINGER, 0)
                socket.close()
            except zmq.ZMQError as e:
                logger.debug(f"Error closing socket: {e}")
    try:
        host_connection.context.term()
    except zmq.ZMQError as e:
        logger.debug(f"Error terminating ZMQ context: {e}")


# ============================================================================


T = TypeVar("T", bound=Response)


async def _send_request(
    host_connection: HostConnection,
    request: Request,
    request_retries: int = DEFAULT_RETRIES,
    timeout: float = DEFAULT_TIMEOUT,
) -> T:
    """Send a request to the host and get a response.

    Raises
    ------
    CommsError
        If the host returns an error (or is offline)
    """
    resp = await _get_response(host_connection, request, request_retries, timeout)
    if isinstance(resp, ErrorResponse):
        logger.error("Error during {}: '{}'", request.command, resp.value)
        raise CommsError(resp.value)
    return cast(T, resp)


# ====================================================================================

COMMAND_REGISTRY: dict[str, Callable[..., Any]] = {}


def command(
    command_str: str, response_type: Type[T] | Any = "Response"
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that marks a client function and validates its handler mapping.

    Args:
        command_str: The command string that identifies this client function
        response_type: The expected response type from the host or Union of types
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        # Store for later validation instead of immediate check
        PENDING_COMMAND_VALIDATIONS.append((command_str, func.__name__))

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any):
            return await func(*args, **kwargs)

        wrapper._command = command_str
        wrapper._response_type = response_type
        wrapper._is_client_method = True
        COMMAND_REGISTRY.setdefault(command_str, wrapper)
        return wrapper

    return decorator


async def invoke(
    host_connection: HostConnection,
    name: str,
    params: Optional[dict[str, Any]] = None,
    request_retries: int = DEFAULT_RETRIES,
) -> Any:
    """Run a command by its wire name, with keyword params, returning its payload."""
    try:
        func = COMMAND_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown command: {name}") from None
    return await func(host_connection, **(params or {}), request_retries=request_retries)


# ====================================================================================
# -----------------
# INTERFACE METHODS
# -----------------
# ====================================================================================

# each of these has a corresponding handler in mock_host.py

# -------------------------------------------------------------------------------------
# General host comms
# -------------------------------------------------------------------------------------


@command(CONSTS.COMMS.PING, response_type=MsgResponse | ErrorResponse)
async def ping(
    host_connection: HostConnection,
    request_retries: int = DEFAULT_RETRIES,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.COMMS.PING), request_retries, timeout
    )
    return resp.value


@command(CONSTS.COMMS.GET_NOTIF_PORT, response_type=ValueResponse | ErrorResponse)
async def get_notif_port(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> int:
    resp = await _send_request(
        host_connection, Request(CONSTS.COMMS.GET_NOTIF_PORT), request_retries
    )
    return int(resp.value)


@command(CONSTS.COMMS.SHUTDOWN, response_type=MsgResponse | ErrorResponse)
async def shutdown_host(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> Optional[str]:
    """Ask the host to exit, then close our side of the connection."""
    try:
        # fewer retries since we expect disconnection
        resp = await _send_request(host_connection, Request(CONSTS.COMMS.SHUTDOWN), 1)
        logger.info("Host shutdown initiated successfully")
        return resp.value
    except (CommsError, zmq.ZMQError) as e:
        logger.info(f"Expected error during shutdown: {e}")
        return None
    finally:
        close_connection(host_connection)


# -------------------------------------------------------------------------------------
# Device lifecycle
# -------------------------------------------------------------------------------------


@command(CONSTS.DEVICE.GET_PORT, response_type=PortsResponse | ErrorResponse)
async def get_port(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> list[PortDescriptor]:
    """Enumerate serial ports visible to the host."""
    resp = await _send_request(
        host_connection, Request(CONSTS.DEVICE.GET_PORT), request_retries
    )
    return list(resp.value)


@command(CONSTS.DEVICE.INIT, response_type=MsgResponse | ErrorResponse)
async def init_device(
    host_connection: HostConnection,
    hall_port: str,
    motor_port: str,
    laser_addr: str,
    request_retries: int = DEFAULT_RETRIES,
) -> str:
    resp = await _send_request(
        host_connection,
        Request(
            CONSTS.DEVICE.INIT,
            {"hall_port": hall_port, "motor_port": motor_port, "laser_addr": laser_addr},
        ),
        request_retries,
    )
    return resp.value


@command(CONSTS.DEVICE.DEINIT, response_type=MsgResponse | ErrorResponse)
async def deinit_device(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.DEVICE.DEINIT), request_retries
    )
    return resp.value


# -------------------------------------------------------------------------------------
# Motor
# -------------------------------------------------------------------------------------


@command(CONSTS.MOTOR.SET_SPEED, response_type=MsgResponse | ErrorResponse)
async def set_motor_speed(
    host_connection: HostConnection,
    speed: float,
    request_retries: int = DEFAULT_RETRIES,
) -> str:
    """Set rotation speed in RPM."""
    resp = await _send_request(
        host_connection,
        Request(CONSTS.MOTOR.SET_SPEED, {"speed": float(speed)}),
        request_retries,
    )
    return resp.value


@command(CONSTS.MOTOR.SET_SINGLE_ANGLE, response_type=MsgResponse | ErrorResponse)
async def set_motor_single_angle(
    host_connection: HostConnection,
    angle: float,
    request_retries: int = DEFAULT_RETRIES,
) -> str:
    """Set the step size (degrees) used by `rotate_motor`."""
    resp = await _send_request(
        host_connection,
        Request(CONSTS.MOTOR.SET_SINGLE_ANGLE, {"angle": float(angle)}),
        request_retries,
    )
    return resp.value


@command(
    CONSTS.MOTOR.SET_SINGLE_CIRCLE_PULSE, response_type=MsgResponse | ErrorResponse
)
async def set_motor_single_circle_pulse(
    host_connection: HostConnection,
    pulse: int,
    request_retries: int = DEFAULT_RETRIES,
) -> str:
    """Set the number of motor pulses in one full revolution."""
    resp = await _send_request(
        host_connection,
        Request(CONSTS.MOTOR.SET_SINGLE_CIRCLE_PULSE, {"pulse": int(pulse)}),
        request_retries,
    )
    return resp.value


@command(CONSTS.MOTOR.GET_ANGLE, response_type=ValueResponse | ErrorResponse)
async def get_motor_angle(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> float:
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.GET_ANGLE), request_retries
    )
    return float(resp.value)


@command(CONSTS.MOTOR.SET_CALIBRATED, response_type=MsgResponse | ErrorResponse)
async def set_motor_calibrated(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Mark the current motor position as the zero angle."""
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.SET_CALIBRATED), request_retries
    )
    return resp.value


@command(CONSTS.MOTOR.START_U, response_type=MsgResponse | ErrorResponse)
async def motor_start_u(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.START_U), request_retries
    )
    return resp.value


@command(CONSTS.MOTOR.START_D, response_type=MsgResponse | ErrorResponse)
async def motor_start_d(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.START_D), request_retries
    )
    return resp.value


@command(CONSTS.MOTOR.STOP, response_type=MsgResponse | ErrorResponse)
async def motor_stop(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.STOP), request_retries
    )
    return resp.value


@command(CONSTS.MOTOR.START_ONE_CIRCLE, response_type=MsgResponse | ErrorResponse)
async def motor_start_one_circle(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.START_ONE_CIRCLE), request_retries
    )
    return resp.value


@command(CONSTS.MOTOR.ROTATE_STEP, response_type=MsgResponse | ErrorResponse)
async def rotate_motor(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    """Advance the motor by one step of the configured single angle."""
    resp = await _send_request(
        host_connection, Request(CONSTS.MOTOR.ROTATE_STEP), request_retries
    )
    return resp.value


# -------------------------------------------------------------------------------------
# Acquisition
# -------------------------------------------------------------------------------------


@command(CONSTS.WORK.START, response_type=MsgResponse | ErrorResponse)
async def start_work(
    host_connection: HostConnection,
    name: str,
    hall_d: float,
    laser_d: float,
    laser_path: str,
    hall_path: str,
    v_path: str,
    request_retries: int = DEFAULT_RETRIES,
) -> str:
    resp = await _send_request(
        host_connection,
        Request(
            CONSTS.WORK.START,
            {
                "name": name,
                "hall_d": float(hall_d),
                "laser_d": float(laser_d),
                "laser_path": laser_path,
                "hall_path": hall_path,
                "v_path": v_path,
            },
        ),
        request_retries,
    )
    return resp.value


@command(CONSTS.WORK.STOP, response_type=MsgResponse | ErrorResponse)
async def stop_work(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> str:
    resp = await _send_request(
        host_connection, Request(CONSTS.WORK.STOP), request_retries
    )
    return resp.value


@command(CONSTS.WORK.FETCH_HALL_DATA, response_type=SamplesResponse | ErrorResponse)
async def fetch_hall_data(
    host_connection: HostConnection, request_retries: int = DEFAULT_RETRIES
) -> list[Sample]:
    """Drain (up to a batch of) samples the host has buffered since the last fetch."""
    resp = await _send_request(
        host_connection, Request(CONSTS.WORK.FETCH_HALL_DATA), request_retries
    )
    return list(resp.value)


# ====================================================================================
# Notifications
# ====================================================================================


NOTIF_QUEUE_MAX = 1000


def start_bg_notif_listener(
    host_connection: HostConnection, bus: Optional["EventBus"] = None
) -> tuple[asyncio.Task, asyncio.Queue]:
    """Listen on the SUB socket, forwarding every notification to `bus` (if
    given) and to the returned queue."""
    qu = asyncio.Queue(maxsize=NOTIF_QUEUE_MAX)

    async def listen(queue):
        logger.info("Starting notification listener")
        while True:
            try:
                msg = await host_connection.notif_socket.recv()
                notif = Notification.from_msgpack(msg)
            except asyncio.CancelledError:
                raise
            except zmq.ZMQError:
                logger.exception("Error in notif listener.")
                break
            except Exception:
                # undecodable payload, e.g. a sample with a bad shape
                logger.exception("Dropping malformed notification.")
                continue
            # below is rather loquacious
            logger.trace("*NOTIF* (client<-): {}", notif)
            if queue.full():
                queue.get_nowait()  # oldest goes first
            queue.put_nowait(notif)
            if bus is not None:
                bus.emit(notif)

    task = asyncio.create_task(listen(qu))
    return task, qu


def clean_queue(qu: asyncio.Queue):
    while not qu.empty():
        try:
            qu.get_nowait()
        except asyncio.QueueEmpty:
            break


async def wait_for_notif(
    qu: asyncio.Queue, notif_type: Type[Notification], timeout=DEFAULT_TIMEOUT
):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        try:
            notif = qu.get_nowait()
            if isinstance(notif, notif_type):
                return notif
        except asyncio.QueueEmpty:
            pass
        await asyncio.sleep(0.01)
    raise TimeoutError(f"Timeout waiting for {notif_type} notification.")
