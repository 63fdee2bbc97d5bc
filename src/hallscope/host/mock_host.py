# -*- coding: utf-8 -*-
"""
Mock host: a stand-in for the instrument's control process.

Implements the whole command set of `hallscope.host.client` against a
simulated rig (a stepper-driven rotating head carrying 9 hall sensors), so the
GUI and the session can be exercised without hardware.

The host uses a decorator-based framework to maintain correspondence with the
client:

1. Each handler is decorated with @handler to specify which client functions
   call it
2. The handler decorator adds the mapping to the central registry
   (`hallscope.types.HANDLER_REGISTRY`)
3. Handlers receive the connection, the rig and the request, and reply with
   `_send_response`
4. `request_router` maps incoming requests to the registered handler

Samples reach the client two ways, as on the real instrument: pushed one by
one as `HallRecv` notifications (a configurable fraction of which are
dropped), and buffered in a bounded ring that `fetch_hall_data` drains.
"""

# ============================================================================

import asyncio
import math
import random
from collections import deque
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Awaitable, Callable, Optional

import zmq
import zmq.asyncio
from loguru import logger
from setproctitle import setproctitle

import hallscope.util
from hallscope.types import (
    CONSTS,
    HANDLER_REGISTRY,
    SEVERITY,
    ErrorResponse,
    HallRecv,
    HandlerInfo,
    HostMessage,
    MsgResponse,
    Notification,
    PortDescriptor,
    PortsResponse,
    Request,
    Response,
    Sample,
    SamplesResponse,
    SerialChange,
    ServerConnection,
    ValueResponse,
)
from hallscope.util import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    format_error_response,
    get_hw_ports,
)
from hallscope.util.defaults import (
    DEFAULT_CIRCLE_PULSE,
    DEFAULT_MOTOR_SPEED_RPM,
    DEFAULT_STEP_ANGLE,
    FETCH_BATCH_MAX,
    HOST_BUFFER_SIZE,
    NUM_CHANNELS,
)

# ============================================================================

MOCK_PORTS = {
    "MOCK-HALL": "Simulated hall sensor board",
    "MOCK-MOTOR": "Simulated stepper controller",
}
SERIAL_SCAN_PERIOD = 1.0  # s
MIN_TICK = 0.005  # s
ADC_AMPLITUDE = 4_000_000  # counts, ~half of the 24 bit full scale
STEP_PULSE = 40  # pulses per `rotate_motor` before any angle is set


def list_ports() -> list[PortDescriptor]:
    ports = dict(MOCK_PORTS)
    ports.update(get_hw_ports())
    return [PortDescriptor(id=k, description=v) for k, v in sorted(ports.items())]


class MockRig:
    """Simulated motor + hall sensor head.

    Angles are in degrees. The motor turns at `speed_rpm` while jogging or
    acquiring; one sample is produced every `step_angle` degrees of travel
    while acquiring.
    """

    def __init__(self, drop_rate: float = 0.0, seed: Optional[int] = None):
        if not 0.0 <= drop_rate < 1.0:
            raise ValueError(f"drop_rate must be in [0, 1), got {drop_rate}")
        self.drop_rate = drop_rate
        self._rng = random.Random(seed)

        self.device_ready = False
        self.hall_port = ""
        self.motor_port = ""
        self.laser_addr = ""

        self.single_circle_pulse = DEFAULT_CIRCLE_PULSE
        self.step_pulse = STEP_PULSE
        self.speed_rpm = DEFAULT_MOTOR_SPEED_RPM
        self.step_angle = DEFAULT_STEP_ANGLE

        self.angle = 0.0  # unwrapped travel since calibration
        self.direction = 0  # +1 up, -1 down, 0 stopped
        self._circle_remaining: Optional[float] = None
        self._since_sample = 0.0

        self.working = False
        self.run_params: dict = {}
        self.buffer: deque[Sample] = deque(maxlen=HOST_BUFFER_SIZE)

    # ---------------------------------------------------------------- config

    def set_speed(self, speed: float) -> int:
        if speed <= 0:
            raise ValueError("Motor speed must be positive.")
        self.speed_rpm = speed
        return math.ceil(self.single_circle_pulse * speed / 60)

    def set_single_angle(self, angle: float) -> int:
        if angle <= 0:
            raise ValueError("Step angle must be positive.")
        self.step_angle = angle
        self.step_pulse = math.ceil(angle * self.single_circle_pulse / 360)
        return self.step_pulse

    def set_single_circle_pulse(self, pulse: int) -> None:
        if pulse <= 0:
            raise ValueError("Pulses per revolution must be positive.")
        self.single_circle_pulse = pulse

    @property
    def wrapped_angle(self) -> float:
        return round(self.angle % 360.0, 6)

    # ---------------------------------------------------------------- motion

    def calibrate(self) -> None:
        self.angle = 0.0
        self._since_sample = 0.0

    def rotate_step(self) -> None:
        self.angle += self.step_pulse * 360.0 / self.single_circle_pulse

    def start_one_circle(self) -> None:
        self.direction = 1
        self._circle_remaining = 360.0

    def stop_motion(self) -> None:
        self.direction = 0
        self._circle_remaining = None

    # ------------------------------------------------------------------ work

    def start_work(self, params: dict) -> None:
        self.run_params = dict(params)
        self.working = True
        self.direction = 1
        self._since_sample = 0.0
        self.buffer.clear()

    def stop_work(self) -> None:
        self.working = False
        self.stop_motion()

    def read_sample(self, angle: Optional[float] = None) -> Sample:
        key = self.wrapped_angle if angle is None else round(angle % 360.0, 6)
        phase = math.radians(key)
        channels = tuple(
            float(
                int(
                    ADC_AMPLITUDE * math.sin(phase + 2 * math.pi * i / NUM_CHANNELS)
                    + self._rng.gauss(0, ADC_AMPLITUDE * 0.002)
                )
            )
            for i in range(NUM_CHANNELS)
        )
        return Sample(key=key, channels=channels)

    def tick(self, dt: float) -> tuple[list[Sample], bool]:
        """Advance the simulation by `dt` seconds.

        Returns the samples read during the step, and whether a one-circle
        rotation finished.
        """
        if self.direction == 0:
            return [], False
        travel = self.speed_rpm * 6.0 * dt  # deg
        finished = False
        if self._circle_remaining is not None:
            travel = min(travel, self._circle_remaining)
            self._circle_remaining -= travel
            if self._circle_remaining <= 0:
                finished = True

        self.angle += self.direction * travel
        samples = []
        if self.working and self.direction > 0:
            self._since_sample += travel
            while self._since_sample >= self.step_angle:
                self._since_sample -= self.step_angle
                sample = self.read_sample(self.angle - self._since_sample)
                self.buffer.append(sample)
                samples.append(sample)
        if finished:
            self.stop_motion()
        return samples, finished

    def drop(self) -> bool:
        return self.drop_rate > 0 and self._rng.random() < self.drop_rate

    def fetch(self, max_items: int = FETCH_BATCH_MAX) -> list[Sample]:
        out = []
        while self.buffer and len(out) < max_items:
            out.append(self.buffer.popleft())
        return out

    @property
    def tick_period(self) -> float:
        deg_per_s = self.speed_rpm * 6.0
        return max(MIN_TICK, self.step_angle / deg_per_s)


# ============================================================================


async def _send_response(
    server_connection: ServerConnection, req_identity: bytes, response: Response
):
    logger.debug("*RESPONSE* (host->): {}", response)
    await server_connection.msg_socket.send_multipart(
        [req_identity, b"", response.to_msgpack()]
    )


def _notify(server_connection: ServerConnection, notif: Notification) -> None:
    server_connection.notif_queue.put_nowait(notif)


def _message(
    server_connection: ServerConnection, severity: str, title: str, body: str = ""
) -> None:
    _notify(server_connection, HostMessage(severity=severity, title=title, body=body))


# ============================================================================


async def client_handler(server_connection: ServerConnection, rig: MockRig):
    while not server_connection.shutdown_requested:
        # clear some items from notif_queue
        chunk = 0
        while not server_connection.notif_queue.empty():
            chunk += 1
            if chunk > 10:
                break  # limit to 10 notifs per loop, also need to check for msgs
            notif: Notification = server_connection.notif_queue.get_nowait()
            try:
                # below is rather loquacious
                logger.trace("*NOTIF* (host->): {}", notif)
                await server_connection.notif_socket.send(notif.to_msgpack())
            except Exception:
                logger.exception("ERROR SENDING NOTIF {}.", notif)

        # check for requests on the msg socket
        try:
            (
                req_identity,
                empty,
                req,
            ) = await server_connection.msg_socket.recv_multipart(zmq.NOBLOCK)
        except zmq.error.Again:
            await asyncio.sleep(0.001)
            continue
        try:
            request = Request.from_msgpack(req)
        except Exception:
            logger.exception("Request unpacking error:")
            await _send_response(
                server_connection,
                req_identity,
                ErrorResponse(value=format_error_response()),
            )
            continue

        try:
            await request_router(server_connection, req_identity, rig, request)
        except Exception:
            logger.exception("Uncaught error in request_router.")
            await _send_response(
                server_connection,
                req_identity,
                ErrorResponse(value=format_error_response()),
            )

    logger.info("Client handler exiting due to shutdown request")


async def motion_loop(server_connection: ServerConnection, rig: MockRig):
    """Drive the simulated motor and push samples while acquiring."""
    loop = asyncio.get_running_loop()
    last = loop.time()
    while not server_connection.shutdown_requested:
        await asyncio.sleep(rig.tick_period)
        now = loop.time()
        samples, finished = rig.tick(now - last)
        last = now
        for sample in samples:
            if rig.drop():
                logger.trace("Dropping push for key {}", sample.key)
                continue
            _notify(server_connection, HallRecv(sample=sample))
        if samples:
            _append_run_files(rig, samples)
        if finished:
            _message(
                server_connection,
                SEVERITY.SUCCESS,
                "Rotation finished",
                f"Motor at {rig.wrapped_angle:.1f} deg",
            )


async def serial_watch_loop(server_connection: ServerConnection):
    """Announce port topology changes (device plugged/unplugged)."""
    known = list_ports()
    while not server_connection.shutdown_requested:
        await asyncio.sleep(SERIAL_SCAN_PERIOD)
        try:
            ports = list_ports()
        except Exception:
            logger.exception("Error scanning serial ports.")
            continue
        if ports != known:
            logger.info("Serial ports changed: {}", [p.id for p in ports])
            known = ports
            _notify(server_connection, SerialChange(ports=ports))


def _append_run_files(rig: MockRig, samples: list[Sample]) -> None:
    hall_path = rig.run_params.get("hall_path")
    v_path = rig.run_params.get("v_path")
    if not hall_path or not v_path:
        return
    with open(hall_path, "a") as hall_f, open(v_path, "a") as v_f:
        for s in samples:
            hall_f.write(" ".join(str(x) for x in (s.key, *map(int, s.channels))) + "\n")
            v_f.write(" ".join(str(x) for x in (s.key, *s.to_voltages())) + "\n")


# ============================================================================


async def start_host(
    host: str = DEFAULT_HOST_ADDR,
    msg_port: int = DEFAULT_PORT,
    notif_port: int = DEFAULT_PORT + 1,
    drop_rate: float = 0.0,
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: str = "",
    clear_prev_log: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
):
    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")
    setproctitle(f"hallscope-mock-host_{timestamp}")

    hallscope.util.start_host_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=log_level,
    )

    logger.info("Starting mock host on {}:{} (notif {})", host, msg_port, notif_port)
    rig = MockRig(drop_rate=drop_rate)

    try:
        context = zmq.asyncio.Context()
        msg_socket = context.socket(zmq.ROUTER)
        msg_socket.bind(f"tcp://{host}:{msg_port}")  # bind on host side
        notif_socket = context.socket(zmq.PUB)
        notif_socket.bind(f"tcp://{host}:{notif_port}")
        server_connection = ServerConnection(
            context=context,
            msg_socket=msg_socket,
            notif_socket=notif_socket,
            host=host,
            msg_port=msg_port,
            notif_port=notif_port,
            notif_queue=asyncio.Queue(),
        )
    except Exception as e:
        logger.exception("Error opening host-side connection.")
        raise e

    background = [
        asyncio.create_task(motion_loop(server_connection, rig)),
        asyncio.create_task(serial_watch_loop(server_connection)),
    ]
    try:
        await client_handler(server_connection, rig)
    finally:
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        for socket in [msg_socket, notif_socket]:
            socket.setsockopt(zmq.LINGER, 0)
            socket.close()
        context.term()
        logger.info("Closing down host logger.")
        logger.remove()


# ============================================================================


async def request_router(
    server_connection: ServerConnection,
    req_identity: bytes,
    rig: MockRig,
    request: Request,
):
    logger.debug("*REQUEST* (host<-): {}", request)
    try:
        info = HANDLER_REGISTRY[request.command]
    except KeyError:
        logger.error("Unknown request: {}", request.command)
        await _send_response(
            server_connection,
            req_identity,
            ErrorResponse(value=f"Unknown request: {request.command}"),
        )
        return
    await info.handler_func(server_connection, req_identity, rig, request)


HandlerFunc = Callable[[ServerConnection, bytes, MockRig, Request], Awaitable[None]]


def handler(
    command: str, *client_methods: str, requires_device: bool = False
) -> Callable[[HandlerFunc], HandlerFunc]:
    """Decorator that registers a host handler and its client functions.

    Handlers may raise ValueError for bad parameters; the wrapper turns that
    into an ErrorResponse carrying the message.

    Example:
        @handler(CONSTS.MOTOR.STOP, "motor_stop", requires_device=True)
        async def handle_motor_stop(...):
            ...
    """

    def decorator(func: HandlerFunc) -> HandlerFunc:
        @wraps(func)
        async def wrapper(
            server_connection: ServerConnection,
            req_identity: bytes,
            rig: MockRig,
            request: Request,
        ) -> None:
            if requires_device and not rig.device_ready:
                await _send_response(
                    server_connection,
                    req_identity,
                    ErrorResponse(value="Device not initialised, connect first."),
                )
                return
            try:
                await func(server_connection, req_identity, rig, request)
            except (ValueError, KeyError, TypeError) as e:
                logger.error("Bad request {}: {}", request.command, e)
                await _send_response(
                    server_connection, req_identity, ErrorResponse(value=str(e))
                )

        HANDLER_REGISTRY[command] = HandlerInfo(
            handler_func=wrapper,
            client_methods=list(client_methods),
            command=command,
            requires_device=requires_device,
        )
        return wrapper

    return decorator


# ============================================================================
# General comms
# ============================================================================


@handler(CONSTS.COMMS.PING, "ping")
async def handle_ping(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.ping
    await _send_response(
        server_connection, req_identity, MsgResponse(value=CONSTS.COMMS.PONG)
    )


@handler(CONSTS.COMMS.GET_NOTIF_PORT, "get_notif_port")
async def handle_get_notif_port(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.get_notif_port
    await _send_response(
        server_connection,
        req_identity,
        ValueResponse(value=server_connection.notif_port),
    )


@handler(CONSTS.COMMS.SHUTDOWN, "shutdown_host")
async def handle_shutdown(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.shutdown_host
    logger.info("Shutting down mock host.")
    rig.stop_work()
    rig.device_ready = False
    server_connection.shutdown_requested = True
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Shutting down")
    )


# ============================================================================
# Device lifecycle
# ============================================================================


@handler(CONSTS.DEVICE.GET_PORT, "get_port")
async def handle_get_port(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.get_port
    await _send_response(
        server_connection, req_identity, PortsResponse(value=list_ports())
    )


@handler(CONSTS.DEVICE.INIT, "init_device")
async def handle_init_device(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.init_device
    hall_port = request.params["hall_port"]
    motor_port = request.params["motor_port"]
    laser_addr = request.params["laser_addr"]
    available = {p.id for p in list_ports()}
    for port in (hall_port, motor_port):
        if port not in available:
            raise ValueError(f"Serial port {port} not found.")
    rig.hall_port, rig.motor_port, rig.laser_addr = hall_port, motor_port, laser_addr
    rig.device_ready = True
    logger.info(
        "Device initialised: hall={} motor={} laser={}", hall_port, motor_port, laser_addr
    )
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Device connected")
    )


@handler(CONSTS.DEVICE.DEINIT, "deinit_device")
async def handle_deinit_device(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.deinit_device
    rig.stop_work()
    rig.device_ready = False
    rig.hall_port = rig.motor_port = rig.laser_addr = ""
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Device disconnected")
    )


# ============================================================================
# Motor
# ============================================================================


@handler(CONSTS.MOTOR.SET_SPEED, "set_motor_speed", requires_device=True)
async def handle_set_motor_speed(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.set_motor_speed
    pulses = rig.set_speed(float(request.params["speed"]))
    await _send_response(
        server_connection,
        req_identity,
        MsgResponse(value=f"Speed set to {rig.speed_rpm} rpm ({pulses} pulse/s)"),
    )


@handler(CONSTS.MOTOR.SET_SINGLE_ANGLE, "set_motor_single_angle", requires_device=True)
async def handle_set_motor_single_angle(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.set_motor_single_angle
    pulses = rig.set_single_angle(float(request.params["angle"]))
    await _send_response(
        server_connection,
        req_identity,
        MsgResponse(value=f"Step set to {rig.step_angle} deg ({pulses} pulses)"),
    )


@handler(
    CONSTS.MOTOR.SET_SINGLE_CIRCLE_PULSE,
    "set_motor_single_circle_pulse",
    requires_device=True,
)
async def handle_set_motor_single_circle_pulse(
    server_connection, req_identity, rig, request
):
    handles: hallscope.host.client.set_motor_single_circle_pulse
    rig.set_single_circle_pulse(int(request.params["pulse"]))
    await _send_response(
        server_connection,
        req_identity,
        MsgResponse(value=f"{rig.single_circle_pulse} pulses per revolution"),
    )


@handler(CONSTS.MOTOR.GET_ANGLE, "get_motor_angle", requires_device=True)
async def handle_get_motor_angle(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.get_motor_angle
    await _send_response(
        server_connection, req_identity, ValueResponse(value=rig.wrapped_angle)
    )


@handler(CONSTS.MOTOR.SET_CALIBRATED, "set_motor_calibrated", requires_device=True)
async def handle_set_motor_calibrated(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.set_motor_calibrated
    rig.calibrate()
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Origin set")
    )


@handler(CONSTS.MOTOR.START_U, "motor_start_u", requires_device=True)
async def handle_motor_start_u(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.motor_start_u
    rig.direction = 1
    await _send_response(server_connection, req_identity, MsgResponse(value="Up"))


@handler(CONSTS.MOTOR.START_D, "motor_start_d", requires_device=True)
async def handle_motor_start_d(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.motor_start_d
    rig.direction = -1
    await _send_response(server_connection, req_identity, MsgResponse(value="Down"))


@handler(CONSTS.MOTOR.STOP, "motor_stop", requires_device=True)
async def handle_motor_stop(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.motor_stop
    if rig.working:
        raise ValueError("Acquisition running, use stop_work.")
    rig.stop_motion()
    await _send_response(server_connection, req_identity, MsgResponse(value="Stopped"))


@handler(CONSTS.MOTOR.START_ONE_CIRCLE, "motor_start_one_circle", requires_device=True)
async def handle_motor_start_one_circle(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.motor_start_one_circle
    if rig.working:
        raise ValueError("Acquisition running.")
    rig.start_one_circle()
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Rotating one revolution")
    )


@handler(CONSTS.MOTOR.ROTATE_STEP, "rotate_motor", requires_device=True)
async def handle_rotate_motor(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.rotate_motor
    if rig.working:
        raise ValueError("Acquisition running.")
    rig.rotate_step()
    await _send_response(
        server_connection,
        req_identity,
        MsgResponse(value=f"Motor at {rig.wrapped_angle:.2f} deg"),
    )


# ============================================================================
# Acquisition
# ============================================================================


@handler(CONSTS.WORK.START, "start_work", requires_device=True)
async def handle_start_work(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.start_work
    if rig.working:
        raise ValueError("Acquisition already running.")
    params = {
        k: request.params[k]
        for k in ("name", "hall_d", "laser_d", "laser_path", "hall_path", "v_path")
    }
    for key in ("laser_path", "hall_path", "v_path"):
        path = Path(str(params[key]))
        if not path.parent.exists():
            raise ValueError(f"Directory for {key} does not exist: {path.parent}")
        path.touch()
    rig.start_work(params)
    logger.info("Acquisition '{}' started.", params["name"])
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Acquisition started")
    )


@handler(CONSTS.WORK.STOP, "stop_work", requires_device=True)
async def handle_stop_work(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.stop_work
    was_working = rig.working
    rig.stop_work()
    await _send_response(
        server_connection, req_identity, MsgResponse(value="Acquisition stopping")
    )
    if was_working:
        _message(server_connection, SEVERITY.SUCCESS, "Stopped", "Acquisition stopped.")


@handler(CONSTS.WORK.FETCH_HALL_DATA, "fetch_hall_data")
async def handle_fetch_hall_data(server_connection, req_identity, rig, request):
    handles: hallscope.host.client.fetch_hall_data
    await _send_response(
        server_connection, req_identity, SamplesResponse(value=rig.fetch())
    )
