"""Device/session lifecycle and command gating.

    DISCONNECTED --connect--> CONFIGURING --ok--> CONNECTED --start--> ACQUIRING
         ^                        |  fail             |  ^                 |  |
         +------------------------+                   |  +------stop-------+  |
         +-----------------disconnect-----------------+                       |
         +--------disconnect (best effort)-- FAULTING <----stream stall-------+

`SessionStateMachine` is the only writer of the session state. Everything else
reads `state`, `controls()` or connects to `state_changed`.
"""

from __future__ import annotations

import asyncio
import types
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from hallscope.types import (
    CONSTS,
    AcquisitionRun,
    CommandError,
    DeviceConfig,
    SessionStateError,
)
from hallscope.util import Signal

from .gateway import CommandGateway
from .stream import SampleStream

# ----------------
# Available States
# ----------------

SESSION_STATE = types.SimpleNamespace()
SESSION_STATE.DISCONNECTED = "DISCONNECTED"
SESSION_STATE.CONFIGURING = "CONFIGURING"
SESSION_STATE.CONNECTED = "CONNECTED"
SESSION_STATE.ACQUIRING = "ACQUIRING"
SESSION_STATE.FAULTING = "FAULTING"

_MOTOR_STATES = (SESSION_STATE.CONNECTED, SESSION_STATE.ACQUIRING)


@dataclass(frozen=True)
class ControlState:
    """Which groups of UI controls are enabled."""

    device_config: bool
    connect: bool
    disconnect: bool
    motor: bool
    start: bool
    stop: bool


class SessionStateMachine:
    def __init__(self, gateway: CommandGateway, stream: SampleStream):
        self._gateway = gateway
        self._stream = stream
        self._state = SESSION_STATE.DISCONNECTED
        self._lock = asyncio.Lock()
        self._current_run: Optional[AcquisitionRun] = None
        self._device_config: Optional[DeviceConfig] = None
        self.last_motor_angle: Optional[float] = None
        self.state_changed = Signal("state_changed")
        stream.stalled.connect(self._on_stream_stalled)

    # ------------------------------------------------------------ accessors

    @property
    def state(self) -> str:
        return self._state

    @property
    def current_run(self) -> Optional[AcquisitionRun]:
        return self._current_run

    @property
    def device_config(self) -> Optional[DeviceConfig]:
        return self._device_config

    @property
    def is_streaming(self) -> bool:
        """Whether samples are expected from the host (poll should run)."""
        return self._state in _MOTOR_STATES

    def controls(self) -> ControlState:
        s = self._state
        return ControlState(
            device_config=s == SESSION_STATE.DISCONNECTED,
            connect=s == SESSION_STATE.DISCONNECTED,
            disconnect=s in (SESSION_STATE.CONNECTED, SESSION_STATE.FAULTING),
            motor=s in _MOTOR_STATES,
            start=s == SESSION_STATE.CONNECTED,
            stop=s == SESSION_STATE.ACQUIRING,
        )

    def _set_state(self, new_state: str) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        logger.info("Session state: {} -> {}", old_state, new_state)
        self.state_changed.emit(old_state, new_state)

    def _require(self, action: str, *allowed: str) -> None:
        if self._state not in allowed:
            raise SessionStateError(action, self._state)

    # ------------------------------------------------------------ lifecycle

    async def connect(self, config: DeviceConfig) -> None:
        """Open the hall/motor ports and the laser link on the host."""
        self._require("connect", SESSION_STATE.DISCONNECTED)
        config.validate()
        async with self._lock:
            self._require("connect", SESSION_STATE.DISCONNECTED)
            self._set_state(SESSION_STATE.CONFIGURING)
            try:
                await self._gateway.invoke(
                    CONSTS.DEVICE.INIT,
                    config.to_params(),
                    success_title="Connected",
                    error_title="Connect failed",
                )
            except CommandError:
                self._set_state(SESSION_STATE.DISCONNECTED)
                raise
            self._device_config = config
            self._set_state(SESSION_STATE.CONNECTED)

    async def disconnect(self) -> bool:
        """Release the device. Returns False when there was nothing to do.

        From FAULTING the host is asked to release the device but the session
        ends up DISCONNECTED whatever it answers. Disconnecting while
        ACQUIRING is ignored: stop first.
        """
        async with self._lock:
            if self._state == SESSION_STATE.DISCONNECTED:
                logger.debug("Disconnect while disconnected, ignoring.")
                return False
            if self._state == SESSION_STATE.ACQUIRING:
                logger.warning("Disconnect requested while acquiring, stop first.")
                return False
            if self._state == SESSION_STATE.FAULTING:
                try:
                    await self._gateway.invoke(
                        CONSTS.DEVICE.DEINIT,
                        success_title="Disconnected",
                        error_title="Disconnect failed",
                    )
                except CommandError:
                    logger.warning("deinit_device failed after fault, continuing.")
            else:
                await self._gateway.invoke(
                    CONSTS.DEVICE.DEINIT,
                    success_title="Disconnected",
                    error_title="Disconnect failed",
                )
            self._current_run = None
            self._device_config = None
            self.last_motor_angle = None
            self._stream.clear()
            self._set_state(SESSION_STATE.DISCONNECTED)
            return True

    async def start(self, run: AcquisitionRun) -> None:
        """Begin an acquisition run. Rendered series are cleared before the
        host is asked to start, so no point from a previous run survives."""
        self._require("start", SESSION_STATE.CONNECTED)
        run.validate()
        async with self._lock:
            self._require("start", SESSION_STATE.CONNECTED)
            self._stream.clear()
            try:
                await self._gateway.invoke(
                    CONSTS.WORK.START,
                    run.to_params(),
                    success_title="Acquisition started",
                    error_title="Start failed",
                )
            except CommandError:
                self._current_run = None
                raise
            self._current_run = run
            self._set_state(SESSION_STATE.ACQUIRING)

    async def stop(self) -> bool:
        """Stop the running acquisition. Returns False when none was running."""
        async with self._lock:
            if self._state != SESSION_STATE.ACQUIRING:
                logger.debug("Stop while {}, ignoring.", self._state)
                return False
            await self._gateway.invoke(
                CONSTS.WORK.STOP, success_title="Stopping", error_title="Stop failed"
            )
            self._current_run = None
            self._set_state(SESSION_STATE.CONNECTED)
            return True

    def _on_stream_stalled(self, failures: int) -> None:
        if self._state != SESSION_STATE.ACQUIRING:
            return
        self._current_run = None
        self._set_state(SESSION_STATE.FAULTING)
        self._gateway.report_failure(
            "Acquisition stalled",
            f"No data from the host after {failures} attempts. Disconnect to recover.",
        )

    # ---------------------------------------------------------------- motor

    async def _motor(self, action: str, args: Optional[dict] = None, **kwargs):
        self._require(action, *_MOTOR_STATES)
        async with self._lock:
            self._require(action, *_MOTOR_STATES)
            return await self._gateway.invoke(action, args, **kwargs)

    async def set_motor_speed(self, rpm: float) -> str:
        return await self._motor(CONSTS.MOTOR.SET_SPEED, {"speed": float(rpm)})

    async def set_motor_single_angle(self, degrees: float) -> str:
        return await self._motor(
            CONSTS.MOTOR.SET_SINGLE_ANGLE, {"angle": float(degrees)}
        )

    async def set_motor_single_circle_pulse(self, pulses: int) -> str:
        return await self._motor(
            CONSTS.MOTOR.SET_SINGLE_CIRCLE_PULSE, {"pulse": int(pulses)}
        )

    async def query_motor_angle(self) -> float:
        angle = await self._motor(CONSTS.MOTOR.GET_ANGLE, quiet=True)
        self.last_motor_angle = float(angle)
        return self.last_motor_angle

    async def calibrate(self) -> str:
        result = await self._motor(
            CONSTS.MOTOR.SET_CALIBRATED, success_title="Origin set"
        )
        self.last_motor_angle = 0.0
        return result

    async def jog_up(self) -> str:
        return await self._motor(CONSTS.MOTOR.START_U, quiet=True)

    async def jog_down(self) -> str:
        return await self._motor(CONSTS.MOTOR.START_D, quiet=True)

    async def motor_stop(self) -> str:
        return await self._motor(CONSTS.MOTOR.STOP, quiet=True)

    async def rotate_one_circle(self) -> str:
        return await self._motor(CONSTS.MOTOR.START_ONE_CIRCLE)

    async def rotate_step(self) -> str:
        return await self._motor(CONSTS.MOTOR.ROTATE_STEP, quiet=True)
