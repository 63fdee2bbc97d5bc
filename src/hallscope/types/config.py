"""Data model: samples, ports, run parameters and stream configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from mashumaro import DataClassDictMixin

from hallscope.util.defaults import (
    DEFAULT_LASER_ADDR,
    KEY_PERIOD,
    KEY_TOLERANCE,
    MAX_BUFFER_LENGTH,
    NUM_CHANNELS,
    POLL_INTERVAL,
    REVOLUTION_WRAP_SPAN,
    STALL_THRESHOLD,
)

from .exceptions import MalformedSampleError

# 24 bit signed ADC full scale, 1650 mV reference, x64 gain
_ADC_FULL_SCALE = 8388607
_ADC_REF_MV = 1650.0
_ADC_GAIN = 64.0


def adc_to_mv(raw):
    """Raw ADC counts -> mV (scalars or arrays)."""
    return (_ADC_REF_MV * np.asarray(raw, dtype=float) / _ADC_FULL_SCALE) / _ADC_GAIN


def mv_to_adc(mv):
    return np.asarray(mv, dtype=float) * _ADC_GAIN * _ADC_FULL_SCALE / _ADC_REF_MV


@dataclass(frozen=True)
class Sample(DataClassDictMixin):
    """One reading across all hall sensor channels.

    `key` is the motor angle in degrees, or a monotonic time in ms for
    time-keyed streams.
    """

    key: float
    channels: tuple[float, ...]

    def validate(self) -> "Sample":
        if len(self.channels) != NUM_CHANNELS:
            raise MalformedSampleError(
                f"Expected {NUM_CHANNELS} channels, got {len(self.channels)} "
                f"(key={self.key})"
            )
        return self

    def to_voltages(self) -> np.ndarray:
        """Raw ADC counts -> mV."""
        return adc_to_mv(self.channels)


@dataclass(frozen=True)
class PortDescriptor(DataClassDictMixin):
    id: str
    description: str


@dataclass(frozen=True)
class OutputPaths(DataClassDictMixin):
    laser: str
    hall: str
    voltage: str


@dataclass(frozen=True)
class AcquisitionRun(DataClassDictMixin):
    """Parameters of one `start_work` invocation."""

    label: str
    hall_distance_mm: float
    laser_distance_mm: float
    output_paths: OutputPaths

    def validate(self) -> "AcquisitionRun":
        if not self.label.strip():
            raise ValueError("A run label is required.")
        for name in ("laser", "hall", "voltage"):
            if not getattr(self.output_paths, name):
                raise ValueError(f"An output path for '{name}' data is required.")
        return self

    def to_params(self) -> dict[str, Any]:
        return {
            "name": self.label,
            "hall_d": float(self.hall_distance_mm),
            "laser_d": float(self.laser_distance_mm),
            "laser_path": self.output_paths.laser,
            "hall_path": self.output_paths.hall,
            "v_path": self.output_paths.voltage,
        }


@dataclass(frozen=True)
class DeviceConfig(DataClassDictMixin):
    """Connection form: which serial ports and laser address to open."""

    hall_port: str = ""
    motor_port: str = ""
    laser_addr: str = DEFAULT_LASER_ADDR

    def validate(self) -> "DeviceConfig":
        if not self.hall_port or not self.motor_port:
            raise ValueError("Both the hall and the motor port must be selected.")
        if self.hall_port == self.motor_port:
            raise ValueError("The hall and motor ports must be different.")
        if ":" not in self.laser_addr:
            raise ValueError(f"Laser address must be host:port, got '{self.laser_addr}'")
        return self

    def to_params(self) -> dict[str, Any]:
        return {
            "hall_port": self.hall_port,
            "motor_port": self.motor_port,
            "laser_addr": self.laser_addr,
        }


@dataclass
class StreamConfig(DataClassDictMixin):
    """Sample stream merge/buffer parameters."""

    max_buffer_length: int = MAX_BUFFER_LENGTH
    key_tolerance: float = KEY_TOLERANCE
    poll_interval: float = POLL_INTERVAL
    stall_threshold: int = STALL_THRESHOLD
    key_period: float = KEY_PERIOD
    revolution_wrap_span: float = REVOLUTION_WRAP_SPAN

    def __post_init__(self):
        if self.max_buffer_length < 1:
            raise ValueError("max_buffer_length must be >= 1")
        if self.key_tolerance < 0:
            raise ValueError("key_tolerance must be >= 0")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.stall_threshold < 1:
            raise ValueError("stall_threshold must be >= 1")
        if self.key_period < 0:
            raise ValueError("key_period must be >= 0")
        if self.key_period and not 0 < 2 * self.revolution_wrap_span <= self.key_period:
            raise ValueError("revolution_wrap_span must be in (0, key_period / 2]")
