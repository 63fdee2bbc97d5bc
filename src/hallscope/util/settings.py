"""Persisted operator settings (INI file under ~/.hallscope).

Sections map one-to-one onto the dataclasses the rest of the code uses:

```ini
[host]      -> HostSettings
[stream]    -> StreamConfig
[device]    -> DeviceConfig
[run]       -> RunDefaults
```

Missing files, sections or keys fall back to the defaults; a corrupt file is
logged and ignored rather than raised, so the GUI always starts.
"""

from __future__ import annotations

import configparser
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from mashumaro import DataClassDictMixin

from hallscope.types.config import DeviceConfig, StreamConfig

from .defaults import (
    DEFAULT_CIRCLE_PULSE,
    DEFAULT_HALL_DISTANCE_MM,
    DEFAULT_HOST_ADDR,
    DEFAULT_LASER_DISTANCE_MM,
    DEFAULT_MOTOR_SPEED_RPM,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_STEP_ANGLE,
    DEFAULT_TIMEOUT,
)

CONFIG_DIR = Path.home() / ".hallscope"


def default_settings_path() -> Path:
    return CONFIG_DIR / "settings.ini"


@dataclass
class HostSettings(DataClassDictMixin):
    host: str = DEFAULT_HOST_ADDR
    msg_port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    request_retries: int = DEFAULT_RETRIES


@dataclass
class RunDefaults(DataClassDictMixin):
    """Pre-filled values for the run and motor forms."""

    hall_distance_mm: float = DEFAULT_HALL_DISTANCE_MM
    laser_distance_mm: float = DEFAULT_LASER_DISTANCE_MM
    motor_speed_rpm: float = DEFAULT_MOTOR_SPEED_RPM
    step_angle: float = DEFAULT_STEP_ANGLE
    circle_pulse: int = DEFAULT_CIRCLE_PULSE
    output_dir: str = ""


@dataclass
class Settings(DataClassDictMixin):
    host: HostSettings = field(default_factory=HostSettings)
    stream: StreamConfig = field(default_factory=StreamConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    run: RunDefaults = field(default_factory=RunDefaults)


_SECTIONS = ("host", "stream", "device", "run")


def _coerce(raw: str, like: Any) -> Any:
    if isinstance(like, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(like, int):
        return int(raw)
    if isinstance(like, float):
        return float(raw)
    return raw


def load_settings(path: Optional[Path | str] = None) -> Settings:
    path = Path(path) if path else default_settings_path()
    settings = Settings()
    if not path.exists():
        logger.info("No settings file at {}, using defaults.", path)
        return settings

    config = configparser.ConfigParser()
    try:
        config.read(path)
    except configparser.Error as e:
        logger.error(f"Error reading config file {path}: {e}")
        return settings

    as_dict = settings.to_dict()
    for section in _SECTIONS:
        if not config.has_section(section):
            continue
        defaults = as_dict[section]
        for key, raw in config[section].items():
            if key not in defaults:
                logger.warning("Unknown setting [{}] {}, ignoring.", section, key)
                continue
            try:
                defaults[key] = _coerce(raw, defaults[key])
            except ValueError:
                logger.error(
                    "Bad value for [{}] {}: '{}', keeping default.", section, key, raw
                )
    try:
        return Settings.from_dict(as_dict)
    except ValueError as e:
        # StreamConfig range checks
        logger.error("Invalid settings in {}: {}. Using defaults.", path, e)
        return Settings()


def save_settings(settings: Settings, path: Optional[Path | str] = None) -> Path:
    path = Path(path) if path else default_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    config = configparser.ConfigParser()
    for section in _SECTIONS:
        obj = getattr(settings, section)
        config[section] = {f.name: str(getattr(obj, f.name)) for f in fields(obj)}
    logger.debug(f"Writing config to {path}")
    with open(path, "w") as f:
        config.write(f)
    return path
