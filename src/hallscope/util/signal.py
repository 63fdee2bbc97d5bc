"""Minimal callback signal used for subscription-based reads between components.

Modelled on Qt's signal/slot: an owner emits, any number of readers connect.
Connecting returns a disconnect handle, so subscriptions can be scoped to the
lifetime of whatever created them.
"""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger


class Signal:
    def __init__(self, name: str = ""):
        self.name = name
        self._slots: list[Callable[..., Any]] = []

    def connect(self, slot: Callable[..., Any]) -> Callable[[], None]:
        self._slots.append(slot)

        def disconnect():
            self.disconnect(slot)

        return disconnect

    def disconnect(self, slot: Callable[..., Any]) -> None:
        try:
            self._slots.remove(slot)
        except ValueError:
            pass  # already gone, disconnecting twice is fine

    def emit(self, *args: Any) -> None:
        # copy: slots may disconnect themselves while being called
        for slot in list(self._slots):
            try:
                slot(*args)
            except Exception:
                logger.exception("Error in slot {} for signal '{}'.", slot, self.name)

    def __len__(self) -> int:
        return len(self._slots)
