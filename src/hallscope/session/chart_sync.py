"""Keeps chart surfaces in step with the sample stream.

Each bound view has a factory that creates a fresh `ChartSurface`, a redraw
policy and a visibility flag. Hidden views own no surface at all; revealing a
view creates a new surface and bulk-loads the current buffer into it, so a
surface from before the view was hidden is never reused.
"""

from __future__ import annotations

import types
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from hallscope.types import ChartSurface, Sample

from .stream import SampleStream

REDRAW = types.SimpleNamespace()
REDRAW.INCREMENTAL = "incremental"
REDRAW.FULL = "full"


@dataclass
class _View:
    factory: Callable[[], ChartSurface]
    policy: str
    surface: Optional[ChartSurface] = None
    cursor: int = 0


class ChartSync:
    def __init__(self, stream: SampleStream):
        self._stream = stream
        self._views: dict[str, _View] = {}
        self._disconnects = [
            stream.sample_accepted.connect(self._on_sample),
            stream.reset.connect(self._on_reset),
        ]

    def bind(
        self,
        name: str,
        factory: Callable[[], ChartSurface],
        policy: str = REDRAW.INCREMENTAL,
        visible: bool = False,
    ) -> None:
        if policy not in (REDRAW.INCREMENTAL, REDRAW.FULL):
            raise ValueError(f"Unknown redraw policy: {policy}")
        if name in self._views:
            self._release(self._views[name])
        self._views[name] = _View(factory=factory, policy=policy)
        if visible:
            self.set_visible(name, True)

    def surface(self, name: str) -> Optional[ChartSurface]:
        return self._views[name].surface

    def is_visible(self, name: str) -> bool:
        return self._views[name].surface is not None

    def set_visible(self, name: str, visible: bool) -> None:
        view = self._views[name]
        if not visible:
            if view.surface is not None:
                logger.debug("View '{}' hidden, releasing surface.", name)
                self._release(view)
            return
        if view.surface is not None:
            return
        view.surface = view.factory()
        view.surface.load(self._stream.snapshot())
        view.cursor = self._stream.cursor
        logger.debug("View '{}' revealed with {} samples.", name, len(self._stream))

    def _release(self, view: _View) -> None:
        if view.surface is not None:
            view.surface.dispose()
            view.surface = None

    def release_all(self) -> None:
        for view in self._views.values():
            self._release(view)

    def close(self) -> None:
        """Stop following the stream and drop every surface."""
        for disconnect in self._disconnects:
            disconnect()
        self._disconnects = []
        self.release_all()

    def _on_sample(self, sample: Sample) -> None:
        for view in self._views.values():
            if view.surface is None:
                continue
            if view.policy == REDRAW.FULL:
                view.surface.load(self._stream.snapshot())
                view.cursor = self._stream.cursor
                continue
            view.cursor, new = self._stream.read_since(view.cursor)
            for s in new:
                view.surface.append(s)

    def _on_reset(self) -> None:
        for view in self._views.values():
            if view.surface is not None:
                view.surface.clear()
            view.cursor = self._stream.cursor
