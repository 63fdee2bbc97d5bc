"""Polar one-revolution view, redrawn in full on every update."""

import types

import numpy as np
from PyQt6.QtWidgets import QWidget

from hallscope.types import Sample
from hallscope.util.defaults import NUM_CHANNELS

from .matplotlib_canvas import MplCanvas

KEY_KIND = types.SimpleNamespace()
KEY_KIND.ANGLE = "angle"
KEY_KIND.TIME = "time"  # key is a monotonic time in ms

MAX_TICK_LABELS = 12


def format_key(key: float, kind: str = KEY_KIND.ANGLE) -> str:
    """Category label for a sample key: '90.0°' or 'HH:MM:SS.mmm'."""
    if kind == KEY_KIND.ANGLE:
        return f"{key:.1f}°"
    total_ms = int(round(key))
    seconds, ms = divmod(total_ms, 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{ms:03d}"


class PolarChart:
    def __init__(self, container: QWidget, kind: str = KEY_KIND.ANGLE):
        self._container = container
        self._kind = kind
        self._samples: list[Sample] = []
        self.canvas = MplCanvas(container, polar=True)
        container.layout().addWidget(self.canvas)
        self._redraw()

    def _thetas(self) -> np.ndarray:
        if self._kind == KEY_KIND.ANGLE:
            return np.radians([s.key for s in self._samples])
        # time keys are categories spread evenly around the circle
        n = len(self._samples)
        return np.linspace(0, 2 * np.pi, n, endpoint=False)

    def _redraw(self):
        ax = self.canvas.axes
        ax.clear()
        if self._samples:
            thetas = self._thetas()
            values = np.array([s.channels for s in self._samples], dtype=float)
            # close the loop
            thetas = np.append(thetas, thetas[0])
            values = np.vstack([values, values[:1]])
            for i in range(NUM_CHANNELS):
                ax.plot(thetas, values[:, i], lw=1, label=f"Sensor {i + 1}")
            if self._kind == KEY_KIND.TIME:
                step = max(1, len(self._samples) // MAX_TICK_LABELS)
                ax.set_xticks(thetas[:-1:step])
                ax.set_xticklabels(
                    [format_key(s.key, self._kind) for s in self._samples[::step]],
                    fontsize="x-small",
                )
            ax.legend(loc="upper right", fontsize="x-small", bbox_to_anchor=(1.3, 1.1))
        self.canvas.draw_idle()

    def clear(self) -> None:
        self._samples = []
        self._redraw()

    def append(self, sample: Sample) -> None:
        self._samples.append(sample)
        self._redraw()

    def load(self, samples) -> None:
        self._samples = list(samples)
        self._redraw()

    def dispose(self) -> None:
        layout = self._container.layout()
        if layout is not None:
            layout.removeWidget(self.canvas)
        self.canvas.setParent(None)
        self.canvas.deleteLater()
