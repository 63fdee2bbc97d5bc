"""Cartesian live chart: one line per hall sensor against the sample key.

Satisfies `hallscope.types.ChartSurface`. The chart keeps at most
`max_points` points (oldest dropped first) and redraws at most once per
`REDRAW_INTERVAL_MS`, however fast samples are appended.
"""

from collections import deque

import numpy as np
from PyQt6.QtCore import QTimer
from PyQt6.QtWidgets import QWidget

from hallscope.types import Sample, adc_to_mv, mv_to_adc
from hallscope.util.defaults import MAX_BUFFER_LENGTH, NUM_CHANNELS

from .matplotlib_canvas import MplCanvas

X_SPAN = 360.0  # degrees, widened when keys run past it
REDRAW_INTERVAL_MS = 50
_Y_MARGIN = 0.05

_BREAK = (np.nan,) * NUM_CHANNELS


class LiveChart:
    def __init__(
        self,
        container: QWidget,
        key_label: str = "Angle (deg)",
        max_points: int = MAX_BUFFER_LENGTH,
    ):
        self._container = container
        self._max_points = max_points
        self.canvas = MplCanvas(container)
        container.layout().addWidget(self.canvas)

        ax = self.canvas.axes
        ax.set_xlabel(key_label)
        ax.set_ylabel("ADC counts")
        ax.grid(True)
        self._lines = [
            ax.plot([], [], lw=1, label=f"Sensor {i + 1}")[0]
            for i in range(NUM_CHANNELS)
        ]
        volts = ax.secondary_yaxis("right", functions=(adc_to_mv, mv_to_adc))
        volts.set_ylabel("Voltage (mV)")
        ax.legend(loc="upper right", fontsize="small", ncols=3)

        # coalesces bursts of appends into one draw
        self._redraw_timer = QTimer()
        self._redraw_timer.setSingleShot(True)
        self._redraw_timer.setInterval(REDRAW_INTERVAL_MS)
        self._redraw_timer.timeout.connect(self.refresh)

        self._disposed = False
        self._reset_series()

    @property
    def point_count(self) -> int:
        return self._points

    @property
    def max_points(self) -> int:
        return self._max_points

    def _reset_series(self):
        # bounded by _evict: max_points keys plus at most one break each
        self._x: deque[float] = deque()
        self._y: deque[tuple[float, ...]] = deque()
        self._points = 0
        self._last_key = None
        self._x_max = X_SPAN
        self._y_min = np.inf
        self._y_max = -np.inf
        self.canvas.axes.set_xlim(0, X_SPAN)

    def _evict(self):
        # drop leading breaks too, so the series never starts with a gap
        while self._points > self._max_points or (
            self._x and np.isnan(self._x[0])
        ):
            if not np.isnan(self._x.popleft()):
                self._points -= 1
            self._y.popleft()

    def _push(self, sample: Sample):
        if self._last_key is not None and sample.key < self._last_key:
            # new revolution: break the lines instead of drawing back to 0
            self._x.append(np.nan)
            self._y.append(_BREAK)
        self._x.append(sample.key)
        self._y.append(sample.channels)
        self._points += 1
        self._last_key = sample.key
        self._x_max = max(self._x_max, sample.key)
        self._y_min = min(self._y_min, min(sample.channels))
        self._y_max = max(self._y_max, max(sample.channels))
        self._evict()

    def _schedule(self):
        if not self._disposed and not self._redraw_timer.isActive():
            self._redraw_timer.start()

    def refresh(self) -> None:
        """Push the buffered series to the axes and request a draw."""
        if self._disposed:
            return
        self._redraw_timer.stop()
        x = np.fromiter(self._x, dtype=float, count=len(self._x))
        y = np.array(self._y, dtype=float).reshape(len(self._y), NUM_CHANNELS)
        for i, line in enumerate(self._lines):
            line.set_data(x, y[:, i])

        ax = self.canvas.axes
        if self._x_max > X_SPAN and self._x:
            ax.set_xlim(self._x[0], self._x_max)
        if self._y_min <= self._y_max:
            pad = max(self._y_max - self._y_min, 1.0) * _Y_MARGIN
            ax.set_ylim(self._y_min - pad, self._y_max + pad)
        self.canvas.draw_idle()

    def clear(self) -> None:
        self._reset_series()
        self.refresh()

    def append(self, sample: Sample) -> None:
        self._push(sample)
        self._schedule()

    def load(self, samples) -> None:
        self._reset_series()
        for sample in samples:
            self._push(sample)
        self.refresh()

    def dispose(self) -> None:
        self._disposed = True
        self._redraw_timer.stop()
        layout = self._container.layout()
        if layout is not None:
            layout.removeWidget(self.canvas)
        self.canvas.setParent(None)
        self.canvas.deleteLater()
