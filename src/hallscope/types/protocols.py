"""Protocols for the collaborators the acquisition session talks to.

The session never imports a concrete transport, chart widget or toast
implementation. It is handed objects that satisfy these protocols:

- `HostInvoker`: anything that can run a named host command and return its
  payload (the zmq client in `hallscope.host`, or a fake in test).
- `ChartSurface`: one rendering handle for a live or polar view.
- `Notifier`: where user-visible notices go (status bar, log, test recorder).

All are `@runtime_checkable`, so wiring code can `isinstance`-check what it
was given.
"""

from __future__ import annotations

import types
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, Protocol, Sequence, runtime_checkable

from .config import Sample

SEVERITY = types.SimpleNamespace()
SEVERITY.INFO = "info"
SEVERITY.SUCCESS = "success"
SEVERITY.WARNING = "warning"
SEVERITY.ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """One user-visible notification."""

    severity: str
    title: str
    body: str = ""


@runtime_checkable
class HostInvoker(Protocol):
    def __call__(
        self, name: str, params: Optional[dict[str, Any]] = None
    ) -> Awaitable[Any]:
        """Run host command `name`, resolve with its payload or raise."""
        ...


@runtime_checkable
class ChartSurface(Protocol):
    def clear(self) -> None:
        """Drop all plotted points."""
        ...

    def append(self, sample: Sample) -> None:
        """Add one point per channel without redrawing existing points."""
        ...

    def load(self, samples: Sequence[Sample]) -> None:
        """Replace everything plotted with `samples`."""
        ...

    def dispose(self) -> None:
        """Release the rendering resources. The surface is not used again."""
        ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...
