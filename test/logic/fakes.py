"""In-memory collaborators for the session tests: a scripted host, a notice
recorder and a chart surface that records what was drawn."""

from typing import Any, Optional

from hallscope.types import SEVERITY, Notice, Sample
from hallscope.util.defaults import NUM_CHANNELS


def make_sample(key: float, value: float = 0.0) -> Sample:
    channels = tuple(float(value + i) for i in range(NUM_CHANNELS))
    return Sample(key=float(key), channels=channels)


class FakeHost:
    """Async `HostInvoker` with scripted replies.

    `replies[name]` may be a value (returned), an exception instance (raised)
    or a callable taking the params (its result is returned, or it raises).
    Commands with no reply configured answer "OK".
    """

    def __init__(self, replies: Optional[dict[str, Any]] = None):
        self.replies: dict[str, Any] = dict(replies or {})
        self.calls: list[tuple[str, dict]] = []

    async def __call__(self, name: str, params: Optional[dict] = None) -> Any:
        params = params or {}
        self.calls.append((name, params))
        reply = self.replies.get(name, "OK")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(params)
        return reply

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class RecordingNotifier:
    def __init__(self):
        self.notices: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.notices.append(notice)

    def of(self, severity: str) -> list[Notice]:
        return [n for n in self.notices if n.severity == severity]

    @property
    def errors(self) -> list[Notice]:
        return self.of(SEVERITY.ERROR)


class RecordingSurface:
    """`ChartSurface` that keeps the plotted keys and a log of calls."""

    def __init__(self):
        self.keys: list[float] = []
        self.ops: list[str] = []
        self.disposed = False

    def clear(self) -> None:
        self.ops.append("clear")
        self.keys = []

    def append(self, sample: Sample) -> None:
        assert not self.disposed
        self.ops.append("append")
        self.keys.append(sample.key)

    def load(self, samples) -> None:
        assert not self.disposed
        self.ops.append("load")
        self.keys = [s.key for s in samples]

    def dispose(self) -> None:
        self.ops.append("dispose")
        self.disposed = True


class SurfaceFactory:
    """Creates `RecordingSurface`s and remembers every one it made."""

    def __init__(self):
        self.made: list[RecordingSurface] = []

    def __call__(self) -> RecordingSurface:
        surface = RecordingSurface()
        self.made.append(surface)
        return surface

    @property
    def last(self) -> RecordingSurface:
        return self.made[-1]


