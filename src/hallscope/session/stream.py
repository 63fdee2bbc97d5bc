"""One ordered, de-duplicated, bounded sequence of samples from two sources.

Samples arrive pushed one at a time (`hall_recv` notifications) and in batches
from a fixed-period poll (`fetch_hall_data`), which backstops dropped pushes.
Both go through the same acceptance rule:

- a sample whose key is already present is dropped silently, so replaying a
  poll batch that overlaps the pushes never duplicates points;
- a sample is accepted only if its key is >= the highest accepted key minus
  `key_tolerance` (0 by default: strictly monotonic). Samples inside the
  tolerance are inserted at their sorted position;
- angle-keyed streams (`key_period` 360) wrap: a key within
  `revolution_wrap_span` of 0 arriving while the highest accepted key is
  within `revolution_wrap_span` of 360 starts a new revolution
  (e.g. 359.0 -> 0.5 deg). Any other drop is just a late sample;
- just after a wrap, a key near 360 is a late sample of the revolution that
  ended. Keys of that revolution are remembered, so a poll batch replaying
  pushes across the wrap adds nothing;
- time-keyed streams (`key_period` 0) never wrap.

Buffer modes:

- RING: the buffer keeps the last `max_buffer_length` samples across
  revolutions, oldest evicted first;
- REVOLUTION: the buffer holds the current revolution only and is cleared
  (emitting `reset`) when a new one starts. The length cap still applies.

Readers never touch the buffer: they connect to `sample_accepted` / `reset`
and pull with `read_since(cursor)` or `snapshot()`.
"""

from __future__ import annotations

import math
import types
from collections import deque
from typing import Any, Iterable, Optional

from loguru import logger

from hallscope.types import (
    CONSTS,
    CommandError,
    MalformedSampleError,
    Sample,
    StreamConfig,
)
from hallscope.util import Signal

from .gateway import CommandGateway

BUFFER_MODE = types.SimpleNamespace()
BUFFER_MODE.RING = "ring"
BUFFER_MODE.REVOLUTION = "revolution"

SOURCE = types.SimpleNamespace()
SOURCE.PUSH = "push"
SOURCE.POLL = "poll"


def coerce_sample(raw: Any) -> Sample:
    """Build a validated `Sample` from a Sample, a dict or a (key, channels) pair.

    Raises
    ------
    MalformedSampleError
        Wrong channel count, non-numeric values or a non-finite key.
    """
    try:
        if isinstance(raw, Sample):
            key, channels = raw.key, raw.channels
        elif isinstance(raw, dict):
            key, channels = raw["key"], raw["channels"]
        else:
            key, channels = raw
        sample = Sample(key=float(key), channels=tuple(float(c) for c in channels))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedSampleError(f"Cannot read sample {raw!r}: {e}") from e
    if not math.isfinite(sample.key):
        raise MalformedSampleError(f"Non-finite sample key {sample.key}")
    return sample.validate()


class SampleStream:
    def __init__(
        self, config: Optional[StreamConfig] = None, mode: str = BUFFER_MODE.RING
    ):
        if mode not in (BUFFER_MODE.RING, BUFFER_MODE.REVOLUTION):
            raise ValueError(f"Unknown buffer mode: {mode}")
        self.config = config if config is not None else StreamConfig()
        self._mode = mode

        # (revolution, key, sample), sorted by (revolution, key)
        self._buffer: deque[tuple[int, float, Sample]] = deque()
        self._present: set[tuple[int, float]] = set()
        # (seq, sample) in acceptance order, for cursor reads
        self._arrivals: deque[tuple[int, Sample]] = deque(
            maxlen=self.config.max_buffer_length
        )
        self._seq = 0
        self._revolution = 0
        self._high_water: Optional[float] = None
        self._previous_keys: set[float] = set()

        self.malformed_count = 0
        self.duplicate_count = 0
        self.rejected_count = 0
        self._poll_failures = 0
        self._stall_signalled = False

        self.sample_accepted = Signal("sample_accepted")
        self.reset = Signal("reset")
        self.stalled = Signal("stalled")

    # ------------------------------------------------------------ properties

    @property
    def mode(self) -> str:
        return self._mode

    def set_mode(self, mode: str) -> None:
        """Switch buffer discipline. Entering REVOLUTION mode drops samples
        from earlier revolutions."""
        if mode not in (BUFFER_MODE.RING, BUFFER_MODE.REVOLUTION):
            raise ValueError(f"Unknown buffer mode: {mode}")
        if mode == self._mode:
            return
        self._mode = mode
        if mode == BUFFER_MODE.REVOLUTION:
            while self._buffer and self._buffer[0][0] < self._revolution:
                rev, key, _ = self._buffer.popleft()
                self._present.discard((rev, key))
        logger.info("Sample stream mode: {}", mode)

    @property
    def cursor(self) -> int:
        """Sequence number of the most recently accepted sample."""
        return self._seq

    @property
    def high_water(self) -> Optional[float]:
        return self._high_water

    @property
    def consecutive_poll_failures(self) -> int:
        return self._poll_failures

    def __len__(self) -> int:
        return len(self._buffer)

    def keys(self) -> list[float]:
        return [key for _, key, _ in self._buffer]

    def snapshot(self) -> tuple[Sample, ...]:
        return tuple(sample for _, _, sample in self._buffer)

    def read_since(self, cursor: int) -> tuple[int, list[Sample]]:
        """Samples accepted after `cursor`, in acceptance order, and the new
        cursor. Cheap when the reader is nearly caught up."""
        new = []
        for seq, sample in reversed(self._arrivals):
            if seq <= cursor:
                break
            new.append(sample)
        new.reverse()
        return self._seq, new

    # ------------------------------------------------------------- mutation

    def clear(self) -> None:
        """Forget everything (new run, new connection). Emits `reset`."""
        self._buffer.clear()
        self._present.clear()
        self._arrivals.clear()
        self._previous_keys = set()
        self._revolution = 0
        self._high_water = None
        self._poll_failures = 0
        self._stall_signalled = False
        logger.debug("Sample stream cleared.")
        self.reset.emit()

    def _near_end(self, key: float) -> bool:
        return key >= self.config.key_period - self.config.revolution_wrap_span

    def _near_start(self, key: float) -> bool:
        return key < self.config.revolution_wrap_span

    def _start_revolution(self) -> None:
        # kept so a late replay of the revolution just finished is a duplicate
        self._previous_keys = {
            key for rev, key, _ in self._buffer if rev == self._revolution
        }
        self._revolution += 1
        self._high_water = None
        if self._mode == BUFFER_MODE.REVOLUTION:
            self._buffer.clear()
            self._present.clear()
            self._arrivals.clear()
            logger.debug("New revolution, buffer cleared.")
            self.reset.emit()

    def _insert(self, rev: int, key: float, sample: Sample) -> None:
        """Insert behind the high-water mark, keeping the buffer sorted."""
        ident = (rev, key)
        idx = len(self._buffer)
        while idx > 0 and self._buffer[idx - 1][:2] > ident:
            idx -= 1
        self._buffer.insert(idx, (rev, key, sample))

    def _late_from_previous(self, sample: Sample, source: str, hw: float) -> bool:
        """A key just below the wrap while the high-water mark is just past it."""
        key = sample.key
        rev = self._revolution - 1
        if key in self._previous_keys or (rev, key) in self._present:
            self.duplicate_count += 1
            logger.trace(
                "Duplicate {} sample at key {} (previous revolution)", source, key
            )
            return False
        lag = (self.config.key_period - key) + hw
        if self._mode == BUFFER_MODE.REVOLUTION or lag > self.config.key_tolerance:
            self.rejected_count += 1
            logger.trace("Late {} sample at key {}, previous revolution", source, key)
            return False
        self._insert(rev, key, sample)
        self._previous_keys.add(key)
        self._accepted(rev, key, sample)
        return True

    def _accepted(self, rev: int, key: float, sample: Sample) -> None:
        self._present.add((rev, key))
        while len(self._buffer) > self.config.max_buffer_length:
            old_rev, old_key, _ = self._buffer.popleft()
            self._present.discard((old_rev, old_key))
        self._seq += 1
        self._arrivals.append((self._seq, sample))
        self.sample_accepted.emit(sample)

    def ingest(self, raw: Any, source: str = SOURCE.PUSH) -> bool:
        """Offer one sample. Returns whether it was accepted.

        Malformed samples are logged and counted, never raised.
        """
        if source == SOURCE.PUSH:
            # any push proves the host is alive
            self._poll_failures = 0
            self._stall_signalled = False
        try:
            sample = coerce_sample(raw)
        except MalformedSampleError as e:
            self.malformed_count += 1
            logger.warning("Dropping malformed {} sample: {}", source, e)
            return False

        key = sample.key
        hw = self._high_water
        if hw is not None and self.config.key_period:
            if key < hw and self._near_end(hw) and self._near_start(key):
                self._start_revolution()
                hw = None
            elif (
                key > hw
                and self._revolution > 0
                and self._near_start(hw)
                and self._near_end(key)
            ):
                return self._late_from_previous(sample, source, hw)

        ident = (self._revolution, key)
        if ident in self._present:
            self.duplicate_count += 1
            logger.trace("Duplicate {} sample at key {}", source, key)
            return False
        if hw is not None and key < hw - self.config.key_tolerance:
            self.rejected_count += 1
            logger.trace("Out-of-order {} sample at key {} (< {})", source, key, hw)
            return False

        if hw is None or key >= hw:
            self._buffer.append((self._revolution, key, sample))
            self._high_water = key
        else:
            # inside the tolerance window
            self._insert(self._revolution, key, sample)
        self._accepted(self._revolution, key, sample)
        return True

    def ingest_batch(self, batch: Iterable[Any], source: str = SOURCE.POLL) -> int:
        return sum(1 for raw in batch if self.ingest(raw, source))

    async def poll(self, gateway: CommandGateway) -> int:
        """One poll tick: fetch what the host buffered and merge it.

        A failed fetch is counted, not raised; it is retried on the next tick.
        Reaching `stall_threshold` consecutive failures (with no push in
        between) emits `stalled` once per streak.
        """
        try:
            batch = await gateway.invoke(
                CONSTS.WORK.FETCH_HALL_DATA, quiet=True, report_errors=False
            )
        except CommandError as e:
            self._poll_failures += 1
            logger.warning(
                "Poll failed ({} in a row): {}", self._poll_failures, e.reason
            )
            if (
                self._poll_failures >= self.config.stall_threshold
                and not self._stall_signalled
            ):
                self._stall_signalled = True
                logger.error("Sample stream stalled.")
                self.stalled.emit(self._poll_failures)
            return 0
        self._poll_failures = 0
        self._stall_signalled = False
        return self.ingest_batch(batch or (), SOURCE.POLL)
