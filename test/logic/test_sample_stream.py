import math
import random

import pytest

from fakes import FakeHost, make_sample
from hallscope.session import BUFFER_MODE, SOURCE, CommandGateway, SampleStream
from hallscope.session.stream import coerce_sample
from hallscope.types import CONSTS, CommsError, MalformedSampleError, StreamConfig


def _merge(pushes, polls, rng):
    """Random interleaving that keeps each source's own order."""
    events = []
    pushes, polls = list(pushes), list(polls)
    while pushes or polls:
        if pushes and (not polls or rng.random() < 0.5):
            events.append((SOURCE.PUSH, pushes.pop(0)))
        else:
            events.append((SOURCE.POLL, polls.pop(0)))
    return events


def _replay(stream, events):
    for source, item in events:
        if source == SOURCE.PUSH:
            stream.ingest(item, SOURCE.PUSH)
        else:
            stream.ingest_batch(item, SOURCE.POLL)


class TestCoerceSample:
    def test_accepts_sample_dict_and_pair(self):
        s = make_sample(12.5)
        assert coerce_sample(s) == s
        assert coerce_sample({"key": 12.5, "channels": list(s.channels)}) == s
        assert coerce_sample((12.5, s.channels)) == s

    def test_int_values_become_floats(self):
        s = coerce_sample((3, list(range(9))))
        assert s.key == 3.0
        assert all(isinstance(c, float) for c in s.channels)

    @pytest.mark.parametrize(
        "raw",
        [
            (1.0, [0.0] * 8),
            (1.0, [0.0] * 10),
            ("north", [0.0] * 9),
            (1.0, ["a"] * 9),
            (math.nan, [0.0] * 9),
            (math.inf, [0.0] * 9),
            {"channels": [0.0] * 9},
            None,
        ],
    )
    def test_rejects_malformed(self, raw):
        with pytest.raises(MalformedSampleError):
            coerce_sample(raw)


class TestAcceptance:
    def test_duplicate_and_out_of_order_dropped(self, stream):
        accepted = [stream.ingest(make_sample(k)) for k in [10, 20, 20, 15, 30]]
        assert accepted == [True, True, False, False, True]
        assert stream.keys() == [10, 20, 30]
        assert stream.duplicate_count == 1
        assert stream.rejected_count == 1

    def test_tolerance_inserts_in_order(self):
        stream = SampleStream(StreamConfig(key_tolerance=10.0))
        for k in [10, 20, 20, 15, 30]:
            stream.ingest(make_sample(k))
        assert stream.keys() == [10, 15, 20, 30]
        assert stream.duplicate_count == 1

    def test_equal_key_from_other_source_is_duplicate(self, stream):
        assert stream.ingest(make_sample(5), SOURCE.PUSH)
        assert not stream.ingest(make_sample(5, value=100), SOURCE.POLL)
        assert len(stream) == 1
        # first arrival wins
        assert stream.snapshot()[0].channels[0] == 0.0

    def test_malformed_counted_and_stream_continues(self, stream):
        assert stream.ingest(make_sample(1))
        assert not stream.ingest((2.0, [0.0] * 8))
        assert not stream.ingest({"key": "x", "channels": [0.0] * 9})
        assert stream.ingest(make_sample(3))
        assert stream.keys() == [1, 3]
        assert stream.malformed_count == 2

    def test_signals(self, stream):
        seen = []
        stream.sample_accepted.connect(lambda s: seen.append(s.key))
        for k in [1, 2, 2, 0.5, 3]:
            stream.ingest(make_sample(k))
        assert seen == [1, 2, 3]

    def test_read_since(self, stream):
        for k in [1, 2, 3]:
            stream.ingest(make_sample(k))
        cursor, new = stream.read_since(0)
        assert cursor == 3
        assert [s.key for s in new] == [1, 2, 3]
        stream.ingest(make_sample(4))
        cursor, new = stream.read_since(cursor)
        assert cursor == 4
        assert [s.key for s in new] == [4]
        assert stream.read_since(cursor) == (4, [])


class TestInterleaving:
    @pytest.mark.parametrize("seed", range(8))
    def test_any_interleaving_is_unique_and_ordered(self, seed):
        rng = random.Random(seed)
        samples = [make_sample(k) for k in range(60)]
        pushes = [s for s in samples if rng.random() > 0.3]
        polls = [samples[i : i + 7] for i in range(0, len(samples), 7)]
        stream = SampleStream(StreamConfig())
        _replay(stream, _merge(pushes, polls, rng))

        keys = stream.keys()
        assert len(keys) == len(set(keys))
        assert keys == sorted(keys)
        assert set(keys) <= {s.key for s in samples}

    @pytest.mark.parametrize("seed", range(8))
    def test_tolerance_recovers_every_key(self, seed):
        rng = random.Random(seed)
        samples = [make_sample(k) for k in range(60)]
        pushes = [s for s in samples if rng.random() > 0.3]
        polls = [samples[i : i + 7] for i in range(0, len(samples), 7)]
        stream = SampleStream(StreamConfig(key_tolerance=100.0))
        _replay(stream, _merge(pushes, polls, rng))

        assert stream.keys() == [float(k) for k in range(60)]

    def test_poll_replaying_pushes_adds_nothing(self, stream):
        samples = [make_sample(k) for k in range(20)]
        for s in samples:
            stream.ingest(s, SOURCE.PUSH)
        assert stream.ingest_batch(samples, SOURCE.POLL) == 0
        assert len(stream) == 20
        assert stream.duplicate_count == 20

    @pytest.mark.parametrize("mode", [BUFFER_MODE.RING, BUFFER_MODE.REVOLUTION])
    @pytest.mark.parametrize("seed", range(8))
    def test_interleaving_across_wrap(self, seed, mode):
        rng = random.Random(seed)
        order = [float(k) for k in range(300, 360)] + [k + 0.5 for k in range(60)]
        samples = [make_sample(k) for k in order]
        pushes = [s for s in samples if rng.random() > 0.3]
        polls = [samples[i : i + 7] for i in range(0, len(samples), 7)]
        stream = SampleStream(StreamConfig(), mode)
        resets = []
        stream.reset.connect(lambda: resets.append(True))
        _replay(stream, _merge(pushes, polls, rng))

        keys = stream.keys()
        assert len(keys) == len(set(keys))
        remaining = iter(order)
        assert all(k in remaining for k in keys)
        if mode == BUFFER_MODE.REVOLUTION:
            assert resets == [True]
            assert all(k < 60 for k in keys)
        else:
            assert resets == []


class TestRevolutionWrap:
    def test_poll_replaying_pushes_across_wrap_adds_nothing(self, stream):
        keys = [350, 355, 359, 0.5, 5]
        samples = [make_sample(k) for k in keys]
        for s in samples:
            assert stream.ingest(s, SOURCE.PUSH)
        assert stream.ingest_batch(samples, SOURCE.POLL) == 0
        assert stream.keys() == keys
        assert stream.duplicate_count == 5
        assert stream.high_water == 5

    def test_revolution_mode_replay_does_not_reset_again(self):
        stream = SampleStream(StreamConfig(), BUFFER_MODE.REVOLUTION)
        resets = []
        stream.reset.connect(lambda: resets.append(True))
        samples = [make_sample(k) for k in [350, 355, 359, 0.5, 5]]
        for s in samples:
            stream.ingest(s, SOURCE.PUSH)
        assert stream.ingest_batch(samples, SOURCE.POLL) == 0
        assert stream.keys() == [0.5, 5]
        assert resets == [True]

    def test_lagging_replay_is_not_a_wrap(self):
        stream = SampleStream(StreamConfig(), BUFFER_MODE.REVOLUTION)
        resets = []
        stream.reset.connect(lambda: resets.append(True))
        samples = [make_sample(k) for k in range(0, 201, 10)]
        for s in samples:
            stream.ingest(s, SOURCE.PUSH)
        assert stream.ingest_batch(samples, SOURCE.POLL) == 0
        assert stream.keys() == [float(k) for k in range(0, 201, 10)]
        assert resets == []

    def test_late_sample_far_behind_is_rejected_not_wrapped(self, stream):
        for k in [10, 200, 150]:
            stream.ingest(make_sample(k))
        assert stream.keys() == [10, 200]
        assert stream.rejected_count == 1

    def test_late_sample_of_previous_revolution_within_tolerance(self):
        stream = SampleStream(StreamConfig(key_tolerance=20.0))
        for k in [350, 359, 5]:
            stream.ingest(make_sample(k))
        assert stream.ingest(make_sample(355), SOURCE.POLL)
        assert stream.keys() == [350, 355, 359, 5]
        assert not stream.ingest(make_sample(355), SOURCE.PUSH)
        assert stream.high_water == 5

    def test_late_sample_of_previous_revolution_rejected_without_tolerance(
        self, stream
    ):
        for k in [350, 359, 5]:
            stream.ingest(make_sample(k))
        assert not stream.ingest(make_sample(355), SOURCE.POLL)
        assert stream.rejected_count == 1
        assert stream.keys() == [350, 359, 5]

    def test_time_keyed_stream_never_wraps(self):
        config = StreamConfig(key_period=0.0)
        stream = SampleStream(config, BUFFER_MODE.REVOLUTION)
        resets = []
        stream.reset.connect(lambda: resets.append(True))
        for k in [1000, 1500, 2, 1500]:
            stream.ingest(make_sample(k))
        assert stream.keys() == [1000, 1500]
        assert stream.rejected_count == 1
        assert stream.duplicate_count == 1
        assert resets == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"key_period": -1.0},
            {"revolution_wrap_span": 0.0},
            {"revolution_wrap_span": 200.0},
        ],
    )
    def test_bad_wrap_config(self, kwargs):
        with pytest.raises(ValueError):
            StreamConfig(**kwargs)


class TestBufferModes:
    def test_ring_cap_evicts_oldest(self):
        stream = SampleStream(StreamConfig(max_buffer_length=5))
        for k in range(10):
            stream.ingest(make_sample(k))
            assert len(stream) <= 5
        assert stream.keys() == [5, 6, 7, 8, 9]

    def test_ring_keeps_history_across_revolutions(self, stream):
        for k in [350, 355, 359, 0.5, 1]:
            assert stream.ingest(make_sample(k))
        assert stream.keys() == [350, 355, 359, 0.5, 1]

    def test_ring_same_key_in_new_revolution_accepted(self, stream):
        for k in [10, 300, 10]:
            assert stream.ingest(make_sample(k))
        assert stream.keys() == [10, 300, 10]

    def test_revolution_mode_resets_on_wrap(self):
        stream = SampleStream(StreamConfig(), BUFFER_MODE.REVOLUTION)
        resets = []
        stream.reset.connect(lambda: resets.append(True))
        for k in [350, 355, 359, 0.5, 1]:
            stream.ingest(make_sample(k))
        assert stream.keys() == [0.5, 1]
        assert resets == [True]

    def test_revolution_mode_keeps_cap(self):
        stream = SampleStream(
            StreamConfig(max_buffer_length=3), BUFFER_MODE.REVOLUTION
        )
        for k in range(6):
            stream.ingest(make_sample(k))
        assert stream.keys() == [3, 4, 5]

    def test_entering_revolution_mode_drops_older_revolutions(self, stream):
        for k in [300, 350, 5, 10]:
            stream.ingest(make_sample(k))
        stream.set_mode(BUFFER_MODE.REVOLUTION)
        assert stream.keys() == [5, 10]
        assert stream.mode == BUFFER_MODE.REVOLUTION

    def test_unknown_mode(self, stream):
        with pytest.raises(ValueError):
            stream.set_mode("sideways")

    def test_clear(self, stream):
        resets = []
        stream.reset.connect(lambda: resets.append(True))
        for k in [1, 2]:
            stream.ingest(make_sample(k))
        stream.clear()
        assert len(stream) == 0
        assert stream.high_water is None
        assert resets == [True]
        # a lower key is fine after a clear
        assert stream.ingest(make_sample(0))


class TestPolling:
    @pytest.mark.asyncio
    async def test_poll_merges_batch(self, stream, notifier):
        host = FakeHost({CONSTS.WORK.FETCH_HALL_DATA: [make_sample(1), make_sample(2)]})
        gateway = CommandGateway(host, notifier)
        assert await stream.poll(gateway) == 2
        assert stream.keys() == [1, 2]
        # background polling is quiet
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_stall_after_threshold(self, notifier):
        stream = SampleStream(StreamConfig(stall_threshold=5))
        host = FakeHost({CONSTS.WORK.FETCH_HALL_DATA: CommsError("timed out")})
        gateway = CommandGateway(host, notifier)
        stalls = []
        stream.stalled.connect(stalls.append)

        for _ in range(4):
            assert await stream.poll(gateway) == 0
        assert stalls == []
        await stream.poll(gateway)
        assert stalls == [5]
        # once per streak
        await stream.poll(gateway)
        assert stalls == [5]
        assert stream.consecutive_poll_failures == 6
        # failed polls are not surfaced as notices
        assert notifier.errors == []

    @pytest.mark.asyncio
    async def test_push_resets_failure_count(self, notifier):
        stream = SampleStream(StreamConfig(stall_threshold=5))
        host = FakeHost({CONSTS.WORK.FETCH_HALL_DATA: CommsError("timed out")})
        gateway = CommandGateway(host, notifier)
        stalls = []
        stream.stalled.connect(stalls.append)

        for _ in range(4):
            await stream.poll(gateway)
        stream.ingest(make_sample(1), SOURCE.PUSH)
        assert stream.consecutive_poll_failures == 0
        for _ in range(4):
            await stream.poll(gateway)
        assert stalls == []

    @pytest.mark.asyncio
    async def test_successful_poll_resets_failure_count(self, notifier):
        stream = SampleStream(StreamConfig(stall_threshold=2))
        host = FakeHost({CONSTS.WORK.FETCH_HALL_DATA: CommsError("timed out")})
        gateway = CommandGateway(host, notifier)
        await stream.poll(gateway)
        host.replies[CONSTS.WORK.FETCH_HALL_DATA] = []
        await stream.poll(gateway)
        assert stream.consecutive_poll_failures == 0
