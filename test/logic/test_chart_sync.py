import pytest

from fakes import RecordingSurface, SurfaceFactory, make_sample
from hallscope.session import BUFFER_MODE, REDRAW, ChartSync, SampleStream
from hallscope.types import ChartSurface, StreamConfig


@pytest.fixture
def sync(stream):
    return ChartSync(stream)


def test_recording_surface_is_a_chart_surface():
    assert isinstance(RecordingSurface(), ChartSurface)


class TestIncremental:
    def test_appends_one_point_per_sample(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("live", factory, REDRAW.INCREMENTAL, visible=True)
        for k in [1, 2, 2, 3]:
            stream.ingest(make_sample(k))
        surface = factory.last
        assert surface.keys == [1, 2, 3]
        # one bulk load on reveal, then appends only
        assert surface.ops == ["load", "append", "append", "append"]

    def test_hidden_view_has_no_surface(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("live", factory)
        stream.ingest(make_sample(1))
        assert not sync.is_visible("live")
        assert sync.surface("live") is None
        assert factory.made == []

    def test_reveal_loads_buffer_then_appends(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("live", factory, visible=True)
        sync.set_visible("live", False)
        first = factory.last
        assert first.disposed

        for k in range(10):
            stream.ingest(make_sample(k))
        sync.set_visible("live", True)
        surface = factory.last
        assert surface is not first
        assert surface.keys == list(range(10))
        assert surface.ops == ["load"]

        stream.ingest(make_sample(10))
        assert surface.keys == list(range(11))
        assert surface.ops == ["load", "append"]

    def test_reveal_twice_is_noop(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("live", factory, visible=True)
        sync.set_visible("live", True)
        assert len(factory.made) == 1

    def test_reset_clears_surface(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("live", factory, visible=True)
        stream.ingest(make_sample(1))
        stream.clear()
        assert factory.last.keys == []
        stream.ingest(make_sample(0))
        assert factory.last.keys == [0]


class TestFullRedraw:
    def test_full_policy_reloads_every_sample(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("polar", factory, REDRAW.FULL, visible=True)
        for k in [1, 2, 3]:
            stream.ingest(make_sample(k))
        surface = factory.last
        assert surface.keys == [1, 2, 3]
        assert "append" not in surface.ops

    def test_polar_follows_revolution(self):
        stream = SampleStream(StreamConfig(), BUFFER_MODE.REVOLUTION)
        sync = ChartSync(stream)
        factory = SurfaceFactory()
        sync.bind("polar", factory, REDRAW.FULL, visible=True)
        for k in [300, 350, 10, 20]:
            stream.ingest(make_sample(k))
        assert factory.last.keys == [10, 20]


class TestLifetime:
    def test_two_views_independent(self, sync, stream):
        live, polar = SurfaceFactory(), SurfaceFactory()
        sync.bind("live", live, REDRAW.INCREMENTAL, visible=True)
        sync.bind("polar", polar, REDRAW.FULL)
        stream.ingest(make_sample(1))
        sync.set_visible("live", False)
        sync.set_visible("polar", True)
        stream.ingest(make_sample(2))
        assert live.last.disposed
        assert live.last.keys == [1]
        assert polar.last.keys == [1, 2]

    def test_release_all_and_close(self, sync, stream):
        factory = SurfaceFactory()
        sync.bind("live", factory, visible=True)
        sync.release_all()
        assert factory.last.disposed
        assert not sync.is_visible("live")

        sync.set_visible("live", True)
        sync.close()
        assert factory.last.disposed
        # no longer following the stream
        stream.ingest(make_sample(1))
        assert factory.last.ops == ["load", "dispose"]

    def test_unknown_policy(self, sync):
        with pytest.raises(ValueError):
            sync.bind("live", SurfaceFactory(), "sometimes")
