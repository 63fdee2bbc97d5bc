import pytest

from hallscope.host.mock_host import MOCK_PORTS, MockRig, list_ports
from hallscope.util.defaults import HOST_BUFFER_SIZE, NUM_CHANNELS


@pytest.fixture
def rig():
    return MockRig(seed=0)


class TestMotorConfig:
    def test_speed_pulses(self, rig):
        # pulses per second at 15000 pulses per revolution
        assert rig.set_speed(1.0) == 250
        assert rig.set_speed(0.5) == 125

    def test_step_angle_pulses(self, rig):
        assert rig.set_single_angle(1.0) == 42
        assert rig.step_pulse == 42
        rig.set_single_circle_pulse(3600)
        assert rig.set_single_angle(1.0) == 10

    @pytest.mark.parametrize(
        "setter", ["set_speed", "set_single_angle", "set_single_circle_pulse"]
    )
    def test_non_positive_rejected(self, rig, setter):
        with pytest.raises(ValueError):
            getattr(rig, setter)(0)

    def test_bad_drop_rate(self):
        with pytest.raises(ValueError):
            MockRig(drop_rate=1.0)


class TestMotion:
    def test_rotate_step(self, rig):
        rig.rotate_step()
        assert rig.wrapped_angle == pytest.approx(40 * 360 / 15000)

    def test_calibrate(self, rig):
        rig.rotate_step()
        rig.calibrate()
        assert rig.wrapped_angle == 0.0

    def test_one_circle_finishes(self, rig):
        rig.set_speed(60.0)  # 360 deg/s
        rig.start_one_circle()
        samples, finished = rig.tick(0.5)
        assert (samples, finished) == ([], False)
        samples, finished = rig.tick(0.75)
        assert finished
        assert samples == []  # not acquiring
        assert rig.direction == 0
        assert rig.wrapped_angle == pytest.approx(0.0)

    def test_jog_down(self, rig):
        rig.set_speed(60.0)
        rig.direction = -1
        rig.tick(0.25)
        assert rig.wrapped_angle == pytest.approx(270.0)

    def test_idle_tick(self, rig):
        assert rig.tick(1.0) == ([], False)


class TestAcquisition:
    def test_one_sample_per_step(self, rig):
        rig.set_speed(60.0)
        rig.start_work({"name": "run"})
        samples, finished = rig.tick(0.25)  # 90 deg
        assert not finished
        assert [s.key for s in samples] == pytest.approx([float(k) for k in range(1, 91)])
        assert all(len(s.channels) == NUM_CHANNELS for s in samples)
        assert len(rig.buffer) == 90

    def test_runs_until_stopped_and_wraps(self, rig):
        rig.set_speed(60.0)
        rig.start_work({"name": "run"})
        samples, _ = rig.tick(1.25)  # 450 deg
        keys = [s.key for s in samples]
        assert len(keys) == 450
        assert max(keys) < 360.0
        assert keys[359] == pytest.approx(0.0, abs=1e-6)
        rig.stop_work()
        assert not rig.working
        assert rig.tick(1.0) == ([], False)

    def test_fetch_drains_in_batches(self, rig):
        rig.set_speed(60.0)
        rig.start_work({"name": "run"})
        rig.tick(5.0)  # 1800 samples
        first = rig.fetch()
        assert len(first) == 1000
        rest = rig.fetch()
        assert len(rest) == 800
        assert rig.fetch() == []
        assert first[-1].key == pytest.approx(280.0)

    def test_buffer_bounded(self, rig):
        rig.set_speed(60.0)
        rig.start_work({"name": "run"})
        rig.tick(30.0)  # 10800 samples
        assert len(rig.buffer) == HOST_BUFFER_SIZE

    def test_start_work_clears_buffer(self, rig):
        rig.set_speed(60.0)
        rig.start_work({"name": "a"})
        rig.tick(0.1)
        rig.stop_work()
        rig.start_work({"name": "b"})
        assert len(rig.buffer) == 0
        assert rig.run_params == {"name": "b"}

    def test_drop_rate(self):
        assert not MockRig().drop()
        rig = MockRig(drop_rate=0.5, seed=1)
        drops = [rig.drop() for _ in range(1000)]
        assert 300 < sum(drops) < 700


def test_list_ports_includes_mock_ports():
    ids = {p.id for p in list_ports()}
    assert set(MOCK_PORTS) <= ids
