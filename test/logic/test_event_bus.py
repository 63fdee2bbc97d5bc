from fakes import make_sample
from hallscope.host import EventBus
from hallscope.types import CONSTS, HallRecv, HostMessage, SerialChange


class TestEventBus:
    def test_routes_by_type(self):
        bus = EventBus()
        hall, serial = [], []
        bus.subscribe(HallRecv, hall.append)
        bus.subscribe(CONSTS.EVENT.SERIAL_CHANGE, serial.append)

        notif = HallRecv(sample=make_sample(1))
        bus.emit(notif)
        bus.emit(SerialChange(ports=[]))
        bus.emit(HostMessage(title="unheard"))
        assert hall == [notif]
        assert len(serial) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(HallRecv, seen.append)
        assert bus.subscriber_count(CONSTS.EVENT.HALL_RECV) == 1
        unsubscribe()
        unsubscribe()
        assert bus.subscriber_count(HallRecv) == 0
        bus.emit(HallRecv(sample=make_sample(1)))
        assert seen == []

    def test_failing_subscriber_does_not_starve_others(self):
        bus = EventBus()
        seen = []

        def broken(notif):
            raise RuntimeError("boom")

        bus.subscribe(HostMessage, broken)
        bus.subscribe(HostMessage, seen.append)
        bus.emit(HostMessage(title="still delivered"))
        assert [n.title for n in seen] == ["still delivered"]

    def test_unsubscribe_during_emit(self):
        bus = EventBus()
        seen = []
        handles = []

        def once(notif):
            seen.append(notif)
            handles[0]()

        handles.append(bus.subscribe(HostMessage, once))
        bus.emit(HostMessage(title="a"))
        bus.emit(HostMessage(title="b"))
        assert [n.title for n in seen] == ["a"]
