import threading

import pytest

from simpanan.eventbus import Event, EventBus, EventType


def test_publish_reaches_all_subscribers():
    bus = EventBus()
    a = bus.subscribe()
    b = bus.subscribe()
    bus.publish(Event(EventType.BUFFER_UPDATED, "hello"))
    for sub in (a, b):
        got = sub.get(timeout=1)
        assert got.type == EventType.BUFFER_UPDATED
        assert got.payload == "hello"
    a.close()
    b.close()


def test_unsubscribe_removes_and_closes():
    bus = EventBus()
    sub = bus.subscribe()
    assert bus.subscriber_count() == 1
    sub.close()
    assert bus.subscriber_count() == 0
    assert sub.get(timeout=1) is None
    assert sub.closed is True
    sub.close()
    assert bus.subscriber_count() == 0


def test_drops_on_slow_subscriber():
    bus = EventBus()
    sub = bus.subscribe()
    worker = threading.Thread(
        target=lambda: [bus.publish(Event("x", i)) for i in range(100)]
    )
    worker.start()
    worker.join(timeout=5)
    assert not worker.is_alive()
    sub.close()
    received = [e.payload for e in sub]
    assert received == list(range(16))


def test_get_times_out_when_empty():
    bus = EventBus()
    sub = bus.subscribe()
    with pytest.raises(TimeoutError):
        sub.get(timeout=0.05)
    sub.close()


def test_closed_subscription_receives_nothing_new():
    bus = EventBus()
    sub = bus.subscribe()
    bus.publish(Event(EventType.FILE_OPENED, 1))
    sub.close()
    bus.publish(Event(EventType.FILE_CLOSED, 2))
    assert [e.payload for e in sub] == [1]


def test_context_manager_unsubscribes():
    bus = EventBus()
    with bus.subscribe():
        assert bus.subscriber_count() == 1
    assert bus.subscriber_count() == 0


def test_event_to_dict():
    assert Event(EventType.FILE_SAVED, {"path": "a.simp"}).to_dict() == {
        "type": "file_saved",
        "payload": {"path": "a.simp"},
    }
    assert Event("x", 3).to_dict() == {"type": "x", "payload": 3}


def test_every_event_type_serialises_to_its_wire_name():
    bus = EventBus()
    sub = bus.subscribe()
    for i, event_type in enumerate(EventType):
        bus.publish(Event(event_type, i))
    sub.close()
    assert [e.to_dict() for e in sub] == [
        {"type": "buffer_updated", "payload": 0},
        {"type": "file_opened", "payload": 1},
        {"type": "file_closed", "payload": 2},
        {"type": "active_switched", "payload": 3},
        {"type": "file_saved", "payload": 4},
    ]