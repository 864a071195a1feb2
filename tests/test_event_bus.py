from wheelie.event_bus import EventBus


def test_publish_to_subscribers_and_latest():
    bus = EventBus()
    got = []
    bus.subscribe("sample", got.append)
    bus.publish("sample", {"angle": 1})
    bus.publish("other", 5)
    assert got == [{"angle": 1}]
    assert bus.get_latest("sample") == {"angle": 1}
    assert bus.get_latest() == {"sample": {"angle": 1}, "other": 5}


def test_unsubscribe():
    bus = EventBus()
    got = []
    bus.subscribe("t", got.append)
    bus.unsubscribe("t", got.append)
    bus.publish("t", 1)
    assert got == []


def test_failing_subscriber_does_not_break_others():
    bus = EventBus()
    got = []

    def bad(payload):
        raise ValueError("boom")

    bus.subscribe("t", bad)
    bus.subscribe("t", got.append)
    bus.publish("t", 1)
    assert got == [1]


def test_sse_stream_receives_and_cleans_up():
    bus = EventBus()
    stream = bus.sse_stream(keepalive=0.01)
    assert next(stream) == ("keepalive", None)
    assert bus.client_count == 1
    bus.publish("record", {"max_angle": 30})
    assert next(stream) == ("record", {"max_angle": 30})
    stream.close()
    assert bus.client_count == 0


def test_stalled_client_is_dropped():
    bus = EventBus(client_queue_size=1)
    stream = bus.sse_stream(keepalive=0.01)
    next(stream)  # registers the client queue
    bus.publish("a", 1)
    bus.publish("a", 2)
    assert bus.client_count == 0
    stream.close()
