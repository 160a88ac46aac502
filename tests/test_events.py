from streamq_cli.core.events import EventBus, EventType


def test_listeners_receive_events_in_order():
    bus = EventBus()
    received = []
    bus.subscribe(received.append)

    bus.emit(EventType.ADD, id=1, value="http://a")
    bus.emit(EventType.PAUSE)

    assert [event.name for event in received] == ["add", "pause"]
    assert received[0].payload == {"id": 1, "value": "http://a"}
    assert received[0].video_id == 1
    assert received[1].payload == {}


def test_subscription_can_filter_by_type():
    bus = EventBus()
    finished = []
    bus.subscribe(finished.append, EventType.FINISH, EventType.FAIL)

    bus.emit(EventType.START, id=1, url="http://a")
    bus.emit(EventType.FINISH, id=1)
    bus.emit(EventType.FAIL, id=2)

    assert [(event.name, event.video_id) for event in finished] == [
        ("finish", 1),
        ("fail", 2),
    ]


def test_failing_listener_does_not_block_others():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.emit(EventType.RESUME)

    assert [event.name for event in received] == ["resume"]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    bus.emit(EventType.CLEAR_QUEUE)

    assert received == []


def test_event_names_match_wire_names():
    assert EventType("clear-queue") is EventType.CLEAR_QUEUE
    assert EventType.FFMPEG_DANGER.value == "ffmpeg-danger"
