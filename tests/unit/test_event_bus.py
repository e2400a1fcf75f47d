from mbc.infrastructure.event_bus import EventBus
from mbc.domain.events import Event, ItemCompleted, ItemEvent, ItemStarted, NoFilesSelected
from mbc.domain.models import ItemProgress, SourceItem

def _progress():
    return ItemProgress(index=0, item=SourceItem(source_uri="a.png", display_name="a.png"))

def test_event_bus_subscribe_publish():
    bus = EventBus()
    received = []

    def callback(event):
        received.append(event)

    bus.subscribe(ItemStarted, callback)
    event = ItemStarted(progress=_progress())
    bus.publish(event)

    assert len(received) == 1
    assert received[0] == event

def test_event_bus_multiple_subscribers():
    bus = EventBus()
    count = 0

    def cb1(e):
        nonlocal count
        count += 1

    def cb2(e):
        nonlocal count
        count += 1

    bus.subscribe(NoFilesSelected, cb1)
    bus.subscribe(NoFilesSelected, cb2)
    bus.publish(NoFilesSelected())

    assert count == 2

def test_event_bus_base_class_subscribers_receive_subclasses():
    bus = EventBus()
    item_events = []
    all_events = []
    bus.subscribe(ItemEvent, item_events.append)
    bus.subscribe(Event, all_events.append)

    bus.publish(ItemCompleted(progress=_progress()))
    bus.publish(NoFilesSelected())

    assert [type(e) for e in item_events] == [ItemCompleted]
    assert [type(e) for e in all_events] == [ItemCompleted, NoFilesSelected]

def test_event_bus_subscribe_as_decorator():
    bus = EventBus()
    seen = []

    @bus.subscribe(NoFilesSelected)
    def on_empty(event):
        seen.append(event)

    bus.publish(NoFilesSelected())
    assert len(seen) == 1
    assert callable(on_empty)

def test_event_bus_unsubscribe():
    bus = EventBus()
    seen = []
    bus.subscribe(NoFilesSelected, seen.append)

    assert bus.unsubscribe(NoFilesSelected, seen.append) is True
    assert bus.unsubscribe(NoFilesSelected, seen.append) is False
    bus.publish(NoFilesSelected())
    assert seen == []

def test_event_bus_unrelated_events_not_delivered():
    bus = EventBus()
    seen = []
    bus.subscribe(ItemStarted, seen.append)
    bus.publish(ItemCompleted(progress=_progress()))
    assert seen == []
