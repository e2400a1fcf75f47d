import pytest
from pathlib import Path
from unittest.mock import MagicMock
from mbc.domain.errors import BatchStateError
from mbc.domain.events import (
    BatchFinished,
    BatchProgressUpdated,
    BatchStarted,
    ItemCompleted,
    ItemFailed,
    ItemStarted,
    NoFilesSelected,
)
from mbc.domain.models import (
    BatchJob,
    BatchSettings,
    BatchState,
    ItemOutcome,
    ItemResult,
    ItemStatus,
    MediaType,
    Operation,
    SourceItem,
)
from mbc.pipeline.cancellation import CancellationToken
from mbc.pipeline.recorder import OutcomeRecorder
from mbc.pipeline.runner import BatchRunner, classify
from mbc.processors.image import ImageConversionProcessor

SETTINGS = BatchSettings(media_type=MediaType.IMAGE, operation=Operation.CONVERT, output_format="jpg")


class FakeProcessor:
    """Succeeds unless the display name is listed in `fail`; runs `hooks[name]` first."""

    def __init__(self, fail=(), raise_on=(), hooks=None):
        self.fail = set(fail)
        self.raise_on = set(raise_on)
        self.hooks = hooks or {}
        self.calls = []

    def process(self, item, settings, context, on_progress=None):
        self.calls.append(item.display_name)
        hook = self.hooks.get(item.display_name)
        if hook:
            hook()
        if on_progress:
            on_progress(0.5)
        if item.display_name in self.raise_on:
            raise RuntimeError("unexpected")
        if item.display_name in self.fail:
            return ItemOutcome.fail(f"cannot read {item.display_name}", "FILE_CORRUPTED")
        out = context.output_dir / f"{Path(item.display_name).stem}_converted.jpg"
        return ItemOutcome.ok(ItemResult(output_path=out, output_name=out.name, output_size=10))


def _items(*names):
    return tuple(SourceItem(source_uri=f"/in/{n}", display_name=n) for n in names)


def _runner(items, processor, event_bus, history_store, tmp_path, **kwargs):
    return BatchRunner(
        job=BatchJob(items=items, settings=SETTINGS),
        processor=processor,
        event_bus=event_bus,
        recorder=OutcomeRecorder(history_store),
        output_dir=tmp_path / "out",
        **kwargs,
    )


@pytest.mark.parametrize("completed,failed,cancelled,expected", [
    (3, 0, False, BatchState.COMPLETED),
    (2, 1, False, BatchState.PARTIAL_FAILURE),
    (0, 3, False, BatchState.ALL_FAILED),
    (1, 0, True, BatchState.CANCELLED),
    (0, 0, True, BatchState.CANCELLED),
])
def test_classify(completed, failed, cancelled, expected):
    assert classify(completed, failed, cancelled) == expected


def test_all_items_succeed(event_bus, history_store, tmp_path):
    processor = FakeProcessor()
    runner = _runner(_items("a.png", "b.png"), processor, event_bus, history_store, tmp_path)

    summary = runner.run()

    assert summary.state == BatchState.COMPLETED
    assert summary.completed == 2
    assert summary.failed == 0
    assert summary.overall_fraction == 1.0
    assert processor.calls == ["a.png", "b.png"]
    assert len(history_store.get_history()) == 2


def test_one_history_entry_per_item_regardless_of_outcome(event_bus, history_store, tmp_path):
    processor = FakeProcessor(fail={"b.png"}, raise_on={"c.png"})
    runner = _runner(_items("a.png", "b.png", "c.png", "d.png"), processor, event_bus, history_store, tmp_path)

    summary = runner.run()

    assert summary.state == BatchState.PARTIAL_FAILURE
    history = history_store.get_history()
    assert len(history) == 4
    assert [e.input_file_name for e in history] == ["d.png", "c.png", "b.png", "a.png"]
    assert [e.success for e in history] == [True, False, False, True]


def test_unexpected_exception_becomes_item_error(event_bus, history_store, tmp_path):
    processor = FakeProcessor(raise_on={"a.png"})
    summary = _runner(_items("a.png", "b.png"), processor, event_bus, history_store, tmp_path).run()

    assert summary.items[0].status == ItemStatus.ERROR
    assert "unexpected" in summary.items[0].error_message
    assert summary.items[1].status == ItemStatus.COMPLETED
    assert summary.state == BatchState.PARTIAL_FAILURE


def test_all_failed(event_bus, history_store, tmp_path):
    processor = FakeProcessor(fail={"a.png", "b.png"})
    summary = _runner(_items("a.png", "b.png"), processor, event_bus, history_store, tmp_path).run()

    assert summary.state == BatchState.ALL_FAILED
    assert summary.overall_fraction == 1.0
    assert len(history_store.get_history()) == 2


def test_empty_job_stays_idle(event_bus, history_store, tmp_path):
    events = []
    event_bus.subscribe(NoFilesSelected, events.append)
    event_bus.subscribe(BatchStarted, events.append)
    processor = FakeProcessor()

    runner = _runner((), processor, event_bus, history_store, tmp_path)
    summary = runner.run()

    assert summary.state == BatchState.IDLE
    assert runner.state == BatchState.IDLE
    assert [type(e) for e in events] == [NoFilesSelected]
    assert processor.calls == []
    assert history_store.get_history() == []


def test_cancellation_between_items(event_bus, history_store, tmp_path):
    token = CancellationToken()
    processor = FakeProcessor(hooks={"b.png": token.cancel})
    runner = _runner(
        _items("a.png", "b.png", "c.png", "d.png"), processor, event_bus, history_store, tmp_path,
        cancel_token=token,
    )

    summary = runner.run()

    assert summary.state == BatchState.CANCELLED
    # the in-flight item finishes and is recorded
    assert processor.calls == ["a.png", "b.png"]
    assert [p.status for p in summary.items] == [
        ItemStatus.COMPLETED, ItemStatus.COMPLETED, ItemStatus.PENDING, ItemStatus.PENDING,
    ]
    assert summary.pending == 2
    assert {e.input_file_name for e in history_store.get_history()} == {"a.png", "b.png"}
    assert summary.overall_fraction == 1.0


def test_cancel_during_last_item_is_not_a_cancellation(event_bus, history_store, tmp_path):
    runner = None

    def cancel():
        runner.cancel()

    processor = FakeProcessor(hooks={"b.png": cancel})
    runner = _runner(_items("a.png", "b.png"), processor, event_bus, history_store, tmp_path)

    assert runner.run().state == BatchState.COMPLETED


def test_cancel_before_run(event_bus, history_store, tmp_path):
    processor = FakeProcessor()
    runner = _runner(_items("a.png"), processor, event_bus, history_store, tmp_path)
    runner.cancel()

    summary = runner.run()

    assert summary.state == BatchState.CANCELLED
    assert processor.calls == []
    assert history_store.get_history() == []


def test_run_again_after_terminal_state_raises(event_bus, history_store, tmp_path):
    runner = _runner(_items("a.png"), FakeProcessor(), event_bus, history_store, tmp_path)
    runner.run()

    with pytest.raises(BatchStateError):
        runner.run()
    assert len(history_store.get_history()) == 1


def test_fraction_monotone_and_single_processing(event_bus, history_store, tmp_path):
    fractions = []
    event_bus.subscribe(BatchProgressUpdated, lambda e: fractions.append(e.overall_fraction))
    runner = None
    processing_counts = []

    def check():
        processing_counts.append(sum(1 for p in runner.progress.items if p.status == ItemStatus.PROCESSING))

    names = ("a.png", "b.png", "c.png")
    processor = FakeProcessor(fail={"b.png"}, hooks={n: check for n in names})
    runner = _runner(_items(*names), processor, event_bus, history_store, tmp_path)
    runner.run()

    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0
    assert processing_counts == [1, 1, 1]


def test_event_sequence(event_bus, history_store, tmp_path):
    seen = []
    for event_type in (BatchStarted, ItemStarted, ItemCompleted, ItemFailed, BatchFinished):
        event_bus.subscribe(event_type, lambda e: seen.append(type(e).__name__))

    _runner(_items("a.png", "b.png"), FakeProcessor(fail={"b.png"}), event_bus, history_store, tmp_path).run()

    assert seen == [
        "BatchStarted",
        "ItemStarted", "ItemCompleted",
        "ItemStarted", "ItemFailed",
        "BatchFinished",
    ]


def test_batch_finished_payload(event_bus, history_store, tmp_path):
    finished = []
    event_bus.subscribe(BatchFinished, finished.append)
    token = CancellationToken()
    processor = FakeProcessor(hooks={"a.png": token.cancel})

    _runner(_items("a.png", "b.png", "c.png"), processor, event_bus, history_store, tmp_path,
            cancel_token=token).run()

    assert finished[0].state == BatchState.CANCELLED
    assert finished[0].completed == 1
    assert finished[0].pending == 2


def test_permission_gate_consulted_once(event_bus, history_store, tmp_path):
    gate = MagicMock()
    gate.request.return_value = True
    library = MagicMock()
    started = []
    event_bus.subscribe(BatchStarted, started.append)
    contexts = []

    class RecordingProcessor(FakeProcessor):
        def process(self, item, settings, context, on_progress=None):
            contexts.append(context)
            return super().process(item, settings, context, on_progress)

    runner = _runner(_items("a.png", "b.png"), RecordingProcessor(), event_bus, history_store, tmp_path,
                     permission_gate=gate, media_library=library)
    runner.run()

    gate.request.assert_called_once_with(MediaType.IMAGE)
    assert started[0].gallery_permission is True
    assert all(c.media_library is library for c in contexts)


def test_permission_denied_keeps_outputs_private(event_bus, history_store, tmp_path):
    gate = MagicMock()
    gate.request.return_value = False
    contexts = []

    class RecordingProcessor(FakeProcessor):
        def process(self, item, settings, context, on_progress=None):
            contexts.append(context)
            return super().process(item, settings, context, on_progress)

    summary = _runner(_items("a.png"), RecordingProcessor(), event_bus, history_store, tmp_path,
                      permission_gate=gate, media_library=MagicMock()).run()

    assert summary.state == BatchState.COMPLETED
    assert contexts[0].media_library is None
    assert not contexts[0].gallery_enabled


def test_recorder_failure_does_not_abort(event_bus, tmp_path):
    store = MagicMock()
    store.add_conversion.side_effect = OSError("read-only")
    runner = BatchRunner(
        job=BatchJob(items=_items("a.png", "b.png"), settings=SETTINGS),
        processor=FakeProcessor(),
        event_bus=event_bus,
        recorder=OutcomeRecorder(store),
        output_dir=tmp_path,
    )

    summary = runner.run()

    assert summary.state == BatchState.COMPLETED
    assert store.add_conversion.call_count == 2


def test_three_images_one_unreadable(event_bus, history_store, tmp_path, sample_images, corrupt_image, as_item):
    items = (as_item(sample_images[0]), as_item(corrupt_image), as_item(sample_images[1]))
    runner = BatchRunner(
        job=BatchJob(items=items, settings=SETTINGS),
        processor=ImageConversionProcessor(),
        event_bus=event_bus,
        recorder=OutcomeRecorder(history_store),
        output_dir=tmp_path / "out",
    )

    summary = runner.run()

    assert summary.state == BatchState.PARTIAL_FAILURE
    assert [p.status for p in summary.items] == [ItemStatus.COMPLETED, ItemStatus.ERROR, ItemStatus.COMPLETED]
    assert summary.items[1].error_message
    assert (tmp_path / "out" / "photo0_converted.jpg").is_file()
    assert (tmp_path / "out" / "photo1_converted.jpg").is_file()
    history = history_store.get_history()
    assert len(history) == 3
    assert [e.success for e in history] == [True, False, True]
    assert summary.overall_fraction == 1.0


def test_all_unsupported_images_fail(event_bus, history_store, tmp_path, sample_images, as_item):
    settings = BatchSettings(media_type=MediaType.IMAGE, output_format="bmp")
    runner = BatchRunner(
        job=BatchJob(items=tuple(as_item(p) for p in sample_images), settings=settings),
        processor=ImageConversionProcessor(),
        event_bus=event_bus,
        recorder=OutcomeRecorder(history_store),
        output_dir=tmp_path / "out",
    )

    summary = runner.run()

    assert summary.state == BatchState.ALL_FAILED
    assert summary.overall_fraction == 1.0
    assert all("Cannot convert" in p.error_message for p in summary.items)
    assert len(history_store.get_history()) == 3


class ResultlessProcessor:
    """Claims success without producing a result."""

    def __init__(self, build):
        self.build = build

    def process(self, item, settings, context, on_progress=None):
        return self.build()


@pytest.mark.parametrize("build", [
    lambda: ItemOutcome.model_construct(success=True, result=None, error_message=None, error_type=None),
    lambda: ItemOutcome(success=True),
])
def test_success_without_result_is_recorded_as_failure(event_bus, history_store, tmp_path, build):
    summary = _runner(_items("a.png"), ResultlessProcessor(build), event_bus, history_store, tmp_path).run()

    assert summary.items[0].status == ItemStatus.ERROR
    assert summary.state == BatchState.ALL_FAILED
    [entry] = history_store.get_history()
    assert entry.success is False
    assert entry.output_path is None
