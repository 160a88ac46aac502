import asyncio

import pytest

from streamq_cli.core.queue_controller import QueueController
from streamq_cli.exceptions import InvalidQueueItemError
from streamq_cli.models.config import DownloadSettings, EngineKind
from streamq_cli.storage.queue_store import HISTORY_FILENAME

from .helpers import FakeEngine, make_item, names, wait_for


def test_add_while_paused_only_announces_the_item(data_dir, settings, engine):
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    events = []
    controller.events.subscribe(events.append)

    item = controller.add(make_item(1))

    assert names(events) == [("add", 1)]
    assert events[0].payload["value"] == item.video.url
    assert controller.queue == (item,)
    assert controller.is_paused()
    assert not controller.is_running()


def test_add_accepts_a_mapping(controller):
    item = controller.add({"video": {"id": "v1", "url": "http://cdn.example/v1.m3u8"}})

    assert item.video.id == "v1"
    assert item.user.name == ""


def test_add_rejects_a_mapping_without_url(controller, recorded):
    with pytest.raises(InvalidQueueItemError):
        controller.add({"video": {"id": 1}})

    assert recorded == []
    assert controller.queue == ()


def test_add_without_event_loop_persists_and_waits(controller, data_dir):
    controller.add(make_item(1))

    assert not controller.is_running()
    assert [item.video.id for item in controller.store.load_queue()] == [1]


async def test_processes_items_in_order(controller, recorded, engine):
    controller.add(make_item(1))
    controller.add(make_item(2))
    await controller.join()

    assert names(recorded) == [
        ("add", 1),
        ("add", 2),
        ("start", 1),
        ("progress", 1),
        ("progress", 1),
        ("finish", 1),
        ("start", 2),
        ("progress", 2),
        ("progress", 2),
        ("finish", 2),
    ]
    assert [url for url, _ in engine.calls] == [
        "http://streams.example/1/index.m3u8",
        "http://streams.example/2/index.m3u8",
    ]
    assert controller.queue == ()
    assert controller.history == (1, 2)
    assert not controller.is_running()


async def test_start_and_progress_payloads(controller, recorded):
    item = controller.add(make_item(1))
    await controller.join()

    start = recorded[1]
    progress = [event for event in recorded if event.name == "progress"]
    assert start.payload == {"id": 1, "url": item.video.url}
    assert [event.payload["value"] for event in progress] == [50, 100]
    assert all(event.payload["url"] == item.video.url for event in progress)


async def test_failure_is_reported_and_processing_continues(data_dir, settings):
    engine = FakeEngine(fail_urls={"http://streams.example/1/index.m3u8"})
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )
    events = []
    controller.events.subscribe(events.append)

    controller.add(make_item(1))
    controller.add(make_item(2))
    await controller.join()

    terminal = [(e.name, e.video_id) for e in events if e.name in ("finish", "fail")]
    assert terminal == [("fail", 1), ("finish", 2)]
    assert controller.history == (2,)
    assert controller.queue == ()


async def test_failed_download_leaves_no_partial_file(data_dir, settings):
    engine = FakeEngine(fail_urls={"http://streams.example/1/index.m3u8"})
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )

    controller.add(make_item(1))
    await controller.join()

    _, output_path = engine.calls[0]
    assert not output_path.exists()


async def test_every_start_gets_exactly_one_outcome(data_dir, settings):
    engine = FakeEngine(fail_urls={"http://streams.example/2/index.m3u8"})
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )
    events = []
    controller.events.subscribe(events.append)

    for video_id in (1, 2, 3):
        controller.add(make_item(video_id))
    await controller.join()

    for video_id in (1, 2, 3):
        own = [e.name for e in events if e.video_id == video_id and e.name != "progress"]
        assert own[0] == "add"
        assert own[1] == "start"
        assert own[2:] in (["finish"], ["fail"])


async def test_pause_takes_effect_after_the_item_in_flight(data_dir, settings):
    gate = asyncio.Event()
    engine = FakeEngine(gate=gate)
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )
    events = []
    controller.events.subscribe(events.append)

    controller.add(make_item(1))
    controller.add(make_item(2))
    await wait_for(lambda: engine.calls)

    assert controller.is_running()
    controller.pause()
    gate.set()
    await controller.join()

    assert ("finish", 1) in names(events)
    assert ("start", 2) not in names(events)
    assert [item.video.id for item in controller.queue] == [2]
    assert controller.is_paused()

    controller.resume()
    await controller.join()

    assert names(events)[-1] == ("finish", 2)
    assert controller.queue == ()


async def test_items_added_during_a_cycle_join_it(data_dir, settings):
    gate = asyncio.Event()
    engine = FakeEngine(gate=gate)
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )

    controller.add(make_item(1))
    await wait_for(lambda: engine.calls)
    controller.add(make_item(2))
    controller.start()
    gate.set()
    await controller.join()

    assert [url for url, _ in engine.calls] == [
        "http://streams.example/1/index.m3u8",
        "http://streams.example/2/index.m3u8",
    ]


async def test_in_flight_item_stays_persisted_until_done(data_dir, settings):
    gate = asyncio.Event()
    engine = FakeEngine(gate=gate)
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )

    controller.add(make_item(1))
    await wait_for(lambda: engine.calls)
    await controller.flush()

    assert controller.queue == ()
    assert [item.video.id for item in controller.store.load_queue()] == [1]

    gate.set()
    await controller.join()
    await controller.flush()

    assert controller.store.load_queue() == []


def test_remove_takes_only_the_first_match(data_dir, settings, engine):
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    controller.add(make_item(1, title="a"))
    controller.add(make_item(2))
    controller.add(make_item(1, title="b"))
    events = []
    controller.events.subscribe(events.append)

    assert controller.remove(1) is True

    assert [item.video.title for item in controller.queue] == [None, "b"]
    assert names(events) == [("remove", 1)]
    assert [item.video.title for item in controller.store.load_queue()] == [None, "b"]


def test_remove_matches_ids_loosely(data_dir, settings, engine):
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    controller.add(make_item(42))

    assert controller.remove("42") is True
    assert controller.queue == ()


def test_remove_unknown_id_is_silent(controller, recorded):
    assert controller.remove("missing") is False
    assert recorded == []


async def test_in_flight_item_cannot_be_removed(data_dir, settings):
    gate = asyncio.Event()
    engine = FakeEngine(gate=gate)
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )

    controller.add(make_item(1))
    await wait_for(lambda: engine.calls)

    assert controller.remove(1) is False
    gate.set()
    await controller.join()
    assert controller.has_been_downloaded(1)


def test_purge_queue_empties_and_notifies(data_dir, settings, engine):
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    controller.add(make_item(1))
    controller.add(make_item(2))
    events = []
    controller.events.subscribe(events.append)

    controller.purge_queue()

    assert controller.queue == ()
    assert names(events) == [("clear-queue", None)]
    assert controller.store.load_queue() == []


async def test_purge_history_deletes_the_file(controller, data_dir):
    controller.add(make_item(1))
    await controller.join()
    await controller.flush()
    assert (data_dir / HISTORY_FILENAME).exists()

    controller.purge_history()
    await controller.flush()

    assert controller.history == ()
    assert not controller.has_been_downloaded(1)
    assert not (data_dir / HISTORY_FILENAME).exists()


async def test_redownloads_are_allowed_and_history_is_deduplicated(controller, engine):
    controller.add(make_item(1))
    await controller.join()
    assert controller.has_been_downloaded("1")

    controller.add(make_item(1))
    await controller.join()

    assert len(engine.calls) == 2
    assert controller.history == (1,)


async def test_history_disabled_records_nothing(data_dir, tmp_path, engine):
    settings = DownloadSettings(directory=tmp_path / "downloads", history=False)
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )

    controller.add(make_item(1))
    await controller.join()
    await controller.flush()

    assert not controller.has_been_downloaded(1)
    assert not (data_dir / HISTORY_FILENAME).exists()


async def test_missing_ffmpeg_pauses_the_queue(data_dir, tmp_path, transcoder):
    settings = DownloadSettings(directory=tmp_path / "downloads", engine="ffmpeg")
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.FFMPEG: transcoder}
    )
    events = []
    controller.events.subscribe(events.append)

    controller.add(make_item(1))
    await controller.join()

    assert names(events) == [("add", 1), ("ffmpeg-danger", None), ("pause", None)]
    assert controller.is_paused()
    assert not controller.is_engine_available()
    assert [item.video.id for item in controller.queue] == [1]
    assert transcoder.calls == []


async def test_init_probes_the_transcoder(data_dir, tmp_path, transcoder):
    controller = QueueController(
        data_dir,
        settings=DownloadSettings(directory=tmp_path / "downloads"),
        engines={EngineKind.FFMPEG: transcoder},
        paused=True,
    )

    controller.init({"engine": "ffmpeg", "directory": str(tmp_path / "downloads")})
    controller.add(make_item(1))
    controller.resume()
    await controller.join()

    assert controller.is_ffmpeg_available()
    assert controller.settings.engine == EngineKind.FFMPEG
    assert controller.has_been_downloaded(1)
    assert len(transcoder.calls) == 1


async def test_load_restores_queue_and_history(data_dir, settings, engine):
    first = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    first.add(make_item(1))
    first.add(make_item(2))
    first.store.save_history(["old"])
    await first.flush()

    second = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    events = []
    second.events.subscribe(events.append)
    second.load()

    assert names(events) == [("add", 1), ("add", 2)]
    assert [item.video.id for item in second.queue] == [1, 2]
    assert second.has_been_downloaded("old")


async def test_load_starts_processing_when_not_paused(data_dir, settings, engine):
    seeded = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}, paused=True
    )
    seeded.add(make_item(1))
    await seeded.flush()

    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )
    controller.load()
    await controller.join()

    assert controller.has_been_downloaded(1)
    assert controller.queue == ()


def test_load_tolerates_corrupt_files(data_dir, settings, engine):
    data_dir.mkdir(parents=True)
    (data_dir / "download_queue.json").write_text("][", encoding="utf-8")
    (data_dir / HISTORY_FILENAME).write_text("nope", encoding="utf-8")
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )

    controller.load()

    assert controller.queue == ()
    assert controller.history == ()


async def test_close_saves_state_and_closes_engines(controller, engine, transcoder):
    controller.pause()
    controller.add(make_item(1))

    await controller.close()

    assert engine.closed and transcoder.closed
    assert [item.video.id for item in controller.store.load_queue()] == [1]


async def test_unwritable_destination_reports_start_then_fail(data_dir, tmp_path, engine):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    settings = DownloadSettings(directory=blocker / "downloads")
    controller = QueueController(
        data_dir, settings=settings, engines={EngineKind.INTERNAL: engine}
    )
    events = []
    controller.events.subscribe(events.append)

    controller.add(make_item(1))
    await controller.join()

    assert names(events) == [("add", 1), ("start", 1), ("fail", 1)]
    assert engine.calls == []
