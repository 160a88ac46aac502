from pathlib import Path

import pytest

from streamq_cli.core.queue_controller import QueueController
from streamq_cli.models.config import DownloadSettings, EngineKind

from .helpers import FakeEngine


@pytest.fixture
def settings(tmp_path) -> DownloadSettings:
    return DownloadSettings(directory=tmp_path / "downloads", history=True)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def transcoder() -> FakeEngine:
    return FakeEngine(kind=EngineKind.FFMPEG)


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def controller(data_dir, settings, engine, transcoder) -> QueueController:
    return QueueController(
        data_dir,
        settings=settings,
        engines={EngineKind.INTERNAL: engine, EngineKind.FFMPEG: transcoder},
    )


@pytest.fixture
def recorded(controller) -> list:
    events = []
    controller.events.subscribe(events.append)
    return events


