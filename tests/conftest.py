import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from services.store import StateStore
from shared.models import MetadataRequest, MetadataResult, QueueSettings, Settings
from shared.utils import config as service_config


class ScriptedProcessor:
    """Processor double that replays a scripted outcome per call for each file.

    An outcome is a MetadataResult, an Exception instance to raise, or a float
    number of seconds to sleep before succeeding. Files without a script succeed.
    """

    def __init__(self, scripts: dict[int, list[Any]] | None = None) -> None:
        self.scripts = {key: list(value) for key, value in (scripts or {}).items()}
        self.calls: list[MetadataRequest] = []
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, request: MetadataRequest) -> MetadataResult:
        self.calls.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            script = self.scripts.get(request.file_id)
            outcome = script.pop(0) if script else None
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, (int, float)) and not isinstance(outcome, bool):
                await asyncio.sleep(outcome)
                outcome = None
            return outcome or MetadataResult(
                description=f"Generated description for file {request.file_id}",
                keywords=["generated", f"file{request.file_id}"],
            )
        finally:
            self.in_flight -= 1

    def calls_for(self, file_id: int) -> int:
        return sum(1 for request in self.calls if request.file_id == file_id)


@pytest.fixture(autouse=True)
def test_environment(tmp_path: Path) -> Generator[None, None, None]:
    """Point persisted state at a temp dir and restore config values afterwards."""
    original = dict(service_config.config)
    service_config.set("recent_searches_path", str(tmp_path / "recent_searches.json"))
    service_config.set("metadata_provider", "stub")
    service_config.set("notification_driver", "log")
    service_config.set_queue_config({})
    try:
        yield
    finally:
        service_config.config = original
        service_config.set_queue_config({})


@pytest.fixture
def queue_settings() -> QueueSettings:
    return QueueSettings(
        concurrent_processing=2,
        queue_check_interval=3600,
        max_retries=2,
        retry_delay=0,
        timeout=5,
    )


@pytest.fixture
def store(queue_settings: QueueSettings) -> StateStore:
    return StateStore(settings=Settings(queue=queue_settings))


@pytest.fixture
def add_queued_files(store: StateStore) -> Callable[..., list[int]]:
    """Create a project and ``count`` queued files in it; returns the file ids."""

    def _add(count: int, project_name: str = "Stock batch") -> list[int]:
        project = store.add_project(project_name)
        files = store.add_files(
            {
                "project_id": project.id,
                "filename": f"photo_{index}.jpg",
                "size": "2.4 MB",
                "thumbnail": f"https://cdn.example.com/thumbs/photo_{index}.jpg",
                "prompt": "Describe the scene",
            }
            for index in range(1, count + 1)
        )
        return [item.id for item in files]

    return _add


@pytest.fixture
def processor() -> ScriptedProcessor:
    return ScriptedProcessor()
