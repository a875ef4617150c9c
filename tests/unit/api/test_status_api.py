"""Unit tests — read-only status API (api/)."""

from __future__ import annotations

from typing import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from conftest import make_config
from fastapi.testclient import TestClient

from media_collector.api.server import create_app
from media_collector.events.bus import MemoryEventBus
from media_collector.modules.registry import ModuleRegistry
from media_collector.supervisor import ModuleSupervisor

pytestmark = pytest.mark.unit


@pytest_asyncio.fixture
async def started(
    registry: ModuleRegistry, bus: MemoryEventBus
) -> AsyncIterator[ModuleSupervisor]:
    supervisor = ModuleSupervisor(registry, event_bus=bus, shutdown_timeout=0.5)
    await supervisor.start(
        [
            make_config("mal", "idle", requires_api_key=True),
            make_config("local", rate_limit=2),
        ]
    )
    yield supervisor
    await supervisor.shutdown()


@pytest.fixture
def client(started: ModuleSupervisor, bus: MemoryEventBus) -> Iterator[TestClient]:
    # TestClient serves from its own thread; routes only read supervisor state.
    with TestClient(create_app(started, recent_events=bus)) as c:
        yield c


class TestHealth:
    async def test_health_counts(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["modules"] == {"skipped": 1, "running": 1}
        assert body["uptime_seconds"] >= 0

    def test_health_before_start(self, registry: ModuleRegistry) -> None:
        app = create_app(ModuleSupervisor(registry))
        with TestClient(app) as c:
            resp = c.get("/health")
        assert resp.status_code == 200
        assert resp.json()["modules"] == {}


class TestModules:
    async def test_list(self, client: TestClient) -> None:
        resp = client.get("/modules")
        assert resp.status_code == 200
        by_name = {m["name"]: m for m in resp.json()}
        assert list(by_name) == ["mal", "local"]

        assert by_name["mal"]["status"] == "skipped"
        assert by_name["mal"]["reason"] == "missing required API key for module: mal"
        assert by_name["mal"]["available_permits"] is None
        assert by_name["mal"]["queued_tasks"] is None

        assert by_name["local"]["status"] == "running"
        assert by_name["local"]["kind"] == "local"
        assert by_name["local"]["rate_limit"] == 2
        assert by_name["local"]["available_permits"] == 2
        assert by_name["local"]["requests_granted"] == 0
        assert by_name["local"]["queued_tasks"] == 0

    async def test_get_one(self, client: TestClient) -> None:
        resp = client.get("/modules/local")
        assert resp.status_code == 200
        assert resp.json()["status"] == "running"

    async def test_unknown_module_404(self, client: TestClient) -> None:
        resp = client.get("/modules/anilist")
        assert resp.status_code == 404
        assert "anilist" in resp.json()["detail"]


    async def test_module_without_config_404(
        self,
        client: TestClient,
        started: ModuleSupervisor,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(started, "config", lambda name: None)
        resp = client.get("/modules/local")
        assert resp.status_code == 404
        assert "local" in resp.json()["detail"]


class TestEvents:
    async def test_recent_events(self, client: TestClient) -> None:
        resp = client.get("/events", params={"topic": "collector.modules"})
        assert resp.status_code == 200
        events = [(e["event"]["event"], e["event"]["module"]) for e in resp.json()]
        assert events == [("module_skipped", "mal"), ("module_started", "local")]
        assert resp.json()[0]["topic"] == "collector.modules"

    async def test_limit(self, client: TestClient) -> None:
        resp = client.get("/events", params={"limit": 1})
        assert len(resp.json()) == 1

    def test_no_event_feed(self, registry: ModuleRegistry) -> None:
        app = create_app(ModuleSupervisor(registry))
        with TestClient(app) as c:
            assert c.get("/events").json() == []
