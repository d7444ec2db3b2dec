"""
End-to-end integration tests for the mirror flow over HTTP.

The remote collection is an in-memory handler mounted on ``httpx.MockTransport``,
so requests go through the real transport, engine and resolver.
"""

import json
from typing import Any, Dict, List

import httpx
import pytest
from unittest.mock import MagicMock

from service_mirror.app.adapters.http_client import HttpxTransport
from service_mirror.app.lookup.resolver import ItemResolver
from service_mirror.app.sync.engine import SyncEngine
from shared.test_helpers import TestDataFactory


class CollectionHandler:
    """Minimal REST collection served from memory."""

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = [dict(item) for item in items]
        self.requests: List[httpx.Request] = []
        self.unavailable = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unavailable:
            return httpx.Response(503, text="unavailable")

        parts = [part for part in request.url.path.split("/") if part]
        if parts[:1] != ["items"]:
            return httpx.Response(404)
        target = parts[1] if len(parts) > 1 else None

        if request.method == "GET" and target is None:
            return httpx.Response(200, json=self.items)

        if request.method == "POST" and target is None:
            created = json.loads(request.content)
            created["id"] = max(item["id"] for item in self.items) + 1
            self.items.append(created)
            return httpx.Response(201, json=created)

        existing = next((item for item in self.items if str(item["id"]) == target), None)
        if existing is None:
            return httpx.Response(404, json={"detail": "not found"})

        if request.method == "GET":
            return httpx.Response(200, json=existing)
        if request.method in ("POST", "PUT"):
            existing.update(json.loads(request.content))
            return httpx.Response(200, json=existing)
        if request.method == "DELETE":
            self.items.remove(existing)
            return httpx.Response(204)
        return httpx.Response(405)

    def methods(self) -> List[str]:
        return [request.method for request in self.requests]


class TestSyncFlow:
    """Integration tests for engine, transport and resolver together."""

    @pytest.fixture
    def handler(self):
        """In-memory remote collection."""
        return CollectionHandler(TestDataFactory.create_test_items())

    @pytest.fixture
    def sink(self):
        """Diagnostic sink double."""
        return MagicMock()

    @pytest.fixture
    def engine(self, handler, sink):
        """Engine talking HTTP to the in-memory collection."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpxTransport("http://backend.test", client=client)
        return SyncEngine(transport, "/items", diagnostic_sink=sink)

    @pytest.mark.asyncio
    async def test_full_crud_cycle(self, engine, handler, sink):
        """Test fetch, create, update and delete keep the mirror in step."""
        seen = []
        engine.data_stream.subscribe(lambda snapshot: seen.append(len(snapshot)))

        await engine.fetch_all()
        created = await engine.create({"name": "Rotterdam Coal", "symbol": "ATW"})
        updated = await engine.update({**created.model_dump(), "symbol": "API2"})
        await engine.delete(engine.current()[0])
        await engine.aclose()

        assert created.id == 4
        assert updated.symbol == "API2"
        assert [item.id for item in engine.current()] == [2, 3, 4]
        assert [item["id"] for item in handler.items] == [2, 3, 4]
        assert handler.methods() == ["GET", "POST", "POST", "DELETE"]
        assert seen == [0, 3, 4, 4, 3]
        sink.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolver_fetches_missing_item(self, engine, handler):
        """Test a lookup on an empty mirror fetches the collection once."""
        resolver = ItemResolver(engine, "item_id", id_is_integer=True, resolve_failed=MagicMock())

        item = await resolver.resolve({"item_id": "3"})
        await engine.aclose()

        assert item.name == "Henry Hub Natural Gas"
        assert handler.methods() == ["GET"]
        assert str(handler.requests[0].url) == "http://backend.test/items"

    @pytest.mark.asyncio
    async def test_resolver_gives_up_on_outage(self, engine, handler, sink):
        """Test an unavailable backend ends the lookup after its budget."""
        handler.unavailable = True
        failed = MagicMock()
        resolver = ItemResolver(engine, "item_id", id_is_integer=True, resolve_failed=failed)

        item = await resolver.resolve({"item_id": "1"})
        await engine.aclose()

        assert item is None
        assert handler.methods() == ["GET"] * 6
        assert sink.call_count == 2
        assert all(call.args[0].http_method == "GET" for call in sink.call_args_list)
        failed.assert_called_once()
