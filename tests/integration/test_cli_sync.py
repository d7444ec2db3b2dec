"""
Integration tests for the one-shot sync script.
"""

import pytest

from scripts.sync_snapshot import sync_once
from shared.test_helpers import FakeCollectionBackend, TestDataFactory


class TestSyncSnapshotScript:
    """Tests for sync_once."""

    @pytest.mark.asyncio
    async def test_summary_contains_snapshot(self):
        backend = FakeCollectionBackend(TestDataFactory.create_test_items())

        summary = await sync_once(
            remote_url="http://backend.test",
            endpoint="/items",
            params={"region": "eu"},
            append=False,
            transport=backend,
        )

        assert summary["count"] == 3
        assert summary["items"][2]["symbol"] == "NG"
        assert summary["failures"] == []
        assert backend.calls == [("GET", "/items", {"region": "eu"}, None)]
        assert backend.closed

    @pytest.mark.asyncio
    async def test_failures_are_reported(self):
        backend = FakeCollectionBackend(TestDataFactory.create_test_items())
        backend.fail("GET")

        summary = await sync_once(
            remote_url="http://backend.test",
            endpoint="/items",
            params={},
            append=False,
            transport=backend,
        )

        assert summary["count"] == 0
        assert len(summary["failures"]) == 1
        assert summary["failures"][0]["httpMethod"] == "GET"
        assert summary["failures"][0]["message"] == "Something went wrong!"
