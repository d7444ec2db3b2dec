"""
Test helper functions and factory methods for the Mirror service.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Tuple

from shared.errors import TransportError


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_test_items() -> List[Dict[str, Any]]:
        """Create test items."""
        return [
            {"id": 1, "name": "Brent Crude Oil", "symbol": "BRN"},
            {"id": 2, "name": "WTI Crude Oil", "symbol": "CL"},
            {"id": 3, "name": "Henry Hub Natural Gas", "symbol": "NG"},
        ]


class FakeCollectionBackend:
    """In-memory remote collection speaking the ``CrudTransport`` contract.

    Every call is recorded in ``calls`` as ``(method, path, params, body)``.
    ``fail(method, times)`` makes the next ``times`` calls of ``method`` raise
    ``TransportError`` (every call when ``times`` is None). ``hold(method)``
    parks calls of ``method`` until ``release(method)``.
    """

    __test__ = False

    def __init__(self, items: Optional[List[Mapping[str, Any]]] = None, endpoint: str = "/items"):
        self.endpoint = endpoint.rstrip('/')
        self.items: List[Dict[str, Any]] = [dict(item) for item in items or []]
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]], Any]] = []
        self._failures: Dict[str, Optional[int]] = {}
        self._gates: Dict[str, asyncio.Event] = {}
        self._next_id = max([item["id"] for item in self.items if isinstance(item["id"], int)] or [0]) + 1
        self.closed = False

    def fail(self, method: str, times: Optional[int] = None):
        self._failures[method] = times

    def hold(self, method: str):
        self._gates[method] = asyncio.Event()

    def release(self, method: str):
        gate = self._gates.pop(method, None)
        if gate is not None:
            gate.set()

    def calls_for(self, method: str) -> List[Tuple[str, str, Optional[Dict[str, Any]], Any]]:
        return [call for call in self.calls if call[0] == method]

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        await self._enter("GET", path, params)
        target = self._target(path)
        if target is None:
            return [dict(item) for item in self.items]
        return dict(self._find(target, "GET", path))

    async def post(self, path: str, body: Any, params: Optional[Mapping[str, Any]] = None) -> Any:
        await self._enter("POST", path, params, body)
        target = self._target(path)
        if target is None:
            created = dict(body)
            if "id" not in created:
                created["id"] = self._next_id
                self._next_id += 1
            self.items.append(created)
            return dict(created)
        return self._replace(target, body, "POST", path)

    async def put(self, path: str, body: Any, params: Optional[Mapping[str, Any]] = None) -> Any:
        await self._enter("PUT", path, params, body)
        target = self._target(path)
        if target is None:
            raise TransportError("PUT", path, message="Method not allowed", status_code=405)
        return self._replace(target, body, "PUT", path)

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        await self._enter("DELETE", path, params)
        target = self._target(path)
        existing = self._find(target, "DELETE", path)
        self.items.remove(existing)
        return None

    async def aclose(self):
        self.closed = True

    async def _enter(self, method: str, path: str, params: Optional[Mapping[str, Any]], body: Any = None):
        self.calls.append((method, path, dict(params) if params else None, body))

        gate = self._gates.get(method)
        if gate is not None:
            await gate.wait()

        if method in self._failures:
            remaining = self._failures[method]
            if remaining is None:
                raise TransportError(method, path, message="Service unavailable", status_code=503)
            if remaining > 0:
                self._failures[method] = remaining - 1
                raise TransportError(method, path, message="Service unavailable", status_code=503)

    def _target(self, path: str) -> Optional[str]:
        rest = path[len(self.endpoint):].strip('/')
        return rest or None

    def _find(self, target: Optional[str], method: str, path: str) -> Dict[str, Any]:
        for item in self.items:
            if str(item["id"]) == target:
                return item
        raise TransportError(method, path, message="Not found", status_code=404)

    def _replace(self, target: str, body: Any, method: str, path: str) -> Dict[str, Any]:
        existing = self._find(target, method, path)
        existing.update(dict(body))
        return dict(existing)


def make_item(item_id: Any, **attributes) -> Dict[str, Any]:
    """Build a mapping-style item."""
    return {"id": item_id, **attributes}
