"""
Mirror service: HTTP surface over a reactive mirror of a remote collection.
"""

import asyncio
import json
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import Body, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ItemNotFoundError, ValidationError

from .adapters.http_client import CrudTransport
from .lookup.resolver import ItemResolver
from .models import encode_item, find_item
from .sync.engine import SyncEngine


class MirrorService(BaseService):
    """Mirror service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[CrudTransport] = None,
        engine: Optional[SyncEngine] = None,
    ):
        super().__init__("mirror", 8020, config or get_config("mirror", 8020))

        self.engine = engine or SyncEngine.from_config(
            self.config,
            transport=transport,
            metrics=self.metrics
        )
        self.resolver = ItemResolver(
            self.engine,
            param_key="item_id",
            id_is_integer=self.config.lookup_id_is_integer,
            budget=self.config.lookup_budget,
            timeout=self.config.lookup_timeout,
            metrics=self.metrics
        )

        self._setup_mirror_routes()
        self.app.state.mirror_service = self

    def _setup_mirror_routes(self):
        """Set up mirror-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "mirror",
                "message": "Mirror Service - reactive mirror of a remote collection",
                "version": "1.0.0",
                "endpoint": self.engine.endpoint,
                "capabilities": ["snapshot", "lookup", "crud", "sse"]
            }

        @self.app.get("/items")
        async def list_items():
            """Current snapshot."""
            snapshot = self.engine.current()
            return {
                "count": len(snapshot),
                "items": [encode_item(item) for item in snapshot]
            }

        @self.app.get("/items/stream")
        async def stream_items():
            """Server-Sent Events stream of snapshots."""
            if not self.config.enable_sse:
                raise HTTPException(status_code=404, detail="SSE streaming disabled")

            return StreamingResponse(
                self.snapshot_events(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive"
                }
            )

        @self.app.post("/items/refresh", status_code=202)
        async def refresh_items(request: Request, append: bool = Query(False), wait: bool = Query(False)):
            """Re-fetch the remote collection."""
            params = {k: v for k, v in request.query_params.items() if k not in ("append", "wait")}
            task = self.engine.fetch_all(params or None, append=append)
            return await self._accepted("fetch_all", task, wait)

        @self.app.get("/items/{item_id}")
        async def get_item(request: Request, item_id: str):
            """Bounded lookup of one item."""
            item = await self.resolver.resolve(request.path_params)
            if item is None:
                raise ItemNotFoundError(item_id)
            return encode_item(item)

        @self.app.post("/items", status_code=202)
        async def create_item(body: Dict[str, Any] = Body(...), wait: bool = Query(False)):
            """Create an item on the remote collection."""
            task = self.engine.create(body)
            return await self._accepted("create", task, wait)

        @self.app.put("/items/{item_id}", status_code=202)
        async def update_item(request: Request, item_id: str, body: Dict[str, Any] = Body(...), wait: bool = Query(False)):
            """Update an item on the remote collection."""
            target = self._route_id(request)
            task = self.engine.update({**body, "id": target})
            return await self._accepted("update", task, wait)

        @self.app.delete("/items/{item_id}", status_code=202)
        async def delete_item(request: Request, item_id: str, wait: bool = Query(False)):
            """Delete a mirrored item on the remote collection."""
            target = self._route_id(request)
            item = find_item(self.engine.current(), target)
            if item is None:
                raise ItemNotFoundError(target)
            task = self.engine.delete(item)
            return await self._accepted("delete", task, wait)

    def _route_id(self, request: Request):
        target = self.resolver.parse_id(request.path_params)
        if target is None:
            raise ValidationError(
                "Invalid item id",
                {"item_id": request.path_params.get("item_id")}
            )
        return target

    async def _accepted(self, operation: str, task: asyncio.Task, wait: bool):
        if not wait:
            return {
                "status": "accepted",
                "operation": operation,
                "pending": self.engine.pending_operations
            }

        result = await task
        if result is None:
            return JSONResponse(
                status_code=502,
                content={"status": "failed", "operation": operation}
            )

        if isinstance(result, list):
            payload: Any = [encode_item(item) for item in result]
        else:
            payload = encode_item(result)
        return JSONResponse(
            status_code=200,
            content={"status": "done", "operation": operation, "result": payload}
        )

    async def snapshot_events(self, limit: Optional[int] = None) -> AsyncGenerator[str, None]:
        """SSE stream generator: current snapshot first, then every emission."""
        queue: asyncio.Queue = asyncio.Queue()
        subscription = self.engine.data_stream.subscribe(queue.put_nowait)
        sent = 0

        try:
            while limit is None or sent < limit:
                try:
                    snapshot = await asyncio.wait_for(
                        queue.get(),
                        timeout=self.config.sse_heartbeat_seconds
                    )
                except asyncio.TimeoutError:
                    heartbeat = {
                        "type": "heartbeat",
                        "timestamp": int(asyncio.get_running_loop().time() * 1000)
                    }
                    yield f"data: {json.dumps(heartbeat)}\n\n"
                    continue

                message = {
                    "type": "snapshot",
                    "count": len(snapshot),
                    "items": [encode_item(item) for item in snapshot]
                }
                yield f"data: {json.dumps(message, default=str)}\n\n"
                sent += 1
        finally:
            subscription.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "remote_collection": self.config.remote_base_url,
            "pending_operations": str(self.engine.pending_operations)
        }

    async def start(self):
        """Start mirror components."""
        self.engine.fetch_all()
        self.logger.info("Mirror service started", endpoint=self.engine.endpoint)

    async def stop(self):
        """Stop mirror components."""
        await self.engine.aclose()
        self.logger.info("Mirror service stopped")


def create_app():
    """Create mirror service application."""
    service = MirrorService()
    return service.app


if __name__ == "__main__":
    service = MirrorService()
    service.run()
