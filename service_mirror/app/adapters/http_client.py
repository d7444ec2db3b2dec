"""
HTTP transport used by the sync engine to reach the remote collection.
"""

from typing import Any, Dict, Mapping, Optional, Protocol
import httpx

from shared.logging import get_logger
from shared.errors import DecodeError, TransportError


class CrudTransport(Protocol):
    """What the sync engine needs from a remote collaborator."""

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any: ...

    async def post(self, path: str, body: Any, params: Optional[Mapping[str, Any]] = None) -> Any: ...

    async def put(self, path: str, body: Any, params: Optional[Mapping[str, Any]] = None) -> Any: ...

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any: ...


def render_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """Turn extra parameters into a query map; nothing in, no query string out."""
    if not params:
        return None

    rendered = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        rendered[str(key)] = str(value)
    return rendered or None


class HttpxTransport:
    """``CrudTransport`` backed by ``httpx.AsyncClient``.

    Without an injected client a short-lived client is opened per request.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._client = client
        self.logger = get_logger("mirror.adapters.http_client")

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, body: Any, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request("POST", path, params=params, body=body)

    async def put(self, path: str, body: Any, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request("PUT", path, params=params, body=body)

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self._request("DELETE", path, params=params)

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not self.base_url:
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        url = self.url_for(path)
        query = render_params(params)

        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, params=query, json=body, headers=self.headers
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, params=query, json=body, headers=self.headers
                    )
        except httpx.HTTPError as exc:
            self.logger.warning("Remote call failed", method=method, url=url, error=str(exc))
            raise TransportError(
                method,
                url,
                message=str(exc) or exc.__class__.__name__,
                cause=exc
            ) from exc

        if not response.is_success:
            self.logger.warning(
                "Remote call rejected",
                method=method,
                url=url,
                status_code=response.status_code
            )
            raise TransportError(
                method,
                url,
                message=f"Unexpected status {response.status_code}",
                status_code=response.status_code,
                body=response.text
            )

        self.logger.debug("Remote call succeeded", method=method, url=url, status_code=response.status_code)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(
                "Response body is not JSON",
                {"method": method, "url": url, "status_code": response.status_code}
            ) from exc
