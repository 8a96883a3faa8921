"""
Transport protocol for Ethereum JSON-RPC.

Defines the seam where concrete connections plug in. RPC helpers and the
confirmation tracker depend on this protocol, not on httpx or websockets
directly, so transports can be swapped (or faked in tests) without
touching the calling code.

The protocol has exactly two methods:
    - execute(method, params) -> result        one-shot request/response
    - subscribe(params) -> async iterator      push notifications

Concrete implementations:
    - HttpxTransport (httpx.AsyncClient; no subscriptions)
    - WebSocketTransport (websockets; eth_subscribe / eth_unsubscribe)
    - FakeTransport (tests)
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Protocol, runtime_checkable

import httpx
import websockets
from websockets.exceptions import WebSocketException

from ..errors import RpcError, SubscriptionUnsupported, TransportError

logger = logging.getLogger(__name__)

ETH_SUBSCRIBE = "eth_subscribe"
ETH_UNSUBSCRIBE = "eth_unsubscribe"
ETH_SUBSCRIPTION = "eth_subscription"


@runtime_checkable
class Transport(Protocol):
    """Async JSON-RPC transport."""

    async def execute(self, method: str, params: list[Any]) -> Any:
        """Call ``method`` and return the ``result`` member of the response.

        Raises:
            RpcError: If the node answered with an error object.
            TransportError: On connection, timeout or framing failures.
        """
        ...

    def subscribe(self, params: list[Any]) -> AsyncIterator[Any]:
        """Open an ``eth_subscribe`` stream (e.g. ``["newHeads"]``).

        Closing the iterator must release the subscription.

        Raises:
            SubscriptionUnsupported: If the transport cannot push.
        """
        ...


def unwrap_response(response: Mapping[str, Any]) -> Any:
    """Return ``result`` from a JSON-RPC response or raise ``RpcError``."""
    if not isinstance(response, Mapping):
        raise RpcError(-1, f"Malformed JSON-RPC response: {response!r}")
    error = response.get("error")
    if error:
        if isinstance(error, Mapping):
            raise RpcError(
                int(error.get("code", -1)),
                str(error.get("message", "unknown error")),
                error.get("data"),
            )
        raise RpcError(-1, str(error))
    if "result" not in response:
        raise RpcError(-1, f"Malformed JSON-RPC response (no result): {response!r}")
    return response["result"]


class HttpxTransport:
    """JSON-RPC over HTTP POST using httpx.AsyncClient.

    Args:
        url: The JSON-RPC endpoint URL.
        timeout: Request timeout in seconds.
        client: Optional shared AsyncClient. When omitted, each call opens
            and closes its own client.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def execute(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(params),
            "id": next(self._ids),
        }
        try:
            if self._client is not None:
                data = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    data = await self._post(client, payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise TransportError(f"{method}: invalid JSON in response: {exc}") from exc
        return unwrap_response(data)

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> Any:
        response = await client.post(
            self._url,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    async def subscribe(self, params: list[Any]) -> AsyncIterator[Any]:
        raise SubscriptionUnsupported("HTTP transport cannot push notifications")
        yield  # pragma: no cover

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class WebSocketTransport:
    """JSON-RPC over WebSocket with ``eth_subscribe`` support.

    ``execute`` opens a short-lived connection per call; ``subscribe``
    holds one connection for the lifetime of the returned iterator and
    sends ``eth_unsubscribe`` when it is closed.

    Args:
        url: ws:// or wss:// endpoint.
        timeout: Seconds to wait for a response frame.
        connect: Connection factory. Inject for tests.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        connect: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._connect = connect or websockets.connect
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def _request(self, ws: Any, method: str, params: list[Any]) -> Any:
        req_id = next(self._ids)
        await ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": req_id,
            "method": method,
            "params": list(params),
        }))
        # Notifications for other subscriptions may arrive before our reply.
        while True:
            raw = await asyncio.wait_for(ws.recv(), self._timeout)
            msg = json.loads(raw)
            if msg.get("id") == req_id:
                return unwrap_response(msg)

    async def execute(self, method: str, params: list[Any]) -> Any:
        try:
            async with self._connect(self._url) as ws:
                return await self._request(ws, method, params)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"{method} failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise TransportError(f"{method}: invalid JSON frame: {exc}") from exc

    async def subscribe(self, params: list[Any]) -> AsyncIterator[Any]:
        try:
            async with self._connect(self._url) as ws:
                sub_id = await self._request(ws, ETH_SUBSCRIBE, params)
                logger.debug("Subscribed %s as %s", params, sub_id)
                try:
                    while True:
                        msg = json.loads(await ws.recv())
                        if msg.get("method") != ETH_SUBSCRIPTION:
                            continue
                        body = msg.get("params") or {}
                        if body.get("subscription") == sub_id:
                            yield body.get("result")
                finally:
                    await self._unsubscribe(ws, sub_id)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"subscription {params} failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise TransportError(f"subscription {params}: invalid JSON frame: {exc}") from exc

    async def _unsubscribe(self, ws: Any, sub_id: str) -> None:
        # Best effort: the connection is closed right after either way.
        with contextlib.suppress(WebSocketException, OSError, asyncio.TimeoutError, RpcError):
            await self._request(ws, ETH_UNSUBSCRIBE, [sub_id])
            logger.debug("Unsubscribed %s", sub_id)
