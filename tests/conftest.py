"""Shared fixtures: a scripted in-memory transport and known key material."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Union

import pytest

from bebaiosis.errors import RpcError, SubscriptionUnsupported
from bebaiosis.sigil.keys import LocalKey

# EIP-155 reference key (0x46 repeated)
EIP155_PRIVATE_KEY = "0x" + "46" * 32
EIP155_ADDRESS = "0x9d8A62f656a8d1615C1294fd71e9CFb3E4855A4F"

TX_HASH = "0x" + "ab" * 32


def receipt(block: int, status: int = 1, tx_hash: str = TX_HASH) -> dict[str, Any]:
    return {
        "transactionHash": tx_hash,
        "blockNumber": hex(block),
        "status": hex(status),
    }


class FakeTransport:
    """Transport double driven by scripted sequences.

    ``blocks`` and ``receipts`` are consumed one value per call; the last
    value repeats once the script runs out. Non-int blocks are returned as
    given, to script malformed node answers. ``heads`` enables
    ``subscribe``: each entry is yielded in turn, then ``subscribe_error``
    (if any) is raised. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        *,
        blocks: Iterable[Union[int, str]] = (),
        receipts: Iterable[Optional[dict[str, Any]]] = (),
        results: Optional[dict[str, Union[Any, Callable[[list[Any]], Any]]]] = None,
        heads: Optional[Iterable[Any]] = None,
        subscribe_error: Optional[Exception] = None,
    ) -> None:
        self.blocks = list(blocks)
        self.receipts = list(receipts)
        self.results = dict(results or {})
        self.heads = list(heads) if heads is not None else None
        self.subscribe_error = subscribe_error
        self.failures: dict[str, list[Exception]] = {}
        self.calls: list[tuple[str, list[Any]]] = []
        self.subscriptions_closed = 0

    def fail(self, method: str, *errors: Exception) -> None:
        """Raise ``errors`` (in order) on the next calls to ``method``."""
        self.failures.setdefault(method, []).extend(errors)

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    @staticmethod
    def _next(script: list[Any]) -> Any:
        if len(script) > 1:
            return script.pop(0)
        return script[0] if script else None

    async def execute(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, list(params)))
        await asyncio.sleep(0)
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)
        if method == "eth_blockNumber":
            block = self._next(self.blocks)
            return hex(block) if isinstance(block, int) else block
        if method == "eth_getTransactionReceipt":
            return self._next(self.receipts)
        if method in self.results:
            value = self.results[method]
            return value(params) if callable(value) else value
        raise RpcError(-32601, f"Method not found: {method}")

    async def subscribe(self, params: list[Any]) -> AsyncIterator[Any]:
        self.calls.append(("eth_subscribe", list(params)))
        if self.heads is None:
            raise SubscriptionUnsupported("fake transport has no subscriptions")
        try:
            for head in self.heads:
                await asyncio.sleep(0)
                yield head
            if self.subscribe_error is not None:
                raise self.subscribe_error
        finally:
            self.subscriptions_closed += 1


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def eip155_key() -> LocalKey:
    return LocalKey.from_hex(EIP155_PRIVATE_KEY)
