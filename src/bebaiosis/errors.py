"""
Error taxonomy for bebaiosis.

Codec and signer errors are raised immediately by pure functions.
Transport errors propagate from one-shot RPC calls, but are absorbed
by the confirmation tracker's retry loop and surfaced once as a
terminal ``dropped`` state.
"""

from __future__ import annotations

from typing import Any


class BebaiosisError(Exception):
    pass


class MalformedTransaction(BebaiosisError, ValueError):
    """Wrong element count or field shape while decoding a transaction."""


class SigningError(BebaiosisError, ValueError):
    """Invalid signature or key material, or a refused signing policy."""


class TransportError(BebaiosisError):
    """Network or JSON-RPC failure."""


class RpcError(TransportError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(
            f"RPC error {code}: {message}"
            + (f" | data={data}" if data is not None else "")
        )


class SubscriptionUnsupported(TransportError):
    """The transport cannot deliver push notifications."""


class MalformedResponse(TransportError):
    """The node answered, but the result has the wrong shape."""


class ConfirmationTimeout(BebaiosisError):
    """A tracked transaction ended in the dropped state.

    Only raised on request, via ``ConfirmationState.raise_for_status()``.
    """

    def __init__(self, tx_hash: str, reason: str) -> None:
        self.tx_hash = tx_hash
        self.reason = reason
        super().__init__(f"Transaction {tx_hash} dropped ({reason})")
