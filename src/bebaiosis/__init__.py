__all__ = [
    # Models
    "InclusionCondition",
    "RawTransaction",
    "Signature",
    "SignedTransaction",
    # Codec
    "decode",
    "decode_signed",
    "decode_unsigned",
    "encode_unsigned",
    "serialize_signed",
    # Signer
    "chain_id_from_placeholder",
    "recover_chain_id",
    "recover_sender",
    "sign",
    "sign_with_key",
    "signing_hash",
    # Keys
    "LocalKey",
    "generate_eoa",
    "load_key",
    "load_keyfile",
    "load_private_key",
    # Transport
    "HttpxTransport",
    "Transport",
    "WebSocketTransport",
    # Requests
    "CallRequest",
    "TransactionRequest",
    # Confirmation
    "ConfirmationState",
    "ConfirmationStatus",
    "ConfirmationTracker",
    "DropReason",
    "advance",
    "wait_for_confirmations",
    # Submission
    "SendResult",
    "sign_and_send",
    "send_raw_transaction_with_confirmation",
    # Config
    "Settings",
    # Errors
    "BebaiosisError",
    "ConfirmationTimeout",
    "MalformedResponse",
    "MalformedTransaction",
    "RpcError",
    "SigningError",
    "SubscriptionUnsupported",
    "TransportError",
]

__version__ = "0.3.0"

from .config import Settings
from .errors import (
    BebaiosisError,
    ConfirmationTimeout,
    MalformedResponse,
    MalformedTransaction,
    RpcError,
    SigningError,
    SubscriptionUnsupported,
    TransportError,
)
from .sigil.codec import (
    decode,
    decode_signed,
    decode_unsigned,
    encode_unsigned,
    serialize_signed,
)
from .sigil.keys import (
    LocalKey,
    generate_eoa,
    load_key,
    load_keyfile,
    load_private_key,
)
from .sigil.signer import (
    chain_id_from_placeholder,
    recover_chain_id,
    recover_sender,
    sign,
    sign_with_key,
    signing_hash,
)
from .sigil.transaction import (
    InclusionCondition,
    RawTransaction,
    Signature,
    SignedTransaction,
)
from .pneuma.confirm import (
    ConfirmationState,
    ConfirmationStatus,
    ConfirmationTracker,
    DropReason,
    advance,
    wait_for_confirmations,
)
from .pneuma.requests import CallRequest, TransactionRequest
from .pneuma.transport import HttpxTransport, Transport, WebSocketTransport
from .pneuma.tx import SendResult, send_raw_transaction_with_confirmation, sign_and_send
