"""
Pneuma - On-chain interaction layer for bebaiosis.

Provides the JSON-RPC transport seam, eth/personal namespace helpers,
transaction submission, and the confirmation tracker.

Uses httpx + websockets for transport and eth-account / eth-keys (via
sigil) for signing instead of the heavyweight web3.py.
"""
