"""
Sigil - transaction encoding and signing.

- codec:       canonical RLP forms (signing payload and signed form)
- transaction: RawTransaction / Signature / SignedTransaction models
- signer:      EIP-155 signing hash, replay protection, assembly
- keys:        explicit secp256k1 key material
"""
