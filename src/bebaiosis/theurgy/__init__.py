"""
Theurgy - Command implementations for the Bebaiosis CLI.

Each module corresponds to a top-level CLI command:
- keygen: Create a local signing key
- sign:   Sign a transaction offline
- decode: Decode a raw transaction
- send:   Fill, sign, submit and optionally confirm a transaction
- watch:  Follow a submitted transaction to the required depth
"""
