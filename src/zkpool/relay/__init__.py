"""Relayed (fee-sponsored) transaction submission."""

from zkpool.relay.submitter import (
    PoolAccounts,
    RelaySubmitter,
    build_transact_instruction,
    derive_nullifier_address,
    load_keypair,
)

__all__ = [
    "PoolAccounts",
    "RelaySubmitter",
    "build_transact_instruction",
    "derive_nullifier_address",
    "load_keypair",
]
