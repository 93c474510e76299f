"""Main package initialization."""

__version__ = "0.1.0"
__author__ = "Privacy Pool Team"
__description__ = "Shielded pool core: Poseidon Merkle accumulator, UTXO notes and Groth16 transact proofs"

from .core.merkle_tree import MerkleTree, MerkleFrontier, MerklePath
from .core.utxo import Utxo
from .core.prover import TransactionProver, TransactionInputs
from .core.wire import TransactProofData

__all__ = [
    "MerkleTree",
    "MerkleFrontier",
    "MerklePath",
    "Utxo",
    "TransactionProver",
    "TransactionInputs",
    "TransactProofData",
]
