"""Poseidon-based hash utilities for keys, commitments and nullifiers."""

from zkpool.crypto.poseidon import get_hasher
from zkpool.exceptions import InvalidEncodingError
from zkpool.utils.encoding import to_field

# Native SOL asset tag used inside commitments
NATIVE_MINT = 1

COUNTERPARTY_PREFIX_SIZE = 8  # bytes of the address bound into extDataHash


def hash1(x: int) -> int:
    """Poseidon of a single element (arity-1 instance, not a padded Hash2)."""
    return get_hasher(1).hash([x])


def hash2(a: int, b: int) -> int:
    """Poseidon of two elements."""
    return get_hasher(2).hash([a, b])


def hash3(a: int, b: int, c: int) -> int:
    """Poseidon of three elements."""
    return get_hasher(3).hash([a, b, c])


def hash4(a: int, b: int, c: int, d: int) -> int:
    """Poseidon of four elements."""
    return get_hasher(4).hash([a, b, c, d])


def merkle_hash(left: int, right: int) -> int:
    """
    Compute Merkle tree parent of two siblings.

    Args:
        left: Left child
        right: Right child

    Returns:
        int: Poseidon(left, right)
    """
    return hash2(left, right)


def derive_pubkey(privkey: int) -> int:
    """Compute the owner public key pubkey = Poseidon(privkey)."""
    return hash1(privkey)


def compute_commitment(amount: int, pubkey: int, blinding: int, mint: int = NATIVE_MINT) -> int:
    """
    Compute note commitment cm = Poseidon(amount, pubkey, blinding, mint).

    Args:
        amount: Note value in lamports
        pubkey: Owner public key
        blinding: Random blinding factor
        mint: Asset tag (1 for native SOL)

    Returns:
        int: Commitment field element
    """
    return hash4(amount, pubkey, blinding, mint)


def compute_signature(privkey: int, commitment: int, leaf_index: int) -> int:
    """Compute the spend signature Poseidon(privkey, commitment, leaf_index)."""
    return hash3(privkey, commitment, leaf_index)


def compute_nullifier(privkey: int, commitment: int, leaf_index: int) -> int:
    """
    Compute nullifier nf = Poseidon(commitment, leaf_index, signature).

    The nullifier depends on the tree position, so the same note placed at
    two different indices yields two different nullifiers.

    Args:
        privkey: Owner private key
        commitment: Note commitment
        leaf_index: Position of the commitment in the tree

    Returns:
        int: Nullifier field element
    """
    signature = compute_signature(privkey, commitment, leaf_index)
    return hash3(commitment, leaf_index, signature)


def compute_ext_data_hash(counterparty: bytes, amount: int) -> int:
    """
    Bind a proof to its counterparty and amount.

    extDataHash = Poseidon(first 8 bytes of the address as big-endian int, amount)

    Args:
        counterparty: 32-byte address (payer on deposit, recipient on withdrawal)
        amount: Amount in lamports

    Returns:
        int: extDataHash field element
    """
    if len(counterparty) < COUNTERPARTY_PREFIX_SIZE:
        raise InvalidEncodingError(f"Counterparty address must be at least {COUNTERPARTY_PREFIX_SIZE} bytes")
    prefix = int.from_bytes(bytes(counterparty[:COUNTERPARTY_PREFIX_SIZE]), byteorder="big")
    return hash2(prefix, to_field(amount))
