"""Shielded note (UTXO) model.

A note n = (amount, privkey, pubkey, blinding) is published only through its
commitment:

    pubkey     = Poseidon(privkey)
    commitment = Poseidon(amount, pubkey, blinding, mint)

Once the commitment sits at leaf index i of the pool tree, spending it
reveals the nullifier:

    signature = Poseidon(privkey, commitment, i)
    nullifier = Poseidon(commitment, i, signature)

Notes are immutable; use ``dataclasses.replace`` to derive a changed note and
the commitment is recomputed for the new components.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Union

from zkpool.utils.encoding import ensure_field, field_to_str, random_field_element
from zkpool.utils.hash import NATIVE_MINT, compute_commitment, compute_nullifier, derive_pubkey

MAX_AMOUNT = 2**64 - 1

FieldLike = Union[int, str]


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Amount must be int, got {type(amount)}")
    if not 0 <= amount <= MAX_AMOUNT:
        raise ValueError(f"Amount must fit in an unsigned 64-bit integer: {amount}")


@dataclass(frozen=True)
class Utxo:
    """Shielded note with its derived commitment."""

    amount: int  # lamports, u64
    privkey: int
    pubkey: int
    blinding: int
    mint: int = NATIVE_MINT

    commitment: int = field(init=False)

    def __post_init__(self):
        _check_amount(self.amount)
        object.__setattr__(
            self,
            "commitment",
            compute_commitment(self.amount, self.pubkey, self.blinding, self.mint),
        )

    @classmethod
    def create_random(cls, amount: int, mint: int = NATIVE_MINT) -> "Utxo":
        """
        Generate a fresh note with random keys and blinding.

        Args:
            amount: Note value in lamports

        Returns:
            Utxo: New note, pubkey derived from the fresh privkey
        """
        privkey = random_field_element()
        return cls(
            amount=amount,
            privkey=privkey,
            pubkey=derive_pubkey(privkey),
            blinding=random_field_element(),
            mint=mint,
        )

    @classmethod
    def from_components(
        cls,
        amount: int,
        privkey: FieldLike,
        pubkey: FieldLike,
        blinding: FieldLike,
        mint: int = NATIVE_MINT,
    ) -> "Utxo":
        """
        Rebuild a note from stored values and recompute its commitment.

        The pubkey is taken as given and is not re-derived from privkey.

        Raises:
            InvalidEncodingError: If a component is not a valid field element
        """
        return cls(
            amount=amount,
            privkey=ensure_field(privkey),
            pubkey=ensure_field(pubkey),
            blinding=ensure_field(blinding),
            mint=mint,
        )

    def compute_nullifier(self, leaf_index: int) -> int:
        """
        Compute the nullifier of this note at a tree position.

        Args:
            leaf_index: Position the note's commitment occupies (or claims to)

        Returns:
            int: Nullifier field element
        """
        if leaf_index < 0:
            raise ValueError(f"Leaf index must be non-negative: {leaf_index}")
        return compute_nullifier(self.privkey, self.commitment, leaf_index)

    def has_consistent_keys(self) -> bool:
        """True if pubkey = Poseidon(privkey)."""
        return derive_pubkey(self.privkey) == self.pubkey

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with field elements as decimal strings."""
        return {
            "amount": self.amount,
            "privkey": field_to_str(self.privkey),
            "pubkey": field_to_str(self.pubkey),
            "blinding": field_to_str(self.blinding),
            "commitment": field_to_str(self.commitment),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Utxo":
        """Deserialize from ``to_dict`` output; the commitment is recomputed."""
        return cls.from_components(
            amount=int(data["amount"]),
            privkey=data["privkey"],
            pubkey=data["pubkey"],
            blinding=data["blinding"],
        )

    def __repr__(self) -> str:
        # Keys and blinding stay out of logs
        return f"Utxo(amount={self.amount}, commitment={str(self.commitment)[:16]}...)"
