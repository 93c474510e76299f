"""On-chain encoding of transact proofs.

Payload layout (464 bytes):

    discriminator   8
    proof_a        64   x || (q - y) mod q          A is negated
    proof_b       128   x.c1 || x.c0 || y.c1 || y.c0
    proof_c        64   x || y
    root           32
    nullifier1     32
    nullifier2     32
    commitment1    32
    commitment2    32
    public_amount   8   signed, little-endian
    ext_data_hash  32

Every coordinate and field element is 32 bytes big-endian. q is the BN254
base-field modulus, not the scalar-field modulus.
"""

import struct
from dataclasses import dataclass
from typing import Sequence

from zkpool.crypto.groth16 import G1Point, G2Point, Groth16Proof
from zkpool.exceptions import AmountOverflowError, WireEncodingError
from zkpool.utils.encoding import (
    BASE_FIELD_MODULUS,
    FIELD_ELEMENT_SIZE,
    bytes_to_hex,
    field_to_be_bytes,
    field_to_signed,
)

TRANSACT_DISCRIMINATOR = bytes([217, 149, 130, 143, 221, 52, 252, 119])

G1_SIZE = 2 * FIELD_ELEMENT_SIZE
G2_SIZE = 4 * FIELD_ELEMENT_SIZE
PUBLIC_AMOUNT_SIZE = 8
PUBLIC_SIGNAL_COUNT = 7

INSTRUCTION_DATA_LENGTH = (
    len(TRANSACT_DISCRIMINATOR) + 2 * G1_SIZE + G2_SIZE + 5 * FIELD_ELEMENT_SIZE + PUBLIC_AMOUNT_SIZE + FIELD_ELEMENT_SIZE
)

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


def _coord(value: int) -> bytes:
    return (value % BASE_FIELD_MODULUS).to_bytes(FIELD_ELEMENT_SIZE, byteorder="big")


def _uncoord(data: bytes) -> int:
    return int.from_bytes(data, byteorder="big")


def encode_proof_a(point: G1Point) -> bytes:
    """Encode A with its y coordinate negated."""
    return _coord(point.x) + _coord(BASE_FIELD_MODULUS - point.y)


def encode_proof_b(point: G2Point) -> bytes:
    """Encode B with c1 before c0 in each coordinate."""
    return _coord(point.x_c1) + _coord(point.x_c0) + _coord(point.y_c1) + _coord(point.y_c0)


def encode_proof_c(point: G1Point) -> bytes:
    return _coord(point.x) + _coord(point.y)


def decode_public_amount(value: int) -> int:
    """
    Decode the signed public amount from its field representation.

    Values above r/2 are negative (withdrawal), the rest non-negative (deposit).

    Raises:
        AmountOverflowError: If the signed value does not fit in 64 bits
    """
    signed = field_to_signed(value)
    if not I64_MIN <= signed <= I64_MAX:
        raise AmountOverflowError(f"Public amount out of i64 range: {signed}")
    return signed


@dataclass(frozen=True)
class TransactProofData:
    """Proof and public signals in on-chain byte form."""

    proof_a: bytes
    proof_b: bytes
    proof_c: bytes
    root: bytes
    nullifier1: bytes
    nullifier2: bytes
    commitment1: bytes
    commitment2: bytes
    public_amount: int
    ext_data_hash: bytes

    @classmethod
    def from_proof(cls, proof: Groth16Proof, public_signals: Sequence[int]) -> "TransactProofData":
        """
        Encode a proof with its public signals.

        Signals are ordered root, publicAmount, extDataHash, nullifier1,
        nullifier2, commitment1, commitment2.

        Raises:
            WireEncodingError: If the signal count is wrong
            AmountOverflowError: If the public amount does not fit in 64 bits
        """
        if len(public_signals) != PUBLIC_SIGNAL_COUNT:
            raise WireEncodingError(
                f"Expected {PUBLIC_SIGNAL_COUNT} public signals, got {len(public_signals)}"
            )

        root, public_amount, ext_data_hash, null1, null2, commit1, commit2 = public_signals
        return cls(
            proof_a=encode_proof_a(proof.a),
            proof_b=encode_proof_b(proof.b),
            proof_c=encode_proof_c(proof.c),
            root=field_to_be_bytes(root),
            nullifier1=field_to_be_bytes(null1),
            nullifier2=field_to_be_bytes(null2),
            commitment1=field_to_be_bytes(commit1),
            commitment2=field_to_be_bytes(commit2),
            public_amount=decode_public_amount(public_amount),
            ext_data_hash=field_to_be_bytes(ext_data_hash),
        )

    def to_instruction_data(self) -> bytes:
        """Serialize into the transact instruction payload."""
        data = b"".join(
            [
                TRANSACT_DISCRIMINATOR,
                self.proof_a,
                self.proof_b,
                self.proof_c,
                self.root,
                self.nullifier1,
                self.nullifier2,
                self.commitment1,
                self.commitment2,
                struct.pack("<q", self.public_amount),
                self.ext_data_hash,
            ]
        )
        if len(data) != INSTRUCTION_DATA_LENGTH:
            raise WireEncodingError(
                f"Instruction data is {len(data)} bytes, expected {INSTRUCTION_DATA_LENGTH}"
            )
        return data

    @classmethod
    def from_instruction_data(cls, data: bytes) -> "TransactProofData":
        """
        Parse a transact instruction payload.

        Raises:
            WireEncodingError: If the length or discriminator is wrong
        """
        if len(data) != INSTRUCTION_DATA_LENGTH:
            raise WireEncodingError(
                f"Instruction data is {len(data)} bytes, expected {INSTRUCTION_DATA_LENGTH}"
            )
        if data[: len(TRANSACT_DISCRIMINATOR)] != TRANSACT_DISCRIMINATOR:
            raise WireEncodingError("Instruction data does not start with the transact discriminator")

        offset = len(TRANSACT_DISCRIMINATOR)

        def take(size: int) -> bytes:
            nonlocal offset
            chunk = bytes(data[offset : offset + size])
            offset += size
            return chunk

        proof_a = take(G1_SIZE)
        proof_b = take(G2_SIZE)
        proof_c = take(G1_SIZE)
        root = take(FIELD_ELEMENT_SIZE)
        nullifier1 = take(FIELD_ELEMENT_SIZE)
        nullifier2 = take(FIELD_ELEMENT_SIZE)
        commitment1 = take(FIELD_ELEMENT_SIZE)
        commitment2 = take(FIELD_ELEMENT_SIZE)
        (public_amount,) = struct.unpack("<q", take(PUBLIC_AMOUNT_SIZE))
        ext_data_hash = take(FIELD_ELEMENT_SIZE)

        return cls(
            proof_a=proof_a,
            proof_b=proof_b,
            proof_c=proof_c,
            root=root,
            nullifier1=nullifier1,
            nullifier2=nullifier2,
            commitment1=commitment1,
            commitment2=commitment2,
            public_amount=public_amount,
            ext_data_hash=ext_data_hash,
        )

    def to_proof(self) -> Groth16Proof:
        """Recover the proof points, undoing the A negation and B swap."""
        a, b, c = self.proof_a, self.proof_b, self.proof_c
        n = FIELD_ELEMENT_SIZE
        return Groth16Proof(
            a=G1Point(_uncoord(a[:n]), (BASE_FIELD_MODULUS - _uncoord(a[n:])) % BASE_FIELD_MODULUS),
            b=G2Point(
                x_c0=_uncoord(b[n : 2 * n]),
                x_c1=_uncoord(b[:n]),
                y_c0=_uncoord(b[3 * n :]),
                y_c1=_uncoord(b[2 * n : 3 * n]),
            ),
            c=G1Point(_uncoord(c[:n]), _uncoord(c[n:])),
        )

    @property
    def nullifier1_hex(self) -> str:
        return self.nullifier1.hex()

    @property
    def nullifier2_hex(self) -> str:
        return self.nullifier2.hex()

    def __repr__(self) -> str:
        return (
            f"TransactProofData(root={bytes_to_hex(self.root)[:18]}..., "
            f"public_amount={self.public_amount}, "
            f"nullifier1={bytes_to_hex(self.nullifier1)[:18]}...)"
        )
