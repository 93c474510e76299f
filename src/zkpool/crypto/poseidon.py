"""Poseidon hash over the BN254 scalar field (circom-compatible).

Implements the Poseidon permutation with the parameters used by circomlib, so
hashes computed here match the transaction circuit and the on-chain syscall.

Parameters:
    - S-box: x^5
    - Full rounds: 8 (4 before and 4 after the partial rounds)
    - Partial rounds: 56, 57, 56, 60 for state widths 2, 3, 4, 5
    - State: [0, x_1, ..., x_n], output is state[0] after the permutation

Round constants and the MDS matrix are derived from the Grain LFSR seeded with
(field=prime, sbox=x^5, n=254, t, R_F, R_P), the same procedure as the
reference parameter script. A hasher is built once per arity and kept in a
registry; building is the expensive part (a few hundred thousand LFSR steps).

Example:
    >>> from zkpool.crypto.poseidon import poseidon
    >>> poseidon([1, 2])
    7853200120776062878684798364095072458815029376092732009249414926327459813530
"""

import logging
import threading
from typing import Dict, Iterator, List, Sequence, Tuple

from zkpool.exceptions import HashConfigurationError
from zkpool.utils.encoding import FIELD_MODULUS

logger = logging.getLogger(__name__)

FULL_ROUNDS = 8
PARTIAL_ROUNDS = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]
SUPPORTED_ARITIES = (1, 2, 3, 4)

FIELD_BITS = FIELD_MODULUS.bit_length()  # 254

_GRAIN_STATE_BITS = 80
_GRAIN_MASK = (1 << _GRAIN_STATE_BITS) - 1
# Taps b[0], b[13], b[23], b[38], b[51], b[62] with b[0] stored in the top bit
_GRAIN_TAPS = tuple(_GRAIN_STATE_BITS - 1 - i for i in (0, 13, 23, 38, 51, 62))


def _grain_bits(width: int, partial_rounds: int) -> Iterator[int]:
    """Self-shrinking Grain LFSR bit stream for the given parameter set."""
    seed = (
        format(1, "02b")  # prime field
        + format(0, "04b")  # x^alpha S-box
        + format(FIELD_BITS, "012b")
        + format(width, "012b")
        + format(FULL_ROUNDS, "010b")
        + format(partial_rounds, "010b")
        + "1" * 30
    )
    state = int(seed, 2)

    def step() -> int:
        nonlocal state
        bit = 0
        for tap in _GRAIN_TAPS:
            bit ^= (state >> tap) & 1
        state = ((state << 1) | bit) & _GRAIN_MASK
        return bit

    for _ in range(160):
        step()

    while True:
        # Bits are consumed in pairs; the second bit is kept if the first is 1
        if step():
            yield step()
        else:
            step()


def _take(bits: Iterator[int], count: int) -> int:
    value = 0
    for _ in range(count):
        value = (value << 1) | next(bits)
    return value


def generate_parameters(width: int) -> Tuple[List[int], List[List[int]]]:
    """
    Generate (round_constants, mds_matrix) for a state width.

    Args:
        width: State width t = arity + 1

    Returns:
        Tuple of flat round constants ((R_F + R_P) * t values) and a t x t
        Cauchy MDS matrix M[i][j] = 1 / (x_i + y_j).
    """
    if width < 2 or width - 2 >= len(PARTIAL_ROUNDS):
        raise HashConfigurationError(f"Unsupported Poseidon width: {width}")

    partial_rounds = PARTIAL_ROUNDS[width - 2]
    bits = _grain_bits(width, partial_rounds)

    constants = []
    for _ in range((FULL_ROUNDS + partial_rounds) * width):
        value = _take(bits, FIELD_BITS)
        while value >= FIELD_MODULUS:
            value = _take(bits, FIELD_BITS)
        constants.append(value)

    while True:
        samples = [_take(bits, FIELD_BITS) % FIELD_MODULUS for _ in range(2 * width)]
        while len(set(samples)) != len(samples):
            samples = [_take(bits, FIELD_BITS) % FIELD_MODULUS for _ in range(2 * width)]
        xs, ys = samples[:width], samples[width:]
        if all((x + y) % FIELD_MODULUS for x in xs for y in ys):
            break

    matrix = [[pow(x + y, -1, FIELD_MODULUS) for y in ys] for x in xs]
    return constants, matrix


class PoseidonHasher:
    """
    Poseidon hasher for a fixed number of inputs.

    Stateless per call: ``hash`` may be invoked any number of times and from
    several threads.
    """

    def __init__(self, arity: int):
        """
        Build the hasher, generating its round constants and MDS matrix.

        Args:
            arity: Number of field elements absorbed per hash (1-4)

        Raises:
            HashConfigurationError: If the arity is not supported
        """
        if arity not in SUPPORTED_ARITIES:
            raise HashConfigurationError(
                f"Unsupported Poseidon arity {arity}; expected one of {SUPPORTED_ARITIES}"
            )

        self.arity = arity
        self.width = arity + 1
        self.partial_rounds = PARTIAL_ROUNDS[self.width - 2]
        self.round_constants, self.mds_matrix = generate_parameters(self.width)

    def permute(self, state: Sequence[int]) -> List[int]:
        """Apply the Poseidon permutation to a full state vector."""
        t = self.width
        p = FIELD_MODULUS
        state = list(state)
        half_full = FULL_ROUNDS // 2
        total = FULL_ROUNDS + self.partial_rounds

        for r in range(total):
            offset = r * t
            state = [(s + self.round_constants[offset + i]) % p for i, s in enumerate(state)]

            if r < half_full or r >= half_full + self.partial_rounds:
                state = [pow(s, 5, p) for s in state]
            else:
                state[0] = pow(state[0], 5, p)

            state = [sum(m * s for m, s in zip(row, state)) % p for row in self.mds_matrix]

        return state

    def hash(self, inputs: Sequence[int]) -> int:
        """
        Hash exactly ``arity`` field elements.

        Raises:
            HashConfigurationError: If the number of inputs does not match the arity
        """
        if len(inputs) != self.arity:
            raise HashConfigurationError(
                f"Poseidon hasher of arity {self.arity} got {len(inputs)} inputs"
            )
        state = [0] + [value % FIELD_MODULUS for value in inputs]
        return self.permute(state)[0]

    def __repr__(self) -> str:
        return f"PoseidonHasher(arity={self.arity}, partial_rounds={self.partial_rounds})"


# Registry of hashers by arity
_hashers: Dict[int, PoseidonHasher] = {}
_registry_lock = threading.Lock()


def get_hasher(arity: int) -> PoseidonHasher:
    """Get or create the shared hasher for an arity."""
    hasher = _hashers.get(arity)
    if hasher is None:
        with _registry_lock:
            hasher = _hashers.get(arity)
            if hasher is None:
                hasher = PoseidonHasher(arity)
                _hashers[arity] = hasher
                logger.debug(f"Built Poseidon hasher for arity {arity}")
    return hasher


def init_hashers() -> Dict[int, PoseidonHasher]:
    """Eagerly build every supported hasher (call once at startup)."""
    return {arity: get_hasher(arity) for arity in SUPPORTED_ARITIES}


def poseidon(inputs: Sequence[int]) -> int:
    """Hash a sequence of 1-4 field elements."""
    return get_hasher(len(inputs)).hash(inputs)
