"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from py_ecc.bn128 import G1, G2, multiply  # noqa: E402

from zkpool.config import reset_settings  # noqa: E402
from zkpool.crypto.artifacts import Witness  # noqa: E402
from zkpool.crypto.groth16 import G1Point, G2Point, Groth16Proof  # noqa: E402
from zkpool.crypto.poseidon import init_hashers  # noqa: E402


def _n(coordinate):
    return coordinate if isinstance(coordinate, int) else coordinate.n


def g1_point(point) -> G1Point:
    return G1Point(_n(point[0]), _n(point[1]))


def g2_point(point) -> G2Point:
    x, y = point
    return G2Point(_n(x.coeffs[0]), _n(x.coeffs[1]), _n(y.coeffs[0]), _n(y.coeffs[1]))


def make_proof(a_scalar: int = 3, b_scalar: int = 5, c_scalar: int = 7) -> Groth16Proof:
    """Proof made of real curve points (not a valid proof of anything)."""
    return Groth16Proof(
        a=g1_point(multiply(G1, a_scalar)),
        b=g2_point(multiply(G2, b_scalar)),
        c=g1_point(multiply(G1, c_scalar)),
    )


class FakeWitnessCalculator:
    """Echoes the public inputs into a witness shaped like the circuit's."""

    def __init__(self):
        self.calls = []

    def calculate_witness(self, inputs):
        self.calls.append(inputs)
        public = [
            int(inputs["root"]),
            int(inputs["publicAmount"]),
            int(inputs["extDataHash"]),
            int(inputs["inputNullifier"][0]),
            int(inputs["inputNullifier"][1]),
            int(inputs["outputCommitment"][0]),
            int(inputs["outputCommitment"][1]),
        ]
        return Witness(values=tuple([1] + public + [0] * 5))


class FakeBackend:
    """Returns a fixed proof for any assignment."""

    n_public = 7

    def __init__(self, proof=None):
        self.proof = proof or make_proof()
        self.witnesses = []

    def prove(self, witness):
        self.witnesses.append(witness)
        return self.proof


@pytest.fixture(scope="session", autouse=True)
def hashers():
    """Build every Poseidon hasher once per test session."""
    return init_hashers()


@pytest.fixture(autouse=True)
def clean_settings():
    """Fresh settings for each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def proof():
    return make_proof()


@pytest.fixture
def fake_calculator():
    return FakeWitnessCalculator()


@pytest.fixture
def fake_backend():
    return FakeBackend()
