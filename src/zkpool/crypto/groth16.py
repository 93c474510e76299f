"""Groth16 proof objects and proving backends.

Witness generation and proving are delegated to the circom/snarkjs toolchain:

    1. ``snarkjs wtns calculate circuit.wasm input.json witness.wtns``
    2. ``snarkjs groth16 prove circuit.zkey witness.wtns proof.json public.json``

snarkjs draws fresh blinding scalars (r, s) for every proof, so two proofs of
the same witness are unlinkable. Both steps are CPU-bound and block the
calling thread; interactive callers should run them in a worker and let them
finish rather than interrupt them.

Any object with the same methods as ``WitnessCalculator`` / ``Groth16Backend``
can stand in for the snarkjs backends (e.g. a native prover, or a fake in
tests).
"""

import json
import logging
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

from py_ecc.bn128 import FQ, FQ2, b, b2, is_on_curve

from zkpool.crypto.artifacts import CircuitArtifacts, Witness, read_witness, write_witness
from zkpool.exceptions import ProvingError, WitnessError
from zkpool.utils.encoding import BASE_FIELD_MODULUS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class G1Point:
    """Affine point on BN254 G1 (coordinates in the base field)."""

    x: int
    y: int

    def is_on_curve(self) -> bool:
        if not (0 <= self.x < BASE_FIELD_MODULUS and 0 <= self.y < BASE_FIELD_MODULUS):
            return False
        return is_on_curve((FQ(self.x), FQ(self.y)), b)


@dataclass(frozen=True)
class G2Point:
    """Affine point on BN254 G2; each coordinate is c0 + c1 * u."""

    x_c0: int
    x_c1: int
    y_c0: int
    y_c1: int

    def is_on_curve(self) -> bool:
        coords = (self.x_c0, self.x_c1, self.y_c0, self.y_c1)
        if not all(0 <= c < BASE_FIELD_MODULUS for c in coords):
            return False
        point = (FQ2([self.x_c0, self.x_c1]), FQ2([self.y_c0, self.y_c1]))
        return is_on_curve(point, b2)


@dataclass(frozen=True)
class Groth16Proof:
    """Groth16 proof (A in G1, B in G2, C in G1)."""

    a: G1Point
    b: G2Point
    c: G1Point

    def validate(self) -> None:
        """
        Check that every point lies on its curve.

        Raises:
            ProvingError: If a point is off-curve
        """
        for name, point in (("A", self.a), ("B", self.b), ("C", self.c)):
            if not point.is_on_curve():
                raise ProvingError(f"Proof point {name} is not on the BN254 curve")

    @classmethod
    def from_snarkjs(cls, data: Dict[str, Any]) -> "Groth16Proof":
        """
        Parse snarkjs ``proof.json`` (projective coordinates with z = 1).

        Raises:
            ProvingError: If the proof JSON is malformed
        """
        try:
            if data.get("protocol", "groth16") != "groth16":
                raise ProvingError(f"Unexpected proof protocol: {data.get('protocol')}")
            pi_a = [int(v) for v in data["pi_a"]]
            pi_b = [[int(v) for v in pair] for pair in data["pi_b"]]
            pi_c = [int(v) for v in data["pi_c"]]
        except (KeyError, TypeError, ValueError) as e:
            raise ProvingError(f"Malformed proof JSON: {e}") from e

        if len(pi_a) < 2 or len(pi_c) < 2 or len(pi_b) < 2 or any(len(p) != 2 for p in pi_b[:2]):
            raise ProvingError("Malformed proof JSON: unexpected point shape")

        return cls(
            a=G1Point(pi_a[0], pi_a[1]),
            b=G2Point(pi_b[0][0], pi_b[0][1], pi_b[1][0], pi_b[1][1]),
            c=G1Point(pi_c[0], pi_c[1]),
        )

    def to_snarkjs(self) -> Dict[str, Any]:
        """Render as snarkjs ``proof.json``."""
        return {
            "pi_a": [str(self.a.x), str(self.a.y), "1"],
            "pi_b": [
                [str(self.b.x_c0), str(self.b.x_c1)],
                [str(self.b.y_c0), str(self.b.y_c1)],
                ["1", "0"],
            ],
            "pi_c": [str(self.c.x), str(self.c.y), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }


class WitnessCalculator(Protocol):
    """Evaluates the circuit on named inputs."""

    def calculate_witness(self, inputs: Dict[str, Any]) -> Witness:
        ...


class Groth16Backend(Protocol):
    """Produces a Groth16 proof for a full assignment."""

    n_public: int

    def prove(self, witness: Witness) -> Groth16Proof:
        ...


def _run(command: List[str], what: str, error_cls: type) -> None:
    logger.debug(f"Running {what}: {' '.join(command)}")
    try:
        subprocess.run(command, check=True, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise error_cls(f"{what} failed: executable not found ({command[0]})") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or e.stdout or "").strip()
        raise error_cls(f"{what} failed with exit code {e.returncode}: {detail}") from e


class SnarkjsWitnessCalculator:
    """Witness evaluation through ``snarkjs wtns calculate``."""

    def __init__(self, artifacts: CircuitArtifacts, snarkjs_command: str = "snarkjs"):
        self.artifacts = artifacts
        self.command = shlex.split(snarkjs_command)

    def calculate_witness(self, inputs: Dict[str, Any]) -> Witness:
        """
        Run the witness generator on the circuit inputs.

        Raises:
            WitnessError: If the generator rejects the inputs
        """
        with tempfile.TemporaryDirectory(prefix="zkpool-wtns-") as workdir:
            input_path = Path(workdir) / "input.json"
            witness_path = Path(workdir) / "witness.wtns"
            input_path.write_text(json.dumps(inputs))

            _run(
                self.command
                + ["wtns", "calculate", str(self.artifacts.wasm_path), str(input_path), str(witness_path)],
                "Witness calculation",
                WitnessError,
            )
            witness = read_witness(witness_path)

        logger.debug(f"Computed witness with {len(witness)} values")
        return witness


class SnarkjsGroth16Backend:
    """Groth16 proving through ``snarkjs groth16 prove``."""

    def __init__(self, artifacts: CircuitArtifacts, snarkjs_command: str = "snarkjs"):
        self.artifacts = artifacts
        self.command = shlex.split(snarkjs_command)

    @property
    def n_public(self) -> int:
        return self.artifacts.header.n_public

    def prove(self, witness: Witness) -> Groth16Proof:
        """
        Prove a full assignment with the loaded proving key.

        Raises:
            ProvingError: If the assignment does not fit the key or snarkjs fails
        """
        expected = self.artifacts.header.n_vars
        if len(witness) != expected:
            raise ProvingError(f"Assignment has {len(witness)} values, proving key expects {expected}")

        with tempfile.TemporaryDirectory(prefix="zkpool-prove-") as workdir:
            witness_path = Path(workdir) / "witness.wtns"
            proof_path = Path(workdir) / "proof.json"
            public_path = Path(workdir) / "public.json"
            write_witness(witness.values, witness_path, witness.prime)

            _run(
                self.command
                + [
                    "groth16",
                    "prove",
                    str(self.artifacts.zkey_path),
                    str(witness_path),
                    str(proof_path),
                    str(public_path),
                ],
                "Groth16 proving",
                ProvingError,
            )
            try:
                data = json.loads(proof_path.read_text())
            except (OSError, ValueError) as e:
                raise ProvingError(f"Cannot read proof output: {e}") from e

        proof = Groth16Proof.from_snarkjs(data)
        proof.validate()
        return proof


def generate_proof(
    inputs: Dict[str, Any],
    witness_calculator: WitnessCalculator,
    backend: Groth16Backend,
    n_public: Optional[int] = None,
) -> Tuple[Groth16Proof, List[int]]:
    """
    Compute the witness, prove it, and extract the public signals.

    Returns:
        Tuple of (proof, public signals without the leading constant)
    """
    witness = witness_calculator.calculate_witness(inputs)
    proof = backend.prove(witness)
    public_signals = witness.public_signals(backend.n_public if n_public is None else n_public)
    return proof, public_signals
