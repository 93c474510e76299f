"""Cryptographic primitives module"""

from zkpool.crypto.poseidon import (
    PoseidonHasher,
    get_hasher,
    init_hashers,
    poseidon,
)

from zkpool.crypto.artifacts import (
    CircuitArtifacts,
    Witness,
    ZkeyHeader,
    read_witness,
    write_witness,
)

from zkpool.crypto.groth16 import (
    G1Point,
    G2Point,
    Groth16Proof,
    Groth16Backend,
    WitnessCalculator,
    SnarkjsGroth16Backend,
    SnarkjsWitnessCalculator,
)

__all__ = [
    'PoseidonHasher',
    'get_hasher',
    'init_hashers',
    'poseidon',
    'CircuitArtifacts',
    'Witness',
    'ZkeyHeader',
    'read_witness',
    'write_witness',
    'G1Point',
    'G2Point',
    'Groth16Proof',
    'Groth16Backend',
    'WitnessCalculator',
    'SnarkjsGroth16Backend',
    'SnarkjsWitnessCalculator',
]
