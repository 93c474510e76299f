"""Transaction proof pipeline.

Every pool transaction uses the fixed 2-input / 2-output circuit. Unused slots
are filled with zero-amount dummy notes:

    deposit     inputs:  two fresh dummies, nullifiers at index 0, zero paths
                outputs: the deposited note, one fresh dummy
                publicAmount = amount

    withdrawal  inputs:  the real note with its path, plus a dummy that reuses
                         the owner's keys (fresh blinding, index 0, zero path)
                outputs: two zero-amount notes owned by the same pubkey
                publicAmount = r - amount

The witness input record is built as a pure function of its arguments, then
handed to the witness calculator and proving backend.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from zkpool.config import PoolSettings, get_settings
from zkpool.core.merkle_tree import MERKLE_TREE_HEIGHT, MerklePath, MerkleTree
from zkpool.core.utxo import Utxo
from zkpool.core.wire import I64_MAX, TransactProofData, decode_public_amount
from zkpool.crypto.artifacts import CircuitArtifacts
from zkpool.crypto.groth16 import (
    Groth16Backend,
    Groth16Proof,
    SnarkjsGroth16Backend,
    SnarkjsWitnessCalculator,
    WitnessCalculator,
    generate_proof,
)
from zkpool.exceptions import AmountOverflowError, ProvingError
from zkpool.utils.encoding import field_to_str, random_field_element, signed_to_field
from zkpool.utils.hash import NATIVE_MINT, compute_ext_data_hash

logger = logging.getLogger(__name__)

N_INPUTS = 2
N_OUTPUTS = 2
N_PUBLIC_SIGNALS = 7

Pair = Tuple[int, int]

# (circuit signal, TransactionInputs attribute), in circuit declaration order
SIGNAL_ORDER: Tuple[Tuple[str, str], ...] = (
    ("root", "root"),
    ("publicAmount", "public_amount"),
    ("extDataHash", "ext_data_hash"),
    ("mintAddress", "mint_address"),
    ("inputNullifier", "input_nullifiers"),
    ("inAmount", "in_amounts"),
    ("inPrivateKey", "in_private_keys"),
    ("inBlinding", "in_blindings"),
    ("inPathIndices", "in_path_indices"),
    ("inPathElements", "in_path_elements"),
    ("outputCommitment", "output_commitments"),
    ("outAmount", "out_amounts"),
    ("outPubkey", "out_pubkeys"),
    ("outBlinding", "out_blindings"),
)


@dataclass(frozen=True)
class TransactionInputs:
    """Named witness inputs for one transaction."""

    root: int
    public_amount: int
    ext_data_hash: int
    mint_address: int
    input_nullifiers: Pair
    in_amounts: Pair
    in_private_keys: Pair
    in_blindings: Pair
    in_path_indices: Pair  # leaf index per input; bit k is the direction at level k
    in_path_elements: Tuple[Tuple[int, ...], Tuple[int, ...]]
    output_commitments: Pair
    out_amounts: Pair
    out_pubkeys: Pair
    out_blindings: Pair

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, tuple) and len(value) != N_INPUTS:
                raise ValueError(f"{f.name} must have exactly {N_INPUTS} entries")
        heights = {len(path) for path in self.in_path_elements}
        if len(heights) != 1:
            raise ValueError("Input paths must have the same height")

    @property
    def tree_height(self) -> int:
        return len(self.in_path_elements[0])

    def to_circuit_inputs(self) -> Dict[str, Any]:
        """
        Render as the circuit's input JSON (decimal strings).

        ``inPathElements`` is the concatenation of both input paths.
        """
        inputs: Dict[str, Any] = {}
        for signal, attribute in SIGNAL_ORDER:
            value = getattr(self, attribute)
            if attribute == "in_path_elements":
                inputs[signal] = [field_to_str(element) for path in value for element in path]
            elif isinstance(value, tuple):
                inputs[signal] = [field_to_str(v) for v in value]
            else:
                inputs[signal] = field_to_str(value)
        return inputs

    def to_field_list(self) -> List[int]:
        """Flatten every input into one list in signal order."""
        values: List[int] = []
        for _, attribute in SIGNAL_ORDER:
            value = getattr(self, attribute)
            if attribute == "in_path_elements":
                values.extend(element for path in value for element in path)
            elif isinstance(value, tuple):
                values.extend(value)
            else:
                values.append(value)
        return values


def _check_public_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Amount must be int, got {type(amount)}")
    if amount < 0:
        raise ValueError(f"Amount must be non-negative: {amount}")
    if amount > I64_MAX:
        raise AmountOverflowError(f"Amount does not fit a signed 64-bit public amount: {amount}")


class TransactionProver:
    """
    Builds witness inputs for deposits and withdrawals and proves them.

    Proving blocks the calling thread for the duration of witness calculation
    and proof generation.
    """

    def __init__(
        self,
        witness_calculator: WitnessCalculator,
        backend: Groth16Backend,
        tree_height: int = MERKLE_TREE_HEIGHT,
        mint: int = NATIVE_MINT,
    ):
        self.witness_calculator = witness_calculator
        self.backend = backend
        self.tree_height = tree_height
        self.mint = mint

    @classmethod
    def from_artifacts(
        cls,
        wasm_path: Union[str, Path],
        zkey_path: Union[str, Path],
        snarkjs_command: str = "snarkjs",
        **kwargs,
    ) -> "TransactionProver":
        """
        Load circuit artifacts once and wire up the snarkjs backends.

        Raises:
            ArtifactError: If either artifact is missing or malformed
        """
        artifacts = CircuitArtifacts.load(wasm_path, zkey_path)
        if artifacts.header.n_public != N_PUBLIC_SIGNALS:
            logger.warning(
                f"Proving key declares {artifacts.header.n_public} public signals, "
                f"transaction circuit has {N_PUBLIC_SIGNALS}"
            )
        return cls(
            SnarkjsWitnessCalculator(artifacts, snarkjs_command),
            SnarkjsGroth16Backend(artifacts, snarkjs_command),
            **kwargs,
        )

    @classmethod
    def from_settings(cls, settings: Optional[PoolSettings] = None) -> "TransactionProver":
        """Build a prover from ``PoolSettings`` (default: process settings)."""
        settings = settings or get_settings()
        return cls.from_artifacts(
            settings.circuit_wasm_path,
            settings.circuit_zkey_path,
            snarkjs_command=settings.snarkjs_command,
            tree_height=settings.merkle_tree_height,
            mint=settings.mint_address,
        )

    def _dummy(self, privkey: Optional[int] = None, pubkey: Optional[int] = None) -> Utxo:
        if privkey is None:
            return Utxo.create_random(0, mint=self.mint)
        return Utxo(amount=0, privkey=privkey, pubkey=pubkey, blinding=random_field_element(), mint=self.mint)

    def _zero_path(self) -> Tuple[int, ...]:
        return MerklePath.empty(self.tree_height).path_elements

    def build_deposit_inputs(self, amount: int, utxo: Utxo, payer: bytes, root: int) -> TransactionInputs:
        """
        Assemble witness inputs for a deposit of ``amount`` into ``utxo``'s keys.

        Args:
            amount: Deposited lamports (becomes the positive public amount)
            utxo: Note receiving the deposit (keys and blinding are reused)
            payer: Payer address bytes, bound through extDataHash
            root: Current pool root

        Returns:
            TransactionInputs: Witness input record
        """
        _check_public_amount(amount)

        dummy1 = self._dummy()
        dummy2 = self._dummy()
        output1 = Utxo(amount=amount, privkey=utxo.privkey, pubkey=utxo.pubkey, blinding=utxo.blinding, mint=self.mint)
        output2 = self._dummy()
        zero_path = self._zero_path()

        return TransactionInputs(
            root=root,
            public_amount=amount,
            ext_data_hash=compute_ext_data_hash(bytes(payer), amount),
            mint_address=self.mint,
            input_nullifiers=(dummy1.compute_nullifier(0), dummy2.compute_nullifier(0)),
            in_amounts=(0, 0),
            in_private_keys=(dummy1.privkey, dummy2.privkey),
            in_blindings=(dummy1.blinding, dummy2.blinding),
            in_path_indices=(0, 0),
            in_path_elements=(zero_path, zero_path),
            output_commitments=(output1.commitment, output2.commitment),
            out_amounts=(amount, 0),
            out_pubkeys=(utxo.pubkey, output2.pubkey),
            out_blindings=(utxo.blinding, output2.blinding),
        )

    def build_withdrawal_inputs(
        self,
        utxo: Utxo,
        leaf_index: Optional[int],
        tree: MerkleTree,
        recipient: bytes,
    ) -> TransactionInputs:
        """
        Assemble witness inputs for withdrawing the full value of ``utxo``.

        Args:
            utxo: Note being spent
            leaf_index: Position of the note's commitment; looked up when None
            tree: Pool tree holding the note's commitment
            recipient: Recipient address bytes, bound through extDataHash

        Returns:
            TransactionInputs: Witness input record

        Raises:
            TreeLookupMissError: If leaf_index is None and the commitment is not in the tree
        """
        amount = utxo.amount
        _check_public_amount(amount)
        if tree.height != self.tree_height:
            raise ValueError(f"Tree height {tree.height} does not match circuit height {self.tree_height}")

        if leaf_index is None:
            leaf_index = tree.index_of(utxo.commitment)

        path = tree.get_path(leaf_index)
        dummy_input = self._dummy(utxo.privkey, utxo.pubkey)
        output1 = self._dummy(utxo.privkey, utxo.pubkey)
        output2 = self._dummy(utxo.privkey, utxo.pubkey)

        return TransactionInputs(
            root=tree.root,
            public_amount=signed_to_field(-amount),
            ext_data_hash=compute_ext_data_hash(bytes(recipient), amount),
            mint_address=self.mint,
            input_nullifiers=(utxo.compute_nullifier(leaf_index), dummy_input.compute_nullifier(0)),
            in_amounts=(amount, 0),
            in_private_keys=(utxo.privkey, utxo.privkey),
            in_blindings=(utxo.blinding, dummy_input.blinding),
            in_path_indices=(path.packed_indices, 0),
            in_path_elements=(path.path_elements, self._zero_path()),
            output_commitments=(output1.commitment, output2.commitment),
            out_amounts=(0, 0),
            out_pubkeys=(utxo.pubkey, utxo.pubkey),
            out_blindings=(output1.blinding, output2.blinding),
        )

    def generate_proof(self, inputs: TransactionInputs) -> Tuple[Groth16Proof, List[int]]:
        """
        Compute the witness and prove it.

        Returns:
            Tuple of (proof, seven public signals)

        Raises:
            WitnessError: If the circuit rejects the inputs
            ProvingError: If proving fails or the signal count is wrong
        """
        if inputs.tree_height != self.tree_height:
            raise ProvingError(f"Input paths have height {inputs.tree_height}, circuit expects {self.tree_height}")

        proof, public_signals = generate_proof(
            inputs.to_circuit_inputs(),
            self.witness_calculator,
            self.backend,
            n_public=N_PUBLIC_SIGNALS,
        )
        logger.debug(f"Proof generated, nullifiers={public_signals[3]}, {public_signals[4]}")
        return proof, public_signals

    def prove_deposit(self, amount: int, utxo: Utxo, payer: bytes, root: int) -> TransactProofData:
        """Prove a deposit and encode it for the transact instruction."""
        logger.info(f"Generating deposit proof for {amount} lamports")
        inputs = self.build_deposit_inputs(amount, utxo, payer, root)
        proof, public_signals = self.generate_proof(inputs)
        return TransactProofData.from_proof(proof, public_signals)

    def prove_withdrawal(
        self,
        utxo: Utxo,
        leaf_index: Optional[int],
        tree: MerkleTree,
        recipient: bytes,
    ) -> TransactProofData:
        """Prove a full withdrawal and encode it for the transact instruction."""
        logger.info(f"Generating withdrawal proof for {utxo.amount} lamports")
        inputs = self.build_withdrawal_inputs(utxo, leaf_index, tree, recipient)
        proof, public_signals = self.generate_proof(inputs)
        return TransactProofData.from_proof(proof, public_signals)

    @staticmethod
    def decode_public_amount(public_signals: Sequence[int]) -> int:
        """Signed public amount from the public signal vector."""
        return decode_public_amount(public_signals[1])
