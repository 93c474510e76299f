"""Fee-sponsored submission of transact instructions.

The relayer signs and pays for the transaction, so the depositor's wallet
never appears next to the recipient. The transaction holds two instructions:

    1. compute budget: set_compute_unit_limit (proof verification is heavy)
    2. transact: instruction data as produced by TransactProofData, accounts

        tree(w), nullifier1 PDA(w), nullifier2 PDA(w), global_config,
        pool_vault(w), relayer(signer, w), recipient(w), fee_recipient(w),
        system_program

Nullifier PDAs are derived from seeds [b"nullifier", nullifier bytes]; the
program creates them on first spend and rejects a second spend of the same
nullifier.

One RelaySubmitter (one keypair, one RPC client) can serve concurrent
requests; it holds no per-request state.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.compute_budget import set_compute_unit_limit
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from zkpool.config import PoolSettings, get_settings
from zkpool.core.wire import TransactProofData
from zkpool.exceptions import (
    InvalidRelayRequestError,
    RelayError,
    RelaySubmissionError,
    WireEncodingError,
)
from zkpool.models.schemas import RelayRequest, RelayResponse

logger = logging.getLogger(__name__)

NULLIFIER_SEED = b"nullifier"
DEFAULT_COMPUTE_UNIT_LIMIT = 1_400_000


def _parse_pubkey(value: str, what: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise InvalidRelayRequestError(f"Invalid {what}: {e}") from e


@dataclass(frozen=True)
class PoolAccounts:
    """Pool program and the fixed accounts of the transact instruction."""

    program_id: Pubkey
    tree_account: Pubkey
    global_config: Pubkey
    pool_vault: Pubkey
    fee_recipient: Pubkey

    @classmethod
    def from_settings(cls, settings: PoolSettings) -> "PoolAccounts":
        return cls(
            program_id=Pubkey.from_string(settings.program_id),
            tree_account=Pubkey.from_string(settings.tree_account),
            global_config=Pubkey.from_string(settings.global_config),
            pool_vault=Pubkey.from_string(settings.pool_vault),
            fee_recipient=Pubkey.from_string(settings.fee_recipient),
        )


def derive_nullifier_address(nullifier: bytes, program_id: Pubkey) -> Pubkey:
    """Derive the nullifier marker PDA for a 32-byte big-endian nullifier."""
    address, _bump = Pubkey.find_program_address([NULLIFIER_SEED, bytes(nullifier)], program_id)
    return address


def build_transact_instruction(
    instruction_data: bytes,
    nullifier1: bytes,
    nullifier2: bytes,
    recipient: Pubkey,
    relayer: Pubkey,
    accounts: PoolAccounts,
) -> Instruction:
    """Assemble the transact instruction with the relayer as signer."""
    metas = [
        AccountMeta(accounts.tree_account, is_signer=False, is_writable=True),
        AccountMeta(derive_nullifier_address(nullifier1, accounts.program_id), is_signer=False, is_writable=True),
        AccountMeta(derive_nullifier_address(nullifier2, accounts.program_id), is_signer=False, is_writable=True),
        AccountMeta(accounts.global_config, is_signer=False, is_writable=False),
        AccountMeta(accounts.pool_vault, is_signer=False, is_writable=True),
        AccountMeta(relayer, is_signer=True, is_writable=True),
        AccountMeta(recipient, is_signer=False, is_writable=True),
        AccountMeta(accounts.fee_recipient, is_signer=False, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(accounts.program_id, bytes(instruction_data), metas)


def load_keypair(path: Union[str, Path]) -> Keypair:
    """
    Load a keypair file (JSON array of 64 secret-key bytes).

    Raises:
        RelayError: If the file is missing or malformed
    """
    path = Path(path).expanduser()
    try:
        secret = json.loads(path.read_text())
        return Keypair.from_bytes(bytes(secret))
    except (OSError, ValueError, TypeError) as e:
        raise RelayError(f"Cannot load relayer keypair from {path}: {e}") from e


class RelaySubmitter:
    """Signs, pays for and submits transact instructions."""

    def __init__(
        self,
        client: Any,
        relayer: Keypair,
        accounts: PoolAccounts,
        compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
    ):
        """
        Args:
            client: solana ``Client`` (or anything with get_latest_blockhash / send_transaction)
            relayer: Fee payer and signer
            accounts: Pool program accounts
            compute_unit_limit: Compute units requested for the transaction
        """
        self.client = client
        self.relayer = relayer
        self.accounts = accounts
        self.compute_unit_limit = compute_unit_limit

    @classmethod
    def from_settings(cls, settings: Optional[PoolSettings] = None) -> "RelaySubmitter":
        settings = settings or get_settings()
        relayer = load_keypair(settings.relayer_keypair_path)
        logger.info(f"Relayer address: {relayer.pubkey()}")
        return cls(
            Client(settings.rpc_url),
            relayer,
            PoolAccounts.from_settings(settings),
            compute_unit_limit=settings.compute_unit_limit,
        )

    @property
    def relayer_address(self) -> Pubkey:
        return self.relayer.pubkey()

    def validate_request(self, request: RelayRequest) -> Tuple[bytes, bytes, bytes, Pubkey]:
        """
        Decode a request and check it against its own payload.

        Returns:
            Tuple of (instruction data, nullifier1, nullifier2, recipient)

        Raises:
            InvalidRelayRequestError: If any field is malformed or the
                nullifiers differ from those inside the payload
        """
        instruction_data = request.instruction_data()
        nullifier1, nullifier2 = request.nullifiers()
        recipient = _parse_pubkey(request.recipient_address, "recipient")

        try:
            payload = TransactProofData.from_instruction_data(instruction_data)
        except WireEncodingError as e:
            raise InvalidRelayRequestError(f"Invalid instruction data: {e}") from e

        if (payload.nullifier1, payload.nullifier2) != (nullifier1, nullifier2):
            raise InvalidRelayRequestError("Nullifiers do not match the instruction data")

        return instruction_data, nullifier1, nullifier2, recipient

    def build_transaction(self, request: RelayRequest, recent_blockhash: Hash) -> Transaction:
        """Build and sign the relayed transaction."""
        return self._sign(self.validate_request(request), recent_blockhash)

    def _sign(self, validated: Tuple[bytes, bytes, bytes, Pubkey], recent_blockhash: Hash) -> Transaction:
        instruction_data, nullifier1, nullifier2, recipient = validated
        transact_ix = build_transact_instruction(
            instruction_data,
            nullifier1,
            nullifier2,
            recipient,
            self.relayer.pubkey(),
            self.accounts,
        )
        compute_ix = set_compute_unit_limit(self.compute_unit_limit)
        return Transaction.new_signed_with_payer(
            [compute_ix, transact_ix],
            self.relayer.pubkey(),
            [self.relayer],
            recent_blockhash,
        )

    def submit(self, request: RelayRequest) -> str:
        """
        Relay a request and wait for confirmation.

        Returns:
            str: Transaction signature

        Raises:
            InvalidRelayRequestError: If the request is malformed
            RelaySubmissionError: If the RPC node rejects or fails the transaction
        """
        # Reject bad requests before touching the network
        validated = self.validate_request(request)

        try:
            blockhash = self.client.get_latest_blockhash().value.blockhash
        except (RPCException, SolanaRpcException) as e:
            raise RelaySubmissionError(f"Failed to get blockhash: {e}") from e

        tx = self._sign(validated, blockhash)
        try:
            resp = self.client.send_transaction(
                tx, opts=TxOpts(skip_confirmation=False, preflight_commitment=Confirmed)
            )
        except (RPCException, SolanaRpcException, UnconfirmedTxError) as e:
            raise RelaySubmissionError(f"Transaction failed: {e}") from e

        signature = str(resp.value)
        logger.info(f"Transaction successful: {signature}")
        return signature

    def relay(self, request: RelayRequest) -> RelayResponse:
        """Relay a request, reporting every failure in the response."""
        try:
            return RelayResponse.ok(self.submit(request))
        except InvalidRelayRequestError as e:
            logger.warning(f"Rejected relay request: {e}")
            return RelayResponse.failed(str(e))
        except RelaySubmissionError as e:
            logger.error(f"Relay failed: {e}", exc_info=True)
            return RelayResponse.failed(str(e))

    def __repr__(self) -> str:
        return f"RelaySubmitter(relayer={self.relayer.pubkey()}, program={self.accounts.program_id})"
