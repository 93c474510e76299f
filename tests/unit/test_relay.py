"""Tests for relayed transaction submission."""

import base64
import json
from types import SimpleNamespace

import pytest
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solders.compute_budget import set_compute_unit_limit
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from conftest import make_proof
from zkpool.config import PoolSettings
from zkpool.core.wire import TransactProofData
from zkpool.exceptions import InvalidRelayRequestError, RelayError, RelaySubmissionError
from zkpool.models.schemas import RelayRequest
from zkpool.relay.submitter import (
    NULLIFIER_SEED,
    PoolAccounts,
    RelaySubmitter,
    build_transact_instruction,
    derive_nullifier_address,
    load_keypair,
)

SIGNALS = [101, 500_000_000, 303, 404, 505, 606, 707]


class FakeClient:
    """Records submitted transactions instead of sending them."""

    def __init__(self, fail_send=False, fail_blockhash=False, unconfirmed=False):
        self.fail_send = fail_send
        self.fail_blockhash = fail_blockhash
        self.unconfirmed = unconfirmed
        self.sent = []
        self.opts = []

    def get_latest_blockhash(self):
        if self.fail_blockhash:
            raise RPCException("node is behind")
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    def send_transaction(self, tx, opts=None):
        if self.fail_send:
            raise RPCException("Transaction simulation failed: nullifier already used")
        if self.unconfirmed:
            raise UnconfirmedTxError("Unable to confirm transaction")
        self.sent.append(tx)
        self.opts.append(opts)
        return SimpleNamespace(value=Signature.default())


@pytest.fixture
def accounts():
    return PoolAccounts.from_settings(PoolSettings())


@pytest.fixture
def payload():
    return TransactProofData.from_proof(make_proof(), SIGNALS)


@pytest.fixture
def recipient():
    return Keypair().pubkey()


@pytest.fixture
def request_for(payload, recipient):
    return RelayRequest(
        instructionDataBase64=base64.b64encode(payload.to_instruction_data()).decode(),
        nullifier1Hex=payload.nullifier1_hex,
        nullifier2Hex=payload.nullifier2_hex,
        recipientAddress=str(recipient),
    )


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def submitter(client, accounts):
    return RelaySubmitter(client, Keypair(), accounts)


class TestAddressDerivation:
    """Tests for nullifier PDA derivation."""

    def test_matches_program_address(self, accounts, payload):
        expected, _ = Pubkey.find_program_address([b"nullifier", payload.nullifier1], accounts.program_id)
        assert derive_nullifier_address(payload.nullifier1, accounts.program_id) == expected
        assert NULLIFIER_SEED == b"nullifier"

    def test_distinct_per_nullifier(self, accounts, payload):
        a = derive_nullifier_address(payload.nullifier1, accounts.program_id)
        b = derive_nullifier_address(payload.nullifier2, accounts.program_id)
        assert a != b

    def test_deterministic(self, accounts, payload):
        assert derive_nullifier_address(payload.nullifier1, accounts.program_id) == derive_nullifier_address(
            payload.nullifier1, accounts.program_id
        )


class TestTransactInstruction:
    """Tests for instruction assembly."""

    def test_account_order(self, accounts, payload, recipient):
        relayer = Keypair().pubkey()
        ix = build_transact_instruction(
            payload.to_instruction_data(), payload.nullifier1, payload.nullifier2, recipient, relayer, accounts
        )
        metas = ix.accounts

        assert ix.program_id == accounts.program_id
        assert ix.data == payload.to_instruction_data()
        assert [m.pubkey for m in metas] == [
            accounts.tree_account,
            derive_nullifier_address(payload.nullifier1, accounts.program_id),
            derive_nullifier_address(payload.nullifier2, accounts.program_id),
            accounts.global_config,
            accounts.pool_vault,
            relayer,
            recipient,
            accounts.fee_recipient,
            SYSTEM_PROGRAM_ID,
        ]
        assert [m.is_signer for m in metas] == [False] * 5 + [True] + [False] * 3
        assert [m.is_writable for m in metas] == [True, True, True, False, True, True, True, True, False]


class TestRelaySubmitter:
    """Tests for the submitter."""

    def test_relay_success(self, submitter, client, request_for):
        response = submitter.relay(request_for)
        assert response.success
        assert response.signature == str(Signature.default())
        assert response.error is None
        assert len(client.sent) == 1

    def test_transaction_layout(self, submitter, request_for):
        tx = submitter.build_transaction(request_for, Hash.default())
        message = tx.message
        keys = message.account_keys

        # Relayer pays the fee and is the only signer
        assert keys[0] == submitter.relayer_address
        assert message.header.num_required_signatures == 1

        compute_ix, transact_ix = message.instructions
        assert keys[compute_ix.program_id_index] == set_compute_unit_limit(1).program_id
        assert bytes(compute_ix.data) == bytes(set_compute_unit_limit(1_400_000).data)
        assert keys[transact_ix.program_id_index] == submitter.accounts.program_id

    def test_invalid_base64(self, submitter, request_for):
        bad = request_for.model_copy(update={"instruction_data_base64": "not base64!!"})
        response = submitter.relay(bad)
        assert not response.success
        assert "Invalid instruction data" in response.error

    def test_invalid_nullifier_hex(self, submitter, request_for):
        bad = request_for.model_copy(update={"nullifier1_hex": "zz"})
        with pytest.raises(InvalidRelayRequestError):
            submitter.submit(bad)

    def test_short_nullifier(self, submitter, request_for):
        bad = request_for.model_copy(update={"nullifier2_hex": "00" * 31})
        with pytest.raises(InvalidRelayRequestError):
            submitter.submit(bad)

    def test_invalid_recipient(self, submitter, request_for):
        bad = request_for.model_copy(update={"recipient_address": "not-a-pubkey"})
        response = submitter.relay(bad)
        assert not response.success
        assert "Invalid recipient" in response.error

    def test_nullifier_mismatch(self, submitter, client, request_for):
        bad = request_for.model_copy(update={"nullifier1_hex": "11" * 32})
        with pytest.raises(InvalidRelayRequestError, match="do not match"):
            submitter.submit(bad)
        assert client.sent == []

    def test_truncated_payload(self, submitter, request_for):
        bad = request_for.model_copy(update={"instruction_data_base64": base64.b64encode(b"\x00" * 10).decode()})
        with pytest.raises(InvalidRelayRequestError):
            submitter.submit(bad)

    def test_send_failure(self, accounts, request_for):
        submitter = RelaySubmitter(FakeClient(fail_send=True), Keypair(), accounts)
        response = submitter.relay(request_for)
        assert not response.success
        assert "nullifier already used" in response.error

    def test_waits_for_confirmation(self, submitter, client, request_for):
        submitter.submit(request_for)
        (opts,) = client.opts
        assert opts.skip_confirmation is False
        assert opts.preflight_commitment == Confirmed

    def test_unconfirmed_transaction(self, accounts, request_for):
        submitter = RelaySubmitter(FakeClient(unconfirmed=True), Keypair(), accounts)
        with pytest.raises(RelaySubmissionError, match="Unable to confirm"):
            submitter.submit(request_for)
        assert not submitter.relay(request_for).success

    def test_request_validated_once(self, submitter, request_for, monkeypatch):
        calls = []
        validate = submitter.validate_request

        def counting_validate(request):
            calls.append(request)
            return validate(request)

        monkeypatch.setattr(submitter, "validate_request", counting_validate)
        submitter.submit(request_for)
        assert len(calls) == 1

    def test_blockhash_failure(self, accounts, request_for):
        submitter = RelaySubmitter(FakeClient(fail_blockhash=True), Keypair(), accounts)
        with pytest.raises(RelaySubmissionError, match="blockhash"):
            submitter.submit(request_for)


class TestKeypairLoading:
    """Tests for relayer keypair files."""

    def test_load(self, tmp_path):
        keypair = Keypair()
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(keypair))))
        assert load_keypair(path).pubkey() == keypair.pubkey()

    def test_missing(self, tmp_path):
        with pytest.raises(RelayError):
            load_keypair(tmp_path / "missing.json")

    def test_malformed(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(RelayError):
            load_keypair(path)

    def test_from_settings(self, tmp_path):
        keypair = Keypair()
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(keypair))))
        submitter = RelaySubmitter.from_settings(PoolSettings(relayer_keypair_path=path, compute_unit_limit=200_000))
        assert submitter.relayer_address == keypair.pubkey()
        assert submitter.compute_unit_limit == 200_000
