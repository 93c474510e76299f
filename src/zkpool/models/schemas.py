"""Pydantic data models for notes and relay requests."""

import base64
import binascii
import secrets
import time
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from zkpool.core.utxo import Utxo
from zkpool.exceptions import InvalidEncodingError, InvalidRelayRequestError
from zkpool.utils.encoding import FIELD_ELEMENT_SIZE, field_to_str, hex_to_bytes, str_to_field


class NoteStatus(str, Enum):
    """Note lifecycle status."""
    CREATED = "created"
    DEPOSITED = "deposited"
    WITHDRAWN = "withdrawn"


def generate_note_id() -> str:
    """Unique note id of the form note_<unix millis>_<random hex>."""
    return f"note_{int(time.time() * 1000)}_{secrets.randbits(32):x}"


class NoteRecord(BaseModel):
    """Persisted note; field elements are decimal strings."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_note_id)
    amount: int = Field(..., ge=0, lt=2**64, description="Amount in lamports")
    privkey: str
    pubkey: str
    blinding: str
    commitment: str
    leaf_index: int = Field(default=-1, alias="leafIndex", description="-1 until deposited")
    status: NoteStatus = NoteStatus.CREATED
    created_at: int = Field(default_factory=lambda: int(time.time()), alias="createdAt")
    deposit_tx_signature: Optional[str] = Field(default=None, alias="depositTxSignature")
    withdraw_tx_signature: Optional[str] = Field(default=None, alias="withdrawTxSignature")

    @field_validator("privkey", "pubkey", "blinding", "commitment")
    @classmethod
    def _check_field_element(cls, value: str) -> str:
        try:
            str_to_field(value)
        except InvalidEncodingError as e:
            raise ValueError(str(e)) from e
        return value

    @classmethod
    def from_utxo(
        cls,
        utxo: Utxo,
        leaf_index: int = -1,
        status: NoteStatus = NoteStatus.CREATED,
    ) -> "NoteRecord":
        return cls(
            amount=utxo.amount,
            privkey=field_to_str(utxo.privkey),
            pubkey=field_to_str(utxo.pubkey),
            blinding=field_to_str(utxo.blinding),
            commitment=field_to_str(utxo.commitment),
            leaf_index=leaf_index,
            status=status,
        )

    def to_utxo(self) -> Utxo:
        """
        Rebuild the note; the commitment is recomputed from the components.

        Raises:
            InvalidEncodingError: If the stored commitment does not match
        """
        utxo = Utxo.from_components(self.amount, self.privkey, self.pubkey, self.blinding)
        if utxo.commitment != str_to_field(self.commitment):
            raise InvalidEncodingError(f"Stored commitment of note {self.id} does not match its components")
        return utxo

    def nullifier(self) -> int:
        """Nullifier at the recorded leaf index."""
        if self.leaf_index < 0:
            raise ValueError(f"Note {self.id} has no leaf index yet")
        return self.to_utxo().compute_nullifier(self.leaf_index)

    def mark_deposited(self, leaf_index: int, signature: Optional[str] = None) -> "NoteRecord":
        return self.model_copy(
            update={
                "status": NoteStatus.DEPOSITED,
                "leaf_index": leaf_index,
                "deposit_tx_signature": signature,
            }
        )

    def mark_withdrawn(self, signature: Optional[str] = None) -> "NoteRecord":
        return self.model_copy(update={"status": NoteStatus.WITHDRAWN, "withdraw_tx_signature": signature})

    def to_json_dict(self) -> dict:
        """Serialize with the camelCase keys of the note file."""
        return self.model_dump(mode="json", by_alias=True)


class RelayRequest(BaseModel):
    """Request to relay an already-encoded transact instruction."""

    model_config = ConfigDict(populate_by_name=True)

    instruction_data_base64: str = Field(..., alias="instructionDataBase64")
    nullifier1_hex: str = Field(..., alias="nullifier1Hex")
    nullifier2_hex: str = Field(..., alias="nullifier2Hex")
    recipient_address: str = Field(..., alias="recipientAddress", description="Base58 address")

    def instruction_data(self) -> bytes:
        """
        Decode the instruction payload.

        Raises:
            InvalidRelayRequestError: If the payload is not valid base64
        """
        try:
            return base64.b64decode(self.instruction_data_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidRelayRequestError(f"Invalid instruction data: {e}") from e

    def nullifiers(self) -> Tuple[bytes, bytes]:
        """
        Decode both nullifiers as 32-byte strings.

        Raises:
            InvalidRelayRequestError: If a nullifier is not 32 bytes of hex
        """
        decoded = []
        for name, value in (("nullifier1", self.nullifier1_hex), ("nullifier2", self.nullifier2_hex)):
            try:
                raw = hex_to_bytes(value)
            except InvalidEncodingError as e:
                raise InvalidRelayRequestError(f"Invalid {name}: {e}") from e
            if len(raw) != FIELD_ELEMENT_SIZE:
                raise InvalidRelayRequestError(f"Invalid {name}: expected {FIELD_ELEMENT_SIZE} bytes, got {len(raw)}")
            decoded.append(raw)
        return decoded[0], decoded[1]


class RelayResponse(BaseModel):
    """Relay outcome."""

    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, signature: str) -> "RelayResponse":
        return cls(success=True, signature=signature)

    @classmethod
    def failed(cls, error: str) -> "RelayResponse":
        return cls(success=False, error=error)
