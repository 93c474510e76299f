"""Field element encoding and decoding utilities.

All values handled by the pool live in the BN254 scalar field. They are kept
as plain ``int`` values reduced modulo ``FIELD_MODULUS``; this module owns the
conversions to and from decimal text and fixed-width byte strings.
"""

import secrets
from typing import Union

from zkpool.exceptions import InvalidEncodingError

# BN254 scalar field (circuit arithmetic, hashing)
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# BN254 base field (curve point coordinates)
BASE_FIELD_MODULUS = 21888242871839275222246405745257275088696311157297823662689037894645226208583

FIELD_ELEMENT_SIZE = 32  # bytes
RANDOM_ELEMENT_SIZE = 31  # bytes, always below the modulus


def bytes_to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string.

    Args:
        data: Bytes to convert

    Returns:
        str: Hexadecimal string with '0x' prefix
    """
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hexadecimal string to bytes.

    Args:
        hex_str: Hexadecimal string (with or without '0x' prefix)

    Returns:
        bytes: Decoded bytes

    Raises:
        InvalidEncodingError: If hex string is invalid
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]

    if len(hex_str) % 2 != 0:
        raise InvalidEncodingError("Hex string must have even number of characters")

    try:
        return bytes.fromhex(hex_str)
    except ValueError as e:
        raise InvalidEncodingError(f"Invalid hex string: {e}") from e


def to_field(value: int) -> int:
    """Reduce an integer into the scalar field."""
    return value % FIELD_MODULUS


def str_to_field(text: str) -> int:
    """
    Parse a decimal string into a field element.

    Values at or above the modulus are reduced, matching how the circuit
    tooling treats oversized inputs.

    Args:
        text: Unsigned decimal string

    Returns:
        int: Field element

    Raises:
        InvalidEncodingError: If the text is not an unsigned decimal number
    """
    if not isinstance(text, str) or not text or not text.isascii() or not text.isdigit():
        raise InvalidEncodingError(f"Invalid field element string: {text!r}")
    return int(text) % FIELD_MODULUS


def field_to_str(value: int) -> str:
    """Render a field element as its canonical decimal string."""
    return str(to_field(value))


def field_to_be_bytes(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return to_field(value).to_bytes(FIELD_ELEMENT_SIZE, byteorder="big")


def field_to_le_bytes(value: int) -> bytes:
    """Encode a field element as 32 little-endian bytes."""
    return to_field(value).to_bytes(FIELD_ELEMENT_SIZE, byteorder="little")


def _check_width(data: bytes) -> None:
    if not isinstance(data, (bytes, bytearray)) or len(data) != FIELD_ELEMENT_SIZE:
        raise InvalidEncodingError(f"Field element encoding must be {FIELD_ELEMENT_SIZE} bytes")


def be_bytes_to_field(data: bytes) -> int:
    """
    Decode 32 big-endian bytes into a field element (reduced mod r).

    Raises:
        InvalidEncodingError: If the input is not exactly 32 bytes
    """
    _check_width(data)
    return int.from_bytes(data, byteorder="big") % FIELD_MODULUS


def le_bytes_to_field(data: bytes) -> int:
    """
    Decode 32 little-endian bytes into a field element (reduced mod r).

    Raises:
        InvalidEncodingError: If the input is not exactly 32 bytes
    """
    _check_width(data)
    return int.from_bytes(data, byteorder="little") % FIELD_MODULUS


def random_field_element() -> int:
    """
    Draw a uniformly random field element for keys and blindings.

    Only 248 bits are drawn so the value is below the modulus without
    rejection sampling.
    """
    return int.from_bytes(secrets.token_bytes(RANDOM_ELEMENT_SIZE), byteorder="little")


def ensure_field(value: Union[int, str]) -> int:
    """Accept a field element as ``int`` or decimal string."""
    if isinstance(value, bool):
        raise InvalidEncodingError("Boolean is not a field element")
    if isinstance(value, int):
        return to_field(value)
    if isinstance(value, str):
        return str_to_field(value)
    raise InvalidEncodingError(f"Expected int or decimal str, got {type(value)}")


def signed_to_field(value: int) -> int:
    """Map a signed integer onto the field (negative values wrap to r - |v|)."""
    return value % FIELD_MODULUS


def field_to_signed(value: int) -> int:
    """Interpret a field element as signed: values above r/2 are negative."""
    value = to_field(value)
    if value > FIELD_MODULUS // 2:
        return value - FIELD_MODULUS
    return value
