"""Circuit artifact loading and witness file I/O.

The transaction circuit is delivered as two opaque files produced by the
circom/snarkjs toolchain:

    - a witness-generator WebAssembly module (``.wasm``)
    - a Groth16 proving key (``.zkey``)

They are checked once at load time so that a wrong or truncated file fails
before any proof is attempted. Only the zkey header is parsed; the key
material itself is left to the proving backend.

Binary layouts (all integers little-endian):

    zkey: "zkey" | u32 version | u32 n_sections | sections...
          section = u32 type | u64 size | payload
          type 1 payload: u32 protocol (1 = groth16)
          type 2 payload: u32 n8q | q | u32 n8r | r | u32 n_vars
                          | u32 n_public | u32 domain_size | ...

    wtns: "wtns" | u32 version | u32 n_sections
          type 1 payload: u32 n8 | prime | u32 n_witness
          type 2 payload: n_witness values of n8 bytes
"""

import io
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Sequence, Tuple, Union

from zkpool.exceptions import ArtifactError, WitnessError
from zkpool.utils.encoding import BASE_FIELD_MODULUS, FIELD_MODULUS

logger = logging.getLogger(__name__)

WASM_MAGIC = b"\x00asm"
ZKEY_MAGIC = b"zkey"
WTNS_MAGIC = b"wtns"
WTNS_VERSION = 2
GROTH16_PROTOCOL_ID = 1

PathLike = Union[str, Path]


@dataclass(frozen=True)
class ZkeyHeader:
    """Groth16 proving key header."""

    base_modulus: int
    scalar_modulus: int
    n_vars: int
    n_public: int
    domain_size: int


@dataclass(frozen=True)
class Witness:
    """Full circuit assignment; index 0 is the constant 1."""

    values: Tuple[int, ...]
    prime: int = FIELD_MODULUS

    def public_signals(self, n_public: int) -> List[int]:
        """Return the ``n_public`` entries following the leading constant."""
        if len(self.values) < n_public + 1:
            raise WitnessError(
                f"Witness has {len(self.values)} values, need at least {n_public + 1}"
            )
        return list(self.values[1 : n_public + 1])

    def __len__(self) -> int:
        return len(self.values)


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise ArtifactError(f"Truncated {what}: expected {size} bytes, got {len(data)}")
    return data


def _read_u32(stream: BinaryIO, what: str) -> int:
    return struct.unpack("<I", _read_exact(stream, 4, what))[0]


def _read_u64(stream: BinaryIO, what: str) -> int:
    return struct.unpack("<Q", _read_exact(stream, 8, what))[0]


def _read_sections(stream: BinaryIO, magic: bytes, what: str) -> Dict[int, Tuple[int, int]]:
    """Return {section_type: (offset, size)} after checking the file magic."""
    found = _read_exact(stream, 4, f"{what} magic")
    if found != magic:
        raise ArtifactError(f"Not a {what} file (magic {found!r})")

    _read_u32(stream, f"{what} version")
    n_sections = _read_u32(stream, f"{what} section count")

    sections = {}
    for _ in range(n_sections):
        section_type = _read_u32(stream, f"{what} section type")
        size = _read_u64(stream, f"{what} section size")
        offset = stream.tell()
        sections.setdefault(section_type, (offset, size))
        stream.seek(offset + size)
    return sections


def read_zkey_header(path: PathLike) -> ZkeyHeader:
    """
    Parse the header of a Groth16 ``.zkey`` file.

    Raises:
        ArtifactError: If the file is missing, not a zkey, or not Groth16/BN254
    """
    path = Path(path)
    try:
        with path.open("rb") as stream:
            sections = _read_sections(stream, ZKEY_MAGIC, "zkey")

            if 1 not in sections or 2 not in sections:
                raise ArtifactError("zkey is missing its header sections")

            stream.seek(sections[1][0])
            protocol = _read_u32(stream, "zkey protocol")
            if protocol != GROTH16_PROTOCOL_ID:
                raise ArtifactError(f"zkey protocol {protocol} is not Groth16")

            stream.seek(sections[2][0])
            n8q = _read_u32(stream, "zkey n8q")
            q = int.from_bytes(_read_exact(stream, n8q, "zkey q"), "little")
            n8r = _read_u32(stream, "zkey n8r")
            r = int.from_bytes(_read_exact(stream, n8r, "zkey r"), "little")
            n_vars = _read_u32(stream, "zkey nVars")
            n_public = _read_u32(stream, "zkey nPublic")
            domain_size = _read_u32(stream, "zkey domainSize")
    except OSError as e:
        raise ArtifactError(f"Cannot read zkey {path}: {e}") from e

    if q != BASE_FIELD_MODULUS or r != FIELD_MODULUS:
        raise ArtifactError("zkey is not defined over BN254")

    return ZkeyHeader(
        base_modulus=q,
        scalar_modulus=r,
        n_vars=n_vars,
        n_public=n_public,
        domain_size=domain_size,
    )


def check_wasm(path: PathLike) -> None:
    """
    Check that a witness generator is a WebAssembly module.

    Raises:
        ArtifactError: If the file is missing or lacks the wasm magic
    """
    path = Path(path)
    try:
        with path.open("rb") as stream:
            magic = stream.read(4)
    except OSError as e:
        raise ArtifactError(f"Cannot read witness generator {path}: {e}") from e
    if magic != WASM_MAGIC:
        raise ArtifactError(f"{path} is not a WebAssembly module")


def read_witness(source: Union[PathLike, bytes]) -> Witness:
    """
    Read a ``.wtns`` witness file.

    Raises:
        WitnessError: If the witness is malformed or over the wrong field
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            return _parse_witness(io.BytesIO(source))
        with Path(source).open("rb") as stream:
            return _parse_witness(stream)
    except (ArtifactError, OSError) as e:
        raise WitnessError(f"Invalid witness file: {e}") from e


def _parse_witness(stream: BinaryIO) -> Witness:
    sections = _read_sections(stream, WTNS_MAGIC, "wtns")
    if 1 not in sections or 2 not in sections:
        raise ArtifactError("wtns is missing its sections")

    stream.seek(sections[1][0])
    n8 = _read_u32(stream, "wtns n8")
    prime = int.from_bytes(_read_exact(stream, n8, "wtns prime"), "little")
    n_witness = _read_u32(stream, "wtns count")
    if prime != FIELD_MODULUS:
        raise ArtifactError("wtns is not over the BN254 scalar field")

    offset, size = sections[2]
    if size != n8 * n_witness:
        raise ArtifactError(f"wtns data section is {size} bytes, expected {n8 * n_witness}")

    stream.seek(offset)
    data = _read_exact(stream, size, "wtns values")
    values = tuple(int.from_bytes(data[i : i + n8], "little") for i in range(0, size, n8))
    return Witness(values=values, prime=prime)


def write_witness(values: Sequence[int], path: PathLike, prime: int = FIELD_MODULUS) -> None:
    """Write an assignment as a ``.wtns`` file readable by snarkjs."""
    n8 = ((prime.bit_length() - 1) // 64 + 1) * 8
    header = struct.pack("<I", n8) + prime.to_bytes(n8, "little") + struct.pack("<I", len(values))
    body = b"".join((value % prime).to_bytes(n8, "little") for value in values)

    with Path(path).open("wb") as stream:
        stream.write(WTNS_MAGIC)
        stream.write(struct.pack("<II", WTNS_VERSION, 2))
        stream.write(struct.pack("<IQ", 1, len(header)))
        stream.write(header)
        stream.write(struct.pack("<IQ", 2, len(body)))
        stream.write(body)


@dataclass(frozen=True)
class CircuitArtifacts:
    """Validated locations of the witness generator and proving key."""

    wasm_path: Path
    zkey_path: Path
    header: ZkeyHeader

    @classmethod
    def load(cls, wasm_path: PathLike, zkey_path: PathLike) -> "CircuitArtifacts":
        """
        Validate both artifacts once.

        Raises:
            ArtifactError: If either artifact is missing or malformed
        """
        wasm_path = Path(wasm_path)
        zkey_path = Path(zkey_path)
        check_wasm(wasm_path)
        header = read_zkey_header(zkey_path)
        logger.info(
            f"Loaded circuit artifacts: {zkey_path.name} "
            f"(vars={header.n_vars}, public={header.n_public}, domain={header.domain_size})"
        )
        return cls(wasm_path=wasm_path, zkey_path=zkey_path, header=header)
