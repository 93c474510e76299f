"""Custom exceptions for the shielded pool core."""


class ZKPoolException(Exception):
    """Base exception for all shielded pool errors."""
    pass


# Cryptography Errors
class CryptoError(ZKPoolException):
    """Base exception for cryptographic errors."""
    pass


class InvalidEncodingError(CryptoError, ValueError):
    """Raised when field-element text or bytes are malformed."""
    pass


class HashConfigurationError(CryptoError):
    """Raised when a Poseidon hasher is requested for an unsupported arity."""
    pass


# Merkle Tree Errors
class MerkleTreeError(ZKPoolException):
    """Base exception for Merkle tree errors."""
    pass


class TreeLookupMissError(MerkleTreeError):
    """Raised when a commitment is not among the known leaves."""
    pass


class TreeFullError(MerkleTreeError):
    """Raised when the tree has no capacity left."""
    pass


class InvalidLeafIndexError(MerkleTreeError):
    """Raised when leaf index is negative or beyond capacity."""
    pass


# Proof Errors
class ProofError(ZKPoolException):
    """Base exception for proof-related errors."""
    pass


class ArtifactError(ProofError):
    """Raised when a circuit artifact is missing or malformed."""
    pass


class WitnessError(ProofError):
    """Raised when the witness evaluator rejects the circuit inputs."""
    pass


class ProvingError(ProofError):
    """Raised when proof generation fails."""
    pass


class AmountOverflowError(ProofError):
    """Raised when a decoded public amount does not fit a signed 64-bit integer."""
    pass


class WireEncodingError(ProofError):
    """Raised when an instruction payload has the wrong shape."""
    pass


# Relay Errors
class RelayError(ZKPoolException):
    """Base exception for relay errors."""
    pass


class InvalidRelayRequestError(RelayError):
    """Raised when a relay request cannot be decoded."""
    pass


class RelaySubmissionError(RelayError):
    """Raised when the relayed transaction is rejected by the cluster."""
    pass
