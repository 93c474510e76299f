"""Field encoding and hashing helpers."""
