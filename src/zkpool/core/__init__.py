"""Core pool logic: Merkle accumulator, notes, proof pipeline and wire encoding."""
