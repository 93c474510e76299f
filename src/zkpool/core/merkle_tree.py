"""Merkle accumulator for note commitments.

Fixed-height (26) append-only binary tree over field elements, hashed with
Poseidon. Missing right siblings are padded with precomputed zero-subtree
hashes, so the root is a pure function of the leaf sequence and the height:

    zero[0] = 0
    zero[i] = Poseidon(zero[i-1], zero[i-1])
    node(k+1, i) = Poseidon(node(k, 2i), node(k, 2i+1) or zero[k])

Two views of the same accumulator are provided:

    - MerkleTree keeps every live node, so it can hand out authentication
      paths for any leaf. Insertion touches only the O(H) affected nodes.
    - MerkleFrontier keeps only the rightmost filled subtree per level and a
      ring buffer of recent roots, mirroring the on-chain tree account.

Neither class is thread-safe; a single owner must serialize inserts and reads.

Example:
    >>> tree = MerkleTree(tree_height=4)
    >>> tree.insert_many([1, 2])
    >>> path = tree.get_path(0)
    >>> path.compute_root(1) == tree.root
    True
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from zkpool.exceptions import (
    InvalidLeafIndexError,
    TreeFullError,
    TreeLookupMissError,
)
from zkpool.utils.encoding import to_field
from zkpool.utils.hash import merkle_hash

logger = logging.getLogger(__name__)

MERKLE_TREE_HEIGHT = 26
ROOT_HISTORY_SIZE = 30
MAX_TREE_HEIGHT = 64

_zero_cache: Dict[int, List[int]] = {}


def zero_hashes(height: int) -> List[int]:
    """
    Return the height+1 empty-subtree hashes for a tree height.

    Args:
        height: Tree height

    Returns:
        List[int]: zero[0..height], zero[0] = 0
    """
    cached = _zero_cache.get(height)
    if cached is None:
        # Prefixes of a taller table are valid for a shorter tree
        for known_height, known in _zero_cache.items():
            if known_height >= height:
                cached = known[: height + 1]
                break
    if cached is None:
        cached = [0]
        for _ in range(height):
            cached.append(merkle_hash(cached[-1], cached[-1]))
        _zero_cache[height] = cached
    return list(cached)


@dataclass(frozen=True)
class MerklePath:
    """Authentication path for one leaf position."""

    leaf_index: int
    path_elements: Tuple[int, ...]  # sibling per level, bottom-up
    path_indices: Tuple[int, ...]  # 0 = node is left child, 1 = right child

    @property
    def height(self) -> int:
        return len(self.path_elements)

    @property
    def packed_indices(self) -> int:
        """Direction bits packed as an integer (bit k = level k)."""
        return sum(bit << level for level, bit in enumerate(self.path_indices))

    def compute_root(self, leaf: int) -> int:
        """Fold the leaf up the path and return the resulting root."""
        current = to_field(leaf)
        for sibling, direction in zip(self.path_elements, self.path_indices):
            if direction:
                current = merkle_hash(sibling, current)
            else:
                current = merkle_hash(current, sibling)
        return current

    @classmethod
    def empty(cls, height: int) -> "MerklePath":
        """All-zero path at index 0, used for unused input slots."""
        return cls(leaf_index=0, path_elements=(0,) * height, path_indices=(0,) * height)


class MerkleTree:
    """
    Append-only Merkle tree that retains all live nodes.

    ``layers[0]`` holds the leaves; ``layers[k]`` holds the ceil(n / 2^k) live
    nodes of level k; ``layers[height]`` holds the root once a leaf exists.
    """

    def __init__(self, tree_height: int = MERKLE_TREE_HEIGHT):
        """
        Initialize empty Merkle tree.

        Args:
            tree_height: Height of the tree (default 26)

        Raises:
            ValueError: If height is invalid
        """
        if tree_height < 1 or tree_height > MAX_TREE_HEIGHT:
            raise ValueError(f"Tree height must be between 1 and {MAX_TREE_HEIGHT}")

        self.height = tree_height
        self.max_leaves = 2**tree_height
        self.zeros = zero_hashes(tree_height)
        self._layers: List[List[int]] = [[] for _ in range(tree_height + 1)]

    @classmethod
    def from_leaves(cls, leaves: Iterable[int], tree_height: int = MERKLE_TREE_HEIGHT) -> "MerkleTree":
        """Build a tree from an ordered commitment list."""
        tree = cls(tree_height)
        tree.insert_many(leaves)
        return tree

    @property
    def leaves(self) -> List[int]:
        return list(self._layers[0])

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and return its index.

        Raises:
            TreeFullError: If the tree is at capacity
        """
        start = len(self._layers[0])
        self.insert_many([leaf])
        return start

    def insert_many(self, leaves: Iterable[int]) -> None:
        """
        Append leaves in order and update every affected node.

        Raises:
            TreeFullError: If the leaves do not fit
        """
        new_leaves = [to_field(leaf) for leaf in leaves]
        if not new_leaves:
            return

        start = len(self._layers[0])
        if start + len(new_leaves) > self.max_leaves:
            raise TreeFullError(f"Tree is full (max {self.max_leaves} commitments)")

        self._layers[0].extend(new_leaves)
        self._update_from(start)
        logger.debug(f"Inserted {len(new_leaves)} leaves at {start}, root={self.root}")

    def _update_from(self, start: int) -> None:
        """Recompute parents of every node at or after ``start`` on level 0."""
        first = start
        for level in range(self.height):
            current = self._layers[level]
            parents = self._layers[level + 1]
            first_parent = first // 2
            del parents[first_parent:]

            for i in range(first_parent * 2, len(current), 2):
                left = current[i]
                right = current[i + 1] if i + 1 < len(current) else self.zeros[level]
                parents.append(merkle_hash(left, right))

            first = first_parent

    @property
    def root(self) -> int:
        """Current root, or zero[height] for the empty tree."""
        top = self._layers[self.height]
        if not top:
            return self.zeros[self.height]
        return top[0]

    def get_path(self, leaf_index: int) -> MerklePath:
        """
        Return the authentication path for a leaf position.

        Positions past the last leaf still get a structurally valid path: any
        sibling that does not exist resolves to the zero hash of its level.

        Raises:
            InvalidLeafIndexError: If the index is negative or beyond capacity
        """
        if leaf_index < 0 or leaf_index >= self.max_leaves:
            raise InvalidLeafIndexError(f"Invalid leaf index: {leaf_index}")

        elements = []
        indices = []
        position = leaf_index

        for level in range(self.height):
            sibling_position = position ^ 1
            layer = self._layers[level]
            if sibling_position < len(layer):
                elements.append(layer[sibling_position])
            else:
                elements.append(self.zeros[level])
            indices.append(position & 1)
            position //= 2

        return MerklePath(
            leaf_index=leaf_index,
            path_elements=tuple(elements),
            path_indices=tuple(indices),
        )

    def verify_path(self, leaf: int, path: MerklePath, root: Optional[int] = None) -> bool:
        """Check that a leaf and path fold to ``root`` (default: current root)."""
        if path.height != self.height:
            return False
        expected = self.root if root is None else root
        return path.compute_root(leaf) == expected

    def index_of(self, commitment: int) -> int:
        """
        Find the position of a commitment.

        Raises:
            TreeLookupMissError: If the commitment is not a known leaf
        """
        try:
            return self._layers[0].index(to_field(commitment))
        except ValueError:
            raise TreeLookupMissError(f"Commitment {commitment} not found in tree") from None

    def get_state(self) -> dict:
        """
        Get the current state of the tree for serialization.

        Returns:
            dict: Tree state including leaves, height, and root
        """
        return {
            "height": self.height,
            "max_leaves": self.max_leaves,
            "num_leaves": len(self),
            "leaves": [str(leaf) for leaf in self._layers[0]],
            "root": str(self.root),
        }

    def __len__(self) -> int:
        """Return the number of leaves in the tree."""
        return len(self._layers[0])

    def __repr__(self) -> str:
        return (
            f"MerkleTree(height={self.height}, "
            f"leaves={len(self)}/{self.max_leaves}, "
            f"root={str(self.root)[:16]}...)"
        )


class MerkleFrontier:
    """
    Incremental accumulator holding O(height) state.

    Produces the same roots as MerkleTree without retaining the leaves. Keeps
    the last ROOT_HISTORY_SIZE roots so a proof built against a slightly
    stale root can still be recognised.
    """

    def __init__(self, tree_height: int = MERKLE_TREE_HEIGHT, history_size: int = ROOT_HISTORY_SIZE):
        if tree_height < 1 or tree_height > MAX_TREE_HEIGHT:
            raise ValueError(f"Tree height must be between 1 and {MAX_TREE_HEIGHT}")
        if history_size < 1:
            raise ValueError("Root history size must be positive")

        self.height = tree_height
        self.max_leaves = 2**tree_height
        self.zeros = zero_hashes(tree_height)
        self.filled_subtrees: List[int] = self.zeros[:tree_height]
        self.next_index = 0
        self.root_index = 0
        self.root_history: List[int] = [0] * history_size
        self.root_history[0] = self.zeros[tree_height]

    def insert(self, leaf: int) -> Tuple[int, int]:
        """
        Insert a leaf, returning (leaf_index, new_root).

        Raises:
            TreeFullError: If the tree is at capacity
        """
        index = self.next_index
        if index >= self.max_leaves:
            raise TreeFullError(f"Tree is full (max {self.max_leaves} commitments)")

        current = to_field(leaf)
        position = index
        for level in range(self.height):
            if position % 2 == 0:
                self.filled_subtrees[level] = current
                current = merkle_hash(current, self.zeros[level])
            else:
                current = merkle_hash(self.filled_subtrees[level], current)
            position //= 2

        self.root_index = (self.root_index + 1) % len(self.root_history)
        self.root_history[self.root_index] = current
        self.next_index += 1
        return index, current

    @property
    def root(self) -> int:
        return self.root_history[self.root_index]

    def is_known_root(self, root: int) -> bool:
        """True if ``root`` is one of the recent roots (zero is never known)."""
        if root == 0:
            return False
        return root in self.root_history

    def __len__(self) -> int:
        return self.next_index

    def __repr__(self) -> str:
        return f"MerkleFrontier(height={self.height}, leaves={self.next_index}/{self.max_leaves})"
