"""Tests for the Merkle accumulator."""

import pytest

from zkpool.core.merkle_tree import (
    MERKLE_TREE_HEIGHT,
    MerkleFrontier,
    MerklePath,
    MerkleTree,
    zero_hashes,
)
from zkpool.exceptions import (
    InvalidLeafIndexError,
    TreeFullError,
    TreeLookupMissError,
)
from zkpool.utils.hash import hash2


def full_rebuild_root(leaves, height):
    """Reference root: rebuild every level from scratch."""
    zeros = zero_hashes(height)
    level = list(leaves)
    for k in range(height):
        if not level:
            level = [zeros[k + 1]]
            continue
        level = [
            hash2(level[i], level[i + 1] if i + 1 < len(level) else zeros[k])
            for i in range(0, len(level), 2)
        ]
    return level[0]


@pytest.fixture
def merkle_tree():
    """Create a small test Merkle tree."""
    return MerkleTree(tree_height=4)


class TestZeroHashes:
    """Tests for empty-subtree hashes."""

    def test_recurrence(self):
        zeros = zero_hashes(6)
        assert len(zeros) == 7
        assert zeros[0] == 0
        for i in range(1, 7):
            assert zeros[i] == hash2(zeros[i - 1], zeros[i - 1])

    def test_prefix_of_taller_table(self):
        assert zero_hashes(3) == zero_hashes(8)[:4]


class TestMerkleTreeInitialization:
    """Tests for tree initialization."""

    def test_tree_creation_default(self):
        tree = MerkleTree()
        assert tree.height == MERKLE_TREE_HEIGHT == 26
        assert len(tree) == 0

    def test_tree_creation_custom_height(self):
        for height in [1, 4, 8]:
            tree = MerkleTree(tree_height=height)
            assert tree.height == height
            assert tree.max_leaves == 2**height

    def test_tree_invalid_height(self):
        with pytest.raises(ValueError):
            MerkleTree(tree_height=0)
        with pytest.raises(ValueError):
            MerkleTree(tree_height=-1)
        with pytest.raises(ValueError):
            MerkleTree(tree_height=100)

    def test_empty_root_is_top_zero_hash(self):
        for height in [1, 4, 26]:
            assert MerkleTree(height).root == zero_hashes(height)[height]


class TestMerkleTreeInsertion:
    """Tests for leaf insertion."""

    def test_insert_returns_index(self, merkle_tree):
        assert merkle_tree.insert(10) == 0
        assert merkle_tree.insert(20) == 1
        assert len(merkle_tree) == 2
        assert merkle_tree.leaves == [10, 20]

    def test_insert_changes_root(self, merkle_tree):
        empty_root = merkle_tree.root
        merkle_tree.insert(1)
        assert merkle_tree.root != empty_root

    def test_single_leaf_root(self):
        tree = MerkleTree(tree_height=1)
        tree.insert(5)
        assert tree.root == hash2(5, 0)

    def test_incremental_matches_full_rebuild(self, merkle_tree):
        leaves = [3, 1, 4, 1, 5, 9, 2, 6, 5]
        for i, leaf in enumerate(leaves):
            merkle_tree.insert(leaf)
            assert merkle_tree.root == full_rebuild_root(leaves[: i + 1], 4)

    def test_insert_many_matches_sequential(self):
        leaves = list(range(1, 12))
        batch = MerkleTree.from_leaves(leaves, tree_height=4)
        sequential = MerkleTree(tree_height=4)
        for leaf in leaves:
            sequential.insert(leaf)
        assert batch.root == sequential.root

    def test_insertion_order_matters(self):
        assert MerkleTree.from_leaves([1, 2], 4).root != MerkleTree.from_leaves([2, 1], 4).root

    def test_tree_full(self):
        tree = MerkleTree.from_leaves([1, 2], tree_height=1)
        with pytest.raises(TreeFullError):
            tree.insert(3)
        assert len(tree) == 2

    def test_insert_many_too_many(self):
        tree = MerkleTree(tree_height=2)
        with pytest.raises(TreeFullError):
            tree.insert_many([1, 2, 3, 4, 5])
        assert len(tree) == 0

    def test_insert_many_empty(self, merkle_tree):
        root = merkle_tree.root
        merkle_tree.insert_many([])
        assert merkle_tree.root == root


class TestMerklePaths:
    """Tests for authentication paths."""

    def test_two_leaf_scenario(self):
        tree = MerkleTree.from_leaves([1, 2], tree_height=4)
        zeros = zero_hashes(4)
        path = tree.get_path(0)
        assert path.height == 4
        assert path.path_elements == (2, zeros[1], zeros[2], zeros[3])
        assert path.path_indices == (0, 0, 0, 0)

    def test_right_child_direction(self):
        tree = MerkleTree.from_leaves([1, 2], tree_height=4)
        path = tree.get_path(1)
        assert path.path_elements[0] == 1
        assert path.path_indices[0] == 1

    def test_every_path_folds_to_root(self):
        leaves = [11, 22, 33, 44, 55]
        tree = MerkleTree.from_leaves(leaves, tree_height=4)
        for i, leaf in enumerate(leaves):
            path = tree.get_path(i)
            assert path.compute_root(leaf) == tree.root
            assert tree.verify_path(leaf, path)

    def test_wrong_leaf_fails_verification(self):
        tree = MerkleTree.from_leaves([11, 22], tree_height=4)
        assert not tree.verify_path(99, tree.get_path(0))

    def test_verify_against_old_root(self):
        tree = MerkleTree.from_leaves([11], tree_height=4)
        old_root = tree.root
        path = tree.get_path(0)
        tree.insert(22)
        assert tree.verify_path(11, path, root=old_root)
        assert not tree.verify_path(11, path)

    def test_path_beyond_leaf_count_uses_zero_hashes(self):
        tree = MerkleTree(tree_height=4)
        zeros = zero_hashes(4)
        path = tree.get_path(6)
        assert path.path_elements == (zeros[0], zeros[1], zeros[2], zeros[3])
        assert path.path_indices == (0, 1, 1, 0)

    def test_packed_indices_equal_leaf_index(self):
        tree = MerkleTree.from_leaves(range(1, 14), tree_height=4)
        for i in range(13):
            assert tree.get_path(i).packed_indices == i

    @pytest.mark.parametrize("index", [-1, 16, 100])
    def test_invalid_index(self, merkle_tree, index):
        with pytest.raises(InvalidLeafIndexError):
            merkle_tree.get_path(index)

    def test_empty_path(self):
        path = MerklePath.empty(26)
        assert path.path_elements == (0,) * 26
        assert path.packed_indices == 0


class TestCommitmentLookup:
    """Tests for commitment lookup."""

    def test_index_of(self):
        tree = MerkleTree.from_leaves([7, 8, 9], tree_height=4)
        assert tree.index_of(9) == 2

    def test_index_of_missing(self):
        tree = MerkleTree.from_leaves([7, 8, 9], tree_height=4)
        with pytest.raises(TreeLookupMissError):
            tree.index_of(10)

    def test_get_state(self):
        tree = MerkleTree.from_leaves([7, 8], tree_height=4)
        state = tree.get_state()
        assert state["num_leaves"] == 2
        assert state["leaves"] == ["7", "8"]
        assert state["root"] == str(tree.root)


class TestMerkleFrontier:
    """Tests for the incremental frontier."""

    def test_empty_root(self):
        frontier = MerkleFrontier(tree_height=4)
        assert frontier.root == MerkleTree(4).root

    def test_matches_full_tree(self):
        frontier = MerkleFrontier(tree_height=4)
        tree = MerkleTree(tree_height=4)
        for leaf in [5, 6, 7, 8, 9, 10, 11]:
            index, root = frontier.insert(leaf)
            assert index == tree.insert(leaf)
            assert root == tree.root == frontier.root

    def test_full(self):
        frontier = MerkleFrontier(tree_height=2)
        for leaf in range(4):
            frontier.insert(leaf + 1)
        with pytest.raises(TreeFullError):
            frontier.insert(99)
        assert len(frontier) == 4

    def test_root_history(self):
        frontier = MerkleFrontier(tree_height=4, history_size=3)
        roots = [frontier.insert(leaf)[1] for leaf in [1, 2, 3, 4]]
        assert frontier.is_known_root(roots[-1])
        assert frontier.is_known_root(roots[-2])
        assert frontier.is_known_root(roots[-3])
        assert not frontier.is_known_root(roots[0])

    def test_zero_root_never_known(self):
        frontier = MerkleFrontier(tree_height=4)
        assert not frontier.is_known_root(0)

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            MerkleFrontier(tree_height=0)
        with pytest.raises(ValueError):
            MerkleFrontier(tree_height=4, history_size=0)
