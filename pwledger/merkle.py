"""
PWLedger - Merkle Tree

Fixed-depth Merkle tree over account leaf hashes.

A tree of depth d has 2**d leaf slots. Unset leaves hold ZERO_HASH and
an empty subtree at level k holds the hash of two empty subtrees at
level k-1, so only the nodes on paths to set leaves are stored.

Nodes are addressed by (level, index): level 0 is the leaves, level d
is the root, and the parent of (k, i) is (k + 1, i // 2). A witness is
the list of siblings met while walking that index up to the root.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

from . import crypto
from .errors import ValidationError


@dataclass(frozen=True)
class Witness:
    """
    Inclusion witness for one slot.

    path[k] is (sibling_hash, is_left) at level k, where is_left says
    whether the node on the path is the left child.
    """
    path: Tuple[Tuple[bytes, bool], ...]

    def __post_init__(self) -> None:
        if not 1 <= len(self.path) <= crypto.MAX_TREE_DEPTH:
            raise ValidationError(f"witness length must be 1..{crypto.MAX_TREE_DEPTH}")
        for sibling, _ in self.path:
            if len(sibling) != crypto.HASH_SIZE:
                raise ValidationError(f"sibling hashes must be {crypto.HASH_SIZE} bytes")

    @property
    def depth(self) -> int:
        return len(self.path)

    def calculate_root(self, leaf_hash: bytes) -> bytes:
        """Replay the path from leaf_hash up to the root it implies."""
        node = leaf_hash
        for sibling, is_left in self.path:
            if is_left:
                node = crypto.hash_pair(node, sibling)
            else:
                node = crypto.hash_pair(sibling, node)
        return node

    def calculate_index(self) -> int:
        """Slot this witness was built for."""
        index = 0
        for level, (_, is_left) in enumerate(self.path):
            if not is_left:
                index |= 1 << level
        return index


class MerkleTree:
    """
    A sparse fixed-depth Merkle tree using SHA-256.

    Usage:
        tree = MerkleTree(8)
        tree.set_leaf(0, account.hash())
        root = tree.get_root()
        witness = tree.witness(0)
        assert witness.calculate_root(account.hash()) == root
    """

    def __init__(self, depth: int = crypto.DEFAULT_TREE_DEPTH) -> None:
        if not 1 <= depth <= crypto.MAX_TREE_DEPTH:
            raise ValidationError(f"depth must be 1..{crypto.MAX_TREE_DEPTH}")
        self.depth = depth
        self._nodes: List[Dict[int, bytes]] = [{} for _ in range(depth + 1)]

        # Hash of an empty subtree at each level
        self._zeros: List[bytes] = [crypto.ZERO_HASH]
        for _ in range(depth):
            self._zeros.append(crypto.hash_pair(self._zeros[-1], self._zeros[-1]))

    @property
    def leaf_count(self) -> int:
        """Capacity: number of leaf slots."""
        return 1 << self.depth

    def get_root(self) -> bytes:
        return self._node(self.depth, 0)

    def get_leaf(self, slot: int) -> bytes:
        self._check_slot(slot)
        return self._node(0, slot)

    def set_leaf(self, slot: int, leaf_hash: bytes) -> None:
        """Replace one leaf and rehash its path to the root."""
        self._check_slot(slot)
        if len(leaf_hash) != crypto.HASH_SIZE:
            raise ValidationError(f"leaf hash must be {crypto.HASH_SIZE} bytes")

        self._nodes[0][slot] = leaf_hash
        index = slot
        for level in range(self.depth):
            parent = index // 2
            left = self._node(level, parent * 2)
            right = self._node(level, parent * 2 + 1)
            self._nodes[level + 1][parent] = crypto.hash_pair(left, right)
            index = parent

    def witness(self, slot: int) -> Witness:
        """Build the inclusion witness for a slot from the current tree."""
        self._check_slot(slot)
        path: List[Tuple[bytes, bool]] = []
        index = slot
        for level in range(self.depth):
            is_left = index % 2 == 0
            sibling = index + 1 if is_left else index - 1
            path.append((self._node(level, sibling), is_left))
            index //= 2
        return Witness(tuple(path))

    def _node(self, level: int, index: int) -> bytes:
        return self._nodes[level].get(index, self._zeros[level])

    def _check_slot(self, slot: int) -> None:
        if not 0 <= slot < self.leaf_count:
            raise ValidationError(f"slot {slot} outside tree of {self.leaf_count} leaves")
