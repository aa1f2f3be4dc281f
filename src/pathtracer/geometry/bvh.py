"""Bounding volume hierarchy over mesh triangles, built on the host.

The tree is built with a median split on the longest centroid axis and then
stored flat in depth-first (preorder) order. Each node stores a skip index:
the first node after its subtree. Kernels traverse the array without a
stack: on an interior-node hit continue with node + 1, otherwise (a miss, or
after testing a leaf) jump to the skip index. Traversal ends at node_count.

Triangles are reordered so that every leaf references a contiguous range.
"""

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

# Maximum triangles stored in one leaf
LEAF_SIZE = 4


@dataclass
class FlatBVH:
    """Preorder-flattened BVH arrays.

    Attributes:
        bbox_min: Node bounds minimum corners, shape (K, 3).
        bbox_max: Node bounds maximum corners, shape (K, 3).
        skip: Index of the first node after each subtree, shape (K,).
        tri_start: First triangle of a leaf in triangle_order, shape (K,).
        tri_count: Triangle count of a leaf; 0 for interior nodes, shape (K,).
        triangle_order: Permutation of the input triangle indices, shape (M,).
    """

    bbox_min: np.ndarray
    bbox_max: np.ndarray
    skip: np.ndarray
    tri_start: np.ndarray
    tri_count: np.ndarray
    triangle_order: np.ndarray

    @property
    def node_count(self) -> int:
        return len(self.skip)

    def depth(self) -> int:
        """Maximum leaf depth, for diagnostics."""
        depth = np.zeros(self.node_count, dtype=np.int64)
        best = 0
        for i in range(self.node_count):
            if self.tri_count[i] == 0:
                # Children of an interior node: i + 1, then each sibling's skip
                child = i + 1
                while child < self.skip[i]:
                    depth[child] = depth[i] + 1
                    child = self.skip[child]
            best = max(best, int(depth[i]))
        return best


def build_bvh(vertices: np.ndarray, indices: np.ndarray, leaf_size: int = LEAF_SIZE) -> FlatBVH:
    """Build a flattened BVH for an indexed triangle mesh.

    Args:
        vertices: Vertex positions, shape (N, 3).
        indices: Triangle vertex indices, shape (M, 3), M >= 1.
        leaf_size: Maximum triangles per leaf.

    Returns:
        The flattened hierarchy.
    """
    tris = vertices[indices]
    tri_min = tris.min(axis=1)
    tri_max = tris.max(axis=1)
    centroids = tris.mean(axis=1)

    bbox_min: list[np.ndarray] = []
    bbox_max: list[np.ndarray] = []
    skip: list[int] = []
    tri_start: list[int] = []
    tri_count: list[int] = []
    order: list[int] = []

    def emit(ids: np.ndarray) -> int:
        index = len(skip)
        bbox_min.append(tri_min[ids].min(axis=0))
        bbox_max.append(tri_max[ids].max(axis=0))
        skip.append(-1)
        tri_start.append(0)
        tri_count.append(0)
        return index

    # Explicit stack keeps degenerate inputs off the recursion limit
    stack: list[np.ndarray] = [np.arange(len(indices))]
    while stack:
        ids = stack.pop()
        index = emit(ids)
        if len(ids) <= leaf_size:
            tri_start[index] = len(order)
            tri_count[index] = len(ids)
            order.extend(int(i) for i in ids)
        else:
            c = centroids[ids]
            axis = int(np.argmax(c.max(axis=0) - c.min(axis=0)))
            sorted_ids = ids[np.argsort(c[:, axis], kind="stable")]
            mid = len(sorted_ids) // 2
            # Push right first so the left child is emitted at index + 1
            stack.append(sorted_ids[mid:])
            stack.append(sorted_ids[:mid])

    node_count = len(skip)
    _assign_skips(skip, tri_count, node_count)

    flat = FlatBVH(
        bbox_min=np.asarray(bbox_min, dtype=np.float32).reshape(-1, 3),
        bbox_max=np.asarray(bbox_max, dtype=np.float32).reshape(-1, 3),
        skip=np.asarray(skip, dtype=np.int32),
        tri_start=np.asarray(tri_start, dtype=np.int32),
        tri_count=np.asarray(tri_count, dtype=np.int32),
        triangle_order=np.asarray(order, dtype=np.int32),
    )
    logger.debug("built BVH: %d triangles, %d nodes", len(indices), flat.node_count)
    return flat


def _assign_skips(skip: list[int], tri_count: list[int], node_count: int) -> None:
    """Fill skip links for a preorder binary tree.

    Leaves have no children; interior nodes have exactly two. Walking the
    nodes in reverse preorder, a leaf's subtree ends right after it and an
    interior node's subtree ends where its second child's subtree ends.
    """
    for index in range(node_count - 1, -1, -1):
        if tri_count[index] > 0:
            skip[index] = index + 1
        else:
            left = index + 1
            right = skip[left]
            skip[index] = skip[right]
