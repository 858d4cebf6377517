"""
Cluster trees are binary trees over a set of points. Each node owns a
contiguous range ``[lo, hi)`` of a permutation of the points, chosen so that
the points of every node are spatially close to each other; the leaves are the
smallest groups, and the blocks of an :class:`hmatrices.HMatrix` are indexed by
pairs of nodes.

The way a node is split in two is controlled by a *splitter*:

- :class:`CardinalitySplitter` halves the points by count along the longest
  axis of the node's bounding box,
- :class:`DyadicSplitter` bisects the bounding box at its midpoint,
- :class:`GeometricSplitter` splits at the median coordinate, and
- :class:`GeometricMinimalSplitter` picks the axis whose median split gives
  the smallest total volume for the two children.

A tree is built once and is then shared, read-only, by every hierarchical
matrix that uses it:

.. code-block:: python

    tree = ClusterTree(points, DyadicSplitter(nmax=32))
    tree.loc2glob  # the permutation from clustered to original order
"""

from __future__ import annotations

__all__ = [
    "ClusterTree",
    "build_cluster_tree",
    "Splitter",
    "CardinalitySplitter",
    "DyadicSplitter",
    "GeometricSplitter",
    "GeometricMinimalSplitter",
]

import logging
import weakref
from abc import abstractmethod
from collections.abc import Iterator

import equinox as eqx
import numpy as np

from hmatrices.errors import ConfigurationError
from hmatrices.geometry import HyperRectangle

logger = logging.getLogger(__name__)


class Splitter(eqx.Module):
    """The base class for the node splitting strategies

    Args:
        nmax: Nodes with at most this many points are not split.
        max_depth: Nodes at this depth are not split, whatever their size.
    """

    nmax: int = eqx.field(static=True, default=32)
    max_depth: int = eqx.field(static=True, default=64)

    def __check_init__(self) -> None:
        if self.nmax < 1:
            raise ConfigurationError(f"nmax must be positive; got {self.nmax}")
        if self.max_depth < 0:
            raise ConfigurationError(
                f"max_depth must be non-negative; got {self.max_depth}"
            )

    def should_split(self, node: ClusterTree) -> bool:
        return len(node) > self.nmax and node.depth < self.max_depth

    @abstractmethod
    def left_mask(self, points: np.ndarray, container: HyperRectangle) -> np.ndarray:
        """Select the points that belong to the first child

        Args:
            points (n, d): The coordinates of the node's points.
            container: The bounding box of the node.

        Returns:
            A boolean array of length ``n``.
        """
        raise NotImplementedError


class CardinalitySplitter(Splitter):
    """Halve a node by count along the longest axis of its bounding box"""

    def left_mask(self, points: np.ndarray, container: HyperRectangle) -> np.ndarray:
        axis = int(np.argmax(container.widths))
        order = np.argsort(points[:, axis], kind="stable")
        mask = np.zeros(len(points), dtype=bool)
        mask[order[: len(points) // 2]] = True
        return mask


class DyadicSplitter(Splitter):
    """Bisect the bounding box at its midpoint along its longest axis"""

    def left_mask(self, points: np.ndarray, container: HyperRectangle) -> np.ndarray:
        axis = int(np.argmax(container.widths))
        return points[:, axis] < container.center[axis]


def _median_mask(coords: np.ndarray) -> np.ndarray:
    median = np.median(coords)
    mask = coords <= median
    if np.all(mask):
        mask = coords < median
    return mask


class GeometricSplitter(Splitter):
    """Split at the median coordinate along the longest bounding box axis"""

    def left_mask(self, points: np.ndarray, container: HyperRectangle) -> np.ndarray:
        axis = int(np.argmax(container.widths))
        return _median_mask(points[:, axis])


class GeometricMinimalSplitter(Splitter):
    """Split at the median along the axis minimizing the children's volume

    Every axis is tried in turn and the split that minimizes the sum of the
    volumes of the two children's bounding boxes is kept. Ties go to the
    smallest axis.
    """

    def left_mask(self, points: np.ndarray, container: HyperRectangle) -> np.ndarray:
        best = None
        best_volume = np.inf
        for axis in range(points.shape[1]):
            mask = _median_mask(points[:, axis])
            if np.all(mask) or not np.any(mask):
                continue
            volume = (
                HyperRectangle.from_points(points[mask]).volume
                + HyperRectangle.from_points(points[~mask]).volume
            )
            if volume < best_volume:
                best, best_volume = mask, volume
        if best is None:
            return np.zeros(len(points), dtype=bool)
        return best


class _TreeData:
    # Data shared by all of the nodes of one tree
    def __init__(self, points: np.ndarray):
        self.points = points
        self.loc2glob = np.arange(len(points))
        self.glob2loc: np.ndarray | None = None

    def freeze(self) -> None:
        self.glob2loc = np.empty_like(self.loc2glob)
        self.glob2loc[self.loc2glob] = np.arange(len(self.loc2glob))
        self.loc2glob.flags.writeable = False
        self.glob2loc.flags.writeable = False


class ClusterTree:
    """A node of a binary cluster tree

    Calling the constructor with a set of points builds the full tree and
    returns its root. The children of a node are owned by that node; the link
    back to the parent is a weak reference that is only used for lookups.

    Args:
        points (n, d) or (n,): The coordinates of the points to cluster.
        splitter: The strategy used to split the nodes. Defaults to a
            :class:`CardinalitySplitter` with its default ``nmax``.
    """

    def __init__(self, points: np.ndarray, splitter: Splitter | None = None):
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            points = points[:, None]
        if points.ndim != 2:
            raise ConfigurationError(
                "The points of a ClusterTree must be a 1-D or 2-D array; "
                f"got ndim={points.ndim}"
            )
        if splitter is None:
            splitter = CardinalitySplitter()
        self._data = _TreeData(points)
        self._init_node(0, len(points), 0, None)
        self.container = HyperRectangle.from_points(points)
        _build(self, splitter)
        self._data.freeze()
        logger.debug(
            "built cluster tree over %d points: %d nodes, %d leaves",
            len(points),
            sum(1 for _ in self.nodes()),
            sum(1 for _ in self.leaves()),
        )

    @classmethod
    def _child(
        cls, parent: ClusterTree, lo: int, hi: int, container: HyperRectangle
    ) -> ClusterTree:
        node = cls.__new__(cls)
        node._data = parent._data
        node._init_node(lo, hi, parent.depth + 1, parent)
        node.container = container
        return node

    def _init_node(
        self, lo: int, hi: int, depth: int, parent: ClusterTree | None
    ) -> None:
        self.lo = lo
        self.hi = hi
        self.depth = depth
        self.children: tuple[ClusterTree, ...] = ()
        self._parent = None if parent is None else weakref.ref(parent)

    def __len__(self) -> int:
        return self.hi - self.lo

    def __repr__(self) -> str:
        return (
            f"ClusterTree(range=[{self.lo}, {self.hi}), depth={self.depth}, "
            f"nchildren={len(self.children)})"
        )

    @property
    def index_range(self) -> tuple[int, int]:
        return (self.lo, self.hi)

    @property
    def loc_indices(self) -> range:
        return range(self.lo, self.hi)

    @property
    def parent(self) -> ClusterTree | None:
        return None if self._parent is None else self._parent()

    @property
    def isleaf(self) -> bool:
        return not self.children

    @property
    def isroot(self) -> bool:
        return self._parent is None

    @property
    def root(self) -> ClusterTree:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def loc2glob(self) -> np.ndarray:
        """The original index of each point, in clustered order"""
        return self._data.loc2glob

    @property
    def glob2loc(self) -> np.ndarray:
        """The clustered position of each point, in original order"""
        assert self._data.glob2loc is not None
        return self._data.glob2loc

    @property
    def points(self) -> np.ndarray:
        """All of the points of the tree, in their original order"""
        return self._data.points

    @property
    def elements(self) -> np.ndarray:
        """The points owned by this node, in clustered order"""
        return self._data.points[self._data.loc2glob[self.lo : self.hi]]

    @property
    def ndim(self) -> int:
        return self._data.points.shape[1]

    def nodes(self) -> Iterator[ClusterTree]:
        """Iterate over this node and all of its descendants in pre-order"""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def leaves(self) -> Iterator[ClusterTree]:
        return (node for node in self.nodes() if node.isleaf)


def _build(node: ClusterTree, splitter: Splitter) -> None:
    if not splitter.should_split(node):
        return
    data = node._data
    idx = data.loc2glob[node.lo : node.hi]
    points = data.points[idx]
    mask = splitter.left_mask(points, node.container)
    nleft = int(np.sum(mask))
    if nleft == 0 or nleft == len(node):
        # Only happens when all of the points coincide (or the splitter gives
        # up), so the node can't be split any further
        return
    data.loc2glob[node.lo : node.hi] = np.concatenate((idx[mask], idx[~mask]))
    mid = node.lo + nleft
    node.children = (
        ClusterTree._child(
            node, node.lo, mid, HyperRectangle.from_points(points[mask])
        ),
        ClusterTree._child(
            node, mid, node.hi, HyperRectangle.from_points(points[~mask])
        ),
    )
    for child in node.children:
        _build(child, splitter)


def build_cluster_tree(
    points: np.ndarray, splitter: Splitter | None = None
) -> tuple[ClusterTree, np.ndarray]:
    """Build a cluster tree and return its root with the permutation

    Returns:
        The root node and the ``loc2glob`` permutation, so that
        ``points[loc2glob]`` lists the points in clustered order.
    """
    tree = ClusterTree(points, splitter)
    return tree, tree.loc2glob
