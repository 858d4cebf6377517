"""
Assembly of a hierarchical matrix from a lazily evaluated matrix (usually a
:class:`hmatrices.KernelMatrix`). The assembly runs in two passes:

1. The block structure is discovered by a recursive traversal of the cross
   product of the row and column cluster trees. Admissible pairs become
   low-rank leaves, inadmissible pairs with a leaf cluster become dense
   leaves, and everything else is split into its 2x2 children.
2. The leaves are independent, so they are ordered along a Hilbert curve,
   split among the workers and evaluated. The tree is then built from the
   evaluated leaves.
"""

from __future__ import annotations

__all__ = ["assemble"]

import logging
from typing import Any

import jax.numpy as jnp
import numpy as np

from hmatrices.admissibility import Admissibility, StrongAdmissibilityStd
from hmatrices.clustertree import ClusterTree
from hmatrices.compressors import Compressor, PartialACA
from hmatrices.errors import ShapeMismatchError
from hmatrices.hilbertcurve import hilbert_sort
from hmatrices.hmatrix import DenseBlock, HBlock, HMatrix, InternalBlock, LowRankBlock
from hmatrices.parallel import run_partitioned
from hmatrices.permuted import PermutedMatrix

logger = logging.getLogger(__name__)


class _Leaf:
    # A leaf of the discovered structure, filled in when it is evaluated
    def __init__(self, target: ClusterTree, source: ClusterTree, admissible: bool):
        self.target = target
        self.source = source
        self.admissible = admissible

    @property
    def cost(self) -> float:
        m, n = len(self.target), len(self.source)
        # Dense leaves evaluate every entry while a low-rank leaf needs a few
        # rows and columns
        return float(m + n) if self.admissible else float(m * n)


def _discover(
    target: ClusterTree, source: ClusterTree, adm: Admissibility
) -> Any:
    if adm(target, source):
        return _Leaf(target, source, True)
    if target.isleaf or source.isleaf:
        return _Leaf(target, source, False)
    return [[_discover(t, s, adm) for s in source.children] for t in target.children]


def _flatten(structure: Any, leaves: list[_Leaf]) -> None:
    if isinstance(structure, _Leaf):
        leaves.append(structure)
        return
    for row in structure:
        for child in row:
            _flatten(child, leaves)


def _build(
    structure: Any,
    target: ClusterTree,
    source: ClusterTree,
    blocks: dict[int, HBlock],
) -> HBlock:
    if isinstance(structure, _Leaf):
        return blocks[id(structure)]
    children = tuple(
        tuple(_build(structure[i][j], t, s, blocks) for j, s in enumerate(source.children))
        for i, t in enumerate(target.children)
    )
    return InternalBlock(target=target, source=source, children=children)  # type: ignore


def assemble(
    K: Any,
    rowtree: ClusterTree,
    coltree: ClusterTree | None = None,
    *,
    adm: Admissibility | None = None,
    comp: Compressor | None = None,
    threads: int = 1,
    allow_getindex: bool = True,
) -> HMatrix:
    """Build the hierarchical approximation of a matrix

    Args:
        K: The matrix to approximate, in the original order of the points. Any
            object implementing the block access interface of
            :class:`hmatrices.KernelMatrix` works.
        rowtree: The cluster tree of the rows.
        coltree: The cluster tree of the columns. Defaults to ``rowtree``.
        adm: The admissibility condition. Defaults to
            :class:`hmatrices.StrongAdmissibilityStd`.
        comp: The compressor for the admissible blocks. Defaults to
            :class:`hmatrices.PartialACA` with its default tolerance.
        threads: The number of workers used to evaluate the leaves.
        allow_getindex: The element access guard of the result.

    Raises:
        ShapeMismatchError: If the shape of ``K`` doesn't match the trees.
    """
    if coltree is None:
        coltree = rowtree
    if adm is None:
        adm = StrongAdmissibilityStd()
    if comp is None:
        comp = PartialACA()
    if tuple(K.shape) != (len(rowtree), len(coltree)):
        raise ShapeMismatchError(
            f"A matrix of shape {tuple(K.shape)} can't be assembled over "
            f"cluster trees of sizes {(len(rowtree), len(coltree))}"
        )

    Kp = PermutedMatrix(K, rowtree.loc2glob, coltree.loc2glob)
    structure = _discover(rowtree, coltree, adm)
    leaves: list[_Leaf] = []
    _flatten(structure, leaves)

    # Order the leaves along a Hilbert curve through the centers of the
    # blocks so that each worker gets a compact region of the matrix
    centers = np.array(
        [
            [0.5 * (leaf.target.lo + leaf.target.hi), 0.5 * (leaf.source.lo + leaf.source.hi)]
            for leaf in leaves
        ]
    ).reshape(-1, 2)
    leaves = [leaves[k] for k in hilbert_sort(centers)]

    ndense = sum(1 for leaf in leaves if not leaf.admissible)
    logger.debug(
        "assembling a %dx%d HMatrix: %d dense and %d low-rank leaves",
        len(rowtree),
        len(coltree),
        ndense,
        len(leaves) - ndense,
    )

    def make_task(leaf: _Leaf) -> Any:
        def task() -> HBlock:
            rows = np.arange(leaf.target.lo, leaf.target.hi)
            cols = np.arange(leaf.source.lo, leaf.source.hi)
            if leaf.admissible:
                return LowRankBlock(
                    target=leaf.target, source=leaf.source, data=comp(Kp, rows, cols)
                )
            return DenseBlock(
                target=leaf.target,
                source=leaf.source,
                data=jnp.asarray(Kp.get_block(rows, cols)),
            )

        return task

    results = run_partitioned(
        [make_task(leaf) for leaf in leaves],
        cost=lambda k: leaves[k].cost,
        threads=threads,
    )
    blocks = {id(leaf): block for leaf, block in zip(leaves, results)}
    root = _build(structure, rowtree, coltree, blocks)
    return HMatrix(root=root, allow_getindex=allow_getindex)
