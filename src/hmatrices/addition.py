"""
Addition of hierarchical blocks. The sum always takes the tree structure of
the first operand; the second operand is converted to match it:

=============  =============================================================
first operand  second operand
=============  =============================================================
dense          expanded to a dense array
low-rank       compressed to an :class:`hmatrices.RkMatrix` (dense blocks with
               :class:`hmatrices.TSVD`, internal blocks by agglomeration)
internal       split along the children of the first operand
=============  =============================================================

The rank of a low-rank sum is the sum of the ranks, so every low-rank sum is
recompressed with a :class:`hmatrices.TSVD`.
"""

from __future__ import annotations

__all__ = ["hadd", "hsub", "to_rk", "agglomerate", "restrict"]

import jax.numpy as jnp

from hmatrices.compressors import TSVD
from hmatrices.errors import ShapeMismatchError
from hmatrices.hmatrix import (
    DenseBlock,
    HBlock,
    InternalBlock,
    LowRankBlock,
    unknown_block,
)
from hmatrices.rkmatrix import RkMatrix


def hadd(a: HBlock, b: HBlock, *, compressor: TSVD | None = None) -> HBlock:
    """The sum ``a + b``, with the structure of ``a``

    Args:
        a: The block that is updated.
        b: The addend.
        compressor: The recompression used for low-rank sums. Defaults to a
            :class:`hmatrices.TSVD` with its default tolerance.
    """
    if a.shape != b.shape:
        raise ShapeMismatchError(
            f"Can't add blocks of shapes {a.shape} and {b.shape}"
        )
    if compressor is None:
        compressor = TSVD()

    if isinstance(a, DenseBlock):
        return DenseBlock(target=a.target, source=a.source, data=a.data + b.to_dense())

    elif isinstance(a, LowRankBlock):
        R = to_rk(b, compressor)
        return LowRankBlock(
            target=a.target,
            source=a.source,
            data=compressor.truncate(a.data.self_add(R)),
        )

    elif isinstance(a, InternalBlock):
        return InternalBlock(
            target=a.target,
            source=a.source,
            children=tuple(  # type: ignore
                tuple(
                    hadd(child, restrict(b, a, i, j), compressor=compressor)
                    for j, child in enumerate(row)
                )
                for i, row in enumerate(a.children)
            ),
        )

    raise unknown_block(a)


def hsub(a: HBlock, b: HBlock, *, compressor: TSVD | None = None) -> HBlock:
    """The difference ``a - b``, with the structure of ``a``"""
    return hadd(a, b.scale(-1), compressor=compressor)


def _child_ranges(block: InternalBlock, i: int, j: int) -> tuple[slice, slice]:
    m, n = block.shape
    r, c = block.row_split, block.col_split
    rows = slice(0, r) if i == 0 else slice(r, m)
    cols = slice(0, c) if j == 0 else slice(c, n)
    return rows, cols


def restrict(b: HBlock, a: InternalBlock, i: int, j: int) -> HBlock:
    """The part of ``b`` that overlaps the child ``(i, j)`` of ``a``

    The result is bound to the clusters of that child.
    """
    child = a.children[i][j]
    if isinstance(b, InternalBlock) and (
        b.row_split == a.row_split and b.col_split == a.col_split
    ):
        return b.children[i][j]
    rows, cols = _child_ranges(a, i, j)
    if isinstance(b, LowRankBlock):
        return LowRankBlock(
            target=child.target,
            source=child.source,
            data=RkMatrix(A=b.data.A[rows], B=b.data.B[cols], converged=b.data.converged),
        )
    elif isinstance(b, (DenseBlock, InternalBlock)):
        # Internal blocks with a different split are materialized
        return DenseBlock(
            target=child.target, source=child.source, data=b.to_dense()[rows, cols]
        )
    raise unknown_block(b)


def to_rk(block: HBlock, compressor: TSVD | None = None) -> RkMatrix:
    """Convert any block to an :class:`hmatrices.RkMatrix`"""
    if compressor is None:
        compressor = TSVD()
    if isinstance(block, LowRankBlock):
        return block.data
    elif isinstance(block, DenseBlock):
        return compressor.truncate(block.data)
    elif isinstance(block, InternalBlock):
        return agglomerate(block, compressor)
    raise unknown_block(block)


def agglomerate(block: InternalBlock, compressor: TSVD | None = None) -> RkMatrix:
    """Compress an internal block into a single :class:`hmatrices.RkMatrix`

    The children are converted to low-rank form, their factors are padded with
    zeros to the size of the block and concatenated, and the result is
    recompressed.
    """
    if compressor is None:
        compressor = TSVD()
    m, n = block.shape
    As = []
    Bs = []
    converged = True
    for i, row in enumerate(block.children):
        for j, child in enumerate(row):
            R = to_rk(child, compressor)
            rows, cols = _child_ranges(block, i, j)
            As.append(jnp.pad(R.A, ((rows.start, m - rows.stop), (0, 0))))
            Bs.append(jnp.pad(R.B, ((cols.start, n - cols.stop), (0, 0))))
            converged = converged and R.converged
    R = RkMatrix(
        A=jnp.concatenate(As, axis=1), B=jnp.concatenate(Bs, axis=1), converged=converged
    )
    return compressor.truncate(R)
