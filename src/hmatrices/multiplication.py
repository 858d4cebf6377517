"""
Multiplication of hierarchical matrices, in the ``gemm`` form

.. code-block:: python

    C = hmul(C, A, B, alpha, beta)  # alpha * A @ B + beta * C

The result keeps the block structure of ``C``. When the three operands are
internal blocks with matching splits, the product recurses into the 2x2
children; otherwise the product of ``A`` and ``B`` is formed in the
representation of the target block (dense for a dense target, low-rank for a
low-rank target) and added with :func:`hmatrices.addition.hadd`, which
recompresses low-rank sums.
"""

from __future__ import annotations

__all__ = ["hmul", "product_skeleton"]

import logging
from functools import partial
from typing import Any, overload

import jax.numpy as jnp

from hmatrices.addition import agglomerate, hadd
from hmatrices.compressors import TSVD
from hmatrices.errors import ShapeMismatchError
from hmatrices.helpers import JAXArray
from hmatrices.hmatrix import (
    DenseBlock,
    HBlock,
    HMatrix,
    InternalBlock,
    LowRankBlock,
    check_permutations,
    unknown_block,
)
from hmatrices.parallel import run_partitioned
from hmatrices.rkmatrix import RkMatrix

logger = logging.getLogger(__name__)


@overload
def hmul(
    C: HMatrix,
    A: HMatrix,
    B: HMatrix,
    alpha: Any = ...,
    beta: Any = ...,
    *,
    compressor: TSVD | None = ...,
    threads: int = ...,
) -> HMatrix:
    ...


@overload
def hmul(
    C: HBlock,
    A: HBlock,
    B: HBlock,
    alpha: Any = ...,
    beta: Any = ...,
    *,
    compressor: TSVD | None = ...,
    threads: int = ...,
) -> HBlock:
    ...


def hmul(
    C: Any,
    A: Any,
    B: Any,
    alpha: Any = 1.0,
    beta: Any = 0.0,
    *,
    compressor: TSVD | None = None,
    threads: int = 1,
) -> Any:
    """Compute ``alpha * A @ B + beta * C`` with the structure of ``C``

    Args:
        C: The matrix that is updated. Its entries are only used when
            ``beta != 0``.
        A: The left factor.
        B: The right factor.
        alpha: The scale of the product.
        beta: The scale of ``C``.
        compressor: The recompression used for the low-rank blocks. Defaults
            to a :class:`hmatrices.TSVD` with its default tolerance.
        threads: The number of workers. The products of the four children of
            the root are independent and run in parallel.

    Raises:
        ShapeMismatchError: If the shapes (or, for :class:`hmatrices.HMatrix`
            operands, the permutations) of the operands don't match.
    """
    if A.shape[1] != B.shape[0] or C.shape != (A.shape[0], B.shape[1]):
        raise ShapeMismatchError(
            f"Can't compute the product of shapes {A.shape} and {B.shape} into "
            f"a matrix of shape {C.shape}"
        )
    if compressor is None:
        compressor = TSVD()

    if isinstance(C, HMatrix):
        if not (isinstance(A, HMatrix) and isinstance(B, HMatrix)):
            raise TypeError("The operands of hmul must all be HMatrix objects")
        check_permutations(C.rowtree, A.rowtree, "row")
        check_permutations(A.coltree, B.rowtree, "inner")
        check_permutations(C.coltree, B.coltree, "column")
        root = _hmul(C.root, A.root, B.root, alpha, beta, compressor, threads)
        return HMatrix(
            root=root,
            allow_getindex=C.allow_getindex,
            warnings=C.warnings,
        )
    return _hmul(C, A, B, alpha, beta, compressor, threads)


def _aligned(C: HBlock, A: HBlock, B: HBlock) -> bool:
    return (
        isinstance(C, InternalBlock)
        and isinstance(A, InternalBlock)
        and isinstance(B, InternalBlock)
        and A.row_split == C.row_split
        and B.col_split == C.col_split
        and A.col_split == B.row_split
    )


def _scale(C: HBlock, beta: Any) -> HBlock:
    if isinstance(beta, (int, float)) and beta == 1:
        return C
    if isinstance(beta, (int, float)) and beta == 0:
        return C.zeros_like()
    return C.scale(beta)


def _hmul(
    C: HBlock,
    A: HBlock,
    B: HBlock,
    alpha: Any,
    beta: Any,
    compressor: TSVD,
    threads: int = 1,
) -> HBlock:
    C = _scale(C, beta)

    if _aligned(C, A, B):
        assert isinstance(C, InternalBlock)
        assert isinstance(A, InternalBlock)
        assert isinstance(B, InternalBlock)

        def child(i: int, j: int) -> HBlock:
            Cij = C.children[i][j]
            for k in range(2):
                Cij = _hmul(Cij, A.children[i][k], B.children[k][j], alpha, 1, compressor)
            return Cij

        results = run_partitioned(
            [partial(child, i, j) for i in range(2) for j in range(2)],
            threads=threads,
        )
        return InternalBlock(
            target=C.target,
            source=C.source,
            children=((results[0], results[1]), (results[2], results[3])),
        )

    if isinstance(C, DenseBlock):
        P: HBlock = DenseBlock(
            target=C.target, source=C.source, data=dense_product(A, B)
        )
    elif isinstance(C, LowRankBlock):
        P = LowRankBlock(
            target=C.target, source=C.source, data=rk_product(A, B, compressor)
        )
    elif isinstance(C, InternalBlock):
        if isinstance(A, LowRankBlock) or isinstance(B, LowRankBlock):
            P = LowRankBlock(
                target=C.target, source=C.source, data=rk_product(A, B, compressor)
            )
        else:
            P = DenseBlock(target=C.target, source=C.source, data=dense_product(A, B))
    else:
        raise unknown_block(C)

    return hadd(C, P.scale(alpha), compressor=compressor)


def product_skeleton(A: HBlock, B: HBlock) -> HBlock:
    """A zero block over the rows of ``A`` and the columns of ``B``

    Internal blocks are kept wherever both operands split, and the leaves are
    rank zero low-rank blocks when either operand is low-rank there, and dense
    zeros otherwise.
    """
    if isinstance(A, InternalBlock) and isinstance(B, InternalBlock):
        return InternalBlock(
            target=A.target,
            source=B.source,
            children=tuple(  # type: ignore
                tuple(
                    product_skeleton(A.children[i][0], B.children[0][j])
                    for j in range(2)
                )
                for i in range(2)
            ),
        )
    m, n = A.shape[0], B.shape[1]
    dtype = jnp.result_type(A.dtype, B.dtype)
    if isinstance(A, LowRankBlock) or isinstance(B, LowRankBlock):
        return LowRankBlock(
            target=A.target, source=B.source, data=RkMatrix.zeros(m, n, dtype=dtype)
        )
    return DenseBlock(
        target=A.target, source=B.source, data=jnp.zeros((m, n), dtype=dtype)
    )


def dense_product(A: HBlock, B: HBlock) -> JAXArray:
    """The product of two blocks as a dense array

    Low-rank factors are applied one at a time and the other operand is only
    used through its hierarchical matrix-vector product.
    """
    if isinstance(A, LowRankBlock):
        # A B = U (B^T V)^T
        return A.data.A @ B.transpose().matmul(A.data.B).T
    elif isinstance(B, LowRankBlock):
        return A.matmul(B.data.A) @ B.data.B.T
    elif isinstance(A, DenseBlock):
        return B.transpose().matmul(A.data.T).T
    elif isinstance(B, DenseBlock):
        return A.matmul(B.data)
    elif isinstance(A, InternalBlock) and isinstance(B, InternalBlock):
        return A.matmul(B.to_dense())
    raise unknown_block(A if not isinstance(A, InternalBlock) else B)


def rk_product(A: HBlock, B: HBlock, compressor: TSVD) -> RkMatrix:
    """The product of two blocks as an :class:`hmatrices.RkMatrix`"""
    if isinstance(A, LowRankBlock):
        return RkMatrix(
            A=A.data.A,
            B=B.transpose().matmul(A.data.B),
            converged=A.data.converged,
        )
    elif isinstance(B, LowRankBlock):
        return RkMatrix(
            A=A.matmul(B.data.A), B=B.data.B, converged=B.data.converged
        )
    elif isinstance(A, InternalBlock) and isinstance(B, InternalBlock):
        if A.col_split != B.row_split:
            return compressor.truncate(dense_product(A, B))
        # Multiply into a skeleton of rank zero leaves and merge the result
        skeleton = InternalBlock(
            target=A.target,
            source=B.source,
            children=tuple(  # type: ignore
                tuple(
                    LowRankBlock(
                        target=A.children[i][0].target,
                        source=B.children[0][j].source,
                        data=RkMatrix.zeros(
                            A.children[i][0].shape[0],
                            B.children[0][j].shape[1],
                            dtype=jnp.result_type(A.dtype, B.dtype),
                        ),
                    )
                    for j in range(2)
                )
                for i in range(2)
            ),
        )
        product = _hmul(skeleton, A, B, 1, 0, compressor)
        assert isinstance(product, InternalBlock)
        return agglomerate(product, compressor)
    elif isinstance(A, (DenseBlock, InternalBlock)) and isinstance(
        B, (DenseBlock, InternalBlock)
    ):
        return compressor.truncate(dense_product(A, B))
    raise unknown_block(A if not isinstance(A, (DenseBlock, InternalBlock)) else B)
