"""
Triangular solves with hierarchical matrices. Only the relevant triangle of
the matrix is read, so the packed factors of an :class:`hmatrices.HLU` (unit
lower factor below the diagonal, upper factor on and above it) can be passed
directly as either ``L`` or ``U``.

The diagonal blocks of a triangular matrix must be square dense or internal
blocks.
"""

from __future__ import annotations

__all__ = [
    "solve_lower",
    "solve_upper_right",
    "solve_lower_dense",
    "solve_upper_dense",
    "check_diagonal",
]

import jax.numpy as jnp
from jax.scipy import linalg

from hmatrices.addition import hadd
from hmatrices.compressors import TSVD
from hmatrices.errors import ShapeMismatchError
from hmatrices.helpers import JAXArray
from hmatrices.hmatrix import (
    DenseBlock,
    HBlock,
    InternalBlock,
    LowRankBlock,
    unknown_block,
)
from hmatrices.multiplication import hmul
from hmatrices.rkmatrix import RkMatrix


def check_diagonal(T: HBlock) -> None:
    if T.shape[0] != T.shape[1]:
        raise ShapeMismatchError(f"A triangular block must be square; got {T.shape}")
    if isinstance(T, LowRankBlock):
        raise ShapeMismatchError("A diagonal block can't be stored in low-rank form")
    if isinstance(T, InternalBlock) and T.row_split != T.col_split:
        raise ShapeMismatchError(
            "The diagonal children of a triangular block must be square"
        )


def solve_lower_dense(L: HBlock, b: JAXArray, unit_diagonal: bool = False) -> JAXArray:
    """Solve ``L @ x = b`` for a dense vector or matrix ``b``

    Args:
        L: The lower triangular block; only its lower triangle is read.
        b: The right hand side, in the clustered order of ``L``.
        unit_diagonal: If ``True``, the diagonal of ``L`` is assumed to be one
            and is not read.
    """
    check_diagonal(L)
    b = jnp.asarray(b)
    if L.shape[0] != b.shape[0]:
        raise ShapeMismatchError(
            f"Can't solve a system of shape {L.shape} with a right hand side of "
            f"shape {b.shape}"
        )
    if isinstance(L, DenseBlock):
        return linalg.solve_triangular(
            L.data, b, lower=True, unit_diagonal=unit_diagonal
        )
    elif isinstance(L, InternalBlock):
        r = L.row_split
        (L11, _), (L21, L22) = L.children
        x1 = solve_lower_dense(L11, b[:r], unit_diagonal)
        x2 = solve_lower_dense(L22, b[r:] - L21.matmul(x1), unit_diagonal)
        return jnp.concatenate((x1, x2))
    raise unknown_block(L)


def solve_upper_dense(U: HBlock, b: JAXArray, unit_diagonal: bool = False) -> JAXArray:
    """Solve ``U @ x = b`` for a dense vector or matrix ``b``

    Only the upper triangle of ``U`` is read.
    """
    check_diagonal(U)
    b = jnp.asarray(b)
    if U.shape[0] != b.shape[0]:
        raise ShapeMismatchError(
            f"Can't solve a system of shape {U.shape} with a right hand side of "
            f"shape {b.shape}"
        )
    if isinstance(U, DenseBlock):
        return linalg.solve_triangular(
            U.data, b, lower=False, unit_diagonal=unit_diagonal
        )
    elif isinstance(U, InternalBlock):
        r = U.row_split
        (U11, U12), (_, U22) = U.children
        x2 = solve_upper_dense(U22, b[r:], unit_diagonal)
        x1 = solve_upper_dense(U11, b[:r] - U12.matmul(x2), unit_diagonal)
        return jnp.concatenate((x1, x2))
    raise unknown_block(U)


def _from_dense(B: HBlock, X: JAXArray, compressor: TSVD) -> HBlock:
    # Pour a dense solution into the structure of B
    return hadd(
        B.zeros_like(),
        DenseBlock(target=B.target, source=B.source, data=X),
        compressor=compressor,
    )


def solve_lower(
    L: HBlock,
    B: HBlock,
    *,
    unit_diagonal: bool = False,
    compressor: TSVD | None = None,
) -> HBlock:
    """Solve ``L @ X = B`` where ``B`` is a hierarchical block

    Args:
        L: The lower triangular block; only its lower triangle is read.
        B: The right hand side.
        unit_diagonal: If ``True``, the diagonal of ``L`` is assumed to be one.
        compressor: The recompression used for the low-rank blocks.

    Returns:
        The solution ``X``, with the structure of ``B``.
    """
    check_diagonal(L)
    if L.shape[1] != B.shape[0]:
        raise ShapeMismatchError(
            f"Can't solve a system of shape {L.shape} with a right hand side of "
            f"shape {B.shape}"
        )
    if compressor is None:
        compressor = TSVD()

    if isinstance(B, LowRankBlock):
        # L^-1 (U V^T) = (L^-1 U) V^T
        return LowRankBlock(
            target=B.target,
            source=B.source,
            data=RkMatrix(
                A=solve_lower_dense(L, B.data.A, unit_diagonal),
                B=B.data.B,
                converged=B.data.converged,
            ),
        )
    elif isinstance(B, DenseBlock):
        return DenseBlock(
            target=B.target,
            source=B.source,
            data=solve_lower_dense(L, B.data, unit_diagonal),
        )
    elif isinstance(B, InternalBlock):
        if not isinstance(L, InternalBlock) or L.row_split != B.row_split:
            return _from_dense(
                B, solve_lower_dense(L, B.to_dense(), unit_diagonal), compressor
            )
        (L11, _), (L21, L22) = L.children
        X1 = [
            solve_lower(L11, B1j, unit_diagonal=unit_diagonal, compressor=compressor)
            for B1j in B.children[0]
        ]
        X2 = [
            solve_lower(
                L22,
                hmul(B2j, L21, X1j, -1.0, 1.0, compressor=compressor),
                unit_diagonal=unit_diagonal,
                compressor=compressor,
            )
            for B2j, X1j in zip(B.children[1], X1)
        ]
        return InternalBlock(
            target=B.target,
            source=B.source,
            children=((X1[0], X1[1]), (X2[0], X2[1])),
        )
    raise unknown_block(B)


def solve_upper_right(
    U: HBlock,
    B: HBlock,
    *,
    unit_diagonal: bool = False,
    compressor: TSVD | None = None,
) -> HBlock:
    """Solve ``X @ U = B`` where ``U`` is upper triangular

    This is :func:`solve_lower` applied to the transposed system
    ``U^T @ X^T = B^T``. Only the upper triangle of ``U`` is read.
    """
    return solve_lower(
        U.transpose(),
        B.transpose(),
        unit_diagonal=unit_diagonal,
        compressor=compressor,
    ).transpose()
