"""
Hierarchical LU factorization without pivoting. For a matrix split in 2x2
blocks the factorization is computed recursively as

.. code-block:: text

    L11 U11 = M11                   (recursion)
    U12     = L11^-1 M12            (lower triangular solve)
    L21     = M21 U11^-1            (upper triangular solve from the right)
    L22 U22 = M22 - L21 U12         (hmul, then recursion)

and the dense diagonal leaves are factored with an unpivoted dense LU. Both
factors are stored *packed* in a single block tree with the structure of the
input: the strictly lower part holds ``L`` (whose diagonal is one) and the
upper part holds ``U``.

Since there is no pivoting across blocks, the factorization is only stable
for matrices like the diagonally dominant ones arising from well posed
integral equations. Nearly singular pivots don't stop the factorization, but
they are reported with an :class:`hmatrices.errors.IllConditioningWarning`.
"""

from __future__ import annotations

__all__ = ["HLU", "lu"]

import logging
import warnings
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from hmatrices.compressors import TSVD
from hmatrices.errors import IllConditioningWarning, ShapeMismatchError
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
from hmatrices.multiplication import hmul
from hmatrices.rkmatrix import RkMatrix
from hmatrices.triangular import (
    check_diagonal,
    solve_lower,
    solve_lower_dense,
    solve_upper_dense,
    solve_upper_right,
)

logger = logging.getLogger(__name__)


def default_pivot_tol(dtype: Any) -> float:
    return 1e3 * float(jnp.finfo(dtype).eps)


def report_ill_conditioning(message: str, messages: list[str]) -> None:
    """Log, warn and record a nearly singular diagonal block"""
    logger.warning(message)
    warnings.warn(message, IllConditioningWarning, stacklevel=4)
    messages.append(message)


def dense_lu(a: JAXArray) -> JAXArray:
    """The packed LU factorization of a dense matrix, without pivoting"""
    n = a.shape[0]
    idx = jnp.arange(n)

    def body(k: Any, a: JAXArray) -> JAXArray:
        below = idx > k
        l = jnp.where(below, a[:, k] / a[k, k], 0)
        u = jnp.where(below, a[k, :], 0)
        a = a - jnp.outer(l, u)
        return a.at[:, k].set(jnp.where(below, l, a[:, k]))

    return jax.lax.fori_loop(0, n, body, a)


def _lu(
    block: HBlock, compressor: TSVD, pivot_tol: float | None, messages: list[str]
) -> HBlock:
    check_diagonal(block)

    if isinstance(block, DenseBlock):
        packed = dense_lu(block.data)
        n = block.shape[0]
        if n:
            tol = pivot_tol
            if tol is None:
                tol = default_pivot_tol(block.dtype)
            smallest = float(jnp.min(jnp.abs(jnp.diag(packed))))
            scale = float(jnp.max(jnp.abs(block.data)))
            if not smallest > tol * scale:
                report_ill_conditioning(
                    f"LU: the diagonal block [{block.target.lo}:{block.target.hi}] "
                    f"has a pivot of magnitude {smallest:.3e} for entries of "
                    f"magnitude up to {scale:.3e}",
                    messages,
                )
        return DenseBlock(target=block.target, source=block.source, data=packed)

    elif isinstance(block, InternalBlock):
        (M11, M12), (M21, M22) = block.children
        F11 = _lu(M11, compressor, pivot_tol, messages)
        U12 = solve_lower(F11, M12, unit_diagonal=True, compressor=compressor)
        L21 = solve_upper_right(F11, M21, compressor=compressor)
        S = hmul(M22, L21, U12, -1.0, 1.0, compressor=compressor)
        F22 = _lu(S, compressor, pivot_tol, messages)
        return InternalBlock(
            target=block.target, source=block.source, children=((F11, U12), (L21, F22))
        )

    raise unknown_block(block)


def lu(
    H: HMatrix, *, compressor: TSVD | None = None, pivot_tol: float | None = None
) -> HLU:
    """Compute the hierarchical LU factorization of a square matrix

    Args:
        H: The matrix to factor. Its row and column cluster trees must share
            the same permutation.
        compressor: The recompression used for the low-rank blocks. Defaults
            to a :class:`hmatrices.TSVD` with its default tolerance.
        pivot_tol: Pivots smaller than ``pivot_tol`` times the largest entry
            of their diagonal leaf are reported. Defaults to ``1e3`` times the
            machine precision.

    Raises:
        ShapeMismatchError: If ``H`` isn't square, if its cluster trees have
            different permutations, or if a diagonal block is low-rank.
    """
    if H.shape[0] != H.shape[1]:
        raise ShapeMismatchError(f"Only square matrices can be factored; got {H.shape}")
    check_permutations(H.rowtree, H.coltree, "row and column")
    if compressor is None:
        compressor = TSVD()
    messages: list[str] = []
    root = _lu(H.root, compressor, pivot_tol, messages)
    factors = HMatrix(
        root=root,
        allow_getindex=H.allow_getindex,
        warnings=H.warnings + tuple(messages),
    )
    return HLU(factors=factors)


def _zero(block: HBlock) -> LowRankBlock:
    m, n = block.shape
    return LowRankBlock(
        target=block.target, source=block.source, data=RkMatrix.zeros(m, n, block.dtype)
    )


def _triangle(block: HBlock, lower: bool) -> HBlock:
    # Extract one of the packed factors from a diagonal block
    if isinstance(block, DenseBlock):
        n = block.shape[0]
        if lower:
            data = jnp.tril(block.data, -1) + jnp.eye(n, dtype=block.dtype)
        else:
            data = jnp.triu(block.data)
        return DenseBlock(target=block.target, source=block.source, data=data)
    elif isinstance(block, InternalBlock):
        (F11, F12), (F21, F22) = block.children
        return InternalBlock(
            target=block.target,
            source=block.source,
            children=(
                (_triangle(F11, lower), _zero(F12) if lower else F12),
                (F21 if lower else _zero(F21), _triangle(F22, lower)),
            ),
        )
    raise unknown_block(block)


class HLU(eqx.Module):
    """The packed factors of a hierarchical LU factorization

    Use :func:`lu` (or :func:`hmatrices.HMatrix.lu`) to build these.

    Args:
        factors: The packed factors, with the structure of the factored
            matrix.
    """

    factors: HMatrix

    @property
    def warnings(self) -> tuple[str, ...]:
        """The ill-conditioning events recorded during the factorization"""
        return self.factors.warnings

    @property
    def shape(self) -> tuple[int, int]:
        return self.factors.shape

    @property
    def L(self) -> HMatrix:
        """The unit lower triangular factor"""
        return self.factors._wrap(_triangle(self.factors.root, True))

    @property
    def U(self) -> HMatrix:
        """The upper triangular factor"""
        return self.factors._wrap(_triangle(self.factors.root, False))

    def solve(self, b: JAXArray) -> JAXArray:
        """Solve ``H @ x = b`` for a vector or matrix ``b``, in original order"""
        b = jnp.asarray(b)
        root = self.factors.root
        rows = self.factors.rowtree
        cols = self.factors.coltree
        y = solve_lower_dense(root, b[np.asarray(rows.loc2glob)], unit_diagonal=True)
        x = solve_upper_dense(root, y)
        return x[cols.glob2loc]
