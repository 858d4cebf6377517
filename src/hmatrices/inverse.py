r"""
Hierarchical inversion by block Gaussian elimination. With the Schur
complement :math:`S = M_{22} - M_{21} M_{11}^{-1} M_{12}` the inverse of a
2x2 block matrix is

.. math::

    \begin{pmatrix} M_{11} & M_{12} \\ M_{21} & M_{22} \end{pmatrix}^{-1}
    = \begin{pmatrix}
        M_{11}^{-1} + M_{11}^{-1} M_{12} S^{-1} M_{21} M_{11}^{-1}
            & -M_{11}^{-1} M_{12} S^{-1} \\
        -S^{-1} M_{21} M_{11}^{-1} & S^{-1}
    \end{pmatrix}

which is evaluated recursively, with every product computed by
:func:`hmatrices.hmul` in the structure of the corresponding block of the
input. Dense diagonal leaves are inverted directly.
"""

from __future__ import annotations

__all__ = ["inv"]

import jax.numpy as jnp

from hmatrices.compressors import TSVD
from hmatrices.errors import ShapeMismatchError
from hmatrices.hmatrix import (
    DenseBlock,
    HBlock,
    HMatrix,
    InternalBlock,
    check_permutations,
    unknown_block,
)
from hmatrices.lu import default_pivot_tol, report_ill_conditioning
from hmatrices.multiplication import hmul
from hmatrices.triangular import check_diagonal


def _inv(
    block: HBlock, compressor: TSVD, pivot_tol: float | None, messages: list[str]
) -> HBlock:
    check_diagonal(block)

    if isinstance(block, DenseBlock):
        if block.shape[0]:
            tol = pivot_tol
            if tol is None:
                tol = default_pivot_tol(block.dtype)
            s = jnp.linalg.svd(block.data, compute_uv=False)
            smallest, largest = float(s[-1]), float(s[0])
            if not smallest > tol * largest:
                report_ill_conditioning(
                    f"inv: the diagonal block [{block.target.lo}:{block.target.hi}] "
                    f"has a singular value of {smallest:.3e} for a norm of "
                    f"{largest:.3e}",
                    messages,
                )
        return DenseBlock(
            target=block.target, source=block.source, data=jnp.linalg.inv(block.data)
        )

    elif isinstance(block, InternalBlock):
        (M11, M12), (M21, M22) = block.children
        X11 = _inv(M11, compressor, pivot_tol, messages)
        T12 = hmul(M12, X11, M12, 1.0, 0.0, compressor=compressor)
        T21 = hmul(M21, M21, X11, 1.0, 0.0, compressor=compressor)
        S = hmul(M22, M21, T12, -1.0, 1.0, compressor=compressor)
        X22 = _inv(S, compressor, pivot_tol, messages)
        X12 = hmul(M12, T12, X22, -1.0, 0.0, compressor=compressor)
        X21 = hmul(M21, X22, T21, -1.0, 0.0, compressor=compressor)
        X11 = hmul(X11, X12, T21, -1.0, 1.0, compressor=compressor)
        return InternalBlock(
            target=block.target, source=block.source, children=((X11, X12), (X21, X22))
        )

    raise unknown_block(block)


def inv(
    H: HMatrix, *, compressor: TSVD | None = None, pivot_tol: float | None = None
) -> HMatrix:
    """Compute the hierarchical inverse of a square matrix

    Args:
        H: The matrix to invert. Its row and column cluster trees must share
            the same permutation.
        compressor: The recompression used for the low-rank blocks. Defaults
            to a :class:`hmatrices.TSVD` with its default tolerance.
        pivot_tol: Diagonal leaves with a ratio between their smallest and
            largest singular values below this are reported. Defaults to
            ``1e3`` times the machine precision.

    Returns:
        The inverse, with the structure of ``H``. Nearly singular diagonal
        blocks are listed in its ``warnings``.
    """
    if H.shape[0] != H.shape[1]:
        raise ShapeMismatchError(f"Only square matrices can be inverted; got {H.shape}")
    check_permutations(H.rowtree, H.coltree, "row and column")
    if compressor is None:
        compressor = TSVD()
    messages: list[str] = []
    root = _inv(H.root, compressor, pivot_tol, messages)
    return HMatrix(
        root=root,
        allow_getindex=H.allow_getindex,
        warnings=H.warnings + tuple(messages),
    )
