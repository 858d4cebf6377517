"""
Compressors build :class:`hmatrices.RkMatrix` approximations of matrix blocks.
Three algorithms are implemented:

1. :class:`ACA`: adaptive cross approximation with full pivoting. The whole
   block is evaluated and every step picks the largest entry of the residual.
   This is the most robust and accurate choice, but it costs ``O(m n)`` per
   step.
2. :class:`PartialACA`: adaptive cross approximation with partial pivoting.
   Only one row and one column of the block are evaluated per step, for a cost
   of ``O(m + n)``. This is the default compressor for the assembly.
3. :class:`TSVD`: truncated singular value decomposition. This gives the
   smallest rank for a given tolerance, and it is used to *recompress* blocks
   after operations, like additions, that increase their rank.

All compressors share the same parameters:

- ``atol``: the absolute tolerance on the Frobenius norm of the error,
- ``rtol``: the tolerance relative to the Frobenius norm of the block, and
- ``rank``: the maximum rank of the approximation.

The effective tolerance is ``max(atol, rtol * norm)``. If neither ``atol`` nor
``rank`` is given, ``rtol`` defaults to the square root of the machine
precision. When the tolerance can't be reached within ``rank``, the
best-effort approximation is returned with ``converged=False`` and a
:class:`hmatrices.errors.ConvergenceWarning` is emitted.

Compressors are called with a block accessor (an object like
:class:`hmatrices.KernelMatrix`) and the row and column indices of the block:

.. code-block:: python

    R = PartialACA(rtol=1e-8)(K, rows, cols)
"""

from __future__ import annotations

__all__ = ["Compressor", "ACA", "PartialACA", "TSVD"]

import logging
import warnings
from abc import abstractmethod
from typing import Any

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from hmatrices.errors import ConfigurationError, ConvergenceWarning
from hmatrices.helpers import JAXArray, default_rtol, frobenius_norm
from hmatrices.rkmatrix import RkMatrix

logger = logging.getLogger(__name__)


class Compressor(eqx.Module):
    """The base class for the compression algorithms

    Args:
        atol: The absolute tolerance.
        rtol: The relative tolerance.
        rank: The maximum rank.
    """

    atol: float = eqx.field(static=True, default=0.0)
    rtol: float | None = eqx.field(static=True, default=None)
    rank: int | None = eqx.field(static=True, default=None)

    def __check_init__(self) -> None:
        if not self.atol >= 0:
            raise ConfigurationError(f"atol must be non-negative; got {self.atol}")
        if self.rtol is not None and not self.rtol >= 0:
            raise ConfigurationError(f"rtol must be non-negative; got {self.rtol}")
        if self.rtol == 0 and self.atol == 0 and self.rank is None:
            raise ConfigurationError(
                "A zero tolerance needs a rank budget; set atol or rank, or leave "
                "rtol to its default"
            )
        if self.rank is not None and self.rank < 1:
            raise ConfigurationError(f"rank must be positive; got {self.rank}")

    @abstractmethod
    def __call__(self, K: Any, rows: Any, cols: Any) -> RkMatrix:
        """Compress the block ``K[rows][:, cols]``"""
        raise NotImplementedError

    def tolerance(self, norm: Any, dtype: Any) -> float:
        """The target Frobenius norm of the error for a block of norm ``norm``"""
        rtol = self.rtol
        if rtol is None:
            rtol = default_rtol(dtype) if self.atol == 0 and self.rank is None else 0.0
        return max(self.atol, rtol * float(norm))

    def max_rank(self, m: int, n: int) -> int:
        kmax = min(m, n)
        return kmax if self.rank is None else min(kmax, self.rank)

    def _finish(
        self,
        As: list[JAXArray],
        Bs: list[JAXArray],
        shape: tuple[int, int],
        dtype: Any,
        err: float,
        tol: float,
        converged: bool,
    ) -> RkMatrix:
        if not converged and tol > 0:
            message = (
                f"{type(self).__name__} reached rank {len(As)} on a block of shape "
                f"{shape} with an estimated error of {err:.3e}, above the "
                f"tolerance {tol:.3e}"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning, stacklevel=3)
        else:
            converged = True
        m, n = shape
        if not As:
            return RkMatrix(
                A=jnp.zeros((m, 0), dtype=dtype),
                B=jnp.zeros((n, 0), dtype=dtype),
                converged=converged,
            )
        return RkMatrix(
            A=jnp.stack(As, axis=1), B=jnp.stack(Bs, axis=1), converged=converged
        )


class ACA(Compressor):
    """Adaptive cross approximation with full pivoting

    The block is evaluated in full and, at every step, the largest entry of
    the residual is used as the pivot of a rank one update. The iteration
    stops when the Frobenius norm of the residual is below the tolerance.
    """

    def __call__(self, K: Any, rows: Any, cols: Any) -> RkMatrix:
        return self.compress(K.get_block(rows, cols))

    def compress(self, M: JAXArray) -> RkMatrix:
        """Compress a dense block"""
        M = jnp.asarray(M)
        m, n = M.shape
        dtype = M.dtype
        if m == 0 or n == 0:
            return self._finish([], [], (m, n), dtype, 0.0, 0.0, True)

        tol = self.tolerance(frobenius_norm(M), dtype)
        kmax = self.max_rank(m, n)
        R = M
        As: list[JAXArray] = []
        Bs: list[JAXArray] = []
        err = float(frobenius_norm(R))
        while err > tol and len(As) < kmax:
            i, j = np.unravel_index(int(jnp.argmax(jnp.abs(R))), (m, n))
            pivot = R[i, j]
            if pivot == 0:
                break
            a = R[:, j]
            b = R[i, :] / pivot
            R = R - jnp.outer(a, b)
            As.append(a)
            Bs.append(b)
            err = float(frobenius_norm(R))
        return self._finish(As, Bs, (m, n), dtype, err, tol, err <= tol)


class PartialACA(Compressor):
    """Adaptive cross approximation with partial pivoting

    Each step evaluates one residual row and one residual column of the block:
    the pivot column is the largest entry of the current row, and the next row
    is the unused row with the largest entry in the new column. The iteration
    stops when the norms of the last two rank one updates add up to
    less than the tolerance, relative to an estimate of the norm of the
    approximation that is updated along the way.

    If the residual row selected for the next step vanishes (all of its
    entries are below machine precision relative to the current estimate),
    the row is discarded and the remaining unused rows are scanned in order
    until one with a non-vanishing residual is found. If there is none, the
    residual is zero and the approximation is exact.
    """

    def __call__(self, K: Any, rows: Any, cols: Any) -> RkMatrix:
        rows = np.asarray(rows, dtype=int)
        cols = np.asarray(cols, dtype=int)
        m, n = len(rows), len(cols)
        if m == 0 or n == 0:
            dtype = K.get_block(rows, cols).dtype
            return self._finish([], [], (m, n), dtype, 0.0, 0.0, True)

        kmax = self.max_rank(m, n)
        used = np.zeros(m, dtype=bool)
        As: list[JAXArray] = []
        Bs: list[JAXArray] = []
        norm2 = 0.0
        err = np.inf
        previous = np.inf
        tol = 0.0
        converged = False
        i = 0
        while len(As) < kmax:
            i, b = self._next_row(K, rows, cols, As, Bs, i, used, np.sqrt(norm2))
            if b is None:
                converged = True
                break
            used[i] = True
            j = int(jnp.argmax(jnp.abs(b)))
            b = b / b[j]
            a = K.get_col(rows, cols[j])
            if As:
                a = a - jnp.stack(As, axis=1) @ jnp.stack(Bs, axis=1)[j]

            # Update the estimate of the squared Frobenius norm of the
            # approximation using the inner products with the previous terms
            anorm = float(frobenius_norm(a))
            bnorm = float(frobenius_norm(b))
            cross = sum(
                float(jnp.real(jnp.vdot(ak, a) * jnp.vdot(bk, b)))
                for ak, bk in zip(As, Bs)
            )
            norm2 = max(norm2 + 2 * cross + (anorm * bnorm) ** 2, 0.0)
            As.append(a)
            Bs.append(b)

            previous, err = err, anorm * bnorm
            tol = self.tolerance(np.sqrt(norm2), a.dtype)
            if err + previous <= tol:
                converged = True
                break

            scores = np.abs(np.asarray(a))
            scores[used] = -1
            i = int(np.argmax(scores))
            if used[i]:
                converged = True
                break

        # With min(m, n) distinct pivots the residual vanishes identically
        converged = converged or len(As) == min(m, n)
        dtype = As[0].dtype if As else K.get_block(rows[:0], cols[:0]).dtype
        return self._finish(As, Bs, (m, n), dtype, err, tol, converged)

    def _next_row(
        self,
        K: Any,
        rows: np.ndarray,
        cols: np.ndarray,
        As: list[JAXArray],
        Bs: list[JAXArray],
        i: int,
        used: np.ndarray,
        norm: float,
    ) -> tuple[int, JAXArray | None]:
        candidates = [i] + [k for k in range(len(rows)) if not used[k] and k != i]
        for k in candidates:
            b = K.get_row(rows[k], cols)
            if As:
                b = b - jnp.stack(Bs, axis=1) @ jnp.stack(As, axis=1)[k]
            threshold = float(jnp.finfo(b.dtype).eps) * norm
            if float(jnp.max(jnp.abs(b))) > threshold:
                return k, b
            used[k] = True
            logger.debug("partial ACA: residual row %d vanishes; scanning", k)
        return i, None


class TSVD(Compressor):
    """Truncated singular value decomposition

    The kept rank is the smallest one for which the Frobenius norm of the
    discarded singular values is below the tolerance. Besides compressing
    blocks from an accessor, this can :func:`TSVD.truncate` dense arrays and
    :class:`hmatrices.RkMatrix` objects; the latter only decompose the small
    ``k x k`` core obtained from QR factorizations of the two factors.
    """

    def __call__(self, K: Any, rows: Any, cols: Any) -> RkMatrix:
        return self.truncate(K.get_block(rows, cols))

    def truncate(self, M: RkMatrix | JAXArray) -> RkMatrix:
        """Recompress a dense array or an :class:`hmatrices.RkMatrix`"""
        if isinstance(M, RkMatrix):
            return self._truncate_rk(M)
        return self._truncate_dense(jnp.asarray(M))

    def _truncate_dense(self, M: JAXArray) -> RkMatrix:
        m, n = M.shape
        if m == 0 or n == 0:
            return self._finish([], [], (m, n), M.dtype, 0.0, 0.0, True)
        U, s, Vh = jnp.linalg.svd(M, full_matrices=False)
        r, err, tol = self._truncation_rank(s, m, n, M.dtype)
        return self._build(U[:, :r] * s[:r], Vh[:r].T, err, tol)

    def _truncate_rk(self, R: RkMatrix) -> RkMatrix:
        m, n = R.shape
        if R.rank == 0 or m == 0 or n == 0:
            return R
        Qa, Ra = jnp.linalg.qr(R.A)
        Qb, Rb = jnp.linalg.qr(R.B)
        U, s, Vh = jnp.linalg.svd(Ra @ Rb.T, full_matrices=False)
        r, err, tol = self._truncation_rank(s, m, n, R.dtype)
        return self._build(Qa @ (U[:, :r] * s[:r]), Qb @ Vh[:r].T, err, tol)

    def _truncation_rank(
        self, s: JAXArray, m: int, n: int, dtype: Any
    ) -> tuple[int, float, float]:
        s = np.asarray(s)
        # tail[r] is the norm of the singular values that are dropped when
        # keeping the first r of them
        tail = np.append(np.sqrt(np.cumsum(np.square(s[::-1]))[::-1]), 0.0)
        tol = self.tolerance(tail[0], dtype)
        r = int(np.argmax(tail <= tol))
        r = min(r, self.max_rank(m, n))
        return r, float(tail[r]), tol

    def _build(self, A: JAXArray, B: JAXArray, err: float, tol: float) -> RkMatrix:
        converged = err <= tol or tol == 0
        if not converged:
            message = (
                f"TSVD truncated a block of shape {(A.shape[0], B.shape[0])} to "
                f"rank {A.shape[1]} with an error of {err:.3e}, above the "
                f"tolerance {tol:.3e}"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning, stacklevel=4)
        return RkMatrix(A=A, B=B, converged=converged)
