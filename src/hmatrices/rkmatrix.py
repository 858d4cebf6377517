r"""
Low-rank matrices in outer product form. An ``m x n`` matrix of rank ``k`` is
stored as the two factors ``A`` (``m x k``) and ``B`` (``n x k``) with

.. math::

    M = A\,B^T

which needs ``(m + n) k`` numbers instead of ``m n``. These are the leaves
used for the admissible (far field) blocks of an :class:`hmatrices.HMatrix`.
The sum of two :class:`RkMatrix` objects is exact and simply concatenates the
factors; use :class:`hmatrices.TSVD` to bring the rank back down.
"""

from __future__ import annotations

__all__ = ["RkMatrix"]

from typing import Any

import equinox as eqx
import jax.numpy as jnp

from hmatrices.helpers import JAXArray, handle_matvec_shapes


class RkMatrix(eqx.Module):
    """A matrix stored as the product of two skinny factors

    Args:
        A (m, k): The left factor.
        B (n, k): The right factor.
        converged: ``False`` if the compressor that produced this matrix could
            not reach its tolerance within its rank budget.
    """

    # Must be higher than jax's
    __array_priority__ = 2000

    A: JAXArray
    B: JAXArray
    converged: bool = eqx.field(static=True, default=True)

    def __check_init__(self) -> None:
        if jnp.ndim(self.A) != 2 or jnp.ndim(self.B) != 2:
            raise ValueError("The factors of an RkMatrix must be 2-D arrays")
        if self.A.shape[1] != self.B.shape[1]:
            raise ValueError(
                "The factors of an RkMatrix must have the same number of "
                f"columns; got {self.A.shape} and {self.B.shape}"
            )

    @classmethod
    def zeros(cls, m: int, n: int, dtype: Any = float) -> RkMatrix:
        """The ``m x n`` zero matrix, with rank 0"""
        return cls(A=jnp.zeros((m, 0), dtype=dtype), B=jnp.zeros((n, 0), dtype=dtype))

    @property
    def shape(self) -> tuple[int, int]:
        return (self.A.shape[0], self.B.shape[0])

    @property
    def rank(self) -> int:
        return self.A.shape[1]

    @property
    def dtype(self) -> Any:
        return jnp.result_type(self.A, self.B)

    @property
    def T(self) -> RkMatrix:
        return self.transpose()

    def transpose(self) -> RkMatrix:
        return RkMatrix(A=self.B, B=self.A, converged=self.converged)

    def to_dense(self) -> JAXArray:
        return self.A @ self.B.T

    def storage(self) -> int:
        """The number of stored entries"""
        return self.A.size + self.B.size

    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        """The dot product of this matrix with a dense vector or matrix"""
        return self.A @ (self.B.T @ x)

    def scale(self, other: JAXArray | float) -> RkMatrix:
        return RkMatrix(A=self.A * other, B=self.B, converged=self.converged)

    def self_add(self, other: RkMatrix) -> RkMatrix:
        """The exact sum of two :class:`RkMatrix` objects, with added ranks"""
        if self.shape != other.shape:
            raise ValueError(
                f"Can't add RkMatrix objects of shapes {self.shape} and {other.shape}"
            )
        return RkMatrix(
            A=jnp.concatenate((self.A, other.A), axis=1),
            B=jnp.concatenate((self.B, other.B), axis=1),
            converged=self.converged and other.converged,
        )

    def __neg__(self) -> RkMatrix:
        return self.scale(-1)

    def __add__(self, other: Any) -> Any:
        if isinstance(other, RkMatrix):
            return self.self_add(other)
        return self.to_dense() + other

    def __radd__(self, other: Any) -> Any:
        return other + self.to_dense()

    def __sub__(self, other: Any) -> Any:
        return self.__add__(-other)

    def __rsub__(self, other: Any) -> Any:
        return other - self.to_dense()

    def __mul__(self, other: Any) -> RkMatrix:
        assert jnp.ndim(other) == 0
        return self.scale(other)

    def __rmul__(self, other: Any) -> RkMatrix:
        assert jnp.ndim(other) == 0
        return self.scale(other)

    def __matmul__(self, other: Any) -> Any:
        if isinstance(other, RkMatrix):
            # (A1 B1^T) (A2 B2^T) = A1 (B1^T A2) B2^T
            return RkMatrix(A=self.A @ (self.B.T @ other.A), B=other.B)
        return self.matmul(other)

    def __rmatmul__(self, other: Any) -> Any:
        assert not isinstance(other, RkMatrix)
        return (self.transpose() @ jnp.asarray(other).T).T
