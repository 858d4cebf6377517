from __future__ import annotations

__all__ = ["KernelMatrix"]

from typing import Any

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from hmatrices.helpers import JAXArray
from hmatrices.kernels.base import Kernel


def _as_points(X: Any) -> JAXArray:
    X = jnp.asarray(X)
    if X.ndim == 1:
        X = X[:, None]
    return X


class KernelMatrix(eqx.Module):
    """A lazily evaluated matrix of kernel values

    Nothing is computed when this object is constructed; entries are only
    evaluated when a block, row or column is requested. This is the interface
    that the compressors and the assembly use to access the matrix.

    Args:
        kernel: The kernel, called as ``kernel(X[rows], Y[cols])``.
        X (m, d): The target points.
        Y (n, d): The source points. Defaults to ``X``.
    """

    kernel: Kernel
    X: JAXArray
    Y: JAXArray

    def __init__(self, kernel: Kernel, X: JAXArray, Y: JAXArray | None = None):
        self.kernel = kernel
        self.X = _as_points(X)
        self.Y = self.X if Y is None else _as_points(Y)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.X.shape[0], self.Y.shape[0])

    def get_block(self, rows: Any, cols: Any) -> JAXArray:
        """The dense sub-matrix ``M[rows][:, cols]``"""
        rows = np.asarray(rows, dtype=int)
        cols = np.asarray(cols, dtype=int)
        return self.kernel(self.X[rows], self.Y[cols])

    def get_row(self, i: int, cols: Any) -> JAXArray:
        return self.get_block(np.array([i]), cols)[0]

    def get_col(self, rows: Any, j: int) -> JAXArray:
        return self.get_block(rows, np.array([j]))[:, 0]

    def __getitem__(self, idx: tuple[int, int]) -> JAXArray:
        i, j = idx
        return self.kernel.evaluate(self.X[i], self.Y[j])

    def to_dense(self) -> JAXArray:
        return self.kernel(self.X, self.Y)
