from __future__ import annotations

__all__ = ["PermutedMatrix"]

from typing import Any

import equinox as eqx
import numpy as np

from hmatrices.helpers import JAXArray


class PermutedMatrix(eqx.Module):
    """A zero-copy view of a matrix with permuted rows and columns

    Entry ``(i, j)`` of the view is entry ``(rowperm[i], colperm[j])`` of the
    wrapped matrix; the permutations are applied at access time and the
    wrapped object is never reordered. The assembly uses this view with the
    ``loc2glob`` permutations of the cluster trees so that blocks are read in
    clustered order while users keep working in the original order.

    Args:
        data: Any object implementing the block access interface of
            :class:`hmatrices.KernelMatrix` (``shape``, ``get_block``,
            ``get_row``, ``get_col`` and ``__getitem__``).
        rowperm: The row permutation.
        colperm: The column permutation.
    """

    data: Any
    rowperm: np.ndarray
    colperm: np.ndarray

    def __init__(self, data: Any, rowperm: Any, colperm: Any):
        self.data = data
        self.rowperm = np.asarray(rowperm, dtype=int)
        self.colperm = np.asarray(colperm, dtype=int)

    def __check_init__(self) -> None:
        m, n = self.data.shape
        if self.rowperm.shape != (m,) or self.colperm.shape != (n,):
            raise ValueError(
                f"Permutations of lengths {len(self.rowperm)} and "
                f"{len(self.colperm)} don't match a matrix of shape {(m, n)}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    def get_block(self, rows: Any, cols: Any) -> JAXArray:
        return self.data.get_block(self.rowperm[rows], self.colperm[cols])

    def get_row(self, i: int, cols: Any) -> JAXArray:
        return self.data.get_row(self.rowperm[i], self.colperm[cols])

    def get_col(self, rows: Any, j: int) -> JAXArray:
        return self.data.get_col(self.rowperm[rows], self.colperm[j])

    def __getitem__(self, idx: tuple[int, int]) -> JAXArray:
        i, j = idx
        return self.data[self.rowperm[i], self.colperm[j]]

    def to_dense(self) -> JAXArray:
        return self.get_block(np.arange(self.shape[0]), np.arange(self.shape[1]))
