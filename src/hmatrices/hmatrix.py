"""
Hierarchical matrices are trees of blocks. Every block is bound to a pair of
cluster tree nodes, the *target* (rows) and the *source* (columns), and is one
of:

- :class:`DenseBlock`: a leaf stored as a dense array,
- :class:`LowRankBlock`: a leaf stored as an :class:`hmatrices.RkMatrix`, or
- :class:`InternalBlock`: a 2x2 array of child blocks covering the four
  quadrants of the block.

These three classes are the only kinds of blocks; every recursive algorithm in
this package dispatches over exactly these cases and raises a ``TypeError``
for anything else. Blocks are indexed in *clustered* order (the order given
by the ``loc2glob`` permutation of the cluster trees) while the
:class:`HMatrix` wrapper presents the matrix in the original order of the
points.
"""

from __future__ import annotations

__all__ = ["HBlock", "DenseBlock", "LowRankBlock", "InternalBlock", "HMatrix"]

import dataclasses
import sys
from abc import abstractmethod
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, TextIO

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from hmatrices.clustertree import ClusterTree
from hmatrices.errors import ShapeMismatchError, UsageError
from hmatrices.helpers import JAXArray, handle_matvec_shapes
from hmatrices.rkmatrix import RkMatrix

if TYPE_CHECKING:
    from hmatrices.compressors import TSVD
    from hmatrices.lu import HLU


def unknown_block(block: Any) -> TypeError:
    return TypeError(f"Unknown block type: {type(block).__name__}")


def check_permutations(a: ClusterTree, b: ClusterTree, name: str) -> None:
    """Raise a :class:`ShapeMismatchError` unless two trees share a permutation"""
    if a is not b and not np.array_equal(a.loc2glob, b.loc2glob):
        raise ShapeMismatchError(
            f"The {name} cluster trees of the two matrices have different "
            "permutations"
        )


class HBlock(eqx.Module):
    """The base class for the blocks of a hierarchical matrix

    Args:
        target: The cluster tree node of the rows.
        source: The cluster tree node of the columns.
    """

    # Must be higher than jax's
    __array_priority__ = 2000

    target: ClusterTree = eqx.field(static=True)
    source: ClusterTree = eqx.field(static=True)

    @property
    def shape(self) -> tuple[int, int]:
        return (len(self.target), len(self.source))

    @property
    @abstractmethod
    def dtype(self) -> Any:
        raise NotImplementedError

    @abstractmethod
    def to_dense(self) -> JAXArray:
        """Render this block to a dense array, in clustered order"""
        raise NotImplementedError

    @abstractmethod
    def matmul(self, x: JAXArray) -> JAXArray:
        """The product of this block with a dense vector or matrix"""
        raise NotImplementedError

    @abstractmethod
    def transpose(self) -> HBlock:
        raise NotImplementedError

    @abstractmethod
    def scale(self, other: JAXArray | float) -> HBlock:
        raise NotImplementedError

    @abstractmethod
    def storage(self) -> int:
        """The number of stored matrix entries"""
        raise NotImplementedError

    @abstractmethod
    def zeros_like(self) -> HBlock:
        """A block of zeros with the same structure"""
        raise NotImplementedError

    @abstractmethod
    def getindex(self, i: int, j: int) -> JAXArray:
        """The entry ``(i, j)`` of this block, in block-local indices"""
        raise NotImplementedError

    @property
    def T(self) -> HBlock:
        return self.transpose()

    @property
    def is_diagonal(self) -> bool:
        """Whether this block sits on the diagonal of the full matrix"""
        return self.target.index_range == self.source.index_range

    def leaves(self) -> Iterator[HBlock]:
        yield self

    def __neg__(self) -> HBlock:
        return self.scale(-1)


class DenseBlock(HBlock):
    """A leaf block stored as a dense array

    Args:
        data (m, n): The entries of the block.
    """

    data: JAXArray

    def __check_init__(self) -> None:
        if tuple(self.data.shape) != self.shape:
            raise ShapeMismatchError(
                f"A dense block of shape {self.data.shape} can't be bound to "
                f"clusters of sizes {self.shape}"
            )

    @property
    def dtype(self) -> Any:
        return self.data.dtype

    def to_dense(self) -> JAXArray:
        return self.data

    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        return self.data @ x

    def transpose(self) -> DenseBlock:
        return DenseBlock(target=self.source, source=self.target, data=self.data.T)

    def scale(self, other: JAXArray | float) -> DenseBlock:
        return DenseBlock(target=self.target, source=self.source, data=self.data * other)

    def storage(self) -> int:
        return self.data.size

    def zeros_like(self) -> DenseBlock:
        return DenseBlock(
            target=self.target, source=self.source, data=jnp.zeros_like(self.data)
        )

    def getindex(self, i: int, j: int) -> JAXArray:
        return self.data[i, j]


class LowRankBlock(HBlock):
    """A leaf block stored in low-rank form

    Args:
        data: The :class:`hmatrices.RkMatrix` representation of the block.
    """

    data: RkMatrix

    def __check_init__(self) -> None:
        if self.data.shape != self.shape:
            raise ShapeMismatchError(
                f"A low-rank block of shape {self.data.shape} can't be bound to "
                f"clusters of sizes {self.shape}"
            )

    @property
    def dtype(self) -> Any:
        return self.data.dtype

    @property
    def rank(self) -> int:
        return self.data.rank

    def to_dense(self) -> JAXArray:
        return self.data.to_dense()

    def matmul(self, x: JAXArray) -> JAXArray:
        return self.data.matmul(x)

    def transpose(self) -> LowRankBlock:
        return LowRankBlock(
            target=self.source, source=self.target, data=self.data.transpose()
        )

    def scale(self, other: JAXArray | float) -> LowRankBlock:
        return LowRankBlock(
            target=self.target, source=self.source, data=self.data.scale(other)
        )

    def storage(self) -> int:
        return self.data.storage()

    def zeros_like(self) -> LowRankBlock:
        m, n = self.shape
        return LowRankBlock(
            target=self.target,
            source=self.source,
            data=RkMatrix.zeros(m, n, dtype=self.dtype),
        )

    def getindex(self, i: int, j: int) -> JAXArray:
        return self.data.A[i] @ self.data.B[j]


class InternalBlock(HBlock):
    """A block split into a 2x2 array of children

    Args:
        children: The child blocks as a nested tuple, so that
            ``children[i][j]`` is the block in the ``i``-th block row and the
            ``j``-th block column.
    """

    children: tuple[tuple[HBlock, HBlock], tuple[HBlock, HBlock]]

    def __check_init__(self) -> None:
        (a, b), (c, d) = self.children
        m, n = self.shape
        if (
            a.shape[0] != b.shape[0]
            or c.shape[0] != d.shape[0]
            or a.shape[1] != c.shape[1]
            or b.shape[1] != d.shape[1]
            or a.shape[0] + c.shape[0] != m
            or a.shape[1] + b.shape[1] != n
        ):
            raise ShapeMismatchError(
                f"Children of shapes {[[a.shape, b.shape], [c.shape, d.shape]]} "
                f"don't tile a block of shape {(m, n)}"
            )

    @property
    def dtype(self) -> Any:
        return jnp.result_type(*(child.dtype for row in self.children for child in row))

    @property
    def row_split(self) -> int:
        """The number of rows in the first block row"""
        return self.children[0][0].shape[0]

    @property
    def col_split(self) -> int:
        """The number of columns in the first block column"""
        return self.children[0][0].shape[1]

    def to_dense(self) -> JAXArray:
        return jnp.block(
            [[child.to_dense() for child in row] for row in self.children]
        )

    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        c = self.col_split
        x1, x2 = x[:c], x[c:]
        return jnp.concatenate(
            [row[0].matmul(x1) + row[1].matmul(x2) for row in self.children]
        )

    def transpose(self) -> InternalBlock:
        (a, b), (c, d) = self.children
        return InternalBlock(
            target=self.source,
            source=self.target,
            children=((a.transpose(), c.transpose()), (b.transpose(), d.transpose())),
        )

    def scale(self, other: JAXArray | float) -> InternalBlock:
        return self.map_children(lambda child: child.scale(other))

    def storage(self) -> int:
        return sum(child.storage() for row in self.children for child in row)

    def zeros_like(self) -> InternalBlock:
        return self.map_children(lambda child: child.zeros_like())

    def getindex(self, i: int, j: int) -> JAXArray:
        r, c = self.row_split, self.col_split
        child = self.children[int(i >= r)][int(j >= c)]
        return child.getindex(i - r if i >= r else i, j - c if j >= c else j)

    def leaves(self) -> Iterator[HBlock]:
        for row in self.children:
            for child in row:
                yield from child.leaves()

    def map_children(self, func: Any) -> InternalBlock:
        return InternalBlock(
            target=self.target,
            source=self.source,
            children=tuple(tuple(func(child) for child in row) for row in self.children),  # type: ignore
        )


class HMatrix(eqx.Module):
    """A hierarchical matrix, presented in the original order of the points

    Users will generally build these with :func:`HMatrix.assemble` rather
    than by calling the constructor. All of the arithmetic returns new
    matrices; the operands are never modified.

    Args:
        root: The root block. Its target and source nodes must be the roots
            of the row and column cluster trees.
        allow_getindex: Whether ``H[i, j]`` is allowed. Element access
            descends the block tree for every entry, so generic code falling
            back to it is usually a performance bug; set this to ``False`` to
            turn such accesses into errors.
        warnings: Messages recorded by the algorithms that produced this
            matrix, for example when a near singular block was inverted.
    """

    # Must be higher than jax's
    __array_priority__ = 2000

    root: HBlock
    allow_getindex: bool = eqx.field(static=True, default=True)
    warnings: tuple[str, ...] = eqx.field(static=True, default=())

    @classmethod
    def assemble(
        cls,
        K: Any,
        rowtree: ClusterTree,
        coltree: ClusterTree | None = None,
        **kwargs: Any,
    ) -> HMatrix:
        """Build a hierarchical approximation of ``K``

        See :func:`hmatrices.assembly.assemble` for the details.
        """
        from hmatrices.assembly import assemble

        return assemble(K, rowtree, coltree, **kwargs)

    @property
    def rowtree(self) -> ClusterTree:
        return self.root.target

    @property
    def coltree(self) -> ClusterTree:
        return self.root.source

    @property
    def shape(self) -> tuple[int, int]:
        return self.root.shape

    @property
    def dtype(self) -> Any:
        return self.root.dtype

    def to_dense(self, permuted: bool = False) -> JAXArray:
        """Render this matrix to a dense array

        This should really only be used for testing purposes.

        Args:
            permuted: If ``True``, return the matrix in clustered order.
        """
        dense = self.root.to_dense()
        if permuted:
            return dense
        return dense[self.rowtree.glob2loc][:, self.coltree.glob2loc]

    def matmul(self, x: JAXArray) -> JAXArray:
        """The product of this matrix with a dense vector or matrix"""
        x = jnp.asarray(x)
        y = self.root.matmul(x[self.coltree.loc2glob])
        return y[self.rowtree.glob2loc]

    def __getitem__(self, idx: tuple[int, int]) -> JAXArray:
        if not self.allow_getindex:
            raise UsageError(
                "Element access is disabled on this HMatrix; use "
                "enable_getindex() if this is intentional"
            )
        i, j = idx
        return self.root.getindex(
            int(self.rowtree.glob2loc[i]), int(self.coltree.glob2loc[j])
        )

    def enable_getindex(self) -> HMatrix:
        return dataclasses.replace(self, allow_getindex=True)

    def disable_getindex(self) -> HMatrix:
        return dataclasses.replace(self, allow_getindex=False)

    def _wrap(self, root: HBlock, warnings: tuple[str, ...] = ()) -> HMatrix:
        return HMatrix(
            root=root, allow_getindex=self.allow_getindex, warnings=warnings
        )

    def transpose(self) -> HMatrix:
        return self._wrap(self.root.transpose())

    @property
    def T(self) -> HMatrix:
        return self.transpose()

    def scale(self, other: JAXArray | float) -> HMatrix:
        return self._wrap(self.root.scale(other))

    def zeros_like(self) -> HMatrix:
        return self._wrap(self.root.zeros_like())

    def check_compatible(self, other: HMatrix) -> None:
        """Raise unless ``other`` uses the same row and column permutations"""
        check_permutations(self.rowtree, other.rowtree, "row")
        check_permutations(self.coltree, other.coltree, "column")

    def add(self, other: HMatrix, *, compressor: TSVD | None = None) -> HMatrix:
        """The sum of two matrices, with the structure of this one"""
        from hmatrices.addition import hadd

        self.check_compatible(other)
        return self._wrap(hadd(self.root, other.root, compressor=compressor))

    def __add__(self, other: Any) -> Any:
        if isinstance(other, HMatrix):
            return self.add(other)
        return self.to_dense() + other

    def __sub__(self, other: Any) -> Any:
        if isinstance(other, HMatrix):
            return self.add(-other)
        return self.to_dense() - other

    def __neg__(self) -> HMatrix:
        return self.scale(-1)

    def __mul__(self, other: Any) -> HMatrix:
        assert jnp.ndim(other) == 0
        return self.scale(other)

    def __rmul__(self, other: Any) -> HMatrix:
        assert jnp.ndim(other) == 0
        return self.scale(other)

    def __matmul__(self, other: Any) -> Any:
        if isinstance(other, HMatrix):
            from hmatrices.multiplication import hmul, product_skeleton

            if self.shape == other.shape and np.array_equal(
                self.coltree.loc2glob, other.coltree.loc2glob
            ):
                out = self.zeros_like()
            else:
                out = self._wrap(product_skeleton(self.root, other.root))
            return hmul(out, self, other, 1.0, 0.0)
        return self.matmul(other)

    def lu(self, **kwargs: Any) -> HLU:
        """The hierarchical LU factorization; see :func:`hmatrices.lu.lu`"""
        from hmatrices.lu import lu

        return lu(self, **kwargs)

    def inv(self, **kwargs: Any) -> HMatrix:
        """The hierarchical inverse; see :func:`hmatrices.inverse.inv`"""
        from hmatrices.inverse import inv

        return inv(self, **kwargs)

    def solve(self, b: JAXArray, **kwargs: Any) -> JAXArray:
        """Solve ``H @ x = b`` using a hierarchical LU factorization"""
        return self.lu(**kwargs).solve(b)

    def leaves(self) -> Iterator[HBlock]:
        return self.root.leaves()

    def ranks(self) -> list[int]:
        """The ranks of the low-rank leaves"""
        return [leaf.rank for leaf in self.leaves() if isinstance(leaf, LowRankBlock)]

    def storage(self) -> int:
        return self.root.storage()

    def compression_ratio(self) -> float:
        """The number of stored entries per entry of the dense matrix

        Values below one mean that the hierarchical format saves memory.
        """
        m, n = self.shape
        return self.storage() / max(m * n, 1)

    def tree_string(self) -> str:
        """A text rendering of the block tree"""
        lines: list[str] = []
        _describe(self.root, 0, lines)
        return "\n".join(lines)

    def print_tree(self, file: TextIO | None = None) -> None:
        print(self.tree_string(), file=sys.stdout if file is None else file)


def _describe(block: HBlock, depth: int, lines: list[str]) -> None:
    t, s = block.target, block.source
    where = f"[{t.lo}:{t.hi}, {s.lo}:{s.hi}]"
    indent = "  " * depth
    if isinstance(block, DenseBlock):
        lines.append(f"{indent}Dense {block.shape[0]}x{block.shape[1]} {where}")
    elif isinstance(block, LowRankBlock):
        lines.append(
            f"{indent}LowRank {block.shape[0]}x{block.shape[1]} {where} "
            f"rank={block.rank}"
        )
    elif isinstance(block, InternalBlock):
        lines.append(f"{indent}Internal {block.shape[0]}x{block.shape[1]} {where}")
        for row in block.children:
            for child in row:
                _describe(child, depth + 1, lines)
    else:
        raise unknown_block(block)
