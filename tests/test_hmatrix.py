# mypy: ignore-errors

import io

import jax.numpy as jnp
import numpy as np
import pytest

from hmatrices import (
    CardinalitySplitter,
    ClusterTree,
    DenseBlock,
    HMatrix,
    InternalBlock,
    KernelMatrix,
    LowRankBlock,
    PartialACA,
    kernels,
)
from hmatrices.errors import ShapeMismatchError, UsageError
from hmatrices.test_utils import assert_allclose, assert_relative_error


def test_round_trip(hmatrix, kernel_matrix):
    assert hmatrix.shape == (64, 64)
    assert_relative_error(hmatrix.to_dense(), kernel_matrix.to_dense(), 1e-6)


def test_structure(hmatrix):
    assert isinstance(hmatrix.root, InternalBlock)
    leaves = list(hmatrix.leaves())
    assert any(isinstance(leaf, LowRankBlock) for leaf in leaves)
    assert any(isinstance(leaf, DenseBlock) for leaf in leaves)
    assert len(hmatrix.ranks()) == sum(isinstance(leaf, LowRankBlock) for leaf in leaves)
    assert sum(leaf.shape[0] * leaf.shape[1] for leaf in leaves) == 64 * 64


def test_permuted_order(hmatrix, kernel_matrix, tree):
    perm = tree.loc2glob
    expected = kernel_matrix.to_dense()[perm][:, perm]
    assert_relative_error(hmatrix.to_dense(permuted=True), expected, 1e-6)


def test_matvec(hmatrix, random):
    dense = hmatrix.to_dense()
    x = random.normal(size=64)
    assert_allclose(hmatrix @ x, dense @ x)
    x = random.normal(size=(64, 3))
    assert_allclose(hmatrix @ x, dense @ x)


def test_getindex(hmatrix):
    dense = hmatrix.to_dense()
    for i, j in [(0, 0), (3, 5), (63, 1), (10, 40)]:
        assert_allclose(hmatrix[i, j], dense[i, j])


def test_getindex_guard(hmatrix):
    guarded = hmatrix.disable_getindex()
    assert not guarded.allow_getindex
    with pytest.raises(UsageError):
        guarded[0, 0]
    hmatrix[0, 0]
    guarded.enable_getindex()[0, 0]


def test_getindex_guard_at_assembly(kernel_matrix, tree):
    H = HMatrix.assemble(kernel_matrix, tree, allow_getindex=False)
    with pytest.raises(UsageError):
        H[1, 2]


def test_transpose(hmatrix):
    assert_allclose(hmatrix.T.to_dense(), hmatrix.to_dense().T)
    assert_allclose(hmatrix.transpose().T.to_dense(), hmatrix.to_dense())


def test_scaling(hmatrix):
    dense = hmatrix.to_dense()
    assert_allclose((-hmatrix).to_dense(), -dense)
    assert_allclose((2.5 * hmatrix).to_dense(), 2.5 * dense)
    assert_allclose((hmatrix * 2.5).to_dense(), 2.5 * dense)
    assert_allclose(hmatrix.zeros_like().to_dense(), jnp.zeros((64, 64)))


def test_add(hmatrix, other_hmatrix):
    expected = hmatrix.to_dense() + other_hmatrix.to_dense()
    assert_relative_error((hmatrix + other_hmatrix).to_dense(), expected, 1e-6)
    expected = hmatrix.to_dense() - other_hmatrix.to_dense()
    assert_relative_error((hmatrix - other_hmatrix).to_dense(), expected, 1e-6)


def test_add_different_permutations(hmatrix, random):
    points = random.uniform(size=(64, 2))
    tree = ClusterTree(points, CardinalitySplitter(nmax=4))
    other = HMatrix.assemble(KernelMatrix(kernels.Laplace(), points), tree)
    with pytest.raises(ShapeMismatchError):
        hmatrix + other


def test_rectangular(random):
    X = random.uniform(size=(50, 2))
    Y = random.uniform(size=(30, 2)) + [0.5, 0.0]
    K = KernelMatrix(kernels.Laplace(), X, Y)
    H = HMatrix.assemble(
        K,
        ClusterTree(X, CardinalitySplitter(nmax=4)),
        ClusterTree(Y, CardinalitySplitter(nmax=4)),
        comp=PartialACA(rtol=1e-8),
    )
    assert H.shape == (50, 30)
    assert_relative_error(H.to_dense(), K.to_dense(), 1e-6)


def test_complex(points, tree):
    K = KernelMatrix(kernels.Helmholtz(wavenumber=4.0, diagonal=1.0), points)
    H = HMatrix.assemble(K, tree, comp=PartialACA(rtol=1e-8))
    assert jnp.iscomplexobj(H.to_dense())
    assert_relative_error(H.to_dense(), K.to_dense(), 1e-6)


def test_threads(kernel_matrix, tree, hmatrix):
    H = HMatrix.assemble(kernel_matrix, tree, comp=PartialACA(rtol=1e-8), threads=3)
    assert_allclose(H.to_dense(), hmatrix.to_dense())


def test_shape_mismatch(kernel_matrix, points):
    with pytest.raises(ShapeMismatchError):
        HMatrix.assemble(kernel_matrix, ClusterTree(points[:10]))


def test_compression(random):
    points = np.sort(random.uniform(size=256))
    tree = ClusterTree(points, CardinalitySplitter(nmax=8))
    K = KernelMatrix(kernels.Laplace(diagonal=1.0), points)
    H = HMatrix.assemble(K, tree, comp=PartialACA(rtol=1e-6))
    assert H.compression_ratio() < 1.0
    assert H.compression_ratio() == pytest.approx(H.storage() / (256 * 256))
    assert_relative_error(H.to_dense(), K.to_dense(), 1e-5)


def test_tree_string(hmatrix):
    text = hmatrix.tree_string()
    lines = text.splitlines()
    assert lines[0].startswith("Internal 64x64")
    assert any("LowRank" in line for line in lines)
    assert any(line.lstrip().startswith("Dense") for line in lines)
    buffer = io.StringIO()
    hmatrix.print_tree(file=buffer)
    assert buffer.getvalue().strip() == text.strip()


def test_blocks_check_shapes(tree):
    with pytest.raises(ShapeMismatchError):
        DenseBlock(target=tree, source=tree, data=jnp.zeros((3, 3)))
