# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from hmatrices import (
    CardinalitySplitter,
    ClusterTree,
    HMatrix,
    KernelMatrix,
    PartialACA,
    WeakAdmissibilityStd,
    hmul,
    kernels,
)
from hmatrices.errors import ShapeMismatchError
from hmatrices.multiplication import product_skeleton
from hmatrices.test_utils import assert_relative_error


@pytest.fixture
def factors():
    points = np.random.default_rng(42).uniform(size=(128, 2))
    tree = ClusterTree(points, CardinalitySplitter(nmax=8))
    A = HMatrix.assemble(
        KernelMatrix(kernels.Laplace(diagonal=10.0), points),
        tree,
        comp=PartialACA(rtol=1e-8),
    )
    B = HMatrix.assemble(
        KernelMatrix(kernels.Exp(scale=0.3), points),
        tree,
        comp=PartialACA(rtol=1e-8),
    )
    return A, B


def test_product(factors):
    A, B = factors
    expected = A.to_dense() @ B.to_dense()
    C = hmul(A.zeros_like(), A, B, 1.0, 0.0)
    assert isinstance(C, HMatrix)
    assert_relative_error(C.to_dense(), expected, 1e-6)
    assert_relative_error((A @ B).to_dense(), expected, 1e-6)


def test_alpha_beta(factors):
    A, B = factors
    expected = 2.0 * A.to_dense() @ B.to_dense() - 0.5 * B.to_dense()
    C = hmul(B, A, B, 2.0, -0.5)
    assert_relative_error(C.to_dense(), expected, 1e-6)
    assert [type(leaf) for leaf in C.leaves()] == [type(leaf) for leaf in B.leaves()]


def test_beta_one(factors):
    A, B = factors
    expected = A.to_dense() @ A.to_dense() + B.to_dense()
    C = hmul(B, A, A, 1.0, 1.0)
    assert_relative_error(C.to_dense(), expected, 1e-6)


def test_different_structures(factors):
    A, B = factors
    points = A.rowtree.points
    W = HMatrix.assemble(
        KernelMatrix(kernels.Exp(scale=0.3), points),
        A.rowtree,
        adm=WeakAdmissibilityStd(),
        comp=PartialACA(rtol=1e-8),
    )
    expected = A.to_dense() @ W.to_dense()
    assert_relative_error(hmul(A.zeros_like(), A, W).to_dense(), expected, 1e-6)
    assert_relative_error(hmul(W.zeros_like(), A, W).to_dense(), expected, 1e-6)
    expected = W.to_dense() @ A.to_dense()
    assert_relative_error(hmul(W.zeros_like(), W, A).to_dense(), expected, 1e-6)


def test_block_level(factors):
    A, B = factors
    C = hmul(A.root.zeros_like(), A.root, B.root, 1.0, 0.0)
    expected = A.to_dense(permuted=True) @ B.to_dense(permuted=True)
    assert_relative_error(C.to_dense(), expected, 1e-6)


def test_threads(factors):
    A, B = factors
    C1 = hmul(A.zeros_like(), A, B)
    C2 = hmul(A.zeros_like(), A, B, threads=4)
    assert_relative_error(C2.to_dense(), C1.to_dense(), 1e-12)


def test_transposed_product(factors):
    A, B = factors
    expected = A.to_dense().T @ B.to_dense()
    assert_relative_error((A.T @ B).to_dense(), expected, 1e-6)


def test_matvec_consistency(factors, random):
    A, B = factors
    x = random.normal(size=128)
    assert_relative_error((A @ B) @ x, A @ (B @ x), 1e-6)


def test_shape_mismatch(factors, hmatrix):
    A, _ = factors
    with pytest.raises(ShapeMismatchError):
        hmul(A.zeros_like(), A, hmatrix)
    with pytest.raises(ShapeMismatchError):
        hmul(hmatrix, A, A)


def test_permutation_mismatch(factors):
    A, _ = factors
    points = np.random.default_rng(7).uniform(size=(128, 2))
    other = HMatrix.assemble(
        KernelMatrix(kernels.Exp(), points),
        ClusterTree(points, CardinalitySplitter(nmax=8)),
    )
    with pytest.raises(ShapeMismatchError):
        hmul(A.zeros_like(), A, other)


def test_zero_product(factors):
    A, B = factors
    C = hmul(A, A.zeros_like(), B, 1.0, 0.0)
    assert jnp.allclose(C.to_dense(), 0.0)


def test_rectangular_product(factors):
    A, _ = factors
    Y = np.random.default_rng(11).uniform(size=(30, 2)) + [2.0, 0.0]
    points = A.coltree.points
    B = HMatrix.assemble(
        KernelMatrix(kernels.Exp(scale=0.3), points, Y),
        A.coltree,
        ClusterTree(Y, CardinalitySplitter(nmax=8)),
        comp=PartialACA(rtol=1e-8),
    )
    C = A @ B
    assert C.shape == (128, 30)
    assert C.coltree is B.coltree
    assert_relative_error(C.to_dense(), A.to_dense() @ B.to_dense(), 1e-6)


def test_product_skeleton(factors):
    A, B = factors
    skeleton = product_skeleton(A.root, B.root)
    assert skeleton.shape == (128, 128)
    assert jnp.allclose(skeleton.to_dense(), 0.0)
